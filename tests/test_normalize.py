"""Status normalization and placement classification tests."""

import pytest

from wagerflow.models.status import Outcome, ResponseKind, classify_placement, is_critical
from wagerflow.provider.normalize import normalize_status, normalize_text


@pytest.mark.parametrize(
    "status,expected",
    [
        ("WON", Outcome.WON),
        ("lost", Outcome.LOST),
        ("Half Win", Outcome.HALF_WIN),
        ("half-loss", Outcome.HALF_LOSS),
        ("CANCELLED", Outcome.VOID),
        ("OPEN", Outcome.ACCEPTED),
        ("PENDING_ACCEPTANCE", Outcome.PENDING_ACCEPTANCE),
        ("REJECTED", Outcome.REJECTED),
    ],
)
def test_exact_codes(status, expected):
    assert normalize_status(status) is expected


def test_noise_labels_do_not_count_as_win():
    assert normalize_text("Match Winner") == ""
    assert normalize_status(None, "WINNERODD 2.10") is Outcome.UNKNOWN
    assert normalize_status(None, "Stake 10.00 - to win 15.00") is Outcome.UNKNOWN
    assert normalize_status(None, "Match Winner: Lost", tab="settled") is Outcome.LOST


def test_status_field_beats_free_text():
    assert normalize_status("Settled - Won", "lost last set") is Outcome.WON


def test_whole_words_before_substrings():
    # "closed" must not hit "lose" before the whole word "void" is seen
    assert normalize_status(None, "closed: void") is Outcome.VOID
    assert normalize_status(None, "xxvoidedxx") is Outcome.VOID


def test_tab_hints():
    assert normalize_status(None, "anything", tab="Unsettled") is Outcome.ACCEPTED
    assert normalize_status(None, "accepted won", tab="settled") is Outcome.WON
    assert normalize_status(None, "accepted won") is Outcome.ACCEPTED


def test_half_outcomes_win_over_plain_words():
    assert normalize_status(None, "Half Won", tab="settled") is Outcome.HALF_WIN


def test_nothing_matches():
    assert normalize_status(None, None) is Outcome.UNKNOWN
    assert normalize_status("", "") is Outcome.UNKNOWN


@pytest.mark.parametrize(
    "code,kind",
    [
        ("ACCEPTED", ResponseKind.ACCEPTED),
        ("PENDING_ACCEPTANCE", ResponseKind.PENDING),
        ("PRICE_ABOVE_MARKET", ResponseKind.ADJUST),
        ("STAKE_ABOVE_MAX", ResponseKind.ADJUST),
        ("STAKE_BELOW_MIN", ResponseKind.DROP),
        ("PUSH", ResponseKind.DROP),
        ("REJECTED", ResponseKind.REJECTED),
        ("MARKET_SUSPENDED", ResponseKind.CRITICAL),
        ("ERROR_HTTP_FORBIDDEN", ResponseKind.CRITICAL),
        ("HTTP_500", ResponseKind.CRITICAL),
        ("EXCEPTION", ResponseKind.TRANSIENT),
        ("BRAND_NEW_CODE", ResponseKind.UNKNOWN),
    ],
)
def test_classify_placement(code, kind):
    assert classify_placement(code) is kind


def test_is_critical_normalizes_case():
    assert is_critical("insufficient funds")
    assert not is_critical("accepted")
