"""Config loading and profile overlay tests."""

from decimal import Decimal

import pytest

from wagerflow.config import get_settings, load_config
from wagerflow.errors import ConfigError


def test_profile_overlays_default(tmp_path):
    (tmp_path / "default.toml").write_text(
        "[engine]\nmax_active_cycles = 2\nretry_pace_sec = 0.5\n[settlement]\nmax_wait_hours = 0\n"
    )
    (tmp_path / "dev.toml").write_text("[engine]\nretry_pace_sec = 0\n[settlement]\nmax_wait_hours = 2\n")
    settings = get_settings("dev", tmp_path)
    assert settings.max_active_cycles == 2
    assert settings.retry_pace_sec == 0
    assert settings.settlement_max_wait_sec == 7200


def test_defaults_when_sections_missing(tmp_path):
    settings = get_settings(None, tmp_path)
    assert load_config(None, tmp_path) == {}
    assert settings.max_active_cycles == 2
    assert settings.stake_shrink_factor == Decimal("0.9")
    assert settings.settlement_first_wait_sec == 300
    assert settings.settlement_poll_interval_sec == 1800
    assert settings.settlement_max_wait_sec is None
    assert settings.provider_kind == "paper"


def test_invalid_toml_raises(tmp_path):
    (tmp_path / "default.toml").write_text("[engine\n")
    with pytest.raises(ConfigError):
        load_config(None, tmp_path)
