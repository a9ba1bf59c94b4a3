"""Paper venue and HTTP trading API adapter tests."""

import json
from decimal import Decimal

import httpx
import pytest

from wagerflow.config import Settings
from wagerflow.errors import ConfigError, ProviderError
from wagerflow.models.wager import Side
from wagerflow.provider import create_provider
from wagerflow.provider.http import HttpPlacementProvider
from wagerflow.provider.paper import PaperProvider
from wagerflow.provider.rate_limit import TokenBucket, backoff_on_429


@pytest.mark.asyncio
async def test_paper_bounds_and_idempotency():
    paper = PaperProvider(Decimal("20"), min_stake=Decimal("1"), max_stake=Decimal("15"), seed=1)
    assert (await paper.place_wager("e1", Side.SIDE_A, Decimal("2"), Decimal("0.5"), "USD", "r0")).status == "STAKE_BELOW_MIN"
    assert (await paper.place_wager("e1", Side.SIDE_A, Decimal("2"), Decimal("16"), "USD", "r0")).status == "STAKE_ABOVE_MAX"

    first = await paper.place_wager("e1", Side.SIDE_A, Decimal("2"), Decimal("10"), "USD", "r1")
    again = await paper.place_wager("e1", Side.SIDE_A, Decimal("2"), Decimal("10"), "USD", "r1")
    assert first.status == "ACCEPTED"
    assert again.remote_ref == first.remote_ref
    assert await paper.get_balance() == Decimal("10")

    broke = await paper.place_wager("e2", Side.SIDE_B, Decimal("2"), Decimal("12"), "USD", "r2")
    assert broke.status == "INSUFFICIENT_FUNDS"


@pytest.mark.asyncio
async def test_paper_settles_after_polls():
    paper = PaperProvider(Decimal("100"), settle_after_polls=2, seed=3)
    placed = await paper.place_wager("e1", Side.SIDE_A, Decimal("2"), Decimal("10"), "USD", "r1")

    pending = await paper.get_wager_status(placed.remote_ref)
    assert pending.tab == "unsettled"
    settled = await paper.get_wager_status("r1")
    assert settled.status in ("WON", "LOST")
    assert settled.tab == "settled"
    assert (await paper.get_wager_status(placed.remote_ref)).status == settled.status
    assert (await paper.get_wager_status("missing")).status == "UNKNOWN"


def _http(handler):
    transport = httpx.MockTransport(handler)
    client = httpx.AsyncClient(base_url="https://venue.test", transport=transport)
    return HttpPlacementProvider("https://venue.test", "key", client=client, rate_per_sec=1000)


@pytest.mark.asyncio
async def test_http_place_payload_and_response():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["path"] = request.url.path
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"referenceId": "ref-1", "status": "ACCEPTED", "price": "1.95"})

    provider = _http(handler)
    resp = await provider.place_wager("e9", Side.SIDE_B, Decimal("2.0"), Decimal("5"), "USD", "ref-1")
    await provider.close()

    assert seen["path"] == "/v3/bets/place"
    assert seen["body"]["marketUrl"] == "tennis.winner/away"
    assert seen["body"]["referenceId"] == "ref-1"
    assert seen["body"]["stake"] == "5"
    assert resp.status == "ACCEPTED"
    assert resp.price == Decimal("1.95")


@pytest.mark.asyncio
async def test_http_error_maps_to_status_code():
    provider = _http(lambda request: httpx.Response(403, text="forbidden"))
    resp = await provider.place_wager("e9", Side.SIDE_A, Decimal("2"), Decimal("5"), "USD", "ref-1")
    status = await provider.get_wager_status("ref-1")
    await provider.close()
    assert resp.status == "HTTP_403"
    assert status.status == "HTTP_403"


@pytest.mark.asyncio
async def test_http_status_and_balance():
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("/status"):
            return httpx.Response(200, json={"referenceId": "ref-1", "status": "WIN"})
        return httpx.Response(200, json={"amount": "321.50"})

    provider = _http(handler)
    status = await provider.get_wager_status("ref-1")
    balance = await provider.get_balance("USD")
    await provider.close()
    assert status.status == "WIN"
    assert balance == Decimal("321.50")


@pytest.mark.asyncio
async def test_http_transport_failure_raises_provider_error():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    provider = _http(handler)
    with pytest.raises(ProviderError):
        await provider.get_balance()
    await provider.close()


def test_create_provider_by_kind():
    settings = Settings.from_dict({"provider": {"kind": "paper", "paper_seed": 1}})
    assert isinstance(create_provider(settings), PaperProvider)
    with pytest.raises(ConfigError):
        create_provider(settings, "carrier-pigeon")


def test_token_bucket_paces_calls():
    now = [0.0]
    bucket = TokenBucket(rate=2.0, burst=2, clock=lambda: now[0])
    assert bucket.consume()
    assert bucket.consume()
    assert not bucket.consume()
    assert bucket.delay_for() == pytest.approx(0.5)
    now[0] = 0.5
    assert bucket.consume()
    assert TokenBucket().burst == 1


def test_backoff_on_429():
    assert backoff_on_429(0) == 1.0
    assert backoff_on_429(3) == 8.0
    assert backoff_on_429(10) == 60.0
    assert backoff_on_429(2, retry_after="3") == 3.0
    assert backoff_on_429(2, retry_after="Wed, 21 Oct 2026 07:28:00 GMT") == 4.0


@pytest.mark.asyncio
async def test_http_retries_after_429():
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request.url.path)
        if len(calls) == 1:
            return httpx.Response(429, headers={"Retry-After": "0"})
        return httpx.Response(200, json={"amount": "10"})

    provider = _http(handler)
    assert await provider.get_balance() == Decimal("10")
    await provider.close()
    assert len(calls) == 2
