"""REST trading API provider (Cloudbet-style endpoints) over httpx."""

from __future__ import annotations

import asyncio
import os
from decimal import Decimal, InvalidOperation
from typing import Any

import httpx
import structlog

from wagerflow.errors import ProviderError
from wagerflow.models.wager import Side
from wagerflow.provider.base import PlacementProvider, PlaceResponse, StatusResponse
from wagerflow.provider.rate_limit import TokenBucket, backoff_on_429

log = structlog.get_logger(__name__)

PLACE_PATH = "/v3/bets/place"
STATUS_PATH = "/v3/bets/{reference}/status"
BALANCE_PATH = "/v1/account/currencies/{currency}/balance"


def _decimal(value: Any) -> Decimal | None:
    if value is None or value == "":
        return None
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        return None


class HttpPlacementProvider(PlacementProvider):
    """Places and queries wagers through a JSON trading API. HTTP errors become HTTP_<code> statuses."""

    venue_id = "http"

    def __init__(
        self,
        base_url: str,
        api_key: str | None = None,
        *,
        market_url_template: str = "tennis.winner/{side}",
        timeout_sec: float = 30.0,
        rate_per_sec: float = 2.0,
        max_429_retries: int = 3,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.market_url_template = market_url_template
        self.max_429_retries = max_429_retries
        self._bucket = TokenBucket(rate=rate_per_sec)
        headers = {"Accept": "application/json"}
        if api_key:
            headers["X-API-Key"] = api_key
        self._client = client or httpx.AsyncClient(
            base_url=self.base_url, headers=headers, timeout=timeout_sec
        )

    @classmethod
    def from_settings(cls, settings: Any) -> HttpPlacementProvider:
        return cls(
            settings.provider_base_url,
            os.environ.get(settings.provider_api_key_env),
            market_url_template=settings.market_url_template,
            timeout_sec=settings.provider_timeout_sec,
            rate_per_sec=settings.provider_rate_per_sec,
        )

    async def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        """Send one request, backing off on 429. Transport failures raise ProviderError."""
        retries = 0
        while True:
            await self._bucket.wait_for_token()
            try:
                resp = await self._client.request(method, path, **kwargs)
            except httpx.HTTPError as e:
                raise ProviderError(f"{method} {path} failed: {e}") from e
            if resp.status_code != 429 or retries >= self.max_429_retries:
                return resp
            delay = backoff_on_429(retries, retry_after=resp.headers.get("Retry-After"))
            log.warning("provider_rate_limited", path=path, retry_in_sec=delay)
            await asyncio.sleep(delay)
            retries += 1

    @staticmethod
    def _json(resp: httpx.Response) -> dict[str, Any]:
        try:
            body = resp.json()
        except ValueError:
            return {}
        return body if isinstance(body, dict) else {}

    async def place_wager(
        self,
        event_id: str,
        side: Side,
        price: Decimal,
        stake: Decimal,
        currency: str,
        idempotency_ref: str,
    ) -> PlaceResponse:
        payload = {
            "acceptPriceChange": "BETTER",
            "currency": currency,
            "eventId": str(event_id),
            "marketUrl": self.market_url_template.format(side=side.venue_name),
            "price": str(price),
            "referenceId": idempotency_ref,
            "side": "BACK",
            "stake": str(stake),
        }
        resp = await self._request("POST", PLACE_PATH, json=payload)
        if resp.is_error:
            log.warning("place_http_error", event_id=event_id, status_code=resp.status_code)
            return PlaceResponse(
                remote_ref=None, status=f"HTTP_{resp.status_code}", raw=resp.text
            )
        body = self._json(resp)
        return PlaceResponse(
            remote_ref=body.get("referenceId") or idempotency_ref,
            status=str(body.get("status") or ""),
            price=_decimal(body.get("price")),
            raw=resp.text,
        )

    async def get_wager_status(self, reference: str) -> StatusResponse:
        resp = await self._request("GET", STATUS_PATH.format(reference=reference))
        if resp.is_error:
            return StatusResponse(
                reference=reference, status=f"HTTP_{resp.status_code}", raw=resp.text
            )
        body = self._json(resp)
        return StatusResponse(
            reference=str(body.get("referenceId") or reference),
            status=body.get("status"),
            status_text=body.get("error") or body.get("statusText"),
            raw=resp.text,
        )

    async def get_balance(self, currency: str = "USD") -> Decimal:
        resp = await self._request("GET", BALANCE_PATH.format(currency=currency))
        if resp.is_error:
            raise ProviderError(f"Balance query failed ({resp.status_code})", resp.status_code)
        amount = _decimal(self._json(resp).get("amount"))
        if amount is None:
            raise ProviderError("Balance response missing amount")
        return amount

    async def close(self) -> None:
        await self._client.aclose()
