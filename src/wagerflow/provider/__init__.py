"""Placement providers: interface, paper venue and HTTP trading API adapter."""

from __future__ import annotations

from typing import TYPE_CHECKING

from wagerflow.errors import ConfigError
from wagerflow.provider.base import PlacementProvider, PlaceResponse, StatusResponse

if TYPE_CHECKING:
    from wagerflow.config import Settings

__all__ = ["PlacementProvider", "PlaceResponse", "StatusResponse", "create_provider"]


def create_provider(settings: Settings, kind: str | None = None) -> PlacementProvider:
    """Build the provider named by kind (or settings.provider_kind)."""
    kind = (kind or settings.provider_kind).lower()
    if kind == "paper":
        from wagerflow.provider.paper import PaperProvider

        return PaperProvider.from_settings(settings)
    if kind == "http":
        from wagerflow.provider.http import HttpPlacementProvider

        return HttpPlacementProvider.from_settings(settings)
    raise ConfigError(f"Unknown provider kind: {kind}")
