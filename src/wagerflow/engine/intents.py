"""Load wager intents from a JSON file produced by the prediction step."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from wagerflow.errors import IntentFileError
from wagerflow.models.wager import Side, WagerIntent


def intent_from_dict(item: dict[str, Any], currency: str = "USD") -> WagerIntent:
    """Build one intent. Accepts ``odds`` for price and ``pick`` (0 = home, 1 = away) for side."""
    data = dict(item)
    if "price" not in data and "odds" in data:
        data["price"] = data.pop("odds")
    if "side" not in data and "pick" in data:
        data["side"] = data.pop("pick")
    if "side" not in data:
        raise IntentFileError(f"Intent for event {data.get('event_id')!r} has no side")
    try:
        data["side"] = Side.parse(data["side"])
    except ValueError as e:
        raise IntentFileError(str(e)) from e
    data.setdefault("currency", currency)
    if "event_id" in data:
        data["event_id"] = str(data["event_id"])
    try:
        return WagerIntent.model_validate(data)
    except ValidationError as e:
        raise IntentFileError(f"Invalid intent {item!r}: {e}") from e


def load_intents(path: str | Path, currency: str = "USD") -> list[WagerIntent]:
    """Read a JSON list of intents (or an object with an ``intents`` list)."""
    p = Path(path)
    try:
        payload = json.loads(p.read_text(encoding="utf-8"))
    except FileNotFoundError as e:
        raise IntentFileError(f"Intent file not found: {p}") from e
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
        raise IntentFileError(f"Cannot read intent file {p}: {e}") from e
    if isinstance(payload, dict):
        payload = payload.get("intents")
    if not isinstance(payload, list):
        raise IntentFileError(f"{p} must contain a list of intents")
    intents = []
    for item in payload:
        if not isinstance(item, dict):
            raise IntentFileError(f"Intent entries must be objects, got {item!r}")
        intents.append(intent_from_dict(item, currency))
    return intents
