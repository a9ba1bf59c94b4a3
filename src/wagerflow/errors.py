"""Exception hierarchy."""

from __future__ import annotations


class WagerflowError(Exception):
    """Base exception for wagerflow errors."""

    pass


class ConfigError(WagerflowError):
    """Configuration could not be loaded."""

    pass


class ProviderError(WagerflowError):
    """Placement provider transport or protocol failure."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class IntentFileError(WagerflowError):
    """Wager intent file is missing or malformed."""

    pass
