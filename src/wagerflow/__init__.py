"""Wagerflow - wager placement, settlement polling and balance ledger engine."""

__version__ = "0.1.0"
