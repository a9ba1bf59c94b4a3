"""Balance ledger."""

from wagerflow.ledger.balance import BalanceComparison, BalanceLedger, BalanceStats

__all__ = ["BalanceComparison", "BalanceLedger", "BalanceStats"]
