"""Persistence: JSON audit log, DuckDB ledger journal and cycle history."""
