"""Persistence backends."""

from race_ledger.storage.sqlite import SQLiteLedgerStore

__all__ = ["SQLiteLedgerStore"]
