"""Protocol interfaces for race_ledger components."""

from race_ledger.interfaces.store import LedgerRecord, LedgerStore

__all__ = ["LedgerRecord", "LedgerStore"]
