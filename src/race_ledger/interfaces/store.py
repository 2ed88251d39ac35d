"""LedgerStore protocol - persists ledger records, activity and settlement history."""

from __future__ import annotations

from typing import Protocol, Union

from race_ledger.directory import Lobby, MembershipDirectory
from race_ledger.models.prize import Prize
from race_ledger.models.records import ActivityRecord, SettlementRecord
from race_ledger.models.session import Session
from race_ledger.models.settle import SettleReceipt
from race_ledger.models.treasury import Recipient
from race_ledger.wallets import Wallets

LedgerRecord = Union[Session, Recipient, Prize, Wallets, MembershipDirectory, Lobby]


class LedgerStore(Protocol):
    """Persists every independently addressable ledger record."""

    # ── Lifecycle ──────────────────────────────────────────

    async def initialize(self) -> None:
        """Create tables if they don't exist."""
        ...

    async def close(self) -> None:
        ...

    # ── Records ────────────────────────────────────────────

    async def save(
        self, *records: LedgerRecord, deletes: list[tuple[str, str]] | None = None
    ) -> None:
        """Persist all records and drop ``deletes`` in a single transaction."""
        ...

    async def get_revision(self, kind: str, record_id: str) -> int:
        """Number of committed writes to a record; 0 if it does not exist."""
        ...

    async def get_session(self, session_id: str) -> Session | None:
        ...

    async def list_sessions(self) -> list[Session]:
        ...

    async def get_recipient(self, recipient_id: str) -> Recipient | None:
        ...

    async def get_prize(self, prize_id: str) -> Prize | None:
        ...

    async def get_wallets(self) -> Wallets:
        ...

    async def get_directory(self, kind: str) -> MembershipDirectory:
        ...

    async def get_lobby(self, capacity: int) -> Lobby:
        ...

    # ── Activity log ───────────────────────────────────────

    async def log_activity(
        self,
        event_type: str,
        message: str,
        record_id: str | None = None,
        address: str | None = None,
        amount: int | None = None,
    ) -> None:
        ...

    async def get_recent_activity(self, limit: int = 50) -> list[ActivityRecord]:
        ...

    # ── Settlement history ─────────────────────────────────

    async def save_settlement(self, receipt: SettleReceipt) -> None:
        ...

    async def get_settlement_history(
        self, session_id: str, limit: int = 10
    ) -> list[SettlementRecord]:
        ...
