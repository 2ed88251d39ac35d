"""SQLite implementation of the LedgerStore protocol."""

from __future__ import annotations

import json
from dataclasses import asdict
from datetime import datetime, timezone
from pathlib import Path

import aiosqlite

from race_ledger.directory import Lobby, MembershipDirectory
from race_ledger.interfaces.store import LedgerRecord
from race_ledger.models.prize import Prize
from race_ledger.models.records import ActivityRecord, SettlementRecord
from race_ledger.models.session import Session
from race_ledger.models.settle import SettleReceipt
from race_ledger.models.treasury import Recipient
from race_ledger.wallets import Wallets

SCHEMA = """
-- Ledger records, one JSON body per independently addressable record
CREATE TABLE IF NOT EXISTS records (
    kind TEXT NOT NULL,
    record_id TEXT NOT NULL,
    body TEXT NOT NULL,
    revision INTEGER NOT NULL DEFAULT 1,
    created_at TEXT NOT NULL DEFAULT (datetime('now')),
    updated_at TEXT NOT NULL DEFAULT (datetime('now')),
    PRIMARY KEY (kind, record_id)
);

-- Activity log
CREATE TABLE IF NOT EXISTS activity_log (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    event_type TEXT NOT NULL,
    record_id TEXT,
    address TEXT,
    amount INTEGER,
    message TEXT NOT NULL,
    created_at TEXT NOT NULL DEFAULT (datetime('now'))
);
CREATE INDEX IF NOT EXISTS idx_activity_created ON activity_log(created_at);

-- Committed settlement rounds
CREATE TABLE IF NOT EXISTS settlements (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    session_id TEXT NOT NULL,
    settle_version INTEGER NOT NULL,
    total_paid INTEGER NOT NULL,
    transferred INTEGER NOT NULL,
    ejected INTEGER NOT NULL,
    payouts TEXT NOT NULL,
    settled_at TEXT NOT NULL DEFAULT (datetime('now'))
);
CREATE UNIQUE INDEX IF NOT EXISTS idx_settlements_round ON settlements(session_id, settle_version);
"""

WALLETS_ID = "default"
LOBBY_ID = "default"


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _key(record: LedgerRecord) -> tuple[str, str]:
    """Map a record to its (kind, record_id) address."""
    if isinstance(record, Session):
        return "session", record.session_id
    if isinstance(record, Recipient):
        return "recipient", record.recipient_id
    if isinstance(record, Prize):
        return "prize", record.prize_id
    if isinstance(record, Wallets):
        return "wallets", WALLETS_ID
    if isinstance(record, MembershipDirectory):
        return "directory", record.kind
    if isinstance(record, Lobby):
        return "lobby", LOBBY_ID
    raise TypeError(f"cannot persist {type(record).__name__}")


class SQLiteLedgerStore:
    """SQLite-backed implementation of the LedgerStore protocol."""

    def __init__(self, db_path: str) -> None:
        self._db_path = db_path
        self._db: aiosqlite.Connection | None = None

    async def initialize(self) -> None:
        if self._db_path != ":memory:":
            Path(self._db_path).parent.mkdir(parents=True, exist_ok=True)
        self._db = await aiosqlite.connect(self._db_path)
        self._db.row_factory = aiosqlite.Row
        await self._db.executescript(SCHEMA)
        await self._db.commit()

    async def close(self) -> None:
        if self._db:
            await self._db.close()
            self._db = None

    @property
    def db(self) -> aiosqlite.Connection:
        assert self._db is not None, "Store not initialized. Call initialize() first."
        return self._db

    # ── Records ────────────────────────────────────────────

    async def save(
        self, *records: LedgerRecord, deletes: list[tuple[str, str]] | None = None
    ) -> None:
        """Upsert ``records`` and drop ``deletes`` ((kind, record_id) pairs) in one transaction."""
        now = _now()
        try:
            for kind, record_id in deletes or []:
                await self.db.execute(
                    "DELETE FROM records WHERE kind=? AND record_id=?", (kind, record_id)
                )
            for record in records:
                kind, record_id = _key(record)
                await self.db.execute(
                    "INSERT INTO records (kind, record_id, body, created_at, updated_at)"
                    " VALUES (?, ?, ?, ?, ?)"
                    " ON CONFLICT(kind, record_id) DO UPDATE SET"
                    " body=excluded.body, revision=records.revision + 1,"
                    " updated_at=excluded.updated_at",
                    (kind, record_id, json.dumps(record.to_dict()), now, now),
                )
        except BaseException:
            await self.db.rollback()
            raise
        await self.db.commit()

    async def _load(self, kind: str, record_id: str) -> dict | None:
        async with self.db.execute(
            "SELECT body FROM records WHERE kind=? AND record_id=?", (kind, record_id)
        ) as cur:
            row = await cur.fetchone()
            return json.loads(row["body"]) if row else None

    async def get_revision(self, kind: str, record_id: str) -> int:
        async with self.db.execute(
            "SELECT revision FROM records WHERE kind=? AND record_id=?", (kind, record_id)
        ) as cur:
            row = await cur.fetchone()
            return row["revision"] if row else 0

    async def get_session(self, session_id: str) -> Session | None:
        data = await self._load("session", session_id)
        return Session.from_dict(data) if data else None

    async def list_sessions(self) -> list[Session]:
        async with self.db.execute(
            "SELECT body FROM records WHERE kind='session' ORDER BY created_at"
        ) as cur:
            return [Session.from_dict(json.loads(row["body"])) async for row in cur]

    async def get_recipient(self, recipient_id: str) -> Recipient | None:
        data = await self._load("recipient", recipient_id)
        return Recipient.from_dict(data) if data else None

    async def get_prize(self, prize_id: str) -> Prize | None:
        data = await self._load("prize", prize_id)
        return Prize.from_dict(data) if data else None

    async def get_wallets(self) -> Wallets:
        data = await self._load("wallets", WALLETS_ID)
        return Wallets.from_dict(data) if data else Wallets()

    async def get_directory(self, kind: str) -> MembershipDirectory:
        data = await self._load("directory", kind)
        return MembershipDirectory.from_dict(data) if data else MembershipDirectory(kind)

    async def get_lobby(self, capacity: int) -> Lobby:
        data = await self._load("lobby", LOBBY_ID)
        if data is None:
            return Lobby(capacity)
        lobby = Lobby.from_dict(data)
        lobby.capacity = capacity
        return lobby

    # ── Activity log ───────────────────────────────────────

    async def log_activity(
        self,
        event_type: str,
        message: str,
        record_id: str | None = None,
        address: str | None = None,
        amount: int | None = None,
    ) -> None:
        await self.db.execute(
            "INSERT INTO activity_log (event_type, record_id, address, amount, message, created_at)"
            " VALUES (?, ?, ?, ?, ?, ?)",
            (event_type, record_id, address, amount, message, _now()),
        )
        await self.db.commit()

    async def get_recent_activity(self, limit: int = 50) -> list[ActivityRecord]:
        async with self.db.execute(
            "SELECT * FROM activity_log ORDER BY id DESC LIMIT ?", (limit,)
        ) as cur:
            return [
                ActivityRecord(
                    id=row["id"],
                    event_type=row["event_type"],
                    record_id=row["record_id"],
                    address=row["address"],
                    amount=row["amount"],
                    message=row["message"],
                    created_at=row["created_at"],
                )
                async for row in cur
            ]

    # ── Settlement history ─────────────────────────────────

    async def save_settlement(self, receipt: SettleReceipt) -> None:
        await self.db.execute(
            "INSERT INTO settlements"
            " (session_id, settle_version, total_paid, transferred, ejected, payouts, settled_at)"
            " VALUES (?, ?, ?, ?, ?, ?, ?)",
            (
                receipt.session_id,
                receipt.settle_version,
                receipt.total_paid,
                receipt.transferred,
                len(receipt.ejected),
                json.dumps([asdict(p) for p in receipt.payouts]),
                _now(),
            ),
        )
        await self.db.commit()

    async def get_settlement_history(
        self, session_id: str, limit: int = 10
    ) -> list[SettlementRecord]:
        async with self.db.execute(
            "SELECT * FROM settlements WHERE session_id=? ORDER BY settle_version DESC LIMIT ?",
            (session_id, limit),
        ) as cur:
            return [
                SettlementRecord(
                    id=row["id"],
                    session_id=row["session_id"],
                    settle_version=row["settle_version"],
                    total_paid=row["total_paid"],
                    transferred=row["transferred"],
                    ejected=row["ejected"],
                    payouts=json.loads(row["payouts"]),
                    settled_at=row["settled_at"],
                )
                async for row in cur
            ]
