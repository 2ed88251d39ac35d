"""Internal record types for persistence and operation results."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass
class ActivityRecord:
    """A single activity log entry."""

    id: int
    event_type: str
    record_id: str | None
    address: str | None
    amount: int | None
    message: str
    created_at: str


@dataclass
class SettlementRecord:
    """One committed settlement round as persisted in the history table."""

    id: int
    session_id: str
    settle_version: int
    total_paid: int
    transferred: int
    ejected: int
    payouts: list[dict]
    settled_at: str


@dataclass
class ProfileRecord:
    """A membership directory entry: one caller, one record."""

    identity: str
    record_id: str
    kind: str = "player"  # player | host
    created_at: str = ""
