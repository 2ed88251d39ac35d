"""Data models for the race ledger."""

from race_ledger.models.config import LedgerConfig, SessionDefaults
from race_ledger.models.prize import AssetKind, Prize
from race_ledger.models.records import ActivityRecord, ProfileRecord, SettlementRecord
from race_ledger.models.session import (
    Cash,
    Deposit,
    DepositStatus,
    Disabled,
    EntryLock,
    EntryType,
    Gating,
    HostEntry,
    PlayerEntry,
    Session,
    Ticket,
)
from race_ledger.models.settle import (
    Award,
    Payout,
    PlayerBalance,
    Settle,
    SettleBatch,
    SettleReceipt,
    Transfer,
)
from race_ledger.models.treasury import Recipient, Share, TreasurySlot

__all__ = [
    "LedgerConfig", "SessionDefaults",
    "AssetKind", "Prize",
    "ActivityRecord", "ProfileRecord", "SettlementRecord",
    "Cash", "Deposit", "DepositStatus", "Disabled", "EntryLock", "EntryType",
    "Gating", "HostEntry", "PlayerEntry", "Session", "Ticket",
    "Award", "Payout", "PlayerBalance", "Settle", "SettleBatch", "SettleReceipt", "Transfer",
    "Recipient", "Share", "TreasurySlot",
]
