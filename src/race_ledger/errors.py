"""Ledger error taxonomy.

Every error is fatal to the operation that raised it; callers resubmit
with corrected input. The ``code`` attribute mirrors the contract error
names so the CLI and activity log can classify failures.
"""

from __future__ import annotations

from enum import Enum


class ErrorCode(str, Enum):
    CAPACITY_EXCEEDED = "capacity_exceeded"
    DUPLICATE_MEMBERSHIP = "duplicate_membership"
    POSITION_UNAVAILABLE = "position_unavailable"
    INVALID_DEPOSIT_AMOUNT = "invalid_deposit_amount"
    STALE_VERSION = "stale_version"
    UNAUTHORIZED_CALLER = "unauthorized_caller"
    RECORD_NOT_FOUND = "record_not_found"
    INVARIANT_VIOLATION = "invariant_violation"
    INSUFFICIENT_BALANCE = "insufficient_balance"
    ENTRY_LOCKED = "entry_locked"
    INVALID_IDENTITY = "invalid_identity"
    PRIZE_CONSUMED = "prize_consumed"


class LedgerError(Exception):
    """Base class for all ledger errors."""

    code: ErrorCode


class CapacityExceeded(LedgerError):
    code = ErrorCode.CAPACITY_EXCEEDED


class DuplicateMembership(LedgerError):
    code = ErrorCode.DUPLICATE_MEMBERSHIP


class PositionUnavailable(LedgerError):
    code = ErrorCode.POSITION_UNAVAILABLE


class InvalidDepositAmount(LedgerError):
    code = ErrorCode.INVALID_DEPOSIT_AMOUNT


class StaleVersion(LedgerError):
    code = ErrorCode.STALE_VERSION


class UnauthorizedCaller(LedgerError):
    code = ErrorCode.UNAUTHORIZED_CALLER


class RecordNotFound(LedgerError):
    code = ErrorCode.RECORD_NOT_FOUND


class InvariantViolation(LedgerError):
    code = ErrorCode.INVARIANT_VIOLATION


class InsufficientBalance(LedgerError):
    code = ErrorCode.INSUFFICIENT_BALANCE


class EntryLocked(LedgerError):
    code = ErrorCode.ENTRY_LOCKED


class InvalidIdentity(LedgerError, ValueError):
    code = ErrorCode.INVALID_IDENTITY


class PrizeConsumed(LedgerError):
    code = ErrorCode.PRIZE_CONSUMED
