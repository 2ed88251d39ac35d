"""Session membership and deposit operations.

Every operation validates completely before it mutates, so a raised
LedgerError leaves the session untouched. Operations that touch more than
one entry (``reject_deposits``) run under ``atomic`` as well.
"""

from __future__ import annotations

import logging
import uuid

from race_ledger.errors import (
    CapacityExceeded,
    DuplicateMembership,
    EntryLocked,
    InsufficientBalance,
    InvalidDepositAmount,
    InvariantViolation,
    PositionUnavailable,
    PrizeConsumed,
    RecordNotFound,
    StaleVersion,
    UnauthorizedCaller,
)
from race_ledger.identity import require_identity, short
from race_ledger.models.prize import Prize
from race_ledger.models.session import (
    MAX_HOSTS,
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
from race_ledger.models.settle import PlayerBalance
from race_ledger.transaction import atomic
from race_ledger.wallets import Wallets

log = logging.getLogger(__name__)


# ── Lifecycle ──────────────────────────────────────────


def create_session(
    owner: str,
    title: str,
    bundle_pointer: str,
    recipient_address: str,
    max_players: int,
    entry_type: EntryType,
    entry_lock: EntryLock = EntryLock.OPEN,
    version: str = "1",
    token_type: str = "native",
    session_id: str | None = None,
) -> Session:
    require_identity(owner)
    if max_players < 1:
        raise ValueError("max_players must be at least 1")
    if isinstance(entry_type, Cash) and not 0 < entry_type.min_deposit <= entry_type.max_deposit:
        raise ValueError("cash entry requires 0 < min_deposit <= max_deposit")
    if isinstance(entry_type, Ticket) and entry_type.amount <= 0:
        raise ValueError("ticket amount must be positive")

    session = Session(
        session_id=session_id or str(uuid.uuid4()),
        title=title,
        bundle_pointer=bundle_pointer,
        owner=owner,
        recipient_address=recipient_address,
        max_players=max_players,
        entry_type=entry_type,
        entry_lock=entry_lock,
        version=version,
        token_type=token_type,
    )
    log.info("Session %s created by %s (%s)", session.session_id, short(owner), title)
    return session


def close_session(session: Session, caller: str) -> None:
    """Check the session may be destroyed: empty roster, no bonuses, zero balance."""
    if caller != session.owner:
        raise UnauthorizedCaller("only the owner can close a session")
    if session.players:
        raise InvariantViolation(f"{len(session.players)} player(s) still on the roster")
    if session.bonuses:
        raise InvariantViolation(f"{len(session.bonuses)} bonus(es) still attached")
    if session.balance != 0:
        raise InvariantViolation(f"balance {session.balance} is not zero")
    log.info("Session %s closed", session.session_id)


# ── Hosts ──────────────────────────────────────────────


def host_join(
    session: Session,
    address: str,
    endpoint: str,
    verify_key: str = "",
    max_hosts: int = MAX_HOSTS,
) -> HostEntry:
    """Add a host; the first one becomes the transactor."""
    require_identity(address)
    if len(session.hosts) >= min(max_hosts, MAX_HOSTS):
        raise CapacityExceeded(f"session already has {len(session.hosts)} hosts")
    # Duplicates are by owning address, not by host record.
    if session.find_host(address) is not None:
        raise DuplicateMembership(f"host {short(address)} already joined")

    session.access_version += 1
    entry = HostEntry(
        address=address,
        endpoint=endpoint,
        access_version=session.access_version,
        verify_key=verify_key,
    )
    session.hosts.append(entry)
    if len(session.hosts) == 1 and session.transactor_address is None:
        session.transactor_address = address
        log.info("Session %s transactor set to %s", session.session_id, short(address))

    log.info(
        "Host %s joined session %s (access_version=%d)",
        short(address), session.session_id, entry.access_version,
    )
    return entry


# ── Players ────────────────────────────────────────────


def resolve_position(occupied: set[int], requested: int, max_players: int) -> int:
    """Requested position if free, else the lowest free index."""
    if requested not in occupied:
        return requested
    for position in range(max_players):
        if position not in occupied:
            return position
    raise PositionUnavailable("no free position")


def validate_amount(entry_type: EntryType, amount: int) -> None:
    if amount < 0:
        raise InvalidDepositAmount("deposit amount must be non-negative")
    if isinstance(entry_type, Cash):
        if not entry_type.min_deposit <= amount <= entry_type.max_deposit:
            raise InvalidDepositAmount(
                f"cash deposit {amount} outside [{entry_type.min_deposit}, {entry_type.max_deposit}]"
            )
    elif isinstance(entry_type, Ticket):
        if amount != entry_type.amount:
            raise InvalidDepositAmount(f"ticket costs {entry_type.amount}, got {amount}")
    elif isinstance(entry_type, Gating):
        # Collection ownership is not checked.
        log.debug("Gated entry on %s accepted without amount check", entry_type.collection)
    elif isinstance(entry_type, Disabled):
        pass
    else:
        raise TypeError(f"unknown entry type: {entry_type!r}")


def player_join(
    session: Session,
    wallets: Wallets,
    address: str,
    position: int,
    amount: int,
    verify_key: str = "",
) -> PlayerEntry:
    """Seat a player and escrow their buy-in as a Pending deposit."""
    require_identity(address)
    if not session.entry_lock.allows_join:
        raise EntryLocked(f"session entry is {session.entry_lock.value}")
    if session.is_full:
        raise CapacityExceeded(f"session is full ({session.max_players} players)")
    if not 0 <= position < session.max_players:
        raise PositionUnavailable(f"position {position} outside [0, {session.max_players})")
    if session.find_player(address) is not None:
        raise DuplicateMembership(f"player {short(address)} already joined")

    resolved = resolve_position({p.position for p in session.players}, position, session.max_players)
    validate_amount(session.entry_type, amount)
    wallets.debit(address, amount, session.token_type)

    session.access_version += 1
    player = PlayerEntry(
        address=address,
        position=resolved,
        access_version=session.access_version,
        verify_key=verify_key,
    )
    session.players.append(player)
    session.deposits.append(
        Deposit(
            address=address,
            amount=amount,
            access_version=session.access_version,
            settle_version=session.settle_version,
        )
    )
    session.balance += amount

    if resolved != position:
        log.debug("Position %d taken, %s seated at %d", position, short(address), resolved)
    log.info(
        "Player %s joined session %s at position %d with %d (access_version=%d)",
        short(address), session.session_id, resolved, amount, player.access_version,
    )
    return player


def deposit(
    session: Session,
    wallets: Wallets,
    address: str,
    amount: int,
    expected_settle_version: int,
) -> Deposit:
    """Rebuy: an active player adds funds for the current round."""
    if not session.entry_lock.allows_deposit:
        raise EntryLocked(f"session entry is {session.entry_lock.value}")
    if session.find_player(address) is None:
        raise RecordNotFound(f"{short(address)} is not on the roster")
    if expected_settle_version != session.settle_version:
        raise StaleVersion(
            f"expected settle_version {expected_settle_version}, session is at {session.settle_version}"
        )
    validate_amount(session.entry_type, amount)
    wallets.debit(address, amount, session.token_type)

    session.access_version += 1
    record = Deposit(
        address=address,
        amount=amount,
        access_version=session.access_version,
        settle_version=session.settle_version,
    )
    session.deposits.append(record)
    session.balance += amount
    log.info(
        "Deposit of %d by %s in session %s (access_version=%d)",
        amount, short(address), session.session_id, record.access_version,
    )
    return record


def reject_deposits(
    session: Session,
    wallets: Wallets,
    caller: str,
    access_versions: list[int],
) -> list[Deposit]:
    """Refund Pending deposits. All-or-nothing across the list."""
    if caller != session.transactor_address:
        raise UnauthorizedCaller("only the transactor can reject deposits")

    rejected: list[Deposit] = []
    with atomic(session, wallets):
        for access_version in access_versions:
            record = session.find_deposit(access_version)
            if record is None:
                raise RecordNotFound(f"no deposit with access_version {access_version}")
            if record.status != DepositStatus.PENDING:
                raise StaleVersion(
                    f"deposit {access_version} is {record.status.value}, not pending"
                )
            record.status = DepositStatus.REJECTED
            debit_balance(session, record.amount)
            wallets.credit(record.address, record.amount, session.token_type)
            record.status = DepositStatus.REFUNDED

            # A rejected buy-in unseats its player so they can rejoin.
            player = session.find_player(record.address)
            if player is not None and player.access_version == record.access_version:
                session.players.remove(player)
            rejected.append(record)

    log.info(
        "Rejected %d deposit(s) in session %s: %s",
        len(rejected), session.session_id, [d.access_version for d in rejected],
    )
    return rejected


# ── Bonuses ────────────────────────────────────────────


def attach_bonus(session: Session, caller: str, prize: Prize) -> None:
    if caller not in (session.owner, session.transactor_address):
        raise UnauthorizedCaller("only the owner or transactor can attach bonuses")
    if prize.consumed:
        raise PrizeConsumed(f"prize {prize.prize_id} is already consumed")
    if session.find_bonus(prize.prize_id) is not None:
        raise DuplicateMembership(f"prize {prize.prize_id} already attached")
    session.bonuses.append(prize)
    log.info("Bonus %s attached to session %s", prize.identifier, session.session_id)


# ── Balance ────────────────────────────────────────────


def debit_balance(session: Session, amount: int) -> None:
    if amount < 0:
        raise ValueError("debit amount must be non-negative")
    if session.balance < amount:
        raise InsufficientBalance(
            f"session {session.session_id} holds {session.balance}, cannot pay {amount}"
        )
    session.balance -= amount


def stake_total(deposits: list[Deposit], balances: list[PlayerBalance]) -> int:
    """Funds a session must hold: credited balances plus unresolved deposits."""
    unresolved = [d for d in deposits if d.status in (DepositStatus.PENDING, DepositStatus.REJECTED)]
    return sum(b.balance for b in balances) + sum(d.amount for d in unresolved)
