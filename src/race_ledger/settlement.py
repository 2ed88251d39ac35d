"""Settlement protocol: check, apply, finish.

A round is driven by the session's transactor. ``check`` validates the
caller and versions and returns a ``SettleToken``; every apply and finish
step demands that token, so none of them can run before the checks pass.
``settle`` runs a whole round as one transaction: any failure rolls back
the session, wallets, recipient slots and prizes together.
"""

from __future__ import annotations

import logging

from race_ledger import prize as prize_escrow
from race_ledger import treasury
from race_ledger.errors import (
    InsufficientBalance,
    InvariantViolation,
    RecordNotFound,
    StaleVersion,
    UnauthorizedCaller,
)
from race_ledger.identity import short
from race_ledger.models.session import Deposit, DepositStatus, EntryLock, Session
from race_ledger.models.settle import (
    Award,
    Payout,
    PlayerBalance,
    Settle,
    SettleBatch,
    SettleReceipt,
)
from race_ledger.models.treasury import Recipient
from race_ledger.session import debit_balance, stake_total
from race_ledger.transaction import atomic
from race_ledger.wallets import Wallets

log = logging.getLogger(__name__)

_MINT = object()


class SettleToken:
    """Proof that ``check`` passed for one session round.

    Only ``check`` can construct one. It is spent by ``finish``.
    """

    __slots__ = ("session_id", "settle_version", "next_settle_version", "_spent")

    def __init__(self, key: object, session_id: str, settle_version: int, next_settle_version: int) -> None:
        if key is not _MINT:
            raise TypeError("SettleToken can only be obtained from settlement.check()")
        self.session_id = session_id
        self.settle_version = settle_version
        self.next_settle_version = next_settle_version
        self._spent = False

    @property
    def spent(self) -> bool:
        return self._spent

    def __repr__(self) -> str:
        return (
            f"SettleToken(session_id={self.session_id!r}, "
            f"settle_version={self.settle_version}, next={self.next_settle_version}, spent={self._spent})"
        )


def _require_token(session: Session, token: SettleToken) -> None:
    if not isinstance(token, SettleToken):
        raise UnauthorizedCaller("a settle token from check() is required")
    if token.spent:
        raise StaleVersion("settle token already spent")
    if token.session_id != session.session_id:
        raise UnauthorizedCaller("settle token belongs to another session")
    if token.settle_version != session.settle_version:
        raise StaleVersion(
            f"token issued for settle_version {token.settle_version}, session is at {session.settle_version}"
        )


# ── Phase 1: check ─────────────────────────────────────


def check(
    session: Session,
    caller: str,
    expected_settle_version: int,
    next_settle_version: int,
) -> SettleToken:
    if session.transactor_address is None or caller != session.transactor_address:
        raise UnauthorizedCaller(f"{short(caller)} is not the transactor")
    if session.find_host(caller) is None:
        raise UnauthorizedCaller(f"{short(caller)} is not a registered host")
    if session.settle_version != expected_settle_version:
        raise StaleVersion(
            f"expected settle_version {expected_settle_version}, session is at {session.settle_version}"
        )
    if next_settle_version <= session.settle_version:
        raise StaleVersion(
            f"next settle_version {next_settle_version} must exceed {session.settle_version}"
        )
    return SettleToken(_MINT, session.session_id, session.settle_version, next_settle_version)


# ── Phase 2: apply ─────────────────────────────────────


def apply_settles(
    session: Session,
    wallets: Wallets,
    settles: list[Settle],
    token: SettleToken,
) -> list[Payout]:
    """Pay out and eject. Resolves every record before touching anything."""
    _require_token(session, token)

    resolved: list[Payout] = []
    eject_ids: set[int] = set()
    for record in settles:
        player = session.find_player_by_id(record.player_id)
        if player is None:
            raise RecordNotFound(f"no player with id {record.player_id}")
        if record.amount < 0:
            raise InvariantViolation(f"negative payout for player {record.player_id}")
        resolved.append(Payout(player.access_version, player.address, record.amount, record.eject))
        if record.eject:
            eject_ids.add(player.access_version)

    if len(resolved) != len(settles):
        raise InvariantViolation(f"resolved {len(resolved)} of {len(settles)} settles")
    total = sum(p.amount for p in resolved)
    if total > session.balance:
        raise InsufficientBalance(
            f"session {session.session_id} holds {session.balance}, settles pay {total}"
        )

    session.players = [p for p in session.players if p.access_version not in eject_ids]
    for payout in resolved:
        debit_balance(session, payout.amount)
        wallets.credit(payout.address, payout.amount, session.token_type)

    log.debug(
        "Applied %d settle(s) in session %s, paid %d, ejected %s",
        len(resolved), session.session_id, total, sorted(eject_ids),
    )
    return resolved


def transfer(
    session: Session,
    recipient: Recipient,
    slot_id: str,
    amount: int,
    token: SettleToken,
) -> None:
    """Move funds from the session escrow into a treasury slot."""
    _require_token(session, token)
    slot = recipient.find_slot(slot_id)
    if slot is None:
        raise RecordNotFound(f"recipient {recipient.recipient_id} has no slot {slot_id}")
    if slot.token_type != session.token_type:
        raise InvariantViolation(f"slot {slot_id} holds {slot.token_type}, session pays {session.token_type}")
    debit_balance(session, amount)
    treasury.deposit(slot, amount)
    recipient.sync(slot)
    log.debug("Transferred %d from session %s to slot %s", amount, session.session_id, slot_id)


def award(
    session: Session,
    wallets: Wallets,
    prize_id: str,
    identifier: str,
    player_id: int,
    player_address: str,
    token: SettleToken,
) -> int:
    """Hand an attached bonus to a player on the roster and destroy its escrow."""
    _require_token(session, token)
    player = session.find_player_by_id(player_id)
    if player is None or player.address != player_address:
        raise RecordNotFound(f"player {player_id} ({short(player_address)}) not on the roster")
    bonus = session.find_bonus(prize_id)
    if bonus is None:
        raise RecordNotFound(f"no bonus {prize_id} attached")
    if not prize_escrow.validate_identifier(bonus, identifier):
        raise InvariantViolation(f"bonus {prize_id} is {bonus.identifier!r}, not {identifier!r}")

    amount, _payload = prize_escrow.unpack(bonus)
    wallets.credit(player_address, amount, bonus.token_type)
    session.bonuses.remove(bonus)
    log.info("Bonus %s awarded to %s", identifier, short(player_address))
    return amount


# ── Phase 3: finish ────────────────────────────────────


def finish(
    session: Session,
    token: SettleToken,
    accepted_deposits: list[int],
    next_settle_version: int,
    checkpoint: bytes,
    balances: list[PlayerBalance],
    entry_lock: EntryLock | None = None,
    reset: bool = False,
) -> None:
    """Accept deposits, verify stake conservation and advance the round.

    Everything is validated against the state the round would leave behind
    before the session is touched, so a raised error changes nothing.
    """
    _require_token(session, token)
    if next_settle_version != token.next_settle_version:
        raise StaleVersion(
            f"finish at {next_settle_version}, check promised {token.next_settle_version}"
        )

    accepted = set(accepted_deposits)
    to_accept: list[Deposit] = []
    for deposit in session.deposits:
        if deposit.access_version in accepted:
            if deposit.status != DepositStatus.PENDING:
                raise StaleVersion(f"deposit {deposit.access_version} is {deposit.status.value}")
            to_accept.append(deposit)
    missing = accepted - {d.access_version for d in to_accept}
    if missing:
        raise RecordNotFound(f"no deposits with access_version {sorted(missing)}")

    if reset:
        remaining: list[Deposit] = []
        roster: set[int] = set()
    else:
        remaining = [
            d for d in session.deposits
            if d.access_version not in accepted
            and d.status in (DepositStatus.PENDING, DepositStatus.REJECTED)
        ]
        roster = {p.access_version for p in session.players}

    reported: set[int] = set()
    for entry in balances:
        if entry.player_id not in roster:
            raise RecordNotFound(f"balance reported for unknown player {entry.player_id}")
        if entry.player_id in reported:
            raise InvariantViolation(f"balance reported twice for player {entry.player_id}")
        if entry.balance < 0:
            raise InvariantViolation(f"negative balance for player {entry.player_id}")
        reported.add(entry.player_id)

    expected = stake_total(remaining, balances)
    if session.balance != expected:
        raise InvariantViolation(
            f"session {session.session_id} holds {session.balance}, stakes total {expected}"
        )

    for deposit in to_accept:
        deposit.status = DepositStatus.ACCEPTED
    session.deposits = remaining
    if reset:
        session.players = []
    session.settle_version = next_settle_version
    session.checkpoint = checkpoint
    if entry_lock is not None:
        session.entry_lock = entry_lock
    token._spent = True


# ── Whole round ────────────────────────────────────────


def settle(
    session: Session,
    wallets: Wallets,
    caller: str,
    batch: SettleBatch,
    recipient: Recipient | None = None,
) -> SettleReceipt:
    """Run one settlement round as a single all-or-nothing transaction."""
    token = check(session, caller, batch.expected_settle_version, batch.next_settle_version)
    if batch.transfers and recipient is None:
        raise RecordNotFound("transfers need a recipient")

    slots = list(recipient.slots) if recipient is not None else []
    with atomic(session, wallets, recipient, *slots, *session.bonuses):
        payouts = apply_settles(session, wallets, batch.settles, token)
        for item in batch.transfers:
            transfer(session, recipient, item.slot_id, item.amount, token)  # type: ignore[arg-type]
        awarded = [_award(session, wallets, item, token) for item in batch.awards]
        finish(
            session,
            token,
            accepted_deposits=batch.accepted_deposits,
            next_settle_version=batch.next_settle_version,
            checkpoint=batch.checkpoint,
            balances=batch.balances,
            entry_lock=batch.entry_lock,
            reset=batch.reset,
        )

    receipt = SettleReceipt(
        session_id=session.session_id,
        settle_version=session.settle_version,
        payouts=payouts,
        transferred=sum(t.amount for t in batch.transfers),
        awarded=awarded,
        ejected=[p.player_id for p in payouts if p.ejected],
        accepted_deposits=list(batch.accepted_deposits),
        balance_after=session.balance,
    )
    log.info(
        "Session %s settled to version %d: paid %d, transferred %d, balance %d",
        session.session_id, receipt.settle_version, receipt.total_paid,
        receipt.transferred, receipt.balance_after,
    )
    return receipt


def _award(session: Session, wallets: Wallets, item: Award, token: SettleToken) -> str:
    award(session, wallets, item.prize_id, item.identifier, item.player_id, item.player_address, token)
    return item.prize_id
