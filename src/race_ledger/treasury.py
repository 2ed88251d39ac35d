"""Weighted-claim treasury slots.

A slot pays each share ``floor(total_received * weight / total_weight)``
over its lifetime, where ``total_received`` is every unit ever deposited
(current balance plus everything already claimed). A claim releases only
the difference between that entitlement and what the share has already
taken, so a share's payout never depends on when other shares claim.
"""

from __future__ import annotations

import logging
import uuid

from race_ledger.errors import (
    DuplicateMembership,
    InsufficientBalance,
    InvalidDepositAmount,
    RecordNotFound,
    UnauthorizedCaller,
)
from race_ledger.identity import RoleTag, is_role, require_identity, short
from race_ledger.models.prize import AssetKind
from race_ledger.models.treasury import MAX_WEIGHT, Recipient, Share, TreasurySlot
from race_ledger.wallets import Wallets

log = logging.getLogger(__name__)


def create_slot(
    slot_id: str,
    shares: list[Share],
    token_type: str = "native",
    asset_kind: AssetKind = AssetKind.FUNGIBLE,
) -> TreasurySlot:
    if not shares:
        raise ValueError("a slot needs at least one share")
    seen: set[str | RoleTag] = set()
    for share in shares:
        if not is_role(share.owner):
            require_identity(share.owner)
        if not 0 < share.weight <= MAX_WEIGHT:
            raise ValueError(f"share weight {share.weight} outside (0, {MAX_WEIGHT}]")
        if share.owner in seen:
            raise DuplicateMembership(f"duplicate share owner {share.owner}")
        seen.add(share.owner)
    return TreasurySlot(
        slot_id=slot_id,
        asset_kind=asset_kind,
        token_type=token_type,
        shares=[Share(owner=s.owner, weight=s.weight) for s in shares],
    )


def create_recipient(
    updater: str | None,
    slots: list[TreasurySlot],
    recipient_id: str | None = None,
) -> Recipient:
    if updater is not None:
        require_identity(updater)
    ids = [s.slot_id for s in slots]
    if len(set(ids)) != len(ids):
        raise DuplicateMembership("slot ids must be unique within a recipient")
    recipient = Recipient(recipient_id=recipient_id or str(uuid.uuid4()), updater=updater, slots=list(slots))
    for slot in recipient.slots:
        recipient.sync(slot)
    log.info("Recipient %s created with slots %s", recipient.recipient_id, ids)
    return recipient


def deposit(
    slot: TreasurySlot,
    amount: int,
    wallets: Wallets | None = None,
    payer: str | None = None,
) -> None:
    """Add funds to a slot. Open to anyone."""
    if amount < 0:
        raise InvalidDepositAmount("deposit amount must be non-negative")
    if wallets is not None and payer is not None:
        wallets.debit(payer, amount, slot.token_type)
    slot.balance += amount
    log.debug("Slot %s received %d (balance=%d)", slot.slot_id, amount, slot.balance)


def entitlement(slot: TreasurySlot, share: Share) -> int:
    total_weight = slot.total_weight
    if total_weight == 0:
        return 0
    return slot.total_received * share.weight // total_weight


def claimable(slot: TreasurySlot, claimant: str) -> int:
    """Amount ``claimant`` could take right now."""
    share = slot.find_share(claimant)
    if share is None:
        return 0
    return max(0, entitlement(slot, share) - share.claimed)


def claim(slot: TreasurySlot, wallets: Wallets, claimant: str) -> int:
    """Pay the claimant's share accrued since their last claim; returns the payout."""
    share = slot.find_share(claimant)
    if share is None or is_role(share.owner):
        raise RecordNotFound(f"{short(claimant)} holds no share in slot {slot.slot_id}")

    owed = entitlement(slot, share)
    payout = owed - share.claimed
    if payout <= 0:
        return 0
    if payout > slot.balance:
        raise InsufficientBalance(f"slot {slot.slot_id} holds {slot.balance}, owes {payout}")

    slot.balance -= payout
    share.claimed = owed
    wallets.credit(claimant, payout, slot.token_type)
    log.info(
        "Slot %s paid %d to %s (claimed to date %d)",
        slot.slot_id, payout, short(claimant), share.claimed,
    )
    return payout


def assign_share(
    recipient: Recipient,
    caller: str,
    slot_id: str,
    role: RoleTag,
    address: str,
) -> Share:
    """Point a role-tagged share at a concrete address."""
    if recipient.updater is None or caller != recipient.updater:
        raise UnauthorizedCaller("only the recipient updater can assign shares")
    require_identity(address)
    slot = recipient.find_slot(slot_id)
    if slot is None:
        raise RecordNotFound(f"no slot {slot_id}")
    share = slot.find_share(role)
    if share is None:
        raise RecordNotFound(f"no share for {role} in slot {slot_id}")
    if slot.find_share(address) is not None:
        raise DuplicateMembership(f"{short(address)} already holds a share in slot {slot_id}")
    share.owner = address
    log.info("Share %s in slot %s assigned to %s", role, slot_id, short(address))
    return share
