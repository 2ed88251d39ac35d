"""Prize escrow operations: create, single-use unpack, identifier check."""

from __future__ import annotations

import logging
import uuid

from race_ledger.errors import InvalidDepositAmount, PrizeConsumed
from race_ledger.identity import require_identity, short
from race_ledger.models.prize import AssetKind, Prize
from race_ledger.wallets import Wallets

log = logging.getLogger(__name__)


def create(
    wallets: Wallets,
    owner: str,
    identifier: str,
    token_type: str,
    amount: int,
    payload: str = "",
    asset_kind: AssetKind = AssetKind.FUNGIBLE,
) -> Prize:
    """Escrow ``amount`` of ``token_type`` from the owner's wallet into a new prize."""
    require_identity(owner)
    if amount <= 0:
        raise InvalidDepositAmount("prize amount must be positive")
    if asset_kind == AssetKind.NON_FUNGIBLE and amount != 1:
        raise InvalidDepositAmount("a non-fungible prize holds exactly one item")

    wallets.debit(owner, amount, token_type)
    prize = Prize(
        prize_id=str(uuid.uuid4()),
        identifier=identifier,
        owner=owner,
        token_type=token_type,
        amount=amount,
        asset_kind=asset_kind,
        payload=payload,
    )
    log.info("Prize %s created by %s: %d %s", identifier, short(owner), amount, token_type)
    return prize


def unpack(prize: Prize) -> tuple[int, str]:
    """Empty the escrow and return ``(amount, payload)``. Works once."""
    if prize.consumed:
        raise PrizeConsumed(f"prize {prize.prize_id} already unpacked")
    amount = prize.amount
    prize.amount = 0
    prize.consumed = True
    return amount, prize.payload


def validate_identifier(prize: Prize, expected: str) -> bool:
    return prize.identifier == expected
