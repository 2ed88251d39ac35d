"""Prize escrow model - one earmarked asset awaiting award."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class AssetKind(str, Enum):
    FUNGIBLE = "fungible"
    NON_FUNGIBLE = "non_fungible"


@dataclass
class Prize:
    """Independently owned escrow of a single asset.

    ``identifier`` is the label the transactor quotes when awarding, so a
    settlement can never hand out a different prize than it names.
    ``payload`` carries display data or the non-fungible item reference.
    """

    prize_id: str
    identifier: str
    owner: str
    token_type: str
    amount: int
    asset_kind: AssetKind = AssetKind.FUNGIBLE
    payload: str = ""
    consumed: bool = False

    def to_dict(self) -> dict:
        return {
            "prize_id": self.prize_id,
            "identifier": self.identifier,
            "owner": self.owner,
            "token_type": self.token_type,
            "amount": self.amount,
            "asset_kind": self.asset_kind.value,
            "payload": self.payload,
            "consumed": self.consumed,
        }

    @classmethod
    def from_dict(cls, data: dict) -> Prize:
        return cls(
            prize_id=data["prize_id"],
            identifier=data["identifier"],
            owner=data["owner"],
            token_type=data["token_type"],
            amount=int(data["amount"]),
            asset_kind=AssetKind(data.get("asset_kind", "fungible")),
            payload=data.get("payload", ""),
            consumed=bool(data.get("consumed", False)),
        )
