"""Treasury models: weighted claim slots and the recipient aggregate."""

from __future__ import annotations

from dataclasses import dataclass, field

from race_ledger.identity import RoleTag
from race_ledger.models.prize import AssetKind

MAX_WEIGHT = 0xFFFF  # u16


@dataclass
class Share:
    owner: str | RoleTag
    weight: int
    claimed: int = 0  # cumulative amount paid to this share

    def to_dict(self) -> dict:
        if isinstance(self.owner, RoleTag):
            owner = {"role": self.owner.role}
        else:
            owner = {"address": self.owner}
        return {"owner": owner, "weight": self.weight, "claimed": self.claimed}

    @classmethod
    def from_dict(cls, data: dict) -> Share:
        raw = data["owner"]
        owner: str | RoleTag = RoleTag(raw["role"]) if "role" in raw else raw["address"]
        return cls(owner=owner, weight=int(data["weight"]), claimed=int(data.get("claimed", 0)))


@dataclass
class TreasurySlot:
    """A shared payout channel ("platform fee", "creator royalty", ...)."""

    slot_id: str
    asset_kind: AssetKind
    token_type: str
    shares: list[Share] = field(default_factory=list)
    balance: int = 0

    @property
    def total_weight(self) -> int:
        return sum(s.weight for s in self.shares)

    @property
    def total_claimed(self) -> int:
        return sum(s.claimed for s in self.shares)

    @property
    def total_received(self) -> int:
        """Everything ever deposited: what is held plus what was paid out."""
        return self.balance + self.total_claimed

    def find_share(self, owner: str | RoleTag) -> Share | None:
        for share in self.shares:
            if share.owner == owner:
                return share
        return None

    def to_dict(self) -> dict:
        return {
            "slot_id": self.slot_id,
            "asset_kind": self.asset_kind.value,
            "token_type": self.token_type,
            "shares": [s.to_dict() for s in self.shares],
            "balance": self.balance,
        }

    @classmethod
    def from_dict(cls, data: dict) -> TreasurySlot:
        return cls(
            slot_id=data["slot_id"],
            asset_kind=AssetKind(data["asset_kind"]),
            token_type=data["token_type"],
            shares=[Share.from_dict(s) for s in data.get("shares", [])],
            balance=int(data.get("balance", 0)),
        )


@dataclass
class Recipient:
    """Owns a set of slots and caches each slot's balance for querying."""

    recipient_id: str
    updater: str | None
    slots: list[TreasurySlot] = field(default_factory=list)
    snapshot: dict[str, int] = field(default_factory=dict)

    def find_slot(self, slot_id: str) -> TreasurySlot | None:
        for slot in self.slots:
            if slot.slot_id == slot_id:
                return slot
        return None

    def sync(self, slot: TreasurySlot) -> None:
        self.snapshot[slot.slot_id] = slot.balance

    def to_dict(self) -> dict:
        return {
            "recipient_id": self.recipient_id,
            "updater": self.updater,
            "slots": [s.to_dict() for s in self.slots],
            "snapshot": dict(self.snapshot),
        }

    @classmethod
    def from_dict(cls, data: dict) -> Recipient:
        return cls(
            recipient_id=data["recipient_id"],
            updater=data.get("updater"),
            slots=[TreasurySlot.from_dict(s) for s in data.get("slots", [])],
            snapshot={k: int(v) for k, v in data.get("snapshot", {}).items()},
        )
