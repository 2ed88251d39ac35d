"""Settlement batch and result models."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field

from race_ledger.models.session import EntryLock


@dataclass(frozen=True)
class Settle:
    """Payout to one roster entry, identified by its access_version."""

    player_id: int
    amount: int
    eject: bool = False


@dataclass(frozen=True)
class Transfer:
    """Move ``amount`` out of the session into a recipient slot."""

    slot_id: str
    amount: int


@dataclass(frozen=True)
class Award:
    """Hand an attached prize to a player still on the roster."""

    prize_id: str
    identifier: str
    player_id: int
    player_address: str


@dataclass(frozen=True)
class PlayerBalance:
    """Credited balance of an active player after the round."""

    player_id: int
    balance: int


@dataclass
class SettleBatch:
    """Everything the transactor submits for one settlement round."""

    expected_settle_version: int
    next_settle_version: int
    checkpoint: bytes = b""
    settles: list[Settle] = field(default_factory=list)
    transfers: list[Transfer] = field(default_factory=list)
    awards: list[Award] = field(default_factory=list)
    balances: list[PlayerBalance] = field(default_factory=list)
    accepted_deposits: list[int] = field(default_factory=list)
    entry_lock: EntryLock | None = None
    reset: bool = False

    def to_dict(self) -> dict:
        return {
            "expected_settle_version": self.expected_settle_version,
            "next_settle_version": self.next_settle_version,
            "checkpoint": self.checkpoint.hex(),
            "settles": [asdict(s) for s in self.settles],
            "transfers": [asdict(t) for t in self.transfers],
            "awards": [asdict(a) for a in self.awards],
            "balances": [asdict(b) for b in self.balances],
            "accepted_deposits": list(self.accepted_deposits),
            "entry_lock": self.entry_lock.value if self.entry_lock else None,
            "reset": self.reset,
        }

    @classmethod
    def from_dict(cls, data: dict) -> SettleBatch:
        lock = data.get("entry_lock")
        return cls(
            expected_settle_version=int(data["expected_settle_version"]),
            next_settle_version=int(data["next_settle_version"]),
            checkpoint=bytes.fromhex(data.get("checkpoint", "")),
            settles=[Settle(**s) for s in data.get("settles", [])],
            transfers=[Transfer(**t) for t in data.get("transfers", [])],
            awards=[Award(**a) for a in data.get("awards", [])],
            balances=[PlayerBalance(**b) for b in data.get("balances", [])],
            accepted_deposits=[int(v) for v in data.get("accepted_deposits", [])],
            entry_lock=EntryLock(lock) if lock else None,
            reset=bool(data.get("reset", False)),
        )


@dataclass(frozen=True)
class Payout:
    player_id: int
    address: str
    amount: int
    ejected: bool = False


@dataclass
class SettleReceipt:
    """Outcome of a committed settlement round."""

    session_id: str
    settle_version: int  # version after the round
    payouts: list[Payout] = field(default_factory=list)
    transferred: int = 0
    awarded: list[str] = field(default_factory=list)  # prize ids
    ejected: list[int] = field(default_factory=list)
    accepted_deposits: list[int] = field(default_factory=list)
    balance_after: int = 0

    @property
    def total_paid(self) -> int:
        return sum(p.amount for p in self.payouts)
