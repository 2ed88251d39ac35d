"""Session record: roster, deposits, hosts, escrow balance and versions."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Union

from race_ledger.models.prize import Prize

MAX_HOSTS = 10


# ---------------------------------------------------------------------------
# Entry types
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Cash:
    """Players bring any amount within ``[min_deposit, max_deposit]``."""

    min_deposit: int
    max_deposit: int


@dataclass(frozen=True)
class Ticket:
    """Players pay exactly ``amount``."""

    amount: int


@dataclass(frozen=True)
class Gating:
    """Entry gated by holding an asset from ``collection`` (not enforced)."""

    collection: str


@dataclass(frozen=True)
class Disabled:
    """No entry requirement."""


EntryType = Union[Cash, Ticket, Gating, Disabled]


def entry_type_to_dict(entry: EntryType) -> dict:
    if isinstance(entry, Cash):
        return {"kind": "cash", "min_deposit": entry.min_deposit, "max_deposit": entry.max_deposit}
    if isinstance(entry, Ticket):
        return {"kind": "ticket", "amount": entry.amount}
    if isinstance(entry, Gating):
        return {"kind": "gating", "collection": entry.collection}
    if isinstance(entry, Disabled):
        return {"kind": "disabled"}
    raise TypeError(f"unknown entry type: {entry!r}")


def entry_type_from_dict(data: dict) -> EntryType:
    kind = data.get("kind")
    if kind == "cash":
        return Cash(int(data["min_deposit"]), int(data["max_deposit"]))
    if kind == "ticket":
        return Ticket(int(data["amount"]))
    if kind == "gating":
        return Gating(str(data["collection"]))
    if kind == "disabled":
        return Disabled()
    raise ValueError(f"unknown entry type kind: {kind!r}")


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class EntryLock(str, Enum):
    OPEN = "open"  # join + deposit
    JOIN_ONLY = "join_only"
    DEPOSIT_ONLY = "deposit_only"
    CLOSED = "closed"

    @property
    def allows_join(self) -> bool:
        return self in (EntryLock.OPEN, EntryLock.JOIN_ONLY)

    @property
    def allows_deposit(self) -> bool:
        return self in (EntryLock.OPEN, EntryLock.DEPOSIT_ONLY)


class DepositStatus(str, Enum):
    PENDING = "pending"
    REJECTED = "rejected"
    REFUNDED = "refunded"
    ACCEPTED = "accepted"


# ---------------------------------------------------------------------------
# Roster entries
# ---------------------------------------------------------------------------


@dataclass
class PlayerEntry:
    address: str
    position: int
    access_version: int  # stable player id
    verify_key: str = ""


@dataclass
class Deposit:
    address: str
    amount: int
    access_version: int
    settle_version: int  # round active when the deposit was made
    status: DepositStatus = DepositStatus.PENDING


@dataclass
class HostEntry:
    address: str  # owning address
    endpoint: str
    access_version: int
    verify_key: str = ""


# ---------------------------------------------------------------------------
# Session
# ---------------------------------------------------------------------------


@dataclass
class Session:
    """One hosted game instance and its escrow."""

    session_id: str
    title: str
    bundle_pointer: str  # opaque game bundle address
    owner: str
    recipient_address: str
    max_players: int
    entry_type: EntryType
    entry_lock: EntryLock = EntryLock.OPEN
    version: str = "1"
    token_type: str = "native"
    transactor_address: str | None = None
    access_version: int = 0
    settle_version: int = 0
    players: list[PlayerEntry] = field(default_factory=list)
    deposits: list[Deposit] = field(default_factory=list)
    hosts: list[HostEntry] = field(default_factory=list)
    balance: int = 0
    checkpoint: bytes = b""
    bonuses: list[Prize] = field(default_factory=list)

    # ── Lookups ────────────────────────────────────────────

    def find_player(self, address: str) -> PlayerEntry | None:
        for player in self.players:
            if player.address == address:
                return player
        return None

    def find_player_by_id(self, player_id: int) -> PlayerEntry | None:
        for player in self.players:
            if player.access_version == player_id:
                return player
        return None

    def find_deposit(self, access_version: int) -> Deposit | None:
        for deposit in self.deposits:
            if deposit.access_version == access_version:
                return deposit
        return None

    def find_host(self, address: str) -> HostEntry | None:
        for host in self.hosts:
            if host.address == address:
                return host
        return None

    def find_bonus(self, prize_id: str) -> Prize | None:
        for prize in self.bonuses:
            if prize.prize_id == prize_id:
                return prize
        return None

    @property
    def is_full(self) -> bool:
        return len(self.players) >= self.max_players

    def deposits_with_status(self, *statuses: DepositStatus) -> list[Deposit]:
        return [d for d in self.deposits if d.status in statuses]

    # ── Serialization ──────────────────────────────────────

    def to_dict(self) -> dict:
        return {
            "session_id": self.session_id,
            "title": self.title,
            "bundle_pointer": self.bundle_pointer,
            "owner": self.owner,
            "recipient_address": self.recipient_address,
            "max_players": self.max_players,
            "entry_type": entry_type_to_dict(self.entry_type),
            "entry_lock": self.entry_lock.value,
            "version": self.version,
            "token_type": self.token_type,
            "transactor_address": self.transactor_address,
            "access_version": self.access_version,
            "settle_version": self.settle_version,
            "players": [asdict(p) for p in self.players],
            "deposits": [{**asdict(d), "status": d.status.value} for d in self.deposits],
            "hosts": [asdict(h) for h in self.hosts],
            "balance": self.balance,
            "checkpoint": self.checkpoint.hex(),
            "bonuses": [p.to_dict() for p in self.bonuses],
        }

    @classmethod
    def from_dict(cls, data: dict) -> Session:
        return cls(
            session_id=data["session_id"],
            title=data["title"],
            bundle_pointer=data["bundle_pointer"],
            owner=data["owner"],
            recipient_address=data["recipient_address"],
            max_players=int(data["max_players"]),
            entry_type=entry_type_from_dict(data["entry_type"]),
            entry_lock=EntryLock(data.get("entry_lock", "open")),
            version=data.get("version", "1"),
            token_type=data.get("token_type", "native"),
            transactor_address=data.get("transactor_address"),
            access_version=int(data.get("access_version", 0)),
            settle_version=int(data.get("settle_version", 0)),
            players=[PlayerEntry(**p) for p in data.get("players", [])],
            deposits=[
                Deposit(**{**d, "status": DepositStatus(d["status"])})
                for d in data.get("deposits", [])
            ],
            hosts=[HostEntry(**h) for h in data.get("hosts", [])],
            balance=int(data.get("balance", 0)),
            checkpoint=bytes.fromhex(data.get("checkpoint", "")),
            bonuses=[Prize.from_dict(p) for p in data.get("bonuses", [])],
        )
