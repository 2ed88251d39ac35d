"""Membership and discovery directories.

Both are plain in-memory tables handed explicitly to whoever needs them;
the service layer persists them alongside the other records.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from race_ledger.errors import CapacityExceeded, DuplicateMembership, RecordNotFound
from race_ledger.identity import require_identity, short
from race_ledger.models.records import ProfileRecord

log = logging.getLogger(__name__)


class MembershipDirectory:
    """Maps a caller identity to at most one record."""

    def __init__(self, kind: str = "player") -> None:
        self.kind = kind
        self._entries: dict[str, ProfileRecord] = {}

    def exists(self, identity: str) -> bool:
        return identity in self._entries

    def get(self, identity: str) -> ProfileRecord | None:
        return self._entries.get(identity)

    def register(self, identity: str, record_id: str) -> ProfileRecord:
        require_identity(identity)
        if identity in self._entries:
            raise DuplicateMembership(f"{short(identity)} already has a {self.kind} record")
        record = ProfileRecord(
            identity=identity,
            record_id=record_id,
            kind=self.kind,
            created_at=datetime.now(timezone.utc).isoformat(),
        )
        self._entries[identity] = record
        log.info("Registered %s record %s for %s", self.kind, record_id, short(identity))
        return record

    def __len__(self) -> int:
        return len(self._entries)

    def to_dict(self) -> dict:
        return {
            "kind": self.kind,
            "entries": [
                {"identity": r.identity, "record_id": r.record_id, "created_at": r.created_at}
                for r in self._entries.values()
            ],
        }

    @classmethod
    def from_dict(cls, data: dict) -> MembershipDirectory:
        directory = cls(kind=data.get("kind", "player"))
        for entry in data.get("entries", []):
            directory._entries[entry["identity"]] = ProfileRecord(
                identity=entry["identity"],
                record_id=entry["record_id"],
                kind=directory.kind,
                created_at=entry.get("created_at", ""),
            )
        return directory


class Lobby:
    """Bounded list of active sessions for browsing."""

    def __init__(self, capacity: int = 100) -> None:
        self.capacity = capacity
        self._sessions: list[str] = []

    def list(self) -> list[str]:
        return list(self._sessions)

    def register(self, session_id: str) -> None:
        if session_id in self._sessions:
            raise DuplicateMembership(f"session {session_id} already listed")
        if len(self._sessions) >= self.capacity:
            raise CapacityExceeded(f"lobby is full ({self.capacity} sessions)")
        self._sessions.append(session_id)

    def unregister(self, session_id: str) -> None:
        if session_id not in self._sessions:
            raise RecordNotFound(f"session {session_id} is not listed")
        self._sessions.remove(session_id)

    def to_dict(self) -> dict:
        return {"capacity": self.capacity, "sessions": list(self._sessions)}

    @classmethod
    def from_dict(cls, data: dict) -> Lobby:
        lobby = cls(capacity=int(data.get("capacity", 100)))
        lobby._sessions = list(data.get("sessions", []))
        return lobby
