"""Configuration models for the ledger."""

from __future__ import annotations

from dataclasses import dataclass, field

from race_ledger.models.session import MAX_HOSTS, EntryLock


@dataclass
class SessionDefaults:
    """Defaults applied when a session is created without explicit values."""

    entry_lock: EntryLock = EntryLock.OPEN
    max_hosts: int = MAX_HOSTS
    max_players: int = 6


@dataclass
class LedgerConfig:
    """Complete ledger configuration."""

    # Ledger
    log_level: str = "info"
    native_token: str = "native"

    # Storage
    db_path: str = "~/.race_ledger/ledger.db"

    # Lobby
    lobby_capacity: int = 100

    # Sessions
    session: SessionDefaults = field(default_factory=SessionDefaults)
