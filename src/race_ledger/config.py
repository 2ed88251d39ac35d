"""Configuration loading: TOML file + environment variables."""

from __future__ import annotations

import os
import tomllib
from pathlib import Path

from race_ledger.models.config import LedgerConfig, SessionDefaults
from race_ledger.models.session import MAX_HOSTS, EntryLock


def load_config(
    config_path: str | Path | None = None,
    env_prefix: str = "RACE_LEDGER_",
) -> LedgerConfig:
    """Load ledger configuration from a TOML file and env vars.

    Priority (highest wins):
        1. Environment variables (RACE_LEDGER_DB_PATH, etc.)
        2. TOML config file
        3. Defaults from LedgerConfig
    """
    raw: dict = {}
    if config_path is not None:
        p = Path(config_path).expanduser()
        if p.exists():
            with open(p, "rb") as f:
                raw = tomllib.load(f)

    cfg = LedgerConfig()

    # ── Ledger section ─────────────────────────────────────
    ledger = raw.get("ledger", {})
    if v := ledger.get("log_level"):
        cfg.log_level = str(v)
    if v := ledger.get("native_token"):
        cfg.native_token = str(v)

    # ── Storage section ────────────────────────────────────
    storage = raw.get("storage", {})
    if v := storage.get("db_path"):
        cfg.db_path = str(v)

    # ── Lobby section ──────────────────────────────────────
    lobby = raw.get("lobby", {})
    if v := lobby.get("capacity"):
        cfg.lobby_capacity = int(v)

    # ── Session section ────────────────────────────────────
    session_raw = raw.get("session", {})
    cfg.session = SessionDefaults(
        entry_lock=EntryLock(session_raw.get("default_entry_lock", "open")),
        max_hosts=min(int(session_raw.get("max_hosts", MAX_HOSTS)), MAX_HOSTS),
        max_players=int(session_raw.get("max_players", 6)),
    )

    # ── Environment variable overrides (highest priority) ──
    if db_path := os.environ.get(f"{env_prefix}DB_PATH"):
        cfg.db_path = db_path
    if level := os.environ.get(f"{env_prefix}LOG_LEVEL"):
        cfg.log_level = level
    if capacity := os.environ.get(f"{env_prefix}LOBBY_CAPACITY"):
        cfg.lobby_capacity = int(capacity)

    # Expand ~ in paths
    if cfg.db_path != ":memory:":
        cfg.db_path = str(Path(cfg.db_path).expanduser())

    return cfg
