"""Shared fixtures for race_ledger tests."""

from __future__ import annotations

import pytest
from pytest_metadata.plugin import metadata_key

from race_ledger import session as session_ops
from race_ledger.models.config import LedgerConfig
from race_ledger.service import LedgerService
from race_ledger.storage.sqlite import SQLiteLedgerStore

from tests.factories import funded_wallets, make_address, make_session

HOST_ENDPOINT = "wss://host-1.example.com"


# ── Report metadata ──────────────────────────────────────────────


def pytest_configure(config):
    """Add ledger info to the report Environment table."""
    meta = config.stash.setdefault(metadata_key, {})
    meta["Ledger store"] = "SQLite (in-memory)"
    meta["Native token"] = "native (stroops)"


def make_test_config(**overrides) -> LedgerConfig:
    """Build a LedgerConfig suitable for testing."""
    defaults = dict(db_path=":memory:", lobby_capacity=10)
    defaults.update(overrides)
    return LedgerConfig(**defaults)


# ── Identities ───────────────────────────────────────────────────


@pytest.fixture
def owner() -> str:
    return make_address()


@pytest.fixture
def host() -> str:
    return make_address()


@pytest.fixture
def alice() -> str:
    return make_address()


@pytest.fixture
def bob() -> str:
    return make_address()


# ── Core records ─────────────────────────────────────────────────


@pytest.fixture
def wallets(alice, bob):
    return funded_wallets(alice, bob)


@pytest.fixture
def game(owner, host):
    """Cash 100-200 session, four seats, with its transactor host joined."""
    s = make_session(owner=owner)
    session_ops.host_join(s, host, HOST_ENDPOINT)
    return s


# ── Persistence ──────────────────────────────────────────────────


@pytest.fixture
def test_config():
    return make_test_config()


@pytest.fixture
async def store():
    """Initialized in-memory SQLiteLedgerStore."""
    s = SQLiteLedgerStore(":memory:")
    await s.initialize()
    yield s
    await s.close()


@pytest.fixture
async def service(test_config, store):
    """LedgerService backed by the in-memory store."""
    return LedgerService(test_config, store=store)
