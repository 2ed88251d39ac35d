"""Session membership, positions, entry rules and deposit lifecycle."""

from __future__ import annotations

import pytest

from race_ledger import prize as prize_escrow
from race_ledger import session as session_ops
from race_ledger.errors import (
    CapacityExceeded,
    DuplicateMembership,
    EntryLocked,
    InsufficientBalance,
    InvalidDepositAmount,
    InvalidIdentity,
    InvariantViolation,
    PositionUnavailable,
    PrizeConsumed,
    RecordNotFound,
    StaleVersion,
    UnauthorizedCaller,
)
from race_ledger.models.session import (
    MAX_HOSTS,
    Cash,
    DepositStatus,
    Disabled,
    EntryLock,
    Gating,
    Ticket,
    entry_type_to_dict,
)
from tests.factories import funded_wallets, make_address, make_session


# ── Hosts ─────────────────────────────────────────────────────────


def test_first_host_becomes_transactor(owner, host):
    s = make_session(owner=owner)
    entry = session_ops.host_join(s, host, "wss://a")
    second = make_address()
    session_ops.host_join(s, second, "wss://b")

    assert entry.access_version == 1
    assert s.transactor_address == host
    assert [h.access_version for h in s.hosts] == [1, 2]


def test_duplicate_host_by_owner_address_rejected(game, host):
    with pytest.raises(DuplicateMembership):
        session_ops.host_join(game, host, "wss://another-endpoint", verify_key="other-key")
    assert len(game.hosts) == 1
    assert game.access_version == 1


def test_host_capacity(owner):
    s = make_session(owner=owner)
    for i in range(MAX_HOSTS):
        session_ops.host_join(s, make_address(), f"wss://h{i}")
    with pytest.raises(CapacityExceeded):
        session_ops.host_join(s, make_address(), "wss://one-too-many")
    assert len(s.hosts) == MAX_HOSTS


def test_host_join_requires_valid_address(game):
    with pytest.raises(InvalidIdentity):
        session_ops.host_join(game, "not-an-address", "wss://x")


# ── Positions ─────────────────────────────────────────────────────


def test_resolve_position_prefers_requested():
    assert session_ops.resolve_position({0, 2}, 1, 4) == 1


def test_resolve_position_takes_lowest_free():
    assert session_ops.resolve_position({0, 2}, 2, 4) == 1


def test_resolve_position_none_free():
    with pytest.raises(PositionUnavailable):
        session_ops.resolve_position({0, 1}, 0, 2)


def test_join_position_out_of_range(game, wallets, alice):
    with pytest.raises(PositionUnavailable):
        session_ops.player_join(game, wallets, alice, 4, 150)


# ── Player join ───────────────────────────────────────────────────


def test_join_scenario_cash_session(owner, host):
    """Two seats, cash 100-200: join, duplicate, occupied seat falls back."""
    a, b = make_address(), make_address()
    wallets = funded_wallets(a, b)
    s = make_session(owner=owner, max_players=2, entry_type=Cash(100, 200))
    session_ops.host_join(s, host, "wss://h")

    player_a = session_ops.player_join(s, wallets, a, 0, 150)
    assert player_a.position == 0
    assert s.balance == 150

    with pytest.raises(DuplicateMembership):
        session_ops.player_join(s, wallets, a, 1, 150)

    player_b = session_ops.player_join(s, wallets, b, 0, 100)
    assert player_b.position == 1
    assert s.balance == 250
    assert wallets.balance_of(a) == 10_000 - 150
    assert wallets.balance_of(b) == 10_000 - 100


def test_join_creates_pending_deposit(game, wallets, alice):
    player = session_ops.player_join(game, wallets, alice, 0, 120)

    [dep] = game.deposits
    assert dep.status == DepositStatus.PENDING
    assert dep.access_version == player.access_version
    assert dep.settle_version == game.settle_version
    assert dep.amount == 120


def test_roster_full(owner, host):
    s = make_session(owner=owner, max_players=1)
    a, b = make_address(), make_address()
    wallets = funded_wallets(a, b)
    session_ops.player_join(s, wallets, a, 0, 100)
    with pytest.raises(CapacityExceeded):
        session_ops.player_join(s, wallets, b, 0, 100)


def test_access_version_increments_once_per_join(game, wallets, alice, bob):
    before = game.access_version
    session_ops.player_join(game, wallets, alice, 0, 100)
    session_ops.player_join(game, wallets, bob, 1, 100)
    with pytest.raises(DuplicateMembership):
        session_ops.player_join(game, wallets, bob, 2, 100)

    assert game.access_version == before + 2
    assert [p.access_version for p in game.players] == [before + 1, before + 2]


@pytest.mark.parametrize("amount", [99, 201])
def test_cash_amount_out_of_range(game, wallets, alice, amount):
    with pytest.raises(InvalidDepositAmount):
        session_ops.player_join(game, wallets, alice, 0, amount)
    assert game.players == []
    assert wallets.balance_of(alice) == 10_000


def test_ticket_requires_exact_amount(owner, alice):
    s = make_session(owner=owner, entry_type=Ticket(50))
    wallets = funded_wallets(alice)
    with pytest.raises(InvalidDepositAmount):
        session_ops.player_join(s, wallets, alice, 0, 60)
    session_ops.player_join(s, wallets, alice, 0, 50)
    assert s.balance == 50


@pytest.mark.parametrize("entry", [Gating("collection-x"), Disabled()])
def test_gating_and_disabled_skip_amount_check(owner, alice, entry):
    s = make_session(owner=owner, entry_type=entry)
    wallets = funded_wallets(alice)
    session_ops.player_join(s, wallets, alice, 0, 7)
    assert s.balance == 7


def test_join_without_funds(game, alice):
    wallets = funded_wallets(alice, amount=50)
    with pytest.raises(InsufficientBalance):
        session_ops.player_join(game, wallets, alice, 0, 100)
    assert game.players == []
    assert game.access_version == 1


@pytest.mark.parametrize("lock", [EntryLock.DEPOSIT_ONLY, EntryLock.CLOSED])
def test_join_refused_by_entry_lock(game, wallets, alice, lock):
    game.entry_lock = lock
    with pytest.raises(EntryLocked):
        session_ops.player_join(game, wallets, alice, 0, 100)


# ── Rebuy ─────────────────────────────────────────────────────────


def test_rebuy_appends_pending_deposit(game, wallets, alice):
    session_ops.player_join(game, wallets, alice, 0, 100)
    record = session_ops.deposit(game, wallets, alice, 200, expected_settle_version=0)

    assert record.status == DepositStatus.PENDING
    assert record.access_version == game.access_version
    assert game.balance == 300
    assert len(game.deposits) == 2


def test_rebuy_stale_settle_version(game, wallets, alice):
    session_ops.player_join(game, wallets, alice, 0, 100)
    with pytest.raises(StaleVersion):
        session_ops.deposit(game, wallets, alice, 100, expected_settle_version=3)


def test_rebuy_requires_active_player(game, wallets, alice):
    with pytest.raises(RecordNotFound):
        session_ops.deposit(game, wallets, alice, 100, expected_settle_version=0)


@pytest.mark.parametrize("lock", [EntryLock.JOIN_ONLY, EntryLock.CLOSED])
def test_rebuy_refused_by_entry_lock(game, wallets, alice, lock):
    session_ops.player_join(game, wallets, alice, 0, 100)
    game.entry_lock = lock
    with pytest.raises(EntryLocked):
        session_ops.deposit(game, wallets, alice, 100, expected_settle_version=0)


# ── Reject deposits ───────────────────────────────────────────────


def test_reject_refunds_and_unseats(game, wallets, host, alice):
    player = session_ops.player_join(game, wallets, alice, 0, 150)

    [record] = session_ops.reject_deposits(game, wallets, host, [player.access_version])

    assert record.status == DepositStatus.REFUNDED
    assert game.balance == 0
    assert game.players == []
    assert wallets.balance_of(alice) == 10_000
    # May rejoin afterwards.
    again = session_ops.player_join(game, wallets, alice, 0, 150)
    assert again.access_version == player.access_version + 1


def test_reject_rebuy_keeps_seat(game, wallets, host, alice):
    session_ops.player_join(game, wallets, alice, 0, 100)
    rebuy = session_ops.deposit(game, wallets, alice, 200, 0)

    session_ops.reject_deposits(game, wallets, host, [rebuy.access_version])

    assert game.find_player(alice) is not None
    assert game.balance == 100


def test_reject_requires_transactor(game, wallets, alice):
    player = session_ops.player_join(game, wallets, alice, 0, 100)
    with pytest.raises(UnauthorizedCaller):
        session_ops.reject_deposits(game, wallets, alice, [player.access_version])


def test_reject_is_all_or_nothing(game, wallets, host, alice, bob):
    a = session_ops.player_join(game, wallets, alice, 0, 100)
    session_ops.player_join(game, wallets, bob, 1, 100)

    with pytest.raises(RecordNotFound):
        session_ops.reject_deposits(game, wallets, host, [a.access_version, 999])

    assert game.balance == 200
    assert len(game.players) == 2
    assert all(d.status == DepositStatus.PENDING for d in game.deposits)
    assert wallets.balance_of(alice) == 10_000 - 100


def test_reject_twice_fails(game, wallets, host, alice):
    a = session_ops.player_join(game, wallets, alice, 0, 100)
    session_ops.reject_deposits(game, wallets, host, [a.access_version])
    with pytest.raises(StaleVersion):
        session_ops.reject_deposits(game, wallets, host, [a.access_version])


# ── Bonuses and close ─────────────────────────────────────────────


def test_attach_bonus(game, owner, alice):
    wallets = funded_wallets(owner)
    bonus = prize_escrow.create(wallets, owner, "gold-cup", "native", 500)

    with pytest.raises(UnauthorizedCaller):
        session_ops.attach_bonus(game, alice, bonus)
    session_ops.attach_bonus(game, owner, bonus)
    with pytest.raises(DuplicateMembership):
        session_ops.attach_bonus(game, owner, bonus)

    prize_escrow.unpack(bonus)
    other = make_session(owner=owner)
    with pytest.raises(PrizeConsumed):
        session_ops.attach_bonus(other, owner, bonus)


def test_close_requires_empty_session(game, wallets, owner, host, alice):
    session_ops.player_join(game, wallets, alice, 0, 100)
    with pytest.raises(UnauthorizedCaller):
        session_ops.close_session(game, host)
    with pytest.raises(InvariantViolation):
        session_ops.close_session(game, owner)


def test_close_empty_session(game, owner):
    session_ops.close_session(game, owner)


def test_session_round_trips_through_dict(game, wallets, owner, alice):
    session_ops.player_join(game, wallets, alice, 2, 150)
    game.checkpoint = b"\x01\x02"
    bonus = prize_escrow.create(funded_wallets(owner), owner, "cup", "native", 5)
    session_ops.attach_bonus(game, owner, bonus)

    restored = type(game).from_dict(game.to_dict())

    assert restored == game


def test_unknown_entry_type_is_refused():
    with pytest.raises(TypeError):
        session_ops.validate_amount(object(), 10)  # type: ignore[arg-type]
    with pytest.raises(TypeError):
        entry_type_to_dict(object())  # type: ignore[arg-type]
