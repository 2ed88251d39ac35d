"""LedgerService end to end against the in-memory store."""

from __future__ import annotations

import pytest

from race_ledger.errors import (
    CapacityExceeded,
    DuplicateMembership,
    InvalidDepositAmount,
    InvariantViolation,
    RecordNotFound,
    UnauthorizedCaller,
)
from race_ledger.identity import RoleTag
from race_ledger.models.session import Cash, DepositStatus, EntryLock
from race_ledger.models.settle import PlayerBalance, Settle, SettleBatch, Transfer
from race_ledger.models.treasury import Share
from race_ledger.service import LedgerService
from tests.conftest import HOST_ENDPOINT, make_test_config
from tests.factories import make_address


@pytest.fixture
async def table(service, owner, host, alice, bob):
    """A session with a transactor host and two funded, registered players."""
    await service.register_host(host)
    for player in (alice, bob):
        await service.register_profile(player)
        await service.fund_wallet(player, 1_000)
    await service.create_recipient(
        owner, {"platform": [Share(owner, 1)]}, recipient_id="recipient-1",
    )
    created = await service.create_session(
        owner, "Holdem", "bundle://holdem", "recipient-1", Cash(100, 200), max_players=4,
    )
    await service.host_join(created.session_id, host, HOST_ENDPOINT)
    return created.session_id


async def test_create_session_registers_in_lobby(service, owner):
    created = await service.create_session(owner, "Race", "bundle://race", "r-1", Cash(1, 10))

    assert await service.list_lobby() == [created.session_id]
    assert created.max_players == 6
    assert created.entry_lock == EntryLock.OPEN
    stored = await service.get_session(created.session_id)
    assert stored == created


async def test_lobby_capacity(store, owner):
    service = LedgerService(make_test_config(lobby_capacity=1), store=store)
    await service.create_session(owner, "One", "b://1", "r-1", Cash(1, 10))
    with pytest.raises(CapacityExceeded):
        await service.create_session(owner, "Two", "b://2", "r-1", Cash(1, 10))
    assert len(await store.list_sessions()) == 1


async def test_host_join_needs_host_record(service, owner, host):
    created = await service.create_session(owner, "Race", "bundle://race", "r-1", Cash(1, 10))
    with pytest.raises(UnauthorizedCaller):
        await service.host_join(created.session_id, host, HOST_ENDPOINT)


async def test_player_join_needs_profile(service, table):
    stranger = make_address()
    await service.fund_wallet(stranger, 1_000)
    with pytest.raises(UnauthorizedCaller):
        await service.player_join(table, stranger, 0, 100)


async def test_profile_registered_once(service, alice):
    await service.register_profile(alice)
    with pytest.raises(DuplicateMembership):
        await service.register_profile(alice)


async def test_player_join_persists(service, table, alice):
    player = await service.player_join(table, alice, 0, 150)

    stored = await service.get_session(table)
    assert stored.find_player(alice) == player
    assert stored.balance == 150
    assert await service.balance_of(alice) == 850


async def test_failed_operation_persists_nothing(service, table, alice):
    with pytest.raises(InvalidDepositAmount):
        await service.player_join(table, alice, 0, 5_000)

    stored = await service.get_session(table)
    assert stored.players == []
    assert await service.balance_of(alice) == 1_000

    activity = await service.recent_activity()
    assert activity[0].event_type == "player_join_rejected"
    assert activity[0].message.startswith("invalid_deposit_amount")


async def test_unknown_session(service, alice):
    with pytest.raises(RecordNotFound):
        await service.deposit("missing", alice, 100, 0)


async def test_full_round(service, table, owner, host, alice, bob):
    a = await service.player_join(table, alice, 0, 150)
    b = await service.player_join(table, bob, 1, 100)

    receipt = await service.settle(
        table, host,
        SettleBatch(
            expected_settle_version=0,
            next_settle_version=1,
            settles=[Settle(a.access_version, 190, eject=True)],
            transfers=[Transfer("platform", 10)],
            balances=[PlayerBalance(b.access_version, 50)],
            accepted_deposits=[a.access_version, b.access_version],
        ),
    )

    assert receipt.total_paid == 190
    stored = await service.get_session(table)
    assert stored.settle_version == 1
    assert stored.balance == 50
    assert [p.address for p in stored.players] == [bob]
    assert await service.balance_of(alice) == 1_000 - 150 + 190

    recipient = await service.get_recipient("recipient-1")
    assert recipient.snapshot["platform"] == 10
    assert await service.claim("recipient-1", "platform", owner) == 10

    history = await service.settlement_history(table)
    assert [h.settle_version for h in history] == [1]


async def test_failed_settlement_leaves_store_untouched(service, table, host, alice):
    a = await service.player_join(table, alice, 0, 150)
    with pytest.raises(InvariantViolation):
        await service.settle(
            table, host,
            SettleBatch(0, 1, settles=[Settle(a.access_version, 10)], accepted_deposits=[a.access_version]),
        )

    stored = await service.get_session(table)
    assert stored.balance == 150
    assert stored.settle_version == 0
    assert stored.deposits[0].status == DepositStatus.PENDING
    assert await service.balance_of(alice) == 850
    assert await service.settlement_history(table) == []


async def test_reject_deposits(service, table, host, alice):
    a = await service.player_join(table, alice, 0, 150)
    [record] = await service.reject_deposits(table, host, [a.access_version])

    assert record.status == DepositStatus.REFUNDED
    assert await service.balance_of(alice) == 1_000
    assert (await service.get_session(table)).players == []


async def test_bonus_moves_into_session(service, table, owner, host, alice, store):
    await service.fund_wallet(owner, 500)
    bonus = await service.create_prize(owner, "gold-cup", 300)
    await service.attach_bonus(table, owner, bonus.prize_id)

    assert await store.get_prize(bonus.prize_id) is None
    stored = await service.get_session(table)
    assert [b.identifier for b in stored.bonuses] == ["gold-cup"]
    assert await service.balance_of(owner) == 200


async def test_close_session(service, table, owner, host):
    with pytest.raises(UnauthorizedCaller):
        await service.close_session(table, host)
    await service.close_session(table, owner)

    assert await service.get_session(table) is None
    assert await service.list_lobby() == []


async def test_treasury_via_service(service, owner, alice, bob):
    await service.create_recipient(
        owner,
        {"fees": [Share(RoleTag("platform"), 30), Share(alice, 70)]},
        recipient_id="r-9",
    )
    await service.fund_wallet(bob, 100)
    assert await service.fund_slot("r-9", "fees", bob, 100) == 100

    assert await service.claim("r-9", "fees", alice) == 70
    with pytest.raises(RecordNotFound):
        await service.claim("r-9", "fees", bob)

    await service.assign_share("r-9", owner, "fees", "platform", bob)
    assert await service.claim("r-9", "fees", bob) == 30
    assert await service.balance_of(bob) == 30
