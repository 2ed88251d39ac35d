"""Ledger service - wires the core operations to persistence.

Each operation loads the records it needs, runs the synchronous core
operation, then persists every touched record in one store transaction.
A failed operation persists nothing. The wallets record is shared by
almost every mutation, so writes are serialized on a single lock.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from race_ledger import prize as prize_escrow
from race_ledger import session as session_ops
from race_ledger import settlement, treasury
from race_ledger.errors import LedgerError, RecordNotFound, UnauthorizedCaller
from race_ledger.identity import RoleTag, short
from race_ledger.interfaces.store import LedgerStore
from race_ledger.models.config import LedgerConfig
from race_ledger.models.prize import AssetKind, Prize
from race_ledger.models.records import ActivityRecord, ProfileRecord
from race_ledger.models.session import Deposit, EntryLock, EntryType, HostEntry, PlayerEntry, Session
from race_ledger.models.settle import SettleBatch, SettleReceipt
from race_ledger.models.treasury import Recipient, Share
from race_ledger.storage.sqlite import SQLiteLedgerStore

log = logging.getLogger(__name__)


class LedgerService:
    """Async facade over the session ledger, treasury and directories."""

    def __init__(self, cfg: LedgerConfig, store: LedgerStore | None = None) -> None:
        self._cfg = cfg
        self.store: LedgerStore = store or SQLiteLedgerStore(cfg.db_path)
        self._lock = asyncio.Lock()

    async def start(self) -> None:
        await self.store.initialize()
        log.info("Ledger store ready at %s", self._cfg.db_path)

    async def stop(self) -> None:
        await self.store.close()

    @asynccontextmanager
    async def _operation(
        self, event_type: str, record_id: str | None = None, address: str | None = None
    ) -> AsyncIterator[None]:
        async with self._lock:
            try:
                yield
            except LedgerError as exc:
                log.warning("%s rejected (%s): %s", event_type, exc.code.value, exc)
                await self.store.log_activity(
                    f"{event_type}_rejected",
                    f"{exc.code.value}: {exc}",
                    record_id=record_id,
                    address=address,
                )
                raise

    async def _require_session(self, session_id: str) -> Session:
        found = await self.store.get_session(session_id)
        if found is None:
            raise RecordNotFound(f"no session {session_id}")
        return found

    async def _require_recipient(self, recipient_id: str) -> Recipient:
        found = await self.store.get_recipient(recipient_id)
        if found is None:
            raise RecordNotFound(f"no recipient {recipient_id}")
        return found

    # ── Directories ────────────────────────────────────────

    async def register_profile(self, identity: str) -> ProfileRecord:
        async with self._operation("register_profile", address=identity):
            directory = await self.store.get_directory("player")
            record = directory.register(identity, str(uuid.uuid4()))
            await self.store.save(directory)
        return record

    async def register_host(self, identity: str) -> ProfileRecord:
        async with self._operation("register_host", address=identity):
            directory = await self.store.get_directory("host")
            record = directory.register(identity, str(uuid.uuid4()))
            await self.store.save(directory)
        return record

    async def list_lobby(self) -> list[str]:
        lobby = await self.store.get_lobby(self._cfg.lobby_capacity)
        return lobby.list()

    # ── Wallets ────────────────────────────────────────────

    async def fund_wallet(self, address: str, amount: int, token_type: str | None = None) -> int:
        """Credit an external account (dev/test faucet)."""
        token = token_type or self._cfg.native_token
        async with self._operation("fund_wallet", address=address):
            wallets = await self.store.get_wallets()
            wallets.credit(address, amount, token)
            await self.store.save(wallets)
            await self.store.log_activity("wallet_funded", f"Funded {short(address)}", address=address, amount=amount)
        return wallets.balance_of(address, token)

    async def balance_of(self, address: str, token_type: str | None = None) -> int:
        wallets = await self.store.get_wallets()
        return wallets.balance_of(address, token_type or self._cfg.native_token)

    # ── Sessions ───────────────────────────────────────────

    async def create_session(
        self,
        owner: str,
        title: str,
        bundle_pointer: str,
        recipient_address: str,
        entry_type: EntryType,
        max_players: int | None = None,
        entry_lock: EntryLock | None = None,
    ) -> Session:
        async with self._operation("create_session", address=owner):
            created = session_ops.create_session(
                owner=owner,
                title=title,
                bundle_pointer=bundle_pointer,
                recipient_address=recipient_address,
                max_players=max_players or self._cfg.session.max_players,
                entry_type=entry_type,
                entry_lock=entry_lock or self._cfg.session.entry_lock,
                token_type=self._cfg.native_token,
            )
            lobby = await self.store.get_lobby(self._cfg.lobby_capacity)
            lobby.register(created.session_id)
            await self.store.save(created, lobby)
            await self.store.log_activity(
                "session_created", f"Session '{title}' created",
                record_id=created.session_id, address=owner,
            )
        return created

    async def get_session(self, session_id: str) -> Session | None:
        return await self.store.get_session(session_id)

    async def session_revision(self, session_id: str) -> int:
        """Committed writes to the session record."""
        return await self.store.get_revision("session", session_id)

    async def close_session(self, session_id: str, caller: str) -> None:
        async with self._operation("close_session", session_id, caller):
            current = await self._require_session(session_id)
            session_ops.close_session(current, caller)
            lobby = await self.store.get_lobby(self._cfg.lobby_capacity)
            if session_id in lobby.list():
                lobby.unregister(session_id)
            await self.store.save(lobby, deletes=[("session", session_id)])
            await self.store.log_activity("session_closed", "Session closed", record_id=session_id, address=caller)

    async def host_join(
        self, session_id: str, address: str, endpoint: str, verify_key: str = ""
    ) -> HostEntry:
        async with self._operation("host_join", session_id, address):
            hosts = await self.store.get_directory("host")
            if not hosts.exists(address):
                raise UnauthorizedCaller(f"{short(address)} has no host record")
            current = await self._require_session(session_id)
            entry = session_ops.host_join(
                current, address, endpoint, verify_key, max_hosts=self._cfg.session.max_hosts,
            )
            await self.store.save(current)
            await self.store.log_activity(
                "host_joined", f"Host joined at {endpoint}", record_id=session_id, address=address,
            )
        return entry

    async def player_join(
        self, session_id: str, address: str, position: int, amount: int, verify_key: str = ""
    ) -> PlayerEntry:
        async with self._operation("player_join", session_id, address):
            profiles = await self.store.get_directory("player")
            if not profiles.exists(address):
                raise UnauthorizedCaller(f"{short(address)} has no player profile")
            current = await self._require_session(session_id)
            wallets = await self.store.get_wallets()
            player = session_ops.player_join(current, wallets, address, position, amount, verify_key)
            await self.store.save(current, wallets)
            await self.store.log_activity(
                "player_joined", f"Joined at position {player.position}",
                record_id=session_id, address=address, amount=amount,
            )
        return player

    async def deposit(
        self, session_id: str, address: str, amount: int, expected_settle_version: int
    ) -> Deposit:
        async with self._operation("deposit", session_id, address):
            current = await self._require_session(session_id)
            wallets = await self.store.get_wallets()
            record = session_ops.deposit(current, wallets, address, amount, expected_settle_version)
            await self.store.save(current, wallets)
            await self.store.log_activity(
                "deposit", f"Deposit {record.access_version} pending",
                record_id=session_id, address=address, amount=amount,
            )
        return record

    async def reject_deposits(
        self, session_id: str, caller: str, access_versions: list[int]
    ) -> list[Deposit]:
        async with self._operation("reject_deposits", session_id, caller):
            current = await self._require_session(session_id)
            wallets = await self.store.get_wallets()
            rejected = session_ops.reject_deposits(current, wallets, caller, access_versions)
            await self.store.save(current, wallets)
            await self.store.log_activity(
                "deposits_rejected", f"Refunded {len(rejected)} deposit(s)",
                record_id=session_id, address=caller, amount=sum(d.amount for d in rejected),
            )
        return rejected

    # ── Prizes ─────────────────────────────────────────────

    async def create_prize(
        self,
        owner: str,
        identifier: str,
        amount: int,
        token_type: str | None = None,
        payload: str = "",
        asset_kind: AssetKind = AssetKind.FUNGIBLE,
    ) -> Prize:
        async with self._operation("create_prize", address=owner):
            wallets = await self.store.get_wallets()
            created = prize_escrow.create(
                wallets, owner, identifier, token_type or self._cfg.native_token,
                amount, payload, asset_kind,
            )
            await self.store.save(created, wallets)
        return created

    async def attach_bonus(self, session_id: str, caller: str, prize_id: str) -> None:
        async with self._operation("attach_bonus", session_id, caller):
            current = await self._require_session(session_id)
            bonus = await self.store.get_prize(prize_id)
            if bonus is None:
                raise RecordNotFound(f"no prize {prize_id}")
            session_ops.attach_bonus(current, caller, bonus)
            # The session now holds the escrow.
            await self.store.save(current, deletes=[("prize", prize_id)])

    # ── Settlement ─────────────────────────────────────────

    async def settle(self, session_id: str, caller: str, batch: SettleBatch) -> SettleReceipt:
        async with self._operation("settle", session_id, caller):
            current = await self._require_session(session_id)
            wallets = await self.store.get_wallets()
            recipient = await self.store.get_recipient(current.recipient_address)
            receipt = settlement.settle(current, wallets, caller, batch, recipient)

            touched: list = [current, wallets]
            if recipient is not None:
                touched.append(recipient)
            await self.store.save(*touched)
            await self.store.save_settlement(receipt)
            await self.store.log_activity(
                "settled", f"Settled to version {receipt.settle_version}",
                record_id=session_id, address=caller, amount=receipt.total_paid,
            )
        return receipt

    async def settlement_history(self, session_id: str, limit: int = 10):
        return await self.store.get_settlement_history(session_id, limit)

    # ── Treasury ───────────────────────────────────────────

    async def create_recipient(
        self,
        updater: str | None,
        slots: dict[str, list[Share]],
        recipient_id: str | None = None,
    ) -> Recipient:
        async with self._operation("create_recipient", recipient_id, updater):
            created = treasury.create_recipient(
                updater,
                [treasury.create_slot(slot_id, shares, self._cfg.native_token) for slot_id, shares in slots.items()],
                recipient_id=recipient_id,
            )
            await self.store.save(created)
        return created

    async def get_recipient(self, recipient_id: str) -> Recipient | None:
        return await self.store.get_recipient(recipient_id)

    async def fund_slot(self, recipient_id: str, slot_id: str, payer: str, amount: int) -> int:
        async with self._operation("fund_slot", recipient_id, payer):
            recipient = await self._require_recipient(recipient_id)
            slot = recipient.find_slot(slot_id)
            if slot is None:
                raise RecordNotFound(f"no slot {slot_id}")
            wallets = await self.store.get_wallets()
            treasury.deposit(slot, amount, wallets, payer)
            recipient.sync(slot)
            await self.store.save(recipient, wallets)
        return slot.balance

    async def claim(self, recipient_id: str, slot_id: str, claimant: str) -> int:
        async with self._operation("claim", recipient_id, claimant):
            recipient = await self._require_recipient(recipient_id)
            slot = recipient.find_slot(slot_id)
            if slot is None:
                raise RecordNotFound(f"no slot {slot_id}")
            wallets = await self.store.get_wallets()
            payout = treasury.claim(slot, wallets, claimant)
            recipient.sync(slot)
            await self.store.save(recipient, wallets)
            if payout:
                await self.store.log_activity(
                    "claimed", f"Claimed from slot {slot_id}",
                    record_id=recipient_id, address=claimant, amount=payout,
                )
        return payout

    async def assign_share(
        self, recipient_id: str, caller: str, slot_id: str, role: str, address: str
    ) -> None:
        async with self._operation("assign_share", recipient_id, caller):
            recipient = await self._require_recipient(recipient_id)
            treasury.assign_share(recipient, caller, slot_id, RoleTag(role), address)
            await self.store.save(recipient)

    # ── Activity ───────────────────────────────────────────

    async def recent_activity(self, limit: int = 50) -> list[ActivityRecord]:
        return await self.store.get_recent_activity(limit)
