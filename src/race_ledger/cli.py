"""CLI entry point for the race ledger."""

from __future__ import annotations

import asyncio
import json
import logging
import sys
from pathlib import Path

import click
from stellar_sdk import Keypair

from race_ledger.config import load_config
from race_ledger.errors import LedgerError
from race_ledger.identity import RoleTag
from race_ledger.models.session import Cash, Disabled, EntryLock, Gating, Ticket
from race_ledger.models.settle import SettleBatch
from race_ledger.models.treasury import Share
from race_ledger.service import LedgerService
from race_ledger.wallets import format_amount


def _run(ctx: click.Context, op) -> None:
    """Open the service, run ``op(service)``, and report ledger errors."""
    cfg = load_config(ctx.obj["config_path"])

    async def _main():
        service = LedgerService(cfg)
        await service.start()
        try:
            await op(service)
        finally:
            await service.stop()

    try:
        asyncio.run(_main())
    except LedgerError as exc:
        click.echo(f"Error ({exc.code.value}): {exc}", err=True)
        sys.exit(1)


def _parse_share(raw: str) -> Share:
    """ADDRESS:WEIGHT or role:NAME:WEIGHT."""
    parts = raw.split(":")
    try:
        if parts[0] == "role" and len(parts) == 3:
            return Share(owner=RoleTag(parts[1]), weight=int(parts[2]))
        if len(parts) == 2:
            return Share(owner=parts[0], weight=int(parts[1]))
    except ValueError:
        pass
    raise click.BadParameter(f"expected ADDRESS:WEIGHT or role:NAME:WEIGHT, got {raw!r}")


@click.group()
@click.option("-c", "--config", "config_path", default=None, help="Path to config TOML file")
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging")
@click.pass_context
def cli(ctx: click.Context, config_path: str | None, verbose: bool) -> None:
    """race-ledger - session ledger and settlement for hosted games."""
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path
    ctx.obj["verbose"] = verbose

    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


# ── Info ───────────────────────────────────────────────


@cli.command()
@click.pass_context
def status(ctx: click.Context) -> None:
    """Show ledger configuration."""
    cfg = load_config(ctx.obj["config_path"])
    click.echo(f"DB path:       {cfg.db_path}")
    click.echo(f"Log level:     {cfg.log_level}")
    click.echo(f"Native token:  {cfg.native_token}")
    click.echo(f"Lobby size:    {cfg.lobby_capacity}")
    click.echo(f"Entry lock:    {cfg.session.entry_lock.value}")
    click.echo(f"Max hosts:     {cfg.session.max_hosts}")
    click.echo(f"Max players:   {cfg.session.max_players}")


@cli.command()
def keygen() -> None:
    """Generate a new account keypair."""
    keypair = Keypair.random()
    click.echo(f"Address:  {keypair.public_key}")
    click.echo(f"Secret:   {keypair.secret}")


@cli.command()
@click.pass_context
def sessions(ctx: click.Context) -> None:
    """List sessions in the lobby."""

    async def _op(service: LedgerService):
        ids = await service.list_lobby()
        if not ids:
            click.echo("No active sessions.")
            return
        for session_id in ids:
            found = await service.get_session(session_id)
            if found is None:
                continue
            click.echo(
                f"  {found.session_id}  {found.title!r} players={len(found.players)}/{found.max_players}"
                f" settle_version={found.settle_version} balance={format_amount(found.balance, found.token_type)}"
            )

    _run(ctx, _op)


@cli.command()
@click.argument("session_id")
@click.pass_context
def show(ctx: click.Context, session_id: str) -> None:
    """Show a session's roster, deposits and balance."""

    async def _op(service: LedgerService):
        found = await service.get_session(session_id)
        if found is None:
            click.echo(f"No session {session_id}.", err=True)
            sys.exit(1)
        click.echo(f"Title:           {found.title}")
        click.echo(f"Owner:           {found.owner}")
        click.echo(f"Transactor:      {found.transactor_address or '(none)'}")
        click.echo(f"Entry lock:      {found.entry_lock.value}")
        click.echo(f"Access version:  {found.access_version}")
        click.echo(f"Settle version:  {found.settle_version}")
        click.echo(f"Revision:        {await service.session_revision(session_id)}")
        click.echo(f"Balance:         {format_amount(found.balance, found.token_type)}")
        click.echo(f"Hosts:           {len(found.hosts)}")
        for h in found.hosts:
            click.echo(f"  [{h.access_version}] {h.address} {h.endpoint}")
        click.echo(f"Players:         {len(found.players)}/{found.max_players}")
        for p in found.players:
            click.echo(f"  [{p.access_version}] pos={p.position} {p.address}")
        click.echo(f"Deposits:        {len(found.deposits)}")
        for d in found.deposits:
            click.echo(f"  [{d.access_version}] {d.status.value:9s} {d.amount} from {d.address}")
        if found.bonuses:
            click.echo(f"Bonuses:         {', '.join(b.identifier for b in found.bonuses)}")

    _run(ctx, _op)


# ── Sessions ───────────────────────────────────────────


@cli.command("create-session")
@click.option("--owner", required=True, help="Owner address")
@click.option("--title", required=True)
@click.option("--bundle", "bundle_pointer", required=True, help="Game bundle address")
@click.option("--recipient", "recipient_address", required=True, help="Recipient id for proceeds")
@click.option("--max-players", type=int, default=None)
@click.option("--cash", nargs=2, type=int, default=None, help="MIN MAX deposit")
@click.option("--ticket", type=int, default=None, help="Exact ticket price")
@click.option("--gating", default=None, help="Gating collection")
@click.pass_context
def create_session(
    ctx: click.Context,
    owner: str,
    title: str,
    bundle_pointer: str,
    recipient_address: str,
    max_players: int | None,
    cash: tuple[int, int] | None,
    ticket: int | None,
    gating: str | None,
) -> None:
    """Create a session and list it in the lobby."""
    if cash:
        entry = Cash(cash[0], cash[1])
    elif ticket is not None:
        entry = Ticket(ticket)
    elif gating:
        entry = Gating(gating)
    else:
        entry = Disabled()

    async def _op(service: LedgerService):
        created = await service.create_session(
            owner, title, bundle_pointer, recipient_address, entry, max_players=max_players,
        )
        click.echo(f"Session created: {created.session_id}")

    _run(ctx, _op)


@cli.command()
@click.argument("address")
@click.argument("amount", type=int)
@click.pass_context
def fund(ctx: click.Context, address: str, amount: int) -> None:
    """Credit an account's wallet (development faucet)."""

    async def _op(service: LedgerService):
        balance = await service.fund_wallet(address, amount)
        click.echo(f"Balance: {balance} ({format_amount(balance)})")

    _run(ctx, _op)


@cli.command("register")
@click.argument("address")
@click.option("--host", "as_host", is_flag=True, help="Register a host record instead of a player profile")
@click.pass_context
def register(ctx: click.Context, address: str, as_host: bool) -> None:
    """Register a player profile or host record for an address."""

    async def _op(service: LedgerService):
        if as_host:
            record = await service.register_host(address)
        else:
            record = await service.register_profile(address)
        click.echo(f"Registered {record.kind} record {record.record_id}")

    _run(ctx, _op)


@cli.command("host-join")
@click.argument("session_id")
@click.option("--address", required=True)
@click.option("--endpoint", required=True, help="Host endpoint URL")
@click.option("--verify-key", default="")
@click.pass_context
def host_join(ctx: click.Context, session_id: str, address: str, endpoint: str, verify_key: str) -> None:
    """Join a session as a host."""

    async def _op(service: LedgerService):
        entry = await service.host_join(session_id, address, endpoint, verify_key)
        click.echo(f"Joined as host (access_version={entry.access_version})")

    _run(ctx, _op)


@cli.command()
@click.argument("session_id")
@click.option("--address", required=True)
@click.option("--position", type=int, default=0)
@click.option("--amount", type=int, required=True)
@click.option("--verify-key", default="")
@click.pass_context
def join(ctx: click.Context, session_id: str, address: str, position: int, amount: int, verify_key: str) -> None:
    """Join a session as a player."""

    async def _op(service: LedgerService):
        player = await service.player_join(session_id, address, position, amount, verify_key)
        click.echo(f"Joined at position {player.position} (player id {player.access_version})")

    _run(ctx, _op)


@cli.command()
@click.argument("session_id")
@click.option("--address", required=True)
@click.option("--amount", type=int, required=True)
@click.option("--settle-version", type=int, required=True, help="Current settle_version")
@click.pass_context
def deposit(ctx: click.Context, session_id: str, address: str, amount: int, settle_version: int) -> None:
    """Rebuy into a session."""

    async def _op(service: LedgerService):
        record = await service.deposit(session_id, address, amount, settle_version)
        click.echo(f"Deposit {record.access_version} pending")

    _run(ctx, _op)


@cli.command()
@click.argument("session_id")
@click.option("--caller", required=True, help="Transactor address")
@click.argument("access_versions", nargs=-1, type=int, required=True)
@click.pass_context
def reject(ctx: click.Context, session_id: str, caller: str, access_versions: tuple[int, ...]) -> None:
    """Reject and refund pending deposits."""

    async def _op(service: LedgerService):
        rejected = await service.reject_deposits(session_id, caller, list(access_versions))
        click.echo(f"Refunded {len(rejected)} deposit(s)")

    _run(ctx, _op)


# ── Settlement ─────────────────────────────────────────


@cli.command()
@click.argument("session_id")
@click.option("--caller", required=True, help="Transactor address")
@click.option("--batch", "batch_path", required=True, type=click.Path(exists=True, dir_okay=False))
@click.option("--lock", type=click.Choice([lock.value for lock in EntryLock]), default=None)
@click.pass_context
def settle(ctx: click.Context, session_id: str, caller: str, batch_path: str, lock: str | None) -> None:
    """Submit a settlement batch from a JSON file."""
    batch = SettleBatch.from_dict(json.loads(Path(batch_path).read_text(encoding="utf-8")))
    if lock:
        batch.entry_lock = EntryLock(lock)

    async def _op(service: LedgerService):
        receipt = await service.settle(session_id, caller, batch)
        click.echo(f"Settled to version {receipt.settle_version}")
        click.echo(f"  Paid:         {receipt.total_paid}")
        click.echo(f"  Transferred:  {receipt.transferred}")
        click.echo(f"  Ejected:      {receipt.ejected or '-'}")
        click.echo(f"  Balance:      {receipt.balance_after}")

    _run(ctx, _op)


@cli.command()
@click.argument("session_id")
@click.option("-n", "--limit", type=int, default=5)
@click.pass_context
def history(ctx: click.Context, session_id: str, limit: int) -> None:
    """Show recent settlement rounds of a session."""

    async def _op(service: LedgerService):
        rounds = await service.settlement_history(session_id, limit)
        if not rounds:
            click.echo("No settlements recorded.")
            return
        for r in rounds:
            click.echo(
                f"  v{r.settle_version} at={r.settled_at} paid={r.total_paid} "
                f"transferred={r.transferred} ejected={r.ejected}"
            )

    _run(ctx, _op)


# ── Treasury ───────────────────────────────────────────


@cli.group()
def treasury():
    """Recipient slots and weighted claims."""
    pass


@treasury.command("create")
@click.option("--id", "recipient_id", required=True)
@click.option("--updater", default=None, help="Address allowed to assign role shares")
@click.option("--slot", "slot_id", required=True)
@click.option("--share", "shares", multiple=True, required=True, help="ADDRESS:WEIGHT or role:NAME:WEIGHT")
@click.pass_context
def treasury_create(
    ctx: click.Context, recipient_id: str, updater: str | None, slot_id: str, shares: tuple[str, ...]
) -> None:
    """Create a recipient with a single slot."""
    parsed = [_parse_share(s) for s in shares]

    async def _op(service: LedgerService):
        created = await service.create_recipient(updater, {slot_id: parsed}, recipient_id=recipient_id)
        click.echo(f"Recipient {created.recipient_id} created")

    _run(ctx, _op)


@treasury.command("show")
@click.argument("recipient_id")
@click.pass_context
def treasury_show(ctx: click.Context, recipient_id: str) -> None:
    """Show slot balances and shares."""

    async def _op(service: LedgerService):
        found = await service.get_recipient(recipient_id)
        if found is None:
            click.echo(f"No recipient {recipient_id}.", err=True)
            sys.exit(1)
        for slot in found.slots:
            click.echo(f"Slot {slot.slot_id}: balance={slot.balance} received={slot.total_received}")
            for share in slot.shares:
                click.echo(f"  {share.owner} weight={share.weight} claimed={share.claimed}")

    _run(ctx, _op)


@treasury.command("claim")
@click.argument("recipient_id")
@click.option("--slot", "slot_id", required=True)
@click.option("--address", required=True)
@click.pass_context
def treasury_claim(ctx: click.Context, recipient_id: str, slot_id: str, address: str) -> None:
    """Claim accrued proceeds from a slot."""

    async def _op(service: LedgerService):
        payout = await service.claim(recipient_id, slot_id, address)
        click.echo(f"Claimed {payout}" if payout else "Nothing to claim.")

    _run(ctx, _op)


# ── Activity ───────────────────────────────────────────


@cli.command()
@click.option("-n", "--limit", type=int, default=20)
@click.pass_context
def activity(ctx: click.Context, limit: int) -> None:
    """Show recent ledger activity."""

    async def _op(service: LedgerService):
        entries = await service.recent_activity(limit)
        if not entries:
            click.echo("No activity.")
            return
        for a in entries:
            amount = f" amount={a.amount}" if a.amount is not None else ""
            click.echo(f"  {a.created_at} [{a.event_type}] {a.message}{amount}")

    _run(ctx, _op)


def main() -> None:
    cli()


if __name__ == "__main__":
    main()
