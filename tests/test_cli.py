"""CLI commands against a file-backed ledger."""

from __future__ import annotations

import json
import re

import pytest
from click.testing import CliRunner

from race_ledger.cli import cli
from tests.factories import make_address


@pytest.fixture
def invoke(tmp_path, monkeypatch):
    monkeypatch.setenv("RACE_LEDGER_DB_PATH", str(tmp_path / "ledger.db"))
    runner = CliRunner()

    def _invoke(*args: str):
        return runner.invoke(cli, list(args))

    return _invoke


def test_status(invoke):
    result = invoke("status")
    assert result.exit_code == 0
    assert "ledger.db" in result.output
    assert "Max hosts:     10" in result.output


def test_keygen(invoke):
    result = invoke("keygen")
    assert result.exit_code == 0
    assert "Address:  G" in result.output


def test_session_lifecycle(invoke, tmp_path):
    owner, host, player = make_address(), make_address(), make_address()

    created = invoke(
        "create-session", "--owner", owner, "--title", "Holdem",
        "--bundle", "bundle://holdem", "--recipient", "r-1", "--cash", "100", "200",
    )
    assert created.exit_code == 0, created.output
    session_id = re.search(r"Session created: (\S+)", created.output).group(1)

    assert invoke("register", host, "--host").exit_code == 0
    assert invoke("register", player).exit_code == 0
    assert invoke("fund", player, "1000").exit_code == 0
    assert invoke("host-join", session_id, "--address", host, "--endpoint", "wss://h").exit_code == 0

    joined = invoke("join", session_id, "--address", player, "--amount", "150")
    assert joined.exit_code == 0, joined.output
    assert "player id 2" in joined.output

    batch = tmp_path / "batch.json"
    batch.write_text(json.dumps({
        "expected_settle_version": 0,
        "next_settle_version": 1,
        "settles": [{"player_id": 2, "amount": 150, "eject": True}],
        "accepted_deposits": [2],
    }))
    settled = invoke("settle", session_id, "--caller", host, "--batch", str(batch))
    assert settled.exit_code == 0, settled.output
    assert "Settled to version 1" in settled.output

    shown = invoke("show", session_id)
    assert "Settle version:  1" in shown.output
    # create, host-join, join, settle
    assert "Revision:        4" in shown.output
    assert "Players:         0/6" in shown.output
    assert "v1" in invoke("history", session_id).output


def test_ledger_error_exits_nonzero(invoke):
    result = invoke("join", "missing", "--address", make_address(), "--amount", "10")
    assert result.exit_code == 1
    assert "unauthorized_caller" in result.output


def test_treasury_commands(invoke):
    owner, member = make_address(), make_address()
    created = invoke(
        "treasury", "create", "--id", "r-1", "--updater", owner, "--slot", "fees",
        "--share", f"{member}:3", "--share", "role:platform:1",
    )
    assert created.exit_code == 0, created.output

    shown = invoke("treasury", "show", "r-1")
    assert "role:platform weight=1" in shown.output
    assert "Nothing to claim." in invoke("treasury", "claim", "r-1", "--slot", "fees", "--address", member).output


def test_bad_share_format(invoke):
    result = invoke("treasury", "create", "--id", "r-1", "--slot", "fees", "--share", "nonsense")
    assert result.exit_code == 2
