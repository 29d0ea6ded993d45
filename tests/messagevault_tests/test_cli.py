"""
Tests for the messagevault CLI.

Each test works on its own state file; JSON output mode keeps assertions
independent of table rendering.
"""

import json

import pytest
from click.testing import CliRunner
from eth_account import Account

from messagevault.cli.main import cli

from .conftest import ALICE_KEY, BOB_KEY, OWNER_KEY

ETHER = 10**18


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def state_file(tmp_path):
    return str(tmp_path / "chain.json")


@pytest.fixture
def invoke(runner, state_file, monkeypatch):
    """Run a CLI command against the test state file with a clean environment."""
    for name in (
        "MESSAGEVAULT_NETWORK",
        "MESSAGEVAULT_CHAIN_ID",
        "MESSAGEVAULT_EXPECTED_CHAIN_ID",
        "MESSAGEVAULT_ENTRYPOINT_ADDRESS",
        "MESSAGEVAULT_MIN_DEPOSIT_WEI",
        "MESSAGEVAULT_LOG_FILE",
        "MESSAGEVAULT_PRIVATE_KEY",
    ):
        monkeypatch.delenv(name, raising=False)

    def _invoke(*args, json_output=True):
        base = ["--state-file", state_file]
        if json_output:
            base.append("--json-output")
        return runner.invoke(cli, base + list(args), catch_exceptions=False)

    return _invoke


def _json(result):
    assert result.exit_code == 0, result.output
    return json.loads(result.output)


@pytest.fixture
def initialized(invoke):
    return _json(invoke("init", "--key", OWNER_KEY, "--deposit", "0.5"))


class TestInit:
    """Chain creation."""

    def test_init_creates_state(self, invoke, state_file):
        data = _json(invoke("init", "--key", OWNER_KEY))

        assert data["owner"] == Account.from_key(OWNER_KEY).address
        assert data["entry_point"] == "0x0000000071727De22E5E9d8BAf0edAc6f37da032"
        with open(state_file, "r", encoding="utf-8") as f:
            assert data["vault"] in json.load(f)["chain"]["contracts"]

    def test_refuses_to_overwrite(self, invoke, initialized):
        result = invoke("init", "--key", OWNER_KEY)

        assert result.exit_code == 1
        assert "already" in result.output

    def test_force_overwrites(self, invoke, initialized):
        data = _json(invoke("init", "--key", OWNER_KEY, "--force"))

        assert data["vault"] == initialized["vault"]

    def test_invalid_key(self, invoke):
        result = invoke("init", "--key", "0x1234")

        assert result.exit_code == 1

    def test_table_output(self, invoke):
        result = invoke("init", "--key", OWNER_KEY, json_output=False)

        assert result.exit_code == 0
        assert "Vault Deployed" in result.output


class TestSendAndList:
    """send then messages."""

    def test_send_records_signer(self, invoke, initialized):
        bob = Account.from_key(BOB_KEY).address

        sent = _json(invoke("send", "hello", "--key", BOB_KEY))
        assert sent["signer"] == bob
        assert sent["stored"][0]["actor"] == bob
        assert sent["stored"][0]["id"] == 1

        _json(invoke("send", "world", "--key", OWNER_KEY))
        messages = _json(invoke("messages"))["messages"]

        assert [(m["id"], m["content"]) for m in messages] == [(1, "hello"), (2, "world")]
        assert messages[1]["actor"] == Account.from_key(OWNER_KEY).address

    def test_empty_message_fails(self, invoke, initialized):
        result = invoke("send", "", "--key", BOB_KEY, json_output=False)

        assert result.exit_code == 1
        assert "reverted" in result.output

    def test_send_before_init(self, invoke):
        result = invoke("send", "hello", "--key", BOB_KEY)

        assert result.exit_code == 1
        assert "init" in result.output

    def test_messages_empty(self, invoke, initialized):
        assert _json(invoke("messages")) == {"messages": []}

    def test_unknown_vault(self, invoke, initialized):
        result = invoke("messages", "--vault", "0x" + "12" * 20)

        assert result.exit_code == 1
        assert "MessageVault" in result.output


class TestDeposits:
    """deposit, withdraw-all and check."""

    def test_check_ready(self, invoke, initialized):
        report = _json(invoke("check"))

        assert report["deposit"] == ETHER // 2
        assert report["deployed"] is True
        assert report["ready"] is True

    def test_check_not_ready_without_deposit(self, invoke):
        _json(invoke("init", "--key", OWNER_KEY))

        report = _json(invoke("check"))

        assert report["deposit_sufficient"] is False
        assert report["ready"] is False

    def test_deposit_adds(self, invoke, initialized):
        data = _json(invoke("deposit", "0.25", "--key", OWNER_KEY))

        assert data["deposit"] == ETHER // 2 + ETHER // 4

    def test_deposit_without_funds(self, invoke, initialized):
        result = invoke("deposit", "1", "--key", ALICE_KEY, json_output=False)

        assert result.exit_code == 1
        assert "Insufficient" in result.output

    def test_withdraw_all_owner_only(self, invoke, initialized):
        result = invoke("withdraw-all", "--key", BOB_KEY)

        assert result.exit_code == 1

        data = _json(invoke("withdraw-all", "--key", OWNER_KEY))
        assert data["withdrawn"] == ETHER // 2
        assert _json(invoke("check"))["deposit"] == 0

    def test_stake_manager_dispatcher(self, invoke):
        _json(invoke("init", "--key", OWNER_KEY, "--deposit", "0.2", "--dispatcher", "stake-manager"))

        assert _json(invoke("check"))["deposit"] == ETHER // 5

    def test_check_table(self, invoke, initialized):
        result = invoke("check", json_output=False)

        assert result.exit_code == 0
        assert "Vault Requirements" in result.output
