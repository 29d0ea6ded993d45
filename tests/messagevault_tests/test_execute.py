"""Tests for execute(target, value, data)."""

import pytest
from eth_abi import decode

from messagevault.core.client import VaultClient
from messagevault.core.contracts import InvalidTarget, OnlyOwnerOrEntryPoint
from messagevault.core.vm import ZERO_ADDRESS, AbiCodecError, InsufficientBalance, VMExecutionError, encode_call

PING = "ping(uint256)"


class TestExecuteDirect:
    """Owner-initiated execution."""

    def test_returns_callee_data(self, chain, vault, owner, echo):
        receipt = chain.transact(owner.address, vault.address, "execute", echo.address, 0, encode_call(PING, [21]))

        assert decode(["uint256"], receipt.return_value) == (42,)
        [ping] = receipt.events("Ping")
        assert ping.args == {"sender": vault.address, "value": 0, "x": 21}

    def test_forwards_value_from_vault_balance(self, chain, vault, owner, echo):
        chain.transfer(owner.address, vault.address, 100)

        chain.transact(owner.address, vault.address, "execute", echo.address, 30, encode_call(PING, [1]))

        assert chain.balance_of(vault.address) == 70
        assert chain.balance_of(echo.address) == 30

    def test_plain_transfer_to_eoa(self, chain, vault, owner, alice):
        chain.transfer(owner.address, vault.address, 100)
        before = chain.balance_of(alice.address)

        receipt = chain.transact(owner.address, vault.address, "execute", alice.address, 40, b"")

        assert receipt.return_value == b""
        assert chain.balance_of(alice.address) == before + 40

    def test_insufficient_vault_balance(self, chain, vault, owner, alice):
        with pytest.raises(InsufficientBalance):
            chain.transact(owner.address, vault.address, "execute", alice.address, 1, b"")

    @pytest.mark.parametrize("use_self", [False, True])
    def test_invalid_target(self, chain, vault, owner, use_self):
        target = vault.address if use_self else ZERO_ADDRESS

        with pytest.raises(InvalidTarget):
            chain.transact(owner.address, vault.address, "execute", target, 0, b"")

    def test_callee_failure_propagates(self, chain, vault, owner, echo):
        with pytest.raises(VMExecutionError, match="always fails"):
            chain.transact(owner.address, vault.address, "execute", echo.address, 0, encode_call("fail()"))

        assert echo.last_value == 0

    def test_malformed_callee_data_reverts(self, chain, vault, owner, echo):
        chain.transfer(owner.address, vault.address, 100)

        with pytest.raises(AbiCodecError):
            chain.transact(owner.address, vault.address, "execute", echo.address, 30, encode_call(PING, [1])[:6])

        assert chain.balance_of(vault.address) == 100
        assert chain.balance_of(echo.address) == 0
        assert echo.last_value == 0

    def test_stranger_rejected(self, chain, vault, bob, echo):
        with pytest.raises(OnlyOwnerOrEntryPoint):
            chain.transact(bob.address, vault.address, "execute", echo.address, 0, encode_call(PING, [1]))


class TestExecuteViaEntryPoint:
    """Owner-signed execute operations submitted through handleOps."""

    def test_owner_signed_execute(self, chain, vault, owner, echo):
        receipt = VaultClient(chain, vault.address).execute(owner.key, echo.address, 0, encode_call(PING, [5]))

        assert receipt.return_value == [True]
        assert echo.last_value == 5
        assert receipt.events("Ping")[0].args["sender"] == vault.address

    def test_failing_callee_reported(self, chain, vault, owner, echo):
        receipt = VaultClient(chain, vault.address).execute(owner.key, echo.address, 0, encode_call("fail()"))

        assert receipt.return_value == [False]
        assert "always fails" in receipt.events("UserOperationRevertReason")[0].args["revert_reason"]
        assert echo.last_value == 0
