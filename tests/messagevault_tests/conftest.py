"""
Shared fixtures for MessageVault tests.

Accounts use fixed well-known development keys so addresses are stable
across runs.
"""

from dataclasses import dataclass
from typing import Optional

import pytest
from eth_account import Account

from messagevault.core.contracts import ENTRY_POINT_V07_ADDRESS, EntryPoint, MessageVault, StakeManager
from messagevault.core.contracts.signature import sign_user_op_hash
from messagevault.core.contracts.user_operation import PackedUserOperation
from messagevault.core.maintenance import setup_vault
from messagevault.core.vm import ChainState, Contract, VMExecutionError, external

ETHER = 10**18

OWNER_KEY = "0xac0974bec39a17e36ba4a6b4d238ff944bacb478cbed5efcae784d7bf4f2ff80"
BOB_KEY = "0x59c6995e998f97a5a0044966f0945389dc9e86dae88c7a8412f4603b6b78690d"
ALICE_KEY = "0x5de4111afa1a4b94908f83103eb1f1706367c2e68ca870fc3fb9a804cdab365a"


@dataclass
class Echo(Contract):
    """Call target that records pings and can be told to fail."""

    last_value: int = 0
    address: str = ""

    @external("ping(uint256)", returns=("uint256",), payable=True)
    def ping(self, caller: str, x: int, value: int = 0) -> int:
        self.last_value = x
        self._emit("Ping", sender=caller, value=value, x=x)
        return x * 2

    @external("fail()")
    def fail(self, caller: str) -> None:
        self.last_value = 999
        raise VMExecutionError("Echo: always fails")


@pytest.fixture
def owner():
    return Account.from_key(OWNER_KEY)


@pytest.fixture
def bob():
    return Account.from_key(BOB_KEY)


@pytest.fixture
def alice():
    return Account.from_key(ALICE_KEY)


@pytest.fixture
def chain(owner, bob, alice):
    """Fresh chain with 100 ETH on each test account."""
    state = ChainState(chain_id=31337)
    for account in (owner, bob, alice):
        state.set_balance(account.address, 100 * ETHER)
    return state


@pytest.fixture
def entry_point(chain, owner):
    return chain.deploy(EntryPoint(), deployer=owner.address, address=ENTRY_POINT_V07_ADDRESS)


@pytest.fixture
def stake_manager(chain, owner):
    """Dispatcher without balanceOf; deposits are only readable via getDepositInfo."""
    return chain.deploy(StakeManager(), deployer=owner.address)


@pytest.fixture
def vault(chain, owner, entry_point):
    return setup_vault(chain, owner.address, entry_point.address)


@pytest.fixture
def bare_vault(chain, owner):
    """Vault with no EntryPoint configured."""
    return chain.deploy(MessageVault(owner=owner.address), deployer=owner.address)


@pytest.fixture
def echo(chain, owner):
    return chain.deploy(Echo(), deployer=owner.address)


@pytest.fixture
def make_op(chain, vault, entry_point):
    """Build a user operation for ``vault`` signed by ``account`` over the EntryPoint hash."""

    def _make(account, call_data: bytes, nonce: Optional[int] = None) -> PackedUserOperation:
        if nonce is None:
            nonce = entry_point.get_nonce(vault.address, 0)
        op = PackedUserOperation(sender=vault.address, nonce=nonce, call_data=call_data)
        op_hash = op.hash(entry_point.address, chain.chain_id)
        return op.with_signature(sign_user_op_hash(account.key, op_hash))

    return _make
