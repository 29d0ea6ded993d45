"""
Operational helpers for a deployed MessageVault.

- setup_vault: deploy a vault, point it at an EntryPoint, fund its deposit
- check_requirements: report whether a vault is ready to accept user ops
- withdraw_all: drain the vault's EntryPoint deposit to the owner
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from typing import Any, Dict, Optional

from .config import VaultSettings
from .contracts.message_vault import MessageVault, OnlyOwner
from .vm.address import ZERO_ADDRESS, is_zero_address, normalize_address, same_address
from .vm.state import ChainState

logger = logging.getLogger(__name__)


@dataclass
class RequirementsReport:
    """Readiness of a vault for account-abstraction use."""

    vault: str
    entry_point: str
    deployed: bool
    deposit: int = 0
    min_deposit: int = 0
    nonce: int = 0
    native_balance: int = 0
    chain_id: int = 0
    expected_chain_id: int = 0

    @property
    def deposit_sufficient(self) -> bool:
        return self.deposit >= self.min_deposit

    @property
    def chain_id_ok(self) -> bool:
        return self.chain_id == self.expected_chain_id

    @property
    def ready(self) -> bool:
        return self.deployed and self.deposit_sufficient and self.chain_id_ok

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data.update(
            deposit_sufficient=self.deposit_sufficient,
            chain_id_ok=self.chain_id_ok,
            ready=self.ready,
        )
        return data


def setup_vault(chain: ChainState, owner: str, entry_point: str, deposit: int = 0) -> MessageVault:
    """
    Deploy a vault owned by ``owner`` and wire it to ``entry_point``.

    The EntryPoint is set before the optional initial deposit, which needs it.
    """
    vault = chain.deploy(MessageVault(owner=owner), deployer=owner)
    chain.transact(owner, vault.address, "set_entry_point", entry_point)
    if deposit:
        chain.transact(owner, vault.address, "add_deposit", value=deposit)
    logger.info(
        "Vault set up",
        extra={"event": "maintenance.vault_setup", "vault": vault.address, "entry_point": entry_point, "deposit": deposit},
    )
    return vault


def check_requirements(chain: ChainState, vault_address: str, settings: VaultSettings) -> RequirementsReport:
    """Inspect deployment, deposit, nonce, balance and chain id of a vault."""
    vault_address = normalize_address(vault_address)
    report = RequirementsReport(
        vault=vault_address,
        entry_point=ZERO_ADDRESS,
        deployed=isinstance(chain.get_contract(vault_address), MessageVault),
        min_deposit=settings.min_deposit_wei,
        native_balance=chain.balance_of(vault_address),
        chain_id=chain.chain_id,
        expected_chain_id=settings.expected_chain_id,
    )
    if not report.deployed:
        logger.warning(
            "Vault not deployed",
            extra={"event": "maintenance.vault_missing", "vault": vault_address},
        )
        return report

    entry_point = chain.static_call(vault_address, "get_entry_point")
    if is_zero_address(entry_point):
        entry_point = settings.entry_point_address
    report.entry_point = entry_point
    report.deposit = chain.static_call(vault_address, "entry_point_balance")
    if chain.has_code(entry_point):
        report.nonce = chain.static_call(entry_point, "get_nonce", vault_address, 0)
    return report


def withdraw_all(
    chain: ChainState,
    vault_address: str,
    signer: str,
    recipient: Optional[str] = None,
) -> int:
    """
    Withdraw the vault's whole EntryPoint deposit.

    Args:
        chain: Chain hosting the vault
        vault_address: Vault to drain
        signer: Account sending the withdrawal; must be the vault owner
        recipient: Where the funds go (defaults to the signer)

    Returns:
        Amount withdrawn (0 if nothing was deposited)

    Raises:
        OnlyOwner: If ``signer`` does not own the vault
    """
    owner = chain.static_call(vault_address, "get_owner")
    if not same_address(owner, signer):
        raise OnlyOwner(f"{signer} is not the vault owner ({owner})")

    balance = chain.static_call(vault_address, "entry_point_balance")
    if balance == 0:
        logger.info("No deposit to withdraw", extra={"event": "maintenance.withdraw_skipped", "vault": vault_address})
        return 0

    chain.transact(signer, vault_address, "withdraw_deposit_to", recipient or signer, balance)
    logger.info(
        "Deposit drained",
        extra={"event": "maintenance.withdraw_all", "vault": vault_address, "amount": balance},
    )
    return balance
