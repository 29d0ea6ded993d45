"""
EntryPoint (ERC-4337 v0.7 style) acting as the vault's trusted dispatcher.

StakeManager holds per-account deposits and 2-D nonces. It exposes
getDepositInfo but no balanceOf, matching older or minimal EntryPoint
deployments. EntryPoint adds balanceOf, user operation hashing and
handleOps.

Gas accounting is intentionally absent: operations are validated, their
nonce is advanced and their callData is executed; no fees are charged.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, NamedTuple, Sequence

from ..vm.abi import AbiFunction, Contract, external
from ..vm.address import normalize_address
from ..vm.exceptions import ContractRevert, VMExecutionError
from .deposit_bridge import DEPOSIT_INFO_ABI
from .user_operation import USER_OPERATION_ABI, PackedUserOperation

logger = logging.getLogger(__name__)

# Canonical v0.7 deployment address
ENTRY_POINT_V07_ADDRESS = "0x0000000071727De22E5E9d8BAf0edAc6f37da032"

NONCE_KEY_SHIFT = 64
NONCE_SEQ_MASK = (1 << NONCE_KEY_SHIFT) - 1

VALIDATE_USER_OP = AbiFunction(
    name="validate_user_op",
    signature=f"validateUserOp({USER_OPERATION_ABI},bytes32,uint256)",
    outputs=("uint256",),
)


class FailedOp(ContractRevert):
    """A user operation failed validation; the whole batch reverts."""

    def __init__(self, op_index: int, reason: str) -> None:
        super().__init__(f"FailedOp({op_index}, {reason!r})", details={"op_index": op_index, "reason": reason})
        self.op_index = op_index
        self.reason = reason


class InsufficientDeposit(ContractRevert):
    """Withdrawal amount exceeds the caller's deposit."""


class DepositInfo(NamedTuple):
    deposit: int
    staked: bool
    stake: int
    unstake_delay_sec: int
    withdraw_time: int


@dataclass
class StakeManager(Contract):
    """
    Deposit ledger and nonce manager.

    Deposits are keyed by account address. Native value sent here is held by
    this contract and paid out on withdrawal.
    """

    deposits: Dict[str, int] = field(default_factory=dict)
    nonces: Dict[str, int] = field(default_factory=dict)  # "address:key" -> sequence
    address: str = ""

    # ==================== Deposits ====================

    @external("depositTo(address)", payable=True)
    def deposit_to(self, caller: str, account: str, value: int = 0) -> None:
        account = normalize_address(account)
        total = self.deposits.get(account, 0) + value
        self.deposits[account] = total
        self._emit("Deposited", account=account, total_deposit=total)
        logger.info(
            "Deposit added",
            extra={"event": "entrypoint.deposited", "account": account, "value": value, "total": total},
        )

    @external("withdrawTo(address,uint256)")
    def withdraw_to(self, caller: str, withdraw_address: str, amount: int) -> None:
        """Pay ``amount`` of the caller's deposit to ``withdraw_address``."""
        caller = normalize_address(caller)
        current = self.deposits.get(caller, 0)
        if amount > current:
            raise InsufficientDeposit(f"Withdraw amount too large ({amount} > {current})")

        self.deposits[caller] = current - amount
        self._emit("Withdrawn", account=caller, withdraw_address=normalize_address(withdraw_address), amount=amount)
        self.chain.transfer(self.address, withdraw_address, amount)

    @external("getDepositInfo(address)", returns=(DEPOSIT_INFO_ABI,), view=True)
    def get_deposit_info(self, account: str) -> DepositInfo:
        return DepositInfo(
            deposit=self.deposits.get(normalize_address(account), 0),
            staked=False,
            stake=0,
            unstake_delay_sec=0,
            withdraw_time=0,
        )

    def receive(self, caller: str, value: int) -> None:
        self.deposit_to(caller, caller, value=value)

    # ==================== Nonces ====================

    @external("getNonce(address,uint192)", returns=("uint256",), view=True)
    def get_nonce(self, sender: str, key: int = 0) -> int:
        """
        Get the next nonce for ``sender`` under ``key``.

        Supports 2D nonces (key, sequence) for parallel operation streams.
        """
        return (key << NONCE_KEY_SHIFT) | self.nonces.get(self._nonce_slot(sender, key), 0)

    @external("incrementNonce(uint192)")
    def increment_nonce(self, caller: str, key: int) -> None:
        slot = self._nonce_slot(caller, key)
        self.nonces[slot] = self.nonces.get(slot, 0) + 1

    def _validate_and_update_nonce(self, sender: str, nonce: int) -> bool:
        key = nonce >> NONCE_KEY_SHIFT
        seq = nonce & NONCE_SEQ_MASK
        slot = self._nonce_slot(sender, key)
        current = self.nonces.get(slot, 0)
        self.nonces[slot] = current + 1
        return current == seq

    @staticmethod
    def _nonce_slot(sender: str, key: int) -> str:
        return f"{normalize_address(sender)}:{key}"


@dataclass
class EntryPoint(StakeManager):
    """
    Singleton that validates and executes user operations for accounts.

    handleOps processes each operation in turn:
    1. Ask the account to validate it (non-zero status reverts the batch)
    2. Check and advance the account nonce (mismatch reverts the batch)
    3. Call the account with the operation's callData; a failing call is
       reported through UserOperationRevertReason and does not revert the
       batch or the validation that preceded it
    """

    chain_id: int = 0

    total_ops_processed: int = 0

    @external("balanceOf(address)", returns=("uint256",), view=True)
    def balance_of(self, account: str) -> int:
        return self.deposits.get(normalize_address(account), 0)

    @external(f"getUserOpHash({USER_OPERATION_ABI})", returns=("bytes32",), view=True)
    def get_user_op_hash(self, user_op: Any) -> bytes:
        return PackedUserOperation.coerce(user_op).hash(self.address, self._chain_id())

    # ==================== Main Entry Point ====================

    @external(f"handleOps({USER_OPERATION_ABI}[],address)")
    def handle_ops(self, caller: str, ops: Sequence[Any], beneficiary: str) -> List[bool]:
        """
        Handle a batch of UserOperations.

        Args:
            caller: Bundler submitting the batch
            ops: PackedUserOperations (or ABI tuples)
            beneficiary: Fee recipient (no fees are charged)

        Returns:
            Per-operation execution success flags

        Raises:
            FailedOp: If any operation fails validation or nonce checks
        """
        user_ops = [PackedUserOperation.coerce(op) for op in ops]
        results = []
        # Each op executes right after its own validation: an account's
        # temporary signer grant only bridges to the call that follows it.
        for index, op in enumerate(user_ops):
            op_hash = self._validate_prepayment(index, op)
            results.append(self._execute_user_op(op, op_hash))

        self.total_ops_processed += len(user_ops)
        logger.info(
            "UserOps handled",
            extra={
                "event": "entrypoint.ops_handled",
                "count": len(user_ops),
                "succeeded": sum(results),
                "beneficiary": normalize_address(beneficiary),
            },
        )
        return results

    @external(f"validate(address,{USER_OPERATION_ABI},bytes32,uint256)", returns=("uint256",))
    def validate(self, caller: str, account: str, user_op: Any, user_op_hash: bytes, missing_funds: int) -> int:
        """Forward a validation request to ``account`` and return its status."""
        op = PackedUserOperation.coerce(user_op)
        data = self.chain.call(
            self.address,
            account,
            VALIDATE_USER_OP.encode_call([op.to_abi(), bytes(user_op_hash), missing_funds]),
        )
        return int(VALIDATE_USER_OP.decode_result(data))

    def _validate_prepayment(self, index: int, op: PackedUserOperation) -> bytes:
        op_hash = op.hash(self.address, self._chain_id())
        if not self.chain.has_code(op.sender):
            raise FailedOp(index, "AA20 account not deployed")

        data = self.chain.call(
            self.address,
            op.sender,
            VALIDATE_USER_OP.encode_call([op.to_abi(), op_hash, 0]),
        )
        if int(VALIDATE_USER_OP.decode_result(data)) != 0:
            logger.warning(
                "UserOp rejected by account",
                extra={"event": "entrypoint.validation_failed", "sender": op.sender, "index": index},
            )
            raise FailedOp(index, "AA24 signature error")

        if not self._validate_and_update_nonce(op.sender, op.nonce):
            raise FailedOp(index, "AA25 invalid account nonce")
        return op_hash

    def _execute_user_op(self, op: PackedUserOperation, op_hash: bytes) -> bool:
        success = True
        if op.call_data:
            try:
                self.chain.call(self.address, op.sender, op.call_data)
            except VMExecutionError as e:
                success = False
                self._emit(
                    "UserOperationRevertReason",
                    user_op_hash=op_hash,
                    sender=op.sender,
                    nonce=op.nonce,
                    revert_reason=str(e),
                )
                logger.warning(
                    "UserOp execution failed",
                    extra={
                        "event": "entrypoint.execution_failed",
                        "sender": op.sender,
                        "error": str(e),
                        "error_type": type(e).__name__,
                    },
                )

        self._emit(
            "UserOperationEvent",
            user_op_hash=op_hash,
            sender=op.sender,
            paymaster="0x" + op.paymaster_and_data[:20].hex() if op.paymaster_and_data else "",
            nonce=op.nonce,
            success=success,
            actual_gas_cost=0,
            actual_gas_used=0,
        )
        return success

    def _chain_id(self) -> int:
        return self.chain_id or self.chain.chain_id

    def get_stats(self) -> Dict[str, int]:
        return {
            "total_ops_processed": self.total_ops_processed,
            "accounts_with_deposit": sum(1 for amount in self.deposits.values() if amount),
        }

