"""
MessageVault smart account (ERC-4337 style).

A single-owner contract wallet that:
- Stores messages as MessageStored events with a monotonic id
- Executes arbitrary calls on behalf of its owner
- Manages its gas deposit held by the EntryPoint

Operations arrive either directly from the owner or through the trusted
EntryPoint. For EntryPoint-routed operations the EntryPoint first calls
``validate_user_op``; a successful validation records the recovered signer as
a one-shot temporary signer, and the next privileged call from the EntryPoint
credits that signer as the actor of the operation.

Permission classes per selector (see selector_policy):
- sendMessageToWallet: any valid signer
- execute: owner signature only
- anything else: rejected
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict

from ..vm.abi import Contract, external
from ..vm.address import ZERO_ADDRESS, is_zero_address, normalize_address, same_address
from ..vm.exceptions import ContractRevert
from .deposit_bridge import forward_deposit, query_deposit_balance, request_withdrawal
from .selector_policy import SELECTOR_LENGTH, Permission, classify
from .signature import RecoverError, try_recover
from .temporary_authorization import TemporaryAuthorization
from .user_operation import USER_OPERATION_ABI, PackedUserOperation

logger = logging.getLogger(__name__)

# ERC-4337 validation status codes
SIG_VALIDATION_SUCCESS = 0
SIG_VALIDATION_FAILED = 1


# ==================== Custom Errors ====================

class ZeroOwner(ContractRevert):
    """Owner cannot be the zero address."""


class OnlyOwner(ContractRevert):
    """Caller is not the owner."""


class OnlyOwnerOrEntryPoint(ContractRevert):
    """Caller is neither the owner nor the EntryPoint."""


class EmptyContent(ContractRevert):
    """Message content is empty."""


class InvalidEntryPoint(ContractRevert):
    """EntryPoint cannot be the zero address."""


class EntryPointNotSet(ContractRevert):
    """Operation requires a configured EntryPoint."""


class InvalidTarget(ContractRevert):
    """Execution target is the zero address or the vault itself."""


class NotEntryPoint(ContractRevert):
    """Validation was not called by the EntryPoint."""


class WrongSender(ContractRevert):
    """User operation is addressed to a different account."""


@dataclass
class MessageVault(Contract):
    """
    Single-owner smart account that stores messages.

    Only the message counter is kept in state; message content and actor are
    recoverable from the MessageStored event log alone.
    """

    owner: str = ""
    entry_point: str = ZERO_ADDRESS
    next_message_id: int = 0
    temporary: TemporaryAuthorization = field(default_factory=TemporaryAuthorization)
    address: str = ""

    def __post_init__(self) -> None:
        if is_zero_address(self.owner):
            raise ZeroOwner("Owner cannot be the zero address")
        self.owner = normalize_address(self.owner)
        self.entry_point = normalize_address(self.entry_point)

    # ==================== View Functions ====================

    @external("owner()", returns=("address",), view=True)
    def get_owner(self) -> str:
        return self.owner

    @external("entryPoint()", returns=("address",), view=True)
    def get_entry_point(self) -> str:
        return self.entry_point

    @external("nextMessageId()", returns=("uint256",), view=True)
    def get_next_message_id(self) -> int:
        return self.next_message_id

    @external("temporarySigner()", returns=("address",), view=True)
    def get_temporary_signer(self) -> str:
        return self.temporary.signer

    @external("entryPointBalance()", returns=("uint256",), view=True)
    def entry_point_balance(self) -> int:
        """
        Deposit held for this vault by the EntryPoint.

        Returns 0 when no EntryPoint is configured. Falls back to
        getDepositInfo when the EntryPoint has no balanceOf.
        """
        if is_zero_address(self.entry_point):
            return 0
        return query_deposit_balance(self.chain, self.address, self.entry_point)

    # ==================== IAccount (ERC-4337) ====================

    @external(f"validateUserOp({USER_OPERATION_ABI},bytes32,uint256)", returns=("uint256",))
    def validate_user_op(
        self,
        caller: str,
        user_op: Any,
        user_op_hash: bytes,
        missing_account_funds: int,
    ) -> int:
        """
        Validate a UserOperation signature against the selector policy.

        Args:
            caller: Must be the EntryPoint
            user_op: PackedUserOperation (or its ABI tuple)
            user_op_hash: Hash the signature was made over
            missing_account_funds: Prefund requested by the EntryPoint

        Returns:
            SIG_VALIDATION_SUCCESS or SIG_VALIDATION_FAILED

        Raises:
            NotEntryPoint: If caller is not the configured EntryPoint
            WrongSender: If the operation targets another account
        """
        self._require_entry_point(caller)
        op = PackedUserOperation.coerce(user_op)
        if not same_address(op.sender, self.address):
            raise WrongSender(f"UserOp sender {op.sender} is not this account")

        # A stale grant from an unconsumed validation never survives a new attempt
        self.temporary.clear()

        result = self._validate_signature(op, bytes(user_op_hash))
        self._pay_prefund(caller, missing_account_funds)
        return result

    def _validate_signature(self, op: PackedUserOperation, user_op_hash: bytes) -> int:
        if len(op.call_data) < SELECTOR_LENGTH:
            return self._reject("calldata_too_short")

        permission = classify(op.call_data)
        if permission is Permission.REJECTED:
            return self._reject("selector_not_allowed", selector=op.selector.hex())

        signer, error = try_recover(user_op_hash, op.signature)
        if error is not RecoverError.NO_ERROR or signer is None:
            return self._reject(error.value)

        if permission is Permission.OWNER_ONLY and signer != self.owner:
            return self._reject("signer_not_owner", signer=signer)

        self.temporary.grant(signer)
        logger.debug(
            "UserOp signature validated",
            extra={
                "event": "vault.validation_succeeded",
                "account": self.address,
                "signer": signer,
                "permission": permission.value,
            },
        )
        return SIG_VALIDATION_SUCCESS

    def _reject(self, reason: str, **context: Any) -> int:
        logger.warning(
            "UserOp validation failed: %s",
            reason,
            extra={"event": "vault.validation_failed", "account": self.address, "reason": reason, **context},
        )
        return SIG_VALIDATION_FAILED

    def _pay_prefund(self, entry_point: str, amount: int) -> None:
        if amount <= 0:
            return
        if self.chain.balance_of(self.address) < amount:
            logger.warning(
                "Prefund not paid: insufficient account balance",
                extra={"event": "vault.prefund_skipped", "account": self.address, "amount": amount},
            )
            return
        self.chain.transfer(self.address, entry_point, amount)

    # ==================== Messages ====================

    @external("sendMessageToWallet(string)", returns=("uint256",))
    def send_message_to_wallet(self, caller: str, content: str) -> int:
        """
        Store a message by emitting MessageStored.

        Returns:
            The id assigned to the message (ids start at 1)

        Raises:
            OnlyOwnerOrEntryPoint: If caller is neither owner nor EntryPoint
            EmptyContent: If content is empty
        """
        actor = self._resolve_actor(caller)
        if not content:
            raise EmptyContent("Message content cannot be empty")

        self.next_message_id += 1
        message_id = self.next_message_id
        self._emit("MessageStored", vault=self.address, actor=actor, id=message_id, content=content)

        logger.info(
            "Message stored",
            extra={"event": "vault.message_stored", "account": self.address, "actor": actor, "id": message_id},
        )
        return message_id

    # ==================== Execution ====================

    @external("execute(address,uint256,bytes)", returns=("bytes",))
    def execute(self, caller: str, target: str, value: int, data: bytes) -> bytes:
        """
        Call ``target`` with ``value`` and ``data`` from this account.

        Returns:
            Return data from the call; a failing callee reverts this call

        Raises:
            OnlyOwnerOrEntryPoint: If caller is neither owner nor EntryPoint
            InvalidTarget: If target is zero or this vault
        """
        target = normalize_address(target)
        actor = self._resolve_actor(caller)
        if is_zero_address(target) or target == self.address:
            raise InvalidTarget(f"Cannot execute against {target}")

        logger.debug(
            "Account executing call",
            extra={"event": "vault.execute", "account": self.address, "actor": actor, "target": target, "value": value},
        )
        return self.chain.call(self.address, target, bytes(data), value=value)

    # ==================== Ownership ====================

    @external("setOwner(address)")
    def set_owner(self, caller: str, new_owner: str) -> None:
        """Transfer ownership. Emits OwnerChanged(previous_owner, new_owner)."""
        self._require_owner(caller)
        if is_zero_address(new_owner):
            raise ZeroOwner("New owner cannot be the zero address")

        previous = self.owner
        self.owner = normalize_address(new_owner)
        self._emit("OwnerChanged", previous_owner=previous, new_owner=self.owner)
        logger.info(
            "Vault ownership transferred",
            extra={"event": "vault.owner_changed", "account": self.address, "old": previous, "new": self.owner},
        )

    @external("transferOwnership(address)")
    def transfer_ownership(self, caller: str, new_owner: str) -> None:
        self.set_owner(caller, new_owner)

    # ==================== Deposit Management ====================

    @external("setEntryPoint(address)")
    def set_entry_point(self, caller: str, entry_point: str) -> None:
        self._require_owner(caller)
        if is_zero_address(entry_point):
            raise InvalidEntryPoint("EntryPoint cannot be the zero address")

        self.entry_point = normalize_address(entry_point)
        self._emit("EntryPointSet", entry_point=self.entry_point)
        logger.info(
            "Vault EntryPoint configured",
            extra={"event": "vault.entry_point_set", "account": self.address, "entry_point": self.entry_point},
        )

    @external("addDeposit()", payable=True)
    def add_deposit(self, caller: str, value: int = 0) -> None:
        """Forward the whole received value to this vault's EntryPoint deposit."""
        self._require_entry_point_set()
        forward_deposit(self.chain, self.address, self.entry_point, value)

    @external("withdrawDepositTo(address,uint256)")
    def withdraw_deposit_to(self, caller: str, recipient: str, amount: int) -> None:
        self._require_owner(caller)
        self._require_entry_point_set()
        request_withdrawal(self.chain, self.address, self.entry_point, normalize_address(recipient), amount)
        logger.info(
            "Deposit withdrawn",
            extra={"event": "vault.deposit_withdrawn", "account": self.address, "to": recipient, "amount": amount},
        )

    def receive(self, caller: str, value: int) -> None:
        logger.debug("Vault received value", extra={"event": "vault.received", "from": caller, "value": value})

    # ==================== Access Control ====================

    def _resolve_actor(self, caller: str) -> str:
        """
        Authorize a privileged call and return the identity credited for it.

        An EntryPoint call with a pending temporary signer consumes it; every
        other authorized call is credited to the owner.
        """
        caller = normalize_address(caller)
        if not is_zero_address(self.entry_point) and caller == self.entry_point:
            signer = self.temporary.consume()
            return signer if signer is not None else self.owner
        if caller == self.owner:
            return self.owner
        raise OnlyOwnerOrEntryPoint(f"Caller {caller} is not owner or EntryPoint")

    def _require_owner(self, caller: str) -> None:
        if not same_address(caller, self.owner):
            raise OnlyOwner(f"Caller {caller} is not the owner")

    def _require_entry_point(self, caller: str) -> None:
        if is_zero_address(self.entry_point) or not same_address(caller, self.entry_point):
            raise NotEntryPoint(f"Caller {caller} is not the EntryPoint")

    def _require_entry_point_set(self) -> None:
        if is_zero_address(self.entry_point):
            raise EntryPointNotSet("EntryPoint is not configured")

    # ==================== Persistence ====================

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["temporary"] = self.temporary.signer
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "MessageVault":
        data = dict(data)
        data["temporary"] = TemporaryAuthorization(signer=data.get("temporary") or ZERO_ADDRESS)
        return cls(**data)
