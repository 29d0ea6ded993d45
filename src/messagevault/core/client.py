"""
Client for driving a MessageVault through its EntryPoint.

Builds PackedUserOperations for the vault, signs them with an EOA key and
submits them with handleOps, the way a wallet front end and bundler would.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Optional

from eth_account import Account

from .contracts.selector_policy import EXECUTE_SIGNATURE, SEND_MESSAGE_SIGNATURE
from .contracts.signature import sign_user_op_hash
from .contracts.user_operation import PackedUserOperation
from .vm.abi import encode_call
from .vm.address import normalize_address
from .vm.state import ChainState, Receipt

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MessageRecord:
    """A stored message, reconstructed from a MessageStored event."""

    id: int
    actor: str
    content: str
    vault: str


class VaultClient:
    """Operations against one vault and its EntryPoint."""

    def __init__(self, chain: ChainState, vault_address: str, entry_point_address: Optional[str] = None):
        self.chain = chain
        self.vault_address = normalize_address(vault_address)
        self.entry_point_address = normalize_address(
            entry_point_address or chain.static_call(self.vault_address, "get_entry_point")
        )

    # ==================== User operations ====================

    def build_user_op(self, call_data: bytes, key: int = 0) -> PackedUserOperation:
        nonce = self.chain.static_call(self.entry_point_address, "get_nonce", self.vault_address, key)
        return PackedUserOperation(sender=self.vault_address, nonce=nonce, call_data=call_data)

    def user_op_hash(self, op: PackedUserOperation) -> bytes:
        return op.hash(self.entry_point_address, self.chain.chain_id)

    def sign(self, op: PackedUserOperation, private_key: str) -> PackedUserOperation:
        return op.with_signature(sign_user_op_hash(private_key, self.user_op_hash(op)))

    def submit(self, ops: List[PackedUserOperation], bundler: str, beneficiary: Optional[str] = None) -> Receipt:
        """Submit signed ops through handleOps from ``bundler``."""
        receipt = self.chain.transact(bundler, self.entry_point_address, "handle_ops", ops, beneficiary or bundler)
        logger.info(
            "UserOps submitted",
            extra={"event": "client.ops_submitted", "count": len(ops), "bundler": normalize_address(bundler)},
        )
        return receipt

    def send_message(self, private_key: str, content: str, bundler: Optional[str] = None) -> Receipt:
        """Sign a sendMessageToWallet op with ``private_key`` and submit it."""
        op = self.sign(self.build_user_op(encode_call(SEND_MESSAGE_SIGNATURE, [content])), private_key)
        return self.submit([op], bundler or Account.from_key(private_key).address)

    def execute(
        self,
        private_key: str,
        target: str,
        value: int,
        data: bytes,
        bundler: Optional[str] = None,
    ) -> Receipt:
        """Sign an execute op with ``private_key`` (must be the owner's key) and submit it."""
        call_data = encode_call(EXECUTE_SIGNATURE, [normalize_address(target), value, data])
        op = self.sign(self.build_user_op(call_data), private_key)
        return self.submit([op], bundler or Account.from_key(private_key).address)

    # ==================== History ====================

    def messages(self) -> List[MessageRecord]:
        """Stored messages ordered by id."""
        records = [
            MessageRecord(
                id=int(log.args["id"]),
                actor=log.args["actor"],
                content=log.args["content"],
                vault=log.args["vault"],
            )
            for log in self.chain.get_logs(self.vault_address, "MessageStored")
        ]
        return sorted(records, key=lambda record: record.id)
