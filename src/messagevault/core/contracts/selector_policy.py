"""
Selector permission table for delegated (EntryPoint-routed) calls.

The table is static. A selector absent from it is always rejected.
"""

from __future__ import annotations

from enum import Enum
from typing import Dict

from eth_utils import function_signature_to_4byte_selector

SELECTOR_LENGTH = 4

SEND_MESSAGE_SIGNATURE = "sendMessageToWallet(string)"
EXECUTE_SIGNATURE = "execute(address,uint256,bytes)"

SEND_MESSAGE_SELECTOR = function_signature_to_4byte_selector(SEND_MESSAGE_SIGNATURE)
EXECUTE_SELECTOR = function_signature_to_4byte_selector(EXECUTE_SIGNATURE)


class Permission(Enum):
    """Who may sign an operation targeting a selector."""
    ANY_SIGNED = "any_signed"  # any recovered signer
    OWNER_ONLY = "owner_only"  # recovered signer must be the owner
    REJECTED = "rejected"


SELECTOR_PERMISSIONS: Dict[bytes, Permission] = {
    SEND_MESSAGE_SELECTOR: Permission.ANY_SIGNED,
    EXECUTE_SELECTOR: Permission.OWNER_ONLY,
}


def classify(call_data: bytes) -> Permission:
    """Map the leading selector of ``call_data`` to its permission class."""
    if len(call_data) < SELECTOR_LENGTH:
        return Permission.REJECTED
    return SELECTOR_PERMISSIONS.get(bytes(call_data[:SELECTOR_LENGTH]), Permission.REJECTED)
