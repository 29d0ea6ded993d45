"""
MessageVault contracts.

This module provides:
- MessageVault: single-owner ERC-4337 account that stores messages
- EntryPoint / StakeManager: the trusted dispatcher and its deposit ledger
- PackedUserOperation: the v0.7 user operation envelope
- Selector policy and signature recovery used during validation
"""

from .entry_point import ENTRY_POINT_V07_ADDRESS, DepositInfo, EntryPoint, FailedOp, InsufficientDeposit, StakeManager
from .message_vault import (
    SIG_VALIDATION_FAILED,
    SIG_VALIDATION_SUCCESS,
    EmptyContent,
    EntryPointNotSet,
    InvalidEntryPoint,
    InvalidTarget,
    MessageVault,
    NotEntryPoint,
    OnlyOwner,
    OnlyOwnerOrEntryPoint,
    WrongSender,
    ZeroOwner,
)
from .selector_policy import Permission, classify
from .signature import (
    InvalidSignatureError,
    MalformedSignatureError,
    RecoverError,
    SignatureError,
    recover_signer,
    sign_user_op_hash,
    try_recover,
)
from .temporary_authorization import TemporaryAuthorization
from .user_operation import PackedUserOperation

CONTRACT_TYPES = {
    "MessageVault": MessageVault,
    "EntryPoint": EntryPoint,
    "StakeManager": StakeManager,
}

__all__ = [
    # Contracts
    "MessageVault",
    "EntryPoint",
    "StakeManager",
    "CONTRACT_TYPES",
    "ENTRY_POINT_V07_ADDRESS",
    "DepositInfo",
    "PackedUserOperation",
    "TemporaryAuthorization",
    # Policy
    "Permission",
    "classify",
    "SIG_VALIDATION_SUCCESS",
    "SIG_VALIDATION_FAILED",
    # Signatures
    "RecoverError",
    "try_recover",
    "recover_signer",
    "sign_user_op_hash",
    "SignatureError",
    "MalformedSignatureError",
    "InvalidSignatureError",
    # Custom errors
    "ZeroOwner",
    "OnlyOwner",
    "OnlyOwnerOrEntryPoint",
    "EmptyContent",
    "InvalidEntryPoint",
    "EntryPointNotSet",
    "InvalidTarget",
    "NotEntryPoint",
    "WrongSender",
    "FailedOp",
    "InsufficientDeposit",
]
