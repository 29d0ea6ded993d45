"""
Contract execution host.

Provides the atomic call frames, selector dispatch and event log that the
MessageVault contracts run on.
"""

from .abi import AbiFunction, Contract, encode_call, external
from .address import ZERO_ADDRESS, is_zero_address, normalize_address, same_address
from .exceptions import (
    AbiCodecError,
    ContractRevert,
    InsufficientBalance,
    NonPayableFunction,
    UnsupportedOperation,
    VMExecutionError,
)
from .state import ChainState, LogEntry, Receipt

__all__ = [
    "AbiCodecError",
    "AbiFunction",
    "ChainState",
    "Contract",
    "ContractRevert",
    "InsufficientBalance",
    "LogEntry",
    "NonPayableFunction",
    "Receipt",
    "UnsupportedOperation",
    "VMExecutionError",
    "ZERO_ADDRESS",
    "encode_call",
    "external",
    "is_zero_address",
    "normalize_address",
    "same_address",
]
