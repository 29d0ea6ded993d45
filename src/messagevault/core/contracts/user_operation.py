"""
ERC-4337 v0.7 PackedUserOperation.

The struct is opaque to the vault except for ``sender``, the selector at the
front of ``call_data`` and ``signature``. Hashing follows the v0.7
EntryPoint so signatures produced here match what a real EntryPoint asks an
account to validate.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Any, Sequence, Tuple

from eth_abi import encode
from eth_utils import keccak

from ..vm.address import normalize_address

USER_OPERATION_ABI = "(address,uint256,bytes,bytes,bytes32,uint256,bytes32,bytes,bytes)"

ZERO_BYTES32 = b"\x00" * 32


def pack_uint128_pair(high: int, low: int) -> bytes:
    """Pack two uint128 values into a bytes32 (accountGasLimits, gasFees)."""
    return ((high << 128) | low).to_bytes(32, "big")


def unpack_uint128_pair(packed: bytes) -> Tuple[int, int]:
    value = int.from_bytes(packed, "big")
    return value >> 128, value & ((1 << 128) - 1)


@dataclass(frozen=True)
class PackedUserOperation:
    """A user's intent, as submitted to the EntryPoint by a bundler."""

    sender: str
    nonce: int = 0
    init_code: bytes = b""
    call_data: bytes = b""
    account_gas_limits: bytes = ZERO_BYTES32  # verificationGasLimit << 128 | callGasLimit
    pre_verification_gas: int = 0
    gas_fees: bytes = ZERO_BYTES32  # maxPriorityFeePerGas << 128 | maxFeePerGas
    paymaster_and_data: bytes = b""
    signature: bytes = b""

    @classmethod
    def coerce(cls, value: Any) -> "PackedUserOperation":
        """Accept either an instance or the ABI-decoded tuple form."""
        if isinstance(value, cls):
            return value
        return cls.from_abi(value)

    @classmethod
    def from_abi(cls, values: Sequence[Any]) -> "PackedUserOperation":
        (sender, nonce, init_code, call_data, gas_limits,
         pre_verification_gas, gas_fees, paymaster_and_data, signature) = values
        return cls(
            sender=normalize_address(sender),
            nonce=int(nonce),
            init_code=bytes(init_code),
            call_data=bytes(call_data),
            account_gas_limits=bytes(gas_limits),
            pre_verification_gas=int(pre_verification_gas),
            gas_fees=bytes(gas_fees),
            paymaster_and_data=bytes(paymaster_and_data),
            signature=bytes(signature),
        )

    def to_abi(self) -> Tuple[Any, ...]:
        return (
            normalize_address(self.sender),
            self.nonce,
            self.init_code,
            self.call_data,
            self.account_gas_limits,
            self.pre_verification_gas,
            self.gas_fees,
            self.paymaster_and_data,
            self.signature,
        )

    @property
    def selector(self) -> bytes:
        return self.call_data[:4]

    def with_signature(self, signature: bytes) -> "PackedUserOperation":
        return replace(self, signature=bytes(signature))

    def pack(self) -> bytes:
        """Encode every field except the signature, hashing dynamic fields."""
        return encode(
            ["address", "uint256", "bytes32", "bytes32", "bytes32", "uint256", "bytes32", "bytes32"],
            [
                normalize_address(self.sender),
                self.nonce,
                keccak(self.init_code),
                keccak(self.call_data),
                self.account_gas_limits,
                self.pre_verification_gas,
                self.gas_fees,
                keccak(self.paymaster_and_data),
            ],
        )

    def hash(self, entry_point: str, chain_id: int) -> bytes:
        """
        Get the user operation hash an account signs.

        Args:
            entry_point: EntryPoint contract address
            chain_id: Chain ID for replay protection

        Returns:
            32-byte hash
        """
        return keccak(
            encode(
                ["bytes32", "address", "uint256"],
                [keccak(self.pack()), normalize_address(entry_point), chain_id],
            )
        )
