"""Address helpers shared by the host and the contracts."""

from __future__ import annotations

from eth_abi import encode
from eth_utils import is_address, keccak, to_checksum_address

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"


def normalize_address(address: str | None) -> str:
    """Return the EIP-55 checksum form of an address.

    ``None`` and the empty string map to the zero address so optional
    address slots can be compared without special-casing.

    Raises:
        ValueError: If the value is not a 20-byte hex address
    """
    if not address:
        return ZERO_ADDRESS
    if not is_address(address):
        raise ValueError(f"Invalid address: {address!r}")
    return to_checksum_address(address)


def is_zero_address(address: str | None) -> bool:
    return normalize_address(address) == ZERO_ADDRESS


def same_address(a: str | None, b: str | None) -> bool:
    return normalize_address(a) == normalize_address(b)


def contract_address(deployer: str, nonce: int) -> str:
    """Derive a deterministic contract address from deployer and nonce."""
    digest = keccak(encode(["address", "uint256"], [normalize_address(deployer), nonce]))
    return to_checksum_address(digest[-20:])
