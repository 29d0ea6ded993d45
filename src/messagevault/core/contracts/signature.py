"""
Signer recovery for user operation hashes.

Signatures are EIP-191 personal-sign signatures over the 32-byte user
operation hash: the hash is wrapped as
``keccak256("\\x19Ethereum Signed Message:\\n32" || hash)`` and the signer is
recovered from a 65-byte ``r || s || v`` signature.

``try_recover`` never raises for bad signature input; it reports the failure
kind so the validation path can turn it into a status code. ``recover_signer``
is the strict variant for off-chain callers.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Optional, Tuple

from eth_account import Account
from eth_account.messages import encode_defunct
from eth_keys import keys
from eth_keys.exceptions import BadSignature
from eth_keys.exceptions import ValidationError as KeyValidationError
from eth_utils import keccak

from ..vm.address import ZERO_ADDRESS
from ..vm.exceptions import VMExecutionError

logger = logging.getLogger(__name__)

EIP191_PREFIX = b"\x19Ethereum Signed Message:\n32"
SIGNATURE_LENGTH = 65

SECP256K1_N = int("FFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFEBAAEDCE6AF48A03BBFD25E8CD0364141", 16)
SECP256K1_HALF_N = SECP256K1_N // 2


class SignatureError(VMExecutionError):
    """Base exception for signature recovery failures."""
    pass


class MalformedSignatureError(SignatureError):
    """Raised when the signature bytes cannot be a valid ECDSA signature."""
    pass


class InvalidSignatureError(SignatureError):
    """Raised when a well-formed signature recovers no signer."""
    pass


class RecoverError(Enum):
    """Why a recovery attempt produced no signer."""
    NO_ERROR = "no_error"
    INVALID_SIGNATURE = "invalid_signature"
    INVALID_SIGNATURE_LENGTH = "invalid_signature_length"
    INVALID_SIGNATURE_S = "invalid_signature_s"


def to_eth_signed_message_hash(digest: bytes) -> bytes:
    """Wrap a 32-byte digest in the EIP-191 personal-sign prefix and hash it."""
    if len(digest) != 32:
        raise ValueError(f"Digest must be 32 bytes, got {len(digest)} bytes")
    return keccak(EIP191_PREFIX + bytes(digest))


def try_recover(digest: bytes, signature: bytes) -> Tuple[Optional[str], RecoverError]:
    """
    Recover the signer of an EIP-191 signature over ``digest``.

    Args:
        digest: The 32-byte user operation hash (before prefixing)
        signature: 65-byte ``r || s || v`` signature, v in {0, 1, 27, 28}

    Returns:
        Tuple of (checksum address or None, RecoverError)
    """
    signature = bytes(signature)
    if len(signature) != SIGNATURE_LENGTH:
        return None, RecoverError.INVALID_SIGNATURE_LENGTH

    r = int.from_bytes(signature[:32], "big")
    s = int.from_bytes(signature[32:64], "big")
    v = signature[64]
    if v >= 27:
        v -= 27

    if s > SECP256K1_HALF_N:
        return None, RecoverError.INVALID_SIGNATURE_S
    if v not in (0, 1) or not (0 < r < SECP256K1_N) or s == 0:
        return None, RecoverError.INVALID_SIGNATURE

    try:
        public_key = keys.Signature(vrs=(v, r, s)).recover_public_key_from_msg_hash(
            to_eth_signed_message_hash(digest)
        )
    except (BadSignature, KeyValidationError) as e:
        logger.debug(
            "Signature recovery failed",
            extra={"event": "signature.recover_failed", "error": str(e)},
        )
        return None, RecoverError.INVALID_SIGNATURE

    signer = public_key.to_checksum_address()
    if signer == ZERO_ADDRESS:
        return None, RecoverError.INVALID_SIGNATURE
    return signer, RecoverError.NO_ERROR


def recover_signer(digest: bytes, signature: bytes) -> str:
    """
    Strict recovery.

    Raises:
        MalformedSignatureError: If the signature length or s value is invalid
        InvalidSignatureError: If no signer can be recovered
    """
    signer, error = try_recover(digest, signature)
    if error in (RecoverError.INVALID_SIGNATURE_LENGTH, RecoverError.INVALID_SIGNATURE_S):
        raise MalformedSignatureError(
            f"Malformed signature ({error.value}): got {len(signature)} bytes"
        )
    if signer is None:
        raise InvalidSignatureError("Signature does not recover a signer")
    return signer


def sign_user_op_hash(private_key: str | bytes, user_op_hash: bytes) -> bytes:
    """Produce the 65-byte personal-sign signature a vault accepts."""
    signed = Account.sign_message(encode_defunct(primitive=bytes(user_op_hash)), private_key=private_key)
    return bytes(signed.signature)
