"""
Tests for EIP-191 signer recovery over user operation hashes.

Recovery must never raise on bad input in the validation path; it reports
a RecoverError instead. The strict variant raises typed errors.
"""

import pytest
from eth_account import Account
from eth_account.messages import encode_defunct
from eth_utils import keccak

from messagevault.core.contracts.signature import (
    SECP256K1_N,
    InvalidSignatureError,
    MalformedSignatureError,
    RecoverError,
    recover_signer,
    sign_user_op_hash,
    to_eth_signed_message_hash,
    try_recover,
)

DIGEST = keccak(b"user operation")


def _with_high_s(signature: bytes) -> bytes:
    """Flip a low-s signature to its malleable high-s twin."""
    r = signature[:32]
    s = int.from_bytes(signature[32:64], "big")
    v = signature[64]
    flipped_v = 28 if v == 27 else 27
    return r + (SECP256K1_N - s).to_bytes(32, "big") + bytes([flipped_v])


class TestTryRecover:
    """Soft recovery used during validation."""

    def test_recovers_signer(self, bob):
        signature = sign_user_op_hash(bob.key, DIGEST)

        signer, error = try_recover(DIGEST, signature)

        assert error is RecoverError.NO_ERROR
        assert signer == bob.address

    def test_matches_eth_account_personal_sign_recovery(self, alice):
        signature = sign_user_op_hash(alice.key, DIGEST)

        expected = Account.recover_message(encode_defunct(primitive=DIGEST), signature=signature)

        assert try_recover(DIGEST, signature)[0] == expected

    def test_accepts_zero_one_recovery_id(self, bob):
        signature = bytearray(sign_user_op_hash(bob.key, DIGEST))
        signature[64] -= 27

        assert try_recover(DIGEST, bytes(signature)) == (bob.address, RecoverError.NO_ERROR)

    def test_different_digest_recovers_other_address(self, bob):
        signature = sign_user_op_hash(bob.key, DIGEST)

        signer, error = try_recover(keccak(b"other"), signature)

        assert signer != bob.address

    @pytest.mark.parametrize("length", [0, 64, 66])
    def test_wrong_length(self, length):
        assert try_recover(DIGEST, b"\x01" * length) == (None, RecoverError.INVALID_SIGNATURE_LENGTH)

    def test_high_s_rejected(self, bob):
        signature = _with_high_s(sign_user_op_hash(bob.key, DIGEST))

        assert try_recover(DIGEST, signature) == (None, RecoverError.INVALID_SIGNATURE_S)

    def test_invalid_recovery_id(self, bob):
        signature = bytearray(sign_user_op_hash(bob.key, DIGEST))
        signature[64] = 29

        assert try_recover(DIGEST, bytes(signature)) == (None, RecoverError.INVALID_SIGNATURE)

    def test_zero_r_rejected(self, bob):
        signature = b"\x00" * 32 + sign_user_op_hash(bob.key, DIGEST)[32:]

        assert try_recover(DIGEST, signature) == (None, RecoverError.INVALID_SIGNATURE)


class TestRecoverSigner:
    """Strict recovery for off-chain callers."""

    def test_returns_signer(self, owner):
        assert recover_signer(DIGEST, sign_user_op_hash(owner.key, DIGEST)) == owner.address

    def test_malformed_length_raises(self):
        with pytest.raises(MalformedSignatureError) as exc_info:
            recover_signer(DIGEST, b"\x00" * 10)

        assert "invalid_signature_length" in str(exc_info.value)

    def test_high_s_raises_malformed(self, owner):
        with pytest.raises(MalformedSignatureError):
            recover_signer(DIGEST, _with_high_s(sign_user_op_hash(owner.key, DIGEST)))

    def test_unrecoverable_raises_invalid(self):
        with pytest.raises(InvalidSignatureError):
            recover_signer(DIGEST, b"\x00" * 64 + b"\x1b")


class TestEthSignedMessageHash:
    """EIP-191 wrapping of the 32-byte hash."""

    def test_prefix_applied(self):
        assert to_eth_signed_message_hash(DIGEST) == keccak(b"\x19Ethereum Signed Message:\n32" + DIGEST)

    def test_rejects_non_32_byte_digest(self):
        with pytest.raises(ValueError):
            to_eth_signed_message_hash(b"short")
