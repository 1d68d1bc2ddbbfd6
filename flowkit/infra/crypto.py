"""
Flowkit - Key Management

ECDSA private keys and in-memory signing for account keys.

SECURITY NOTE: Key objects never expose private key material through
repr, str or pickling. Export is explicit via ``encode()``.
"""

import hashlib
import os
from abc import ABC, abstractmethod
from typing import Optional

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.asymmetric.utils import (
    Prehashed,
    decode_dss_signature,
    encode_dss_signature,
)
from cryptography.hazmat.primitives.kdf.hkdf import HKDF

from ..constants import MIN_SEED_LENGTH
from ..errors import InvalidKeyError, UnsupportedSignatureAlgorithmError
from ..models import SignatureAlgorithm, HashAlgorithm


CURVES = {
    SignatureAlgorithm.ECDSA_P256: ec.SECP256R1,
    SignatureAlgorithm.ECDSA_secp256k1: ec.SECP256K1,
}

CURVE_ORDERS = {
    SignatureAlgorithm.ECDSA_P256: 0xFFFFFFFF00000000FFFFFFFFFFFFFFFFBCE6FAADA7179E84F3B9CAC2FC632551,
    SignatureAlgorithm.ECDSA_secp256k1: 0xFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFEBAAEDCE6AF48A03BBFD25E8CD0364141,
}

SCALAR_LENGTH = 32

# Digests are computed locally so SHA3 works with any OpenSSL build
_PREHASHED = ec.ECDSA(Prehashed(hashes.SHA256()))


def _curve(sig_algo: SignatureAlgorithm) -> ec.EllipticCurve:
    try:
        return CURVES[sig_algo]()
    except KeyError:
        raise UnsupportedSignatureAlgorithmError(str(sig_algo))


def hash_message(message: bytes, hash_algo: HashAlgorithm) -> bytes:
    """
    Hash a message with an account key hash algorithm.

    Args:
        message: Bytes to hash.
        hash_algo: SHA2_256 or SHA3_256.

    Returns:
        32-byte digest.
    """
    if hash_algo == HashAlgorithm.SHA2_256:
        return hashlib.sha256(message).digest()
    if hash_algo == HashAlgorithm.SHA3_256:
        return hashlib.sha3_256(message).digest()
    raise InvalidKeyError(f"unsupported hash algorithm: {hash_algo}")


class PrivateKey:
    """
    ECDSA private key on P-256 or secp256k1.

    SECURITY: The scalar is never part of repr/str and the object
    refuses to be pickled.
    """

    __slots__ = ('_key', '_sig_algo', '_public_key')

    def __init__(self, sig_algo: SignatureAlgorithm, secret: bytes):
        """
        Initialize from a raw 32-byte scalar.

        Raises:
            InvalidKeyError: If the scalar is out of range for the curve.
        """
        curve = _curve(sig_algo)
        if len(secret) != SCALAR_LENGTH:
            raise InvalidKeyError(
                f"invalid private key length {len(secret)}, expected {SCALAR_LENGTH}"
            )
        scalar = int.from_bytes(secret, "big")
        if not 0 < scalar < CURVE_ORDERS[sig_algo]:
            raise InvalidKeyError("private key scalar out of range")

        self._sig_algo = sig_algo
        self._key = ec.derive_private_key(scalar, curve)
        point = self._key.public_key().public_bytes(
            serialization.Encoding.X962,
            serialization.PublicFormat.UncompressedPoint
        )
        self._public_key = point[1:]

    @classmethod
    def from_hex(cls, sig_algo: SignatureAlgorithm, private_key: str) -> "PrivateKey":
        """
        Decode a hex private key, with or without ``0x``.

        Raises:
            InvalidKeyError: If the value is not a valid key for the curve.
        """
        raw = private_key.strip()
        if raw[:2].lower() == "0x":
            raw = raw[2:]
        try:
            secret = bytes.fromhex(raw)
        except ValueError:
            raise InvalidKeyError(f"invalid private key hex for {sig_algo.value}")
        return cls(sig_algo, secret)

    @classmethod
    def from_scalar(cls, sig_algo: SignatureAlgorithm, scalar: int) -> "PrivateKey":
        return cls(sig_algo, scalar.to_bytes(SCALAR_LENGTH, "big"))

    @property
    def sig_algo(self) -> SignatureAlgorithm:
        return self._sig_algo

    @property
    def public_key(self) -> bytes:
        """Uncompressed public point without the 0x04 prefix (X||Y)."""
        return self._public_key

    @property
    def public_key_hex(self) -> str:
        return self._public_key.hex()

    def compressed_public_key(self) -> bytes:
        """SEC1 compressed public point."""
        return self._key.public_key().public_bytes(
            serialization.Encoding.X962,
            serialization.PublicFormat.CompressedPoint
        )

    def encode(self) -> bytes:
        """Raw 32-byte scalar. Use only to persist the key."""
        return self._key.private_numbers().private_value.to_bytes(SCALAR_LENGTH, "big")

    def hex(self) -> str:
        return self.encode().hex()

    def sign(self, message: bytes, hash_algo: HashAlgorithm) -> bytes:
        """
        Sign a message.

        Args:
            message: Message bytes, hashed with ``hash_algo`` before signing.
            hash_algo: Hash algorithm of the account key.

        Returns:
            64-byte signature, r||s each left-padded to 32 bytes.
        """
        der = self._key.sign(hash_message(message, hash_algo), _PREHASHED)
        r, s = decode_dss_signature(der)
        return r.to_bytes(SCALAR_LENGTH, "big") + s.to_bytes(SCALAR_LENGTH, "big")

    def verify(self, message: bytes, signature: bytes, hash_algo: HashAlgorithm) -> bool:
        """Verify an r||s signature produced by this key."""
        return verify_signature(self._sig_algo, self._public_key, message, signature, hash_algo)

    def __eq__(self, other) -> bool:
        if not isinstance(other, PrivateKey):
            return NotImplemented
        return self._sig_algo == other._sig_algo and self._public_key == other._public_key

    def __hash__(self) -> int:
        return hash((self._sig_algo, self._public_key))

    def __repr__(self) -> str:
        """Safe representation that doesn't leak private key."""
        return f"PrivateKey({self._sig_algo.value}, public_key={self._public_key.hex()[:16]}...)"

    def __str__(self) -> str:
        return self.__repr__()

    def __getstate__(self):
        """Prevent pickling to avoid accidental key serialization."""
        raise TypeError("PrivateKey cannot be pickled (contains secret material)")

    def __reduce__(self):
        """Prevent pickling via reduce protocol."""
        raise TypeError("PrivateKey cannot be pickled (contains secret material)")


def decode_public_key(sig_algo: SignatureAlgorithm, public_key: str) -> ec.EllipticCurvePublicKey:
    """
    Decode a 64-byte X||Y public key hex.

    Raises:
        InvalidKeyError: If the point is malformed or not on the curve.
    """
    raw = public_key.strip()
    if raw[:2].lower() == "0x":
        raw = raw[2:]
    try:
        point = bytes.fromhex(raw)
        if len(point) != 2 * SCALAR_LENGTH:
            raise ValueError("public key must be 64 bytes")
        return ec.EllipticCurvePublicKey.from_encoded_point(_curve(sig_algo), b"\x04" + point)
    except ValueError as e:
        raise InvalidKeyError(f"invalid public key for {sig_algo.value}: {e}")


def verify_signature(
    sig_algo: SignatureAlgorithm,
    public_key: bytes,
    message: bytes,
    signature: bytes,
    hash_algo: HashAlgorithm
) -> bool:
    """
    Verify an r||s signature against an X||Y public key.

    Returns:
        True if valid, False otherwise.
    """
    if len(signature) != 2 * SCALAR_LENGTH:
        return False
    key = decode_public_key(sig_algo, public_key.hex())
    r = int.from_bytes(signature[:SCALAR_LENGTH], "big")
    s = int.from_bytes(signature[SCALAR_LENGTH:], "big")
    try:
        key.verify(encode_dss_signature(r, s), hash_message(message, hash_algo), _PREHASHED)
        return True
    except InvalidSignature:
        return False


def generate_private_key(sig_algo: SignatureAlgorithm, seed: Optional[bytes] = None) -> PrivateKey:
    """
    Generate a private key from seed material.

    The seed is expanded with HKDF-SHA256 and reduced into [1, n-1].

    Args:
        sig_algo: Curve of the key.
        seed: At least 32 bytes; random bytes are used when omitted.

    Returns:
        New PrivateKey.

    Raises:
        InvalidKeyError: If the seed is too short.
    """
    if seed is None:
        seed = os.urandom(MIN_SEED_LENGTH)
    if len(seed) < MIN_SEED_LENGTH:
        raise InvalidKeyError(
            f"seed length must be at least {MIN_SEED_LENGTH} bytes, got {len(seed)}"
        )

    order = CURVE_ORDERS.get(sig_algo)
    if order is None:
        raise UnsupportedSignatureAlgorithmError(str(sig_algo))

    okm = HKDF(algorithm=hashes.SHA256(), length=SCALAR_LENGTH + 16, salt=None, info=b"").derive(seed)
    scalar = int.from_bytes(okm, "big") % (order - 1) + 1
    return PrivateKey.from_scalar(sig_algo, scalar)


# =============================================================================
# Signers
# =============================================================================

class Signer(ABC):
    """
    Signs transaction messages on behalf of one account key.

    Implementations hold or reach the private key; callers only see
    the public key and the signing operation.
    """

    @property
    @abstractmethod
    def public_key(self) -> bytes:
        """64-byte X||Y public key."""
        pass

    @abstractmethod
    def sign(self, message: bytes) -> bytes:
        """
        Sign a domain-tagged message.

        Args:
            message: Message bytes, hashed by the signer.

        Returns:
            64-byte r||s signature.
        """
        pass


class InMemorySigner(Signer):
    """Signer combining a local private key with the key's hash algorithm."""

    __slots__ = ('_private_key', 'hash_algo')

    def __init__(self, private_key: PrivateKey, hash_algo: HashAlgorithm):
        self._private_key = private_key
        self.hash_algo = hash_algo

    @property
    def public_key(self) -> bytes:
        return self._private_key.public_key

    def sign(self, message: bytes) -> bytes:
        return self._private_key.sign(message, self.hash_algo)

    def __repr__(self) -> str:
        return f"InMemorySigner({self._private_key!r}, {self.hash_algo.value})"
