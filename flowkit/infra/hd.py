"""
Flowkit - Hierarchical Key Derivation

BIP-39 mnemonics and SLIP-0010 derivation for P-256 and secp256k1.
"""

import hashlib
import hmac
import os
from typing import List, Optional, Tuple

from embit import bip32, bip39

from ..constants import DEFAULT_DERIVATION_PATH, MIN_HD_SEED_LENGTH, MNEMONIC_ENTROPY_BITS
from ..errors import (
    InvalidDerivationPathError,
    InvalidKeyError,
    InvalidMnemonicError,
    UnsupportedSignatureAlgorithmError,
)
from ..models import SignatureAlgorithm
from .crypto import CURVE_ORDERS, SCALAR_LENGTH, PrivateKey


HARDENED_OFFSET = 0x80000000

# SLIP-0010 master key HMAC keys
CURVE_SEEDS = {
    SignatureAlgorithm.ECDSA_P256: b"Nist256p1 seed",
    SignatureAlgorithm.ECDSA_secp256k1: b"Bitcoin seed",
}


def parse_derivation_path(path: str) -> List[int]:
    """
    Parse a path such as ``m/44'/539'/0'/0/0`` into child indexes.

    Hardened segments may use ``'``, ``h`` or ``H``.

    Raises:
        InvalidDerivationPathError: If the path is malformed.
    """
    segments = path.strip().split("/")
    if not segments or segments[0] != "m":
        raise InvalidDerivationPathError(path)

    indexes = []
    for segment in segments[1:]:
        hardened = segment[-1:] in ("'", "h", "H")
        number = segment[:-1] if hardened else segment
        if not number.isdigit():
            raise InvalidDerivationPathError(path)
        index = int(number)
        if index >= HARDENED_OFFSET:
            raise InvalidDerivationPathError(path)
        indexes.append(index + HARDENED_OFFSET if hardened else index)
    return indexes


def _hmac512(key: bytes, data: bytes) -> bytes:
    return hmac.new(key, data, hashlib.sha512).digest()


# =============================================================================
# SLIP-0010 on P-256
# =============================================================================

def _p256_master_key(seed: bytes) -> Tuple[int, bytes]:
    curve_seed = CURVE_SEEDS[SignatureAlgorithm.ECDSA_P256]
    order = CURVE_ORDERS[SignatureAlgorithm.ECDSA_P256]

    digest = _hmac512(curve_seed, seed)
    while True:
        key = int.from_bytes(digest[:32], "big")
        if 0 < key < order:
            return key, digest[32:]
        digest = _hmac512(curve_seed, digest)


def _p256_child_key(key: int, chain_code: bytes, index: int) -> Tuple[int, bytes]:
    order = CURVE_ORDERS[SignatureAlgorithm.ECDSA_P256]
    suffix = index.to_bytes(4, "big")

    if index >= HARDENED_OFFSET:
        data = b"\x00" + key.to_bytes(SCALAR_LENGTH, "big") + suffix
    else:
        data = PrivateKey.from_scalar(SignatureAlgorithm.ECDSA_P256, key).compressed_public_key() + suffix

    while True:
        digest = _hmac512(chain_code, data)
        tweak = int.from_bytes(digest[:32], "big")
        child = (tweak + key) % order
        if tweak < order and child != 0:
            return child, digest[32:]
        data = b"\x01" + digest[32:] + suffix


def _derive_p256(seed: bytes, indexes: List[int]) -> PrivateKey:
    key, chain_code = _p256_master_key(seed)
    for index in indexes:
        key, chain_code = _p256_child_key(key, chain_code, index)
    return PrivateKey.from_scalar(SignatureAlgorithm.ECDSA_P256, key)


def _derive_secp256k1(seed: bytes, indexes: List[int]) -> PrivateKey:
    # SLIP-0010 on secp256k1 is BIP-32
    hd_key = bip32.HDKey.from_seed(seed).derive(indexes)
    return PrivateKey(SignatureAlgorithm.ECDSA_secp256k1, hd_key.secret)


def derive_private_key_from_seed(
    seed: bytes,
    sig_algo: SignatureAlgorithm,
    path: str = DEFAULT_DERIVATION_PATH
) -> PrivateKey:
    """
    Derive a key with SLIP-0010.

    Args:
        seed: HD seed, at least 16 bytes.
        sig_algo: ECDSA_P256 (``Nist256p1 seed``) or ECDSA_secp256k1
            (``Bitcoin seed``).
        path: Derivation path.

    Returns:
        PrivateKey at the path.

    Raises:
        UnsupportedSignatureAlgorithmError: For curves without SLIP-0010 support.
        InvalidDerivationPathError: If the path is malformed.
        InvalidKeyError: If the seed is too short.
    """
    if sig_algo not in CURVE_SEEDS:
        raise UnsupportedSignatureAlgorithmError(str(sig_algo))
    if len(seed) < MIN_HD_SEED_LENGTH:
        raise InvalidKeyError(f"seed length must be at least {MIN_HD_SEED_LENGTH} bytes")

    indexes = parse_derivation_path(path)
    if sig_algo == SignatureAlgorithm.ECDSA_secp256k1:
        return _derive_secp256k1(seed, indexes)
    return _derive_p256(seed, indexes)


# =============================================================================
# Mnemonics
# =============================================================================

def generate_mnemonic(entropy: Optional[bytes] = None) -> str:
    """Generate a 12-word BIP-39 mnemonic from 128 bits of entropy."""
    entropy = entropy or os.urandom(MNEMONIC_ENTROPY_BITS // 8)
    return bip39.mnemonic_from_bytes(entropy)


def mnemonic_to_seed(mnemonic: str, passphrase: str = "") -> bytes:
    """
    Validate a mnemonic and stretch it into a 512-bit seed.

    Raises:
        InvalidMnemonicError: If the BIP-39 checksum fails.
    """
    normalized = " ".join(mnemonic.split())
    if not bip39.mnemonic_is_valid(normalized):
        raise InvalidMnemonicError()
    return bip39.mnemonic_to_seed(normalized, password=passphrase)


def derive_private_key_from_mnemonic(
    mnemonic: str,
    sig_algo: SignatureAlgorithm,
    path: str = DEFAULT_DERIVATION_PATH
) -> PrivateKey:
    """Derive the key at ``path`` from a BIP-39 mnemonic with empty passphrase."""
    return derive_private_key_from_seed(mnemonic_to_seed(mnemonic), sig_algo, path or DEFAULT_DERIVATION_PATH)


def generate_mnemonic_key(
    sig_algo: SignatureAlgorithm,
    path: str = DEFAULT_DERIVATION_PATH
) -> Tuple[PrivateKey, str]:
    """
    Generate a fresh mnemonic and derive its key.

    Returns:
        Tuple of (private key, mnemonic).
    """
    if sig_algo not in CURVE_SEEDS:
        raise UnsupportedSignatureAlgorithmError(str(sig_algo))
    mnemonic = generate_mnemonic()
    return derive_private_key_from_mnemonic(mnemonic, sig_algo, path), mnemonic
