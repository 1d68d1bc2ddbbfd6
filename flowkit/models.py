"""
Flowkit - Data Models

Core chain data structures used throughout the toolkit.
"""

from dataclasses import dataclass, field
from typing import Optional, List, Dict
from enum import Enum

from .constants import (
    ADDRESS_LENGTH,
    IDENTIFIER_LENGTH,
    CHAIN_CODEWORDS,
    PARITY_CHECK_COLUMNS,
    SERVICE_ADDRESSES,
    EMULATOR,
    TESTNET,
    MAINNET,
)
from .errors import InvalidAddressError, InvalidArgumentError, UnsupportedSignatureAlgorithmError


class ChainID(Enum):
    """Chains with a distinct address space."""
    EMULATOR = EMULATOR
    TESTNET = TESTNET
    MAINNET = MAINNET

    @classmethod
    def from_network(cls, network: str) -> Optional["ChainID"]:
        """Chain for a network name, or None for custom networks."""
        try:
            return cls(network)
        except ValueError:
            return None


# =============================================================================
# Addresses and Identifiers
# =============================================================================

@dataclass(frozen=True)
class Address:
    """
    8-byte account address.

    Accepts hex with or without ``0x`` and renders canonically as 16
    lowercase hex characters without prefix.
    """
    value: bytes = bytes(ADDRESS_LENGTH)

    def __post_init__(self):
        if len(self.value) != ADDRESS_LENGTH:
            raise InvalidAddressError(self.value.hex())

    @classmethod
    def from_hex(cls, address: str) -> "Address":
        """
        Parse an address literal.

        Args:
            address: Hex string, optionally ``0x`` prefixed. Short values
                are left-padded with zeros.

        Returns:
            Parsed Address.

        Raises:
            InvalidAddressError: If the literal is not valid hex or too long.
        """
        if isinstance(address, Address):
            return address
        raw = address.strip()
        if raw[:2].lower() == "0x":
            raw = raw[2:]
        if not raw or len(raw) > ADDRESS_LENGTH * 2:
            raise InvalidAddressError(address)
        try:
            return cls(bytes.fromhex(raw.rjust(ADDRESS_LENGTH * 2, "0")))
        except ValueError:
            raise InvalidAddressError(address)

    @classmethod
    def empty(cls) -> "Address":
        return cls(bytes(ADDRESS_LENGTH))

    @classmethod
    def service(cls, chain: ChainID) -> "Address":
        """Service account address of a chain."""
        return cls.from_hex(SERVICE_ADDRESSES[chain.value])

    @property
    def is_empty(self) -> bool:
        return self.value == bytes(ADDRESS_LENGTH)

    def hex(self) -> str:
        return self.value.hex()

    def hex_with_prefix(self) -> str:
        return "0x" + self.value.hex()

    def is_valid(self, chain: ChainID) -> bool:
        """
        Check the address against a chain's linear code.

        Every generated address is a codeword of the same [64, 45] code
        XORed with a per-chain constant, so the parity check of
        ``address ^ constant`` is zero only on the chain that issued it.

        Args:
            chain: Chain to validate against.

        Returns:
            True if the address could have been generated on the chain.
        """
        codeword = int.from_bytes(self.value, "big") ^ CHAIN_CODEWORDS[chain.value]
        if codeword == 0:
            return False

        parity = 0
        for column in PARITY_CHECK_COLUMNS:
            if codeword & 1:
                parity ^= column
            codeword >>= 1
        return parity == 0

    def chain(self) -> Optional[ChainID]:
        """First chain the address is valid on, if any."""
        for chain in ChainID:
            if self.is_valid(chain):
                return chain
        return None

    def __str__(self) -> str:
        return self.hex()


@dataclass(frozen=True)
class Identifier:
    """32-byte transaction, block or collection identifier."""
    value: bytes = bytes(IDENTIFIER_LENGTH)

    @classmethod
    def from_hex(cls, identifier: str) -> "Identifier":
        """
        Parse a hex identifier.

        Raises:
            InvalidArgumentError: If the value is not 32 bytes of hex.
        """
        if isinstance(identifier, Identifier):
            return identifier
        raw = identifier.strip()
        if raw[:2].lower() == "0x":
            raw = raw[2:]
        try:
            value = bytes.fromhex(raw)
        except ValueError:
            raise InvalidArgumentError(f"invalid identifier: {identifier}")
        if len(value) != IDENTIFIER_LENGTH:
            raise InvalidArgumentError(f"invalid identifier: {identifier}")
        return cls(value)

    @classmethod
    def empty(cls) -> "Identifier":
        return cls(bytes(IDENTIFIER_LENGTH))

    @property
    def is_empty(self) -> bool:
        return self.value == bytes(IDENTIFIER_LENGTH)

    def hex(self) -> str:
        return self.value.hex()

    def __str__(self) -> str:
        return self.hex()


# =============================================================================
# Algorithms
# =============================================================================

class SignatureAlgorithm(Enum):
    """Account key signature algorithms."""
    ECDSA_P256 = "ECDSA_P256"
    ECDSA_secp256k1 = "ECDSA_secp256k1"

    @classmethod
    def from_string(cls, name: str) -> "SignatureAlgorithm":
        """Parse an algorithm name case-insensitively."""
        for algo in cls:
            if algo.value.lower() == name.strip().lower():
                return algo
        raise UnsupportedSignatureAlgorithmError(name)

    @property
    def code(self) -> int:
        """Code used in account key encodings."""
        return {SignatureAlgorithm.ECDSA_P256: 2, SignatureAlgorithm.ECDSA_secp256k1: 3}[self]

    @property
    def cadence_raw_value(self) -> int:
        """Raw value of the Cadence ``SignatureAlgorithm`` enum case."""
        return {SignatureAlgorithm.ECDSA_P256: 1, SignatureAlgorithm.ECDSA_secp256k1: 2}[self]

    @classmethod
    def from_code(cls, code: int) -> "SignatureAlgorithm":
        for algo in cls:
            if algo.code == code:
                return algo
        raise UnsupportedSignatureAlgorithmError(str(code))


class HashAlgorithm(Enum):
    """Account key hash algorithms."""
    SHA2_256 = "SHA2_256"
    SHA3_256 = "SHA3_256"

    @classmethod
    def from_string(cls, name: str) -> "HashAlgorithm":
        for algo in cls:
            if algo.value.lower() == name.strip().lower():
                return algo
        raise InvalidArgumentError(f"invalid hash algorithm: {name}")

    @property
    def code(self) -> int:
        return {HashAlgorithm.SHA2_256: 1, HashAlgorithm.SHA3_256: 3}[self]

    @property
    def cadence_raw_value(self) -> int:
        return {HashAlgorithm.SHA2_256: 1, HashAlgorithm.SHA3_256: 3}[self]

    @classmethod
    def from_code(cls, code: int) -> "HashAlgorithm":
        for algo in cls:
            if algo.code == code:
                return algo
        raise InvalidArgumentError(f"invalid hash algorithm code: {code}")


def is_compatible(sig_algo: SignatureAlgorithm, hash_algo: HashAlgorithm) -> bool:
    """Check that an account key may combine the two algorithms."""
    return isinstance(sig_algo, SignatureAlgorithm) and hash_algo in (
        HashAlgorithm.SHA2_256,
        HashAlgorithm.SHA3_256,
    )


# =============================================================================
# Accounts
# =============================================================================

@dataclass
class AccountKey:
    """Public key registered on an on-chain account."""
    public_key: str  # 64-byte X||Y hex
    sig_algo: SignatureAlgorithm = SignatureAlgorithm.ECDSA_P256
    hash_algo: HashAlgorithm = HashAlgorithm.SHA3_256
    weight: int = 1000
    index: int = 0
    sequence_number: int = 0
    revoked: bool = False


@dataclass
class FlowAccount:
    """Account state as returned by an access node."""
    address: Address
    balance: int = 0  # smallest unit, 1e-8 FLOW
    keys: List[AccountKey] = field(default_factory=list)
    contracts: Dict[str, bytes] = field(default_factory=dict)

    def key(self, index: int) -> Optional[AccountKey]:
        for key in self.keys:
            if key.index == index:
                return key
        return None


# =============================================================================
# Blocks and Collections
# =============================================================================

@dataclass
class Block:
    """Block header plus the ids of its collections."""
    id: Identifier
    height: int
    parent_id: Identifier = field(default_factory=Identifier.empty)
    timestamp: Optional[str] = None
    collection_ids: List[Identifier] = field(default_factory=list)


@dataclass
class Collection:
    """Guaranteed collection of transactions."""
    id: Identifier
    transaction_ids: List[Identifier] = field(default_factory=list)


# =============================================================================
# Events and Results
# =============================================================================

@dataclass
class FlowEvent:
    """Event emitted by a transaction."""
    type: str
    transaction_id: Identifier
    transaction_index: int = 0
    event_index: int = 0
    value: Optional[object] = None  # cadence.Value
    payload: bytes = b""

    def field(self, name: str):
        """Value of a named event field, or None."""
        if self.value is None:
            return None
        return self.value.field(name)


@dataclass
class BlockEvents:
    """Events of one type within one block."""
    block_id: Identifier
    height: int
    timestamp: Optional[str] = None
    events: List[FlowEvent] = field(default_factory=list)


class TransactionStatus(Enum):
    """Lifecycle status reported by the access node."""
    UNKNOWN = "Unknown"
    PENDING = "Pending"
    FINALIZED = "Finalized"
    EXECUTED = "Executed"
    SEALED = "Sealed"
    EXPIRED = "Expired"

    @classmethod
    def parse(cls, value) -> "TransactionStatus":
        if isinstance(value, int):
            return list(cls)[value] if 0 <= value < len(cls) else cls.UNKNOWN
        for status in cls:
            if status.value.lower() == str(value).lower():
                return status
        return cls.UNKNOWN


@dataclass
class TransactionResult:
    """Outcome of a transaction."""
    status: TransactionStatus = TransactionStatus.UNKNOWN
    error_message: str = ""
    events: List[FlowEvent] = field(default_factory=list)
    block_id: Optional[Identifier] = None
    block_height: Optional[int] = None
    computation_used: int = 0
    transaction_id: Optional[Identifier] = None

    @property
    def error(self) -> Optional[str]:
        """Execution error reported by the chain, None on success."""
        return self.error_message or None

    @property
    def is_sealed(self) -> bool:
        return self.status == TransactionStatus.SEALED

    def events_by_type(self, event_type: str) -> List[FlowEvent]:
        return [event for event in self.events if event.type == event_type]
