"""
Flowkit - Key Providers

Uniform signing interface over the four account key kinds: inline hex,
key file, Google Cloud KMS and BIP-44 mnemonic.
"""

from abc import ABC, abstractmethod
from typing import Optional

from .config.models import KeyConfig, KeyType
from .constants import DEFAULT_DERIVATION_PATH
from .errors import InvalidKeyError, InvalidMnemonicError
from .infra.crypto import InMemorySigner, PrivateKey, Signer
from .infra.files import ReaderWriter
from .infra.hd import derive_private_key_from_mnemonic
from .infra.kms import KMSResource, KMSSigner, check_credentials
from .models import HashAlgorithm, SignatureAlgorithm


class KeyProvider(ABC):
    """
    Abstract base class for account keys.

    Every variant exposes its key index and algorithms, can validate
    itself and binds a Signer. ``private_key()`` returns None where the
    key material is not reachable locally.
    """

    key_type: KeyType

    def __init__(
        self,
        index: int = 0,
        sig_algo: SignatureAlgorithm = SignatureAlgorithm.ECDSA_P256,
        hash_algo: HashAlgorithm = HashAlgorithm.SHA3_256
    ):
        self.index = index
        self.sig_algo = sig_algo
        self.hash_algo = hash_algo

    @property
    def type(self) -> KeyType:
        return self.key_type

    @abstractmethod
    def signer(self) -> Signer:
        """
        Bind a signer for this key.

        Raises:
            InvalidKeyError: If the key cannot be loaded.
        """
        pass

    @abstractmethod
    def validate(self) -> None:
        """
        Check that the key can be used.

        Raises:
            InvalidKeyError: If validation fails.
        """
        pass

    def private_key(self) -> Optional[PrivateKey]:
        return None

    @property
    def public_key(self) -> bytes:
        return self.signer().public_key

    @abstractmethod
    def to_config(self) -> KeyConfig:
        pass

    def _base_config(self, key_type: KeyType) -> KeyConfig:
        return KeyConfig(type=key_type, index=self.index, sig_algo=self.sig_algo, hash_algo=self.hash_algo)

    def __repr__(self) -> str:
        return f"{type(self).__name__}(index={self.index}, {self.sig_algo.value}, {self.hash_algo.value})"


class HexKeyProvider(KeyProvider):
    """
    Private key stored inline in configuration.

    WARNING: Plain text in flow.json. Prefer a key file for shared repos.
    """

    key_type = KeyType.HEX

    def __init__(self, private_key: PrivateKey, index: int = 0,
                 hash_algo: HashAlgorithm = HashAlgorithm.SHA3_256):
        super().__init__(index, private_key.sig_algo, hash_algo)
        self._private_key = private_key

    @classmethod
    def from_hex(cls, private_key: str, index: int = 0,
                 sig_algo: SignatureAlgorithm = SignatureAlgorithm.ECDSA_P256,
                 hash_algo: HashAlgorithm = HashAlgorithm.SHA3_256) -> "HexKeyProvider":
        return cls(PrivateKey.from_hex(sig_algo, private_key), index, hash_algo)

    def signer(self) -> Signer:
        return InMemorySigner(self._private_key, self.hash_algo)

    def validate(self) -> None:
        PrivateKey.from_hex(self.sig_algo, self._private_key.hex())

    def private_key(self) -> Optional[PrivateKey]:
        return self._private_key

    def to_config(self) -> KeyConfig:
        conf = self._base_config(KeyType.HEX)
        conf.private_key = self._private_key.hex()
        return conf


class FileKeyProvider(KeyProvider):
    """
    Private key kept in a separate file, read on first use.

    The file holds a single hex line, optionally ``0x`` prefixed.
    """

    key_type = KeyType.FILE

    def __init__(self, location: str, reader_writer: ReaderWriter, index: int = 0,
                 sig_algo: SignatureAlgorithm = SignatureAlgorithm.ECDSA_P256,
                 hash_algo: HashAlgorithm = HashAlgorithm.SHA3_256):
        super().__init__(index, sig_algo, hash_algo)
        self.location = location
        self._reader_writer = reader_writer
        self._private_key: Optional[PrivateKey] = None

    def _load(self) -> PrivateKey:
        if self._private_key is None:
            try:
                raw = self._reader_writer.read_file(self.location)
            except OSError as e:
                raise InvalidKeyError(f"could not load the key for the account from provided location {self.location}: {e}")
            self._private_key = PrivateKey.from_hex(self.sig_algo, raw.decode().strip())
        return self._private_key

    def signer(self) -> Signer:
        return InMemorySigner(self._load(), self.hash_algo)

    def validate(self) -> None:
        self._load()

    def private_key(self) -> Optional[PrivateKey]:
        return self._load()

    def to_config(self) -> KeyConfig:
        conf = self._base_config(KeyType.FILE)
        conf.location = self.location
        return conf


class KMSKeyProvider(KeyProvider):
    """
    Key held in Google Cloud KMS; signing happens remotely.

    Example:
        key = KMSKeyProvider("projects/p/locations/global/keyRings/r/cryptoKeys/k/cryptoKeyVersions/1")
        key.validate()
        signature = key.signer().sign(message)
    """

    key_type = KeyType.KMS

    def __init__(self, resource_id: str, index: int = 0,
                 sig_algo: SignatureAlgorithm = SignatureAlgorithm.ECDSA_P256,
                 hash_algo: HashAlgorithm = HashAlgorithm.SHA2_256,
                 client=None):
        super().__init__(index, sig_algo, hash_algo)
        self.resource_id = resource_id
        self._client = client

    def signer(self) -> Signer:
        return KMSSigner(KMSResource.parse(self.resource_id), client=self._client)

    def validate(self) -> None:
        check_credentials(KMSResource.parse(self.resource_id))

    def to_config(self) -> KeyConfig:
        conf = self._base_config(KeyType.KMS)
        conf.resource_id = self.resource_id
        return conf


class Bip44KeyProvider(KeyProvider):
    """Key derived from a BIP-39 mnemonic along a derivation path."""

    key_type = KeyType.BIP44

    def __init__(self, mnemonic: str, derivation_path: str = "", index: int = 0,
                 sig_algo: SignatureAlgorithm = SignatureAlgorithm.ECDSA_P256,
                 hash_algo: HashAlgorithm = HashAlgorithm.SHA3_256):
        super().__init__(index, sig_algo, hash_algo)
        self.mnemonic = mnemonic
        self.derivation_path = derivation_path
        self._private_key: Optional[PrivateKey] = None

    def _derive(self) -> PrivateKey:
        if self._private_key is None:
            self._private_key = derive_private_key_from_mnemonic(
                self.mnemonic,
                self.sig_algo,
                self.derivation_path or DEFAULT_DERIVATION_PATH
            )
        return self._private_key

    def signer(self) -> Signer:
        return InMemorySigner(self._derive(), self.hash_algo)

    def validate(self) -> None:
        try:
            self._derive()
        except InvalidMnemonicError:
            raise InvalidMnemonicError("invalid mnemonic defined for account in flow.json")

    def private_key(self) -> Optional[PrivateKey]:
        return self._derive()

    def to_config(self) -> KeyConfig:
        conf = self._base_config(KeyType.BIP44)
        conf.mnemonic = self.mnemonic
        conf.derivation_path = self.derivation_path
        return conf

    def __repr__(self) -> str:
        return f"Bip44KeyProvider(path={self.derivation_path or DEFAULT_DERIVATION_PATH}, {self.sig_algo.value})"


def key_from_config(conf: KeyConfig, reader_writer: Optional[ReaderWriter] = None) -> KeyProvider:
    """
    Build the provider for a persisted key.

    Args:
        conf: Key configuration.
        reader_writer: File access for file keys.

    Returns:
        KeyProvider variant matching ``conf.type``.

    Raises:
        InvalidKeyError: If the key cannot be decoded.
    """
    if conf.type == KeyType.HEX:
        return HexKeyProvider.from_hex(conf.private_key, conf.index, conf.sig_algo, conf.hash_algo)
    if conf.type == KeyType.FILE:
        if reader_writer is None:
            raise InvalidKeyError("file keys need a reader to load the key file")
        return FileKeyProvider(conf.location, reader_writer, conf.index, conf.sig_algo, conf.hash_algo)
    if conf.type == KeyType.KMS:
        return KMSKeyProvider(conf.resource_id, conf.index, conf.sig_algo, conf.hash_algo)
    if conf.type == KeyType.BIP44:
        return Bip44KeyProvider(conf.mnemonic, conf.derivation_path, conf.index, conf.sig_algo, conf.hash_algo)
    raise InvalidKeyError(f"unsupported key type: {conf.type}")
