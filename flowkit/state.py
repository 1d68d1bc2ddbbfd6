"""
Flowkit - Project State

Loaded configuration plus the resolved account registry, with the
queries the engine needs per network.
"""

import posixpath
from typing import Dict, List, Optional

from . import config as project_config
from .accounts import Account, Accounts
from .config.loader import Loader
from .constants import (
    CONFIG_FILE_MODE,
    DEFAULT_EMULATOR_NAME,
    DEFAULT_EMULATOR_SERVICE_ACCOUNT,
    KEY_FILE_MODE,
)
from .core.deployment import Contract
from .core.imports import clean_path
from .errors import FlowkitError, InvalidConfigError, InvalidKeyError, KeyFileExistsError, NotFoundError
from .infra.crypto import PrivateKey, generate_private_key
from .infra.files import ReaderWriter
from .models import Address, ChainID, HashAlgorithm, SignatureAlgorithm
from .providers import FileKeyProvider, HexKeyProvider


class State:
    """
    Flow project state.

    Example:
        state = State.load(["flow.json"], FileSystem())
        contracts = state.deployment_contracts_by_network("testnet")
        state.save_edited(["flow.json"])
    """

    def __init__(self, conf: project_config.Config, loader: Loader, reader_writer: ReaderWriter, accounts: Accounts):
        self._config = conf
        self._loader = loader
        self.reader_writer = reader_writer
        self._accounts = accounts

    @classmethod
    def load(cls, paths: List[str], reader_writer: ReaderWriter) -> "State":
        """
        Load project configuration.

        Args:
            paths: Configuration files, lowest priority first.
            reader_writer: File access.

        Raises:
            ConfigNotFoundError: If no configuration file exists.
            InvalidConfigError: If the accounts cannot be built.
        """
        loader = Loader(reader_writer)
        conf = loader.load(paths)

        if len(conf.emulators) == 0 and DEFAULT_EMULATOR_SERVICE_ACCOUNT in conf.accounts:
            conf.emulators.add_or_update(project_config.Emulator(DEFAULT_EMULATOR_NAME))

        try:
            accounts = Accounts.from_config(conf, reader_writer)
        except FlowkitError as e:
            raise InvalidConfigError(f"invalid project configuration: {e}")
        return cls(conf, loader, reader_writer, accounts)

    @classmethod
    def init(
        cls,
        reader_writer: ReaderWriter,
        sig_algo: SignatureAlgorithm = SignatureAlgorithm.ECDSA_P256,
        hash_algo: HashAlgorithm = HashAlgorithm.SHA3_256,
        service_key: Optional[PrivateKey] = None
    ) -> "State":
        """
        New project with default networks and an emulator service account.

        Args:
            reader_writer: File access.
            sig_algo: Service key signature algorithm.
            hash_algo: Service key hash algorithm.
            service_key: Service key, generated when omitted.
        """
        key = service_key or generate_private_key(sig_algo)
        service = Account(
            DEFAULT_EMULATOR_SERVICE_ACCOUNT,
            Address.service(ChainID.EMULATOR),
            HexKeyProvider(key, 0, hash_algo),
        )
        return cls(project_config.default_config(), Loader(reader_writer), reader_writer, Accounts([service]))

    # =========================================================================
    # Persistence
    # =========================================================================

    def read_file(self, path: str) -> bytes:
        return self.reader_writer.read_file(path)

    def save(self, path: str) -> None:
        """Write the configuration, with current accounts, to ``path``."""
        self._config.accounts = self._accounts.to_config()
        self._loader.save(self._config, path)

    def save_default(self) -> None:
        self.save(project_config.local_path())

    def save_edited(self, paths: List[str]) -> None:
        """Write back to the file the configuration was loaded from."""
        self._config.accounts = self._accounts.to_config()
        self._loader.save_edited(self._config, paths)

    # =========================================================================
    # Accessors
    # =========================================================================

    def config(self) -> project_config.Config:
        return self._config

    def contracts(self) -> project_config.Contracts:
        return self._config.contracts

    def networks(self) -> project_config.Networks:
        return self._config.networks

    def deployments(self) -> project_config.Deployments:
        return self._config.deployments

    def emulators(self) -> project_config.Emulators:
        return self._config.emulators

    def accounts(self) -> Accounts:
        return self._accounts

    def emulator_service_account(self) -> Account:
        """
        Raises:
            NotFoundError: If there is no default emulator or its account.
        """
        emulator = self._config.emulators.default()
        if emulator is None:
            raise NotFoundError("emulator", DEFAULT_EMULATOR_NAME, "no default emulator account")
        return self._accounts.by_name(emulator.service_account)

    def set_emulator_key(self, private_key: PrivateKey) -> None:
        self._accounts.set_emulator_key(self.emulator_service_account().name, private_key)

    # =========================================================================
    # Per-network Views
    # =========================================================================

    def _contract_location(self, location: str) -> str:
        # Single-file configs resolve contract paths relative to that file
        if len(self._loader.loaded_paths) == 1:
            location = posixpath.join(posixpath.dirname(self._loader.loaded_paths[0]), location)
        return clean_path(location)

    def deployment_contracts_by_network(self, network: str) -> List[Contract]:
        """
        Contracts deployed on a network, bound to their target accounts.

        Raises:
            NotFoundError: If a referenced account or contract is missing.
            InvalidConfigError: If contract source cannot be read.
        """
        contracts = []
        for deployment in self._config.deployments.by_network(network):
            account = self._accounts.by_name(deployment.account)
            for entry in deployment.contracts:
                conf = self._config.contracts.by_name(entry.name)
                location = self._contract_location(conf.location)
                try:
                    code = self.reader_writer.read_file(location)
                except OSError as e:
                    raise InvalidConfigError(f"deployment by network failed to read contract code: {e}")

                contracts.append(Contract(
                    name=conf.name,
                    location=location,
                    code=code,
                    account_address=account.address,
                    account_name=account.name,
                    args=list(entry.args),
                ))
        return contracts

    def accounts_for_network(self, network: str) -> Accounts:
        """Accounts that hold deployments on the network."""
        return Accounts([
            account for account in self._accounts
            if self._config.deployments.by_account_and_network(account.name, network) is not None
        ])

    def aliases_for_network(self, network: str) -> Dict[str, Address]:
        """Aliased contracts on the network, keyed by location and by name."""
        aliases: Dict[str, Address] = {}
        for contract in self._config.contracts:
            alias = contract.alias(network)
            if alias is None:
                continue
            aliases[clean_path(contract.location)] = alias.address
            aliases[contract.name] = alias.address
        return aliases


# =============================================================================
# Key Extraction
# =============================================================================

def private_key_file(account_name: str, directory: str = "") -> str:
    """Default key file location of an account."""
    name = f"{account_name}.pkey"
    return posixpath.join(directory, name) if directory else name


def hex_key_accounts(state: State) -> List[str]:
    """Names of accounts whose key is stored inline."""
    return [a.name for a in state.accounts() if isinstance(a.key, HexKeyProvider)]


def add_to_ignore_file(ignore_path: str, entry: str, reader_writer: ReaderWriter) -> None:
    """Append an entry to an ignore file unless already listed."""
    current = ""
    if reader_writer.exists(ignore_path):
        current = reader_writer.read_file(ignore_path).decode()
        if entry in (line.strip() for line in current.splitlines()):
            return
    if current and not current.endswith("\n"):
        current += "\n"
    reader_writer.write_file(ignore_path, f"{current}{entry}\n".encode(), CONFIG_FILE_MODE)


def extract_key(state: State, account_name: str, directory: str = "") -> str:
    """
    Move an account's inline key into its own key file.

    The key file is written with mode 0600 and listed in ``.gitignore``
    and ``.cursorignore`` next to it. The account then refers to the file.

    Args:
        state: Project state; saved by the caller.
        account_name: Account whose key to extract.
        directory: Directory for the key and ignore files.

    Returns:
        Path of the key file.

    Raises:
        NotFoundError: If the account does not exist.
        InvalidKeyError: If the key is not an inline key.
        KeyFileExistsError: If the key file already exists.
    """
    account = state.accounts().by_name(account_name)
    if not isinstance(account.key, HexKeyProvider):
        raise InvalidKeyError(
            f"account '{account_name}' already uses a file-based key or has an unsupported key type"
        )

    private_key = account.key.private_key()
    path = private_key_file(account_name, directory)
    rw = state.reader_writer
    if rw.exists(path):
        raise KeyFileExistsError(path)

    rw.write_file(path, private_key.hex().encode(), KEY_FILE_MODE)

    key_name = posixpath.basename(path)
    for ignore in (".gitignore", ".cursorignore"):
        add_to_ignore_file(posixpath.join(directory, ignore) if directory else ignore, key_name, rw)

    account.key = FileKeyProvider(path, rw, account.key.index, account.key.sig_algo, account.key.hash_algo)
    state.accounts().add_or_update(account)
    return path
