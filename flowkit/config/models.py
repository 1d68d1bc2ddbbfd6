"""
Flowkit - Configuration Model

Project configuration: emulators, contracts, networks, accounts and
deployments, each kept in declaration order.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Generic, Iterator, List, Optional, Tuple, TypeVar

from ..cadence import Value
from ..constants import (
    DEFAULT_EMULATOR_NAME,
    DEFAULT_EMULATOR_PORT,
    DEFAULT_EMULATOR_SERVICE_ACCOUNT,
    DEFAULT_NETWORK_HOSTS,
    EMULATOR,
    TESTNET,
    MAINNET,
)
from ..errors import InvalidAddressError, InvalidConfigError, NotFoundError
from ..models import Address, ChainID, HashAlgorithm, SignatureAlgorithm


class KeyType(Enum):
    """Storage kinds for account keys."""
    HEX = "hex"
    FILE = "file"
    KMS = "google-kms"
    BIP44 = "bip44"

    @classmethod
    def parse(cls, value: str) -> "KeyType":
        try:
            return cls(value.strip().lower())
        except ValueError:
            raise InvalidConfigError(f"invalid key type: {value}")


@dataclass
class KeyConfig:
    """Persisted form of an account key."""
    type: KeyType = KeyType.HEX
    index: int = 0
    sig_algo: SignatureAlgorithm = SignatureAlgorithm.ECDSA_P256
    hash_algo: HashAlgorithm = HashAlgorithm.SHA3_256
    private_key: str = ""
    location: str = ""
    resource_id: str = ""
    mnemonic: str = ""
    derivation_path: str = ""


@dataclass
class Account:
    """Named account entry."""
    name: str
    address: Address
    key: KeyConfig = field(default_factory=KeyConfig)


@dataclass
class Network:
    """Access node entry; ``fork`` names the network it mirrors."""
    name: str
    host: str = ""
    key: str = ""
    fork: str = ""


@dataclass
class Alias:
    """Existing on-chain deployment of a contract on one network."""
    network: str
    address: Address


@dataclass
class Contract:
    """Contract source entry with its per-network aliases."""
    name: str
    location: str
    aliases: List[Alias] = field(default_factory=list)

    def alias(self, network: str) -> Optional[Alias]:
        for alias in self.aliases:
            if alias.network == network:
                return alias
        return None

    def is_aliased(self, network: str) -> bool:
        return self.alias(network) is not None

    def add_alias(self, network: str, address: Address) -> None:
        for alias in self.aliases:
            if alias.network == network:
                alias.address = address
                return
        self.aliases.append(Alias(network, address))


@dataclass
class ContractDeployment:
    """Contract reference inside a deployment, with init arguments."""
    name: str
    args: List[Value] = field(default_factory=list)


@dataclass
class Deployment:
    """Contracts an account receives on a network."""
    network: str
    account: str
    contracts: List[ContractDeployment] = field(default_factory=list)

    def add_contract(self, contract: ContractDeployment) -> None:
        for i, existing in enumerate(self.contracts):
            if existing.name == contract.name:
                self.contracts[i] = contract
                return
        self.contracts.append(contract)

    def has_contract(self, name: str) -> bool:
        return any(c.name == name for c in self.contracts)


@dataclass
class Emulator:
    """Local emulator entry."""
    name: str
    port: int = DEFAULT_EMULATOR_PORT
    service_account: str = DEFAULT_EMULATOR_SERVICE_ACCOUNT


# =============================================================================
# Collections
# =============================================================================

T = TypeVar("T")


class Collection(Generic[T]):
    """
    Ordered collection of config entries unique by key.

    ``add_or_update`` replaces an entry in place, keeping its position.
    """

    kind = "entry"

    def __init__(self, items: Optional[List[T]] = None):
        self._items: List[T] = []
        for item in items or []:
            self.add_or_update(item)

    def _key(self, item: T):
        return item.name

    def by_name(self, name: str) -> T:
        """
        Look up an entry by name.

        Raises:
            NotFoundError: If no entry has that name.
        """
        for item in self._items:
            if self._key(item) == name:
                return item
        raise NotFoundError(self.kind, name)

    def get(self, name: str) -> Optional[T]:
        for item in self._items:
            if self._key(item) == name:
                return item
        return None

    def add_or_update(self, item: T) -> None:
        key = self._key(item)
        for i, existing in enumerate(self._items):
            if self._key(existing) == key:
                self._items[i] = item
                return
        self._items.append(item)

    def remove(self, name) -> None:
        """
        Remove an entry by key.

        Raises:
            NotFoundError: If no entry has that key.
        """
        for i, existing in enumerate(self._items):
            if self._key(existing) == name:
                del self._items[i]
                return
        raise NotFoundError(self.kind, str(name))

    def names(self) -> List[str]:
        return [self._key(item) for item in self._items]

    def filter(self, predicate: Callable[[T], bool]) -> List[T]:
        return [item for item in self._items if predicate(item)]

    def __iter__(self) -> Iterator[T]:
        return iter(list(self._items))

    def __len__(self) -> int:
        return len(self._items)

    def __contains__(self, name) -> bool:
        return self.get(name) is not None

    def __eq__(self, other) -> bool:
        if not isinstance(other, Collection):
            return NotImplemented
        return self._items == other._items

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self._items!r})"


class Accounts(Collection[Account]):
    kind = "account"

    def by_address(self, address: Address) -> Account:
        """
        First account with the given address.

        Raises:
            NotFoundError: If no account has that address.
        """
        for account in self._items:
            if account.address == address:
                return account
        raise NotFoundError("account", str(address))


class Networks(Collection[Network]):
    kind = "network"


class Contracts(Collection[Contract]):
    kind = "contract"

    def by_location(self, location: str) -> Optional[Contract]:
        for contract in self._items:
            if contract.location == location:
                return contract
        return None


class Emulators(Collection[Emulator]):
    kind = "emulator"

    def default(self) -> Optional[Emulator]:
        return self.get(DEFAULT_EMULATOR_NAME)


class Deployments(Collection[Deployment]):
    kind = "deployment"

    def _key(self, item: Deployment) -> Tuple[str, str]:
        return (item.network, item.account)

    def by_network(self, network: str) -> List[Deployment]:
        return [d for d in self._items if d.network == network]

    def by_account_and_network(self, account: str, network: str) -> Optional[Deployment]:
        return self.get((network, account))

    def names(self) -> List[str]:
        return [f"{d.network}/{d.account}" for d in self._items]


# =============================================================================
# Config
# =============================================================================

@dataclass
class Config:
    """Complete project configuration."""
    emulators: Emulators = field(default_factory=Emulators)
    contracts: Contracts = field(default_factory=Contracts)
    networks: Networks = field(default_factory=Networks)
    accounts: Accounts = field(default_factory=Accounts)
    deployments: Deployments = field(default_factory=Deployments)

    def default_emulator(self) -> Emulator:
        emulator = self.emulators.default()
        if emulator is None:
            raise NotFoundError("emulator", DEFAULT_EMULATOR_NAME)
        return emulator

    def emulator_service_account(self) -> Account:
        """
        Account configured as the default emulator's service account.

        Raises:
            NotFoundError: If the emulator or its account is missing.
        """
        return self.accounts.by_name(self.default_emulator().service_account)

    def merge(self, other: "Config") -> None:
        """Override entries of this config with same-key entries of ``other``."""
        for collection, overrides in (
            (self.emulators, other.emulators),
            (self.contracts, other.contracts),
            (self.networks, other.networks),
            (self.accounts, other.accounts),
            (self.deployments, other.deployments),
        ):
            for item in overrides:
                collection.add_or_update(item)

    # =========================================================================
    # Networks
    # =========================================================================

    def fork_root(self, network: str) -> str:
        """
        Follow ``fork`` links to the network that is not a fork.

        Raises:
            NotFoundError: If a fork source is not defined.
            InvalidConfigError: If the fork links form a cycle.
        """
        seen = [network]
        current = self.networks.by_name(network)
        while current.fork:
            if current.fork in seen:
                chain = " -> ".join(seen + [current.fork])
                raise InvalidConfigError(f"network fork cycle detected: {chain}")
            seen.append(current.fork)
            current = self.networks.by_name(current.fork)
        return current.name

    def chain_for_network(self, network: str) -> Optional[ChainID]:
        """Chain of a network, following forks; None for custom networks."""
        root = self.fork_root(network) if network in self.networks else network
        return ChainID.from_network(root)

    def resolve_forks(self) -> None:
        """Copy the source host into forked networks that have none."""
        for network in self.networks:
            if network.fork and not network.host:
                network.host = self.networks.by_name(self.fork_root(network.name)).host

    # =========================================================================
    # Validation
    # =========================================================================

    def validate(self) -> None:
        """
        Check cross references between collections.

        Raises:
            NotFoundError: If a deployment, alias or emulator references a
                missing entry.
            InvalidAddressError: If an alias is not valid on its network.
            InvalidConfigError: If network forks form a cycle.
        """
        for network in self.networks:
            if network.fork:
                self.fork_root(network.name)

        for contract in self.contracts:
            for alias in contract.aliases:
                if alias.network not in self.networks:
                    raise NotFoundError(
                        "network", alias.network,
                        f"alias network {alias.network} for contract {contract.name} does not exist"
                    )
                self._validate_alias_address(alias)

        for emulator in self.emulators:
            if emulator.service_account not in self.accounts:
                raise NotFoundError(
                    "account", emulator.service_account,
                    f"emulator {emulator.name} service account {emulator.service_account} does not exist"
                )

        for deployment in self.deployments:
            if deployment.network not in self.networks:
                raise NotFoundError("network", deployment.network,
                                    f"deployment network {deployment.network} does not exist")
            if deployment.account not in self.accounts:
                raise NotFoundError("account", deployment.account,
                                    f"deployment account {deployment.account} does not exist")
            for contract in deployment.contracts:
                if contract.name not in self.contracts:
                    raise NotFoundError("contract", contract.name,
                                        f"deployment contract {contract.name} does not exist")

    def _validate_alias_address(self, alias: Alias) -> None:
        chain = self.chain_for_network(alias.network)
        if chain is not None:
            if not alias.address.is_valid(chain):
                raise InvalidAddressError(alias.address.hex(), chain.value)
        elif alias.address.chain() is None:
            raise InvalidAddressError(alias.address.hex())


def default_config() -> Config:
    """Config holding the default emulator and the three public networks."""
    conf = Config()
    conf.emulators.add_or_update(Emulator(DEFAULT_EMULATOR_NAME))
    for name in (EMULATOR, TESTNET, MAINNET):
        conf.networks.add_or_update(Network(name, DEFAULT_NETWORK_HOSTS[name]))
    return conf
