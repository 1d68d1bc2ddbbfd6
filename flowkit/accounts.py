"""
Flowkit - Account Registry

Named, addressed and keyed principals the engine signs with.
"""

from typing import Iterator, List, Optional

from . import config
from .errors import NotFoundError
from .infra.crypto import PrivateKey, Signer
from .infra.files import ReaderWriter
from .models import Address
from .providers import HexKeyProvider, KeyProvider, key_from_config


class Account:
    """An account the project can sign for."""

    def __init__(self, name: str, address: Address, key: KeyProvider):
        self.name = name
        self.address = address
        self.key = key

    @classmethod
    def from_config(cls, conf: config.Account, reader_writer: Optional[ReaderWriter] = None) -> "Account":
        return cls(conf.name, conf.address, key_from_config(conf.key, reader_writer))

    def to_config(self) -> config.Account:
        return config.Account(name=self.name, address=self.address, key=self.key.to_config())

    def signer(self) -> Signer:
        return self.key.signer()

    def __eq__(self, other) -> bool:
        if not isinstance(other, Account):
            return NotImplemented
        return (
            self.name == other.name
            and self.address == other.address
            and self.key.to_config() == other.key.to_config()
        )

    def __repr__(self) -> str:
        return f"Account(name={self.name}, address=0x{self.address}, key={self.key!r})"


class Accounts:
    """
    Ordered registry keyed by account name.

    Adding an account with an existing name replaces it in place; several
    accounts may share an address.
    """

    def __init__(self, accounts: Optional[List[Account]] = None):
        self._accounts: List[Account] = []
        for account in accounts or []:
            self.add_or_update(account)

    @classmethod
    def from_config(cls, conf: config.Config, reader_writer: Optional[ReaderWriter] = None) -> "Accounts":
        return cls([Account.from_config(a, reader_writer) for a in conf.accounts])

    def to_config(self) -> config.Accounts:
        return config.Accounts([a.to_config() for a in self._accounts])

    def by_name(self, name: str) -> Account:
        """
        Raises:
            NotFoundError: If no account has that name.
        """
        for account in self._accounts:
            if account.name == name:
                return account
        raise NotFoundError("account", name, f"could not find account with name {name} in the configuration")

    def by_address(self, address: Address) -> Account:
        """
        Raises:
            NotFoundError: If no account has that address.
        """
        for account in self._accounts:
            if account.address == address:
                return account
        raise NotFoundError("account", str(address), f"could not find account with address {address} in the configuration")

    def add_or_update(self, account: Account) -> None:
        for i, existing in enumerate(self._accounts):
            if existing.name == account.name:
                self._accounts[i] = account
                return
        self._accounts.append(account)

    def remove(self, name: str) -> None:
        """
        Raises:
            NotFoundError: If no account has that name.
        """
        account = self.by_name(name)
        self._accounts.remove(account)

    def names(self) -> List[str]:
        return [a.name for a in self._accounts]

    def set_emulator_key(self, service_name: str, private_key: PrivateKey) -> None:
        """
        Rotate the service account key, keeping its index and hash algorithm.

        Args:
            service_name: Name of the emulator service account.
            private_key: New key.
        """
        account = self.by_name(service_name)
        account.key = HexKeyProvider(private_key, account.key.index, account.key.hash_algo)

    def __iter__(self) -> Iterator[Account]:
        return iter(list(self._accounts))

    def __len__(self) -> int:
        return len(self._accounts)
