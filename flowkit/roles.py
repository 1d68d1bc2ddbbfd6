"""
Flowkit - Transaction Roles

Accounts acting as proposer, authorizers and payer of a transaction,
and the order in which they sign.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import List

from .accounts import Account
from .models import Address


class Role(Enum):
    """
    Roles an account can hold in a transaction.

    PROPOSER: Provides the sequence number that advances.
    AUTHORIZER: Grants the transaction access to its account.
    PAYER: Pays fees and signs the envelope.
    """
    PROPOSER = "proposer"
    AUTHORIZER = "authorizer"
    PAYER = "payer"


@dataclass(frozen=True)
class AddressRoles:
    """Transaction roles by account address."""
    proposer: Address
    authorizers: List[Address]
    payer: Address


@dataclass
class AccountRoles:
    """
    Transaction roles by account.

    Example:
        roles = AccountRoles(proposer=alice, authorizers=[charlie], payer=bob)
        for account in roles.signers():   # alice, charlie, bob
            ...
    """
    proposer: Account
    authorizers: List[Account] = field(default_factory=list)
    payer: Account = None

    def __post_init__(self):
        if self.payer is None:
            self.payer = self.proposer

    @classmethod
    def single(cls, account: Account) -> "AccountRoles":
        """One account fulfilling every role."""
        return cls(proposer=account, authorizers=[account], payer=account)

    def address_roles(self) -> AddressRoles:
        return AddressRoles(
            proposer=self.proposer.address,
            authorizers=[a.address for a in self.authorizers],
            payer=self.payer.address,
        )

    def signers(self) -> List[Account]:
        """
        Unique accounts that must sign, payer last.

        Accounts are deduplicated by address in the order proposer,
        authorizers, payer.
        """
        signers: List[Account] = []

        def add_if_unique(account: Account) -> None:
            if all(s.address != account.address for s in signers):
                signers.append(account)

        add_if_unique(self.proposer)
        for authorizer in self.authorizers:
            add_if_unique(authorizer)

        # Payer signs the envelope, so it must come after every payload signer
        signers[:] = [s for s in signers if s.address != self.payer.address]
        signers.append(self.payer)
        return signers

    def roles_of(self, address: Address) -> List[Role]:
        roles = []
        if self.proposer.address == address:
            roles.append(Role.PROPOSER)
        if any(a.address == address for a in self.authorizers):
            roles.append(Role.AUTHORIZER)
        if self.payer.address == address:
            roles.append(Role.PAYER)
        return roles
