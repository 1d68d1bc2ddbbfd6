"""
Flowkit - Import Resolution

Maps symbolic Cadence imports to the addresses they refer to on one
network.
"""

import posixpath
from typing import Dict, Iterable, Optional

from ..errors import UnresolvedImportError
from ..models import Address
from .program import ImportKind, Program


def clean_path(path: str) -> str:
    """Lexically normalize a slash-separated path."""
    return posixpath.normpath(path.replace("\\", "/")) if path else path


def absolute_path(base_location: str, relative: str) -> str:
    """Resolve an import path against the directory of the importing file."""
    if posixpath.isabs(relative):
        return clean_path(relative)
    return clean_path(posixpath.join(posixpath.dirname(base_location.replace("\\", "/")), relative))


class ImportReplacer:
    """
    Rewrites symbolic imports to addresses.

    Lookups, first hit wins:
    1. file path, relative to the importing program's directory
    2. contract name
    3. account name

    Example:
        replacer = ImportReplacer(contracts, aliases, accounts)
        program = replacer.replace(Program(code, location="./contracts/B.cdc"))
    """

    def __init__(self, contracts: Iterable, aliases: Optional[Dict[str, Address]] = None,
                 accounts: Optional[Iterable] = None):
        """
        Initialize the replacer.

        Args:
            contracts: Deployable contracts with ``name``, ``location`` and
                ``account_address``.
            aliases: Location or name to address of already deployed
                contracts.
            accounts: Accounts with ``name`` and ``address``.
        """
        self._contract_locations: Dict[str, Address] = {}
        self._account_locations: Dict[str, Address] = {}

        for contract in contracts:
            self._contract_locations[clean_path(contract.location)] = contract.account_address
            self._contract_locations[contract.name] = contract.account_address

        for location, address in (aliases or {}).items():
            self._contract_locations[clean_path(location)] = address

        for account in accounts or []:
            self._account_locations[account.name] = account.address

    def resolve(self, program: Program, token: str, kind: ImportKind) -> Optional[Address]:
        """Address for one import token, or None."""
        if kind == ImportKind.FILE_PATH:
            address = self._contract_locations.get(absolute_path(program.location, token))
            if address is not None:
                return address
        address = self._contract_locations.get(token)
        if address is not None:
            return address
        return self._account_locations.get(token)

    def replace(self, program: Program) -> Program:
        """
        Rewrite every symbolic import of the program.

        Raises:
            UnresolvedImportError: Naming the first token that maps to nothing
                or is still symbolic after rewriting.
        """
        for imp in program.imports():
            address = self.resolve(program, imp.token, imp.kind)
            if address is None:
                raise UnresolvedImportError(imp.token, program.location or None)
            program.replace_import(imp.token, address)

        remaining = program.imports()
        if remaining:
            raise UnresolvedImportError(remaining[0].token, program.location or None)
        return program
