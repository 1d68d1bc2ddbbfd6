"""
Flowkit - Deployment Planning

Orders project contracts so every contract is deployed after the
contracts it imports.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional

import networkx as nx

from ..cadence import Value
from ..errors import ContractConflictError, CyclicImportError, UnresolvedDependencyError
from ..models import Address
from .imports import absolute_path, clean_path
from .program import Program


@dataclass
class Contract:
    """A contract bound for one account on one network."""
    name: str
    location: str
    code: bytes
    account_address: Address
    account_name: str = ""
    args: List[Value] = field(default_factory=list)
    index: int = 0
    dependencies: Dict[str, "Contract"] = field(default_factory=dict)
    aliases: Dict[str, Address] = field(default_factory=dict)
    _program: Optional[Program] = field(default=None, repr=False, compare=False)

    @property
    def program(self) -> Program:
        if self._program is None:
            self._program = Program(self.code, self.args, self.location)
        return self._program

    def add_dependency(self, token: str, dependency: "Contract") -> None:
        self.dependencies[token] = dependency


class Deployment:
    """
    Dependency graph of the contracts deployed to one network.

    Example:
        plan = Deployment(contracts, aliases)
        for contract in plan.sort():
            deploy(contract)
    """

    def __init__(self, contracts: List[Contract], aliases: Optional[Dict[str, Address]] = None):
        """
        Initialize the plan.

        Args:
            contracts: Contracts in declaration order; the order breaks ties.
            aliases: Location or name of already deployed contracts.
        """
        self.aliases = dict(aliases or {})
        self._contracts: List[Contract] = []
        self._by_location: Dict[str, Contract] = {}
        self._by_name: Dict[str, Contract] = {}

        for contract in contracts:
            self._add(contract)

    def _add(self, contract: Contract) -> None:
        contract.index = len(self._contracts)
        contract.dependencies = {}
        self._contracts.append(contract)
        self._by_location[clean_path(contract.location)] = contract
        self._by_name[contract.name] = contract

    @property
    def contracts(self) -> List[Contract]:
        return list(self._contracts)

    def contract_by_name(self, name: str) -> Optional[Contract]:
        return self._by_name.get(name)

    def _check_conflicts(self) -> None:
        seen = set()
        for contract in self._contracts:
            if contract.name in seen:
                raise ContractConflictError(contract.name)
            seen.add(contract.name)

    def _build_dependencies(self) -> None:
        for contract in self._contracts:
            for imp in contract.program.imports():
                import_path = absolute_path(contract.location, imp.token)

                dependency = self._by_location.get(import_path) or self._by_name.get(imp.token)
                if dependency is not None:
                    contract.add_dependency(imp.token, dependency)
                    continue

                if import_path in self.aliases or imp.token in self.aliases:
                    continue

                raise UnresolvedDependencyError(contract.name, imp.token)

    def graph(self) -> nx.DiGraph:
        """Directed graph on contract indexes with edges dependency -> dependent."""
        graph = nx.DiGraph()
        graph.add_nodes_from(c.index for c in self._contracts)
        for contract in self._contracts:
            for dependency in contract.dependencies.values():
                graph.add_edge(dependency.index, contract.index)
        return graph

    def sort(self) -> List[Contract]:
        """
        Contracts in deployment order.

        Ties are broken by declaration order, so the same input always
        yields the same order.

        Raises:
            ContractConflictError: If a contract name appears twice.
            UnresolvedDependencyError: If an import is neither in the set
                nor aliased.
            CyclicImportError: If imports form a cycle.
        """
        self._check_conflicts()
        self._build_dependencies()

        graph = self.graph()
        try:
            order = list(nx.lexicographical_topological_sort(graph, key=lambda index: index))
        except nx.NetworkXUnfeasible:
            raise CyclicImportError(self._cycles(graph))

        return [self._contracts[index] for index in order]

    def _cycles(self, graph: nx.DiGraph) -> List[List[str]]:
        cycles = []
        for component in nx.strongly_connected_components(graph):
            members = sorted(component)
            if len(members) > 1 or graph.has_edge(members[0], members[0]):
                cycles.append([self._contracts[index].name for index in members])
        cycles.sort(key=lambda names: self._by_name[names[0]].index)
        return cycles
