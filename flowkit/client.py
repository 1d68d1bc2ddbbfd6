"""
Flowkit - Project Engine

High-level interface over a project state, one network and a gateway.
This is the primary entry point for library users.
"""

import threading
from typing import Callable, List, Optional, Tuple, Union

from .accounts import Account
from .cadence import Value
from .config import Flags, Network
from .config.models import ContractDeployment, Contract as ContractConfig, Deployment as DeploymentConfig
from .constants import (
    ACCOUNT_CREATED_EVENT,
    ACCOUNT_KEY_WEIGHT_THRESHOLD,
    DEFAULT_GAS_LIMIT,
    EMULATOR,
    GRPC_TRANSPORT,
    REST_TRANSPORT,
)
from .core.deployment import Contract, Deployment
from .core.gateway import Gateway, block_query
from .core.imports import ImportReplacer
from .core.program import Program, Script
from .core.transaction import (
    Transaction,
    new_add_account_contract,
    new_create_account,
    new_remove_account_contract,
    new_update_account_contract,
)
from .errors import (
    ExistingContractError,
    FlowkitError,
    InvalidArgumentError,
    InvalidKeyError,
    MissingContractError,
    MissingNetworkError,
    MissingScriptLocationError,
    NetworkError,
    NotFoundError,
    ProjectDeploymentError,
    TransactionError,
    TransactionExecutionError,
    UpdateNoDiffError,
)
from .events import EventEmitter, EventType
from .infra import hd
from .infra.crypto import PrivateKey, decode_public_key, generate_private_key
from .infra.files import FileSystem
from .logging import LogLevel, StructuredLogger
from .models import AccountKey, Address, Block, BlockEvents, Collection, FlowAccount, Identifier, TransactionResult, is_compatible
from .roles import AccountRoles, AddressRoles
from .scanner import EventScanner, EventWorker
from .state import State


UpdateContract = Union[bool, Callable[[bytes, bytes], bool]]


def _should_update(update: UpdateContract, existing: bytes, new: bytes) -> bool:
    if callable(update):
        return bool(update(existing, new))
    return bool(update)


def default_gateway(network: Network, transport: str = GRPC_TRANSPORT, custom_host: bool = False) -> Gateway:
    """
    Gateway for a configured network.

    gRPC dials the network host directly, with TLS when the network has
    a key. REST maps default networks to their public REST endpoints.

    Raises:
        InvalidArgumentError: On an unknown transport.
    """
    from .infra.api import HttpGateway, rest_host
    from .infra.rpc import GrpcGateway

    if transport == GRPC_TRANSPORT:
        return GrpcGateway(network.host, secure=bool(network.key))
    if transport == REST_TRANSPORT:
        return HttpGateway(rest_host("" if custom_host else network.name, network.host))
    raise InvalidArgumentError(f"unknown transport: {transport}")


class Flowkit:
    """
    Project engine for one network.

    Example:
        state = State.load(["flow.json"], FileSystem())
        network = state.networks().by_name("emulator")
        flowkit = Flowkit(state, network, HttpGateway("http://127.0.0.1:8888"))

        contracts = flowkit.deploy_project(update=True)

        tx, result = flowkit.send_transaction(
            AccountRoles.single(state.accounts().by_name("emulator-account")),
            Script(code, args, "./transactions/tx.cdc"),
        )

        @flowkit.events.on(EventType.AFTER_DEPLOY_CONTRACT)
        def deployed(event):
            print(event.data["name"])
    """

    def __init__(
        self,
        state: Optional[State],
        network: Optional[Network],
        gateway: Gateway,
        logger: Optional[StructuredLogger] = None,
        events: Optional[EventEmitter] = None
    ):
        """
        Initialize the engine.

        Args:
            state: Project state; None for state-free use (queries, keys).
            network: Network that imports resolve against.
            gateway: Access node client.
            logger: Structured logger, a default one when None.
            events: Hook emitter, hooks are skipped when None.
        """
        self._state = state
        self.network = network
        self.gateway = gateway
        self.logger = logger or StructuredLogger(network=network.name if network else None)
        self.events = events

    @classmethod
    def from_flags(cls, flags: Flags, gateway_factory: Optional[Callable[[Network], Gateway]] = None) -> "Flowkit":
        """
        Build an engine from command flags.

        Args:
            flags: Parsed global flags.
            gateway_factory: Creates the gateway for the selected network;
                defaults to the gateway for ``flags.transport``.

        Returns:
            Configured Flowkit.
        """
        state = State.load(flags.config_paths, FileSystem())
        if flags.has_custom_host():
            network = Network(name=flags.network, host=flags.host, key=flags.host_network_key)
        else:
            network = state.networks().by_name(flags.network)

        if gateway_factory is None:
            gateway = default_gateway(network, flags.transport, custom_host=flags.has_custom_host())
        else:
            gateway = gateway_factory(network)

        logger = StructuredLogger(network=network.name, level=LogLevel.from_flag(flags.log))
        return cls(state, network, gateway, logger, EventEmitter())

    # =========================================================================
    # Helpers
    # =========================================================================

    def state(self) -> State:
        """
        Raises:
            NotFoundError: If the engine was created without a state.
        """
        if self._state is None:
            raise NotFoundError("configuration", "flow.json", "missing configuration, initialize it first")
        return self._state

    def _emit(self, event_type: EventType, **data) -> None:
        if self.events is not None:
            self.events.emit(event_type, data)

    def _replace_imports(self, program: Program, kind: str) -> Program:
        if not program.has_imports():
            return program
        if kind == "transaction":
            if self.network is None:
                raise TransactionError(
                    "missing network, specify which network to use to resolve imports in transaction code"
                )
            if not program.location:
                raise TransactionError("resolving imports in transactions not supported")
        else:
            if self.network is None:
                raise MissingNetworkError()
            if kind == "script" and not program.location:
                raise MissingScriptLocationError()

        state = self.state()
        replacer = ImportReplacer(
            state.deployment_contracts_by_network(self.network.name),
            state.aliases_for_network(self.network.name),
            state.accounts(),
        )
        return replacer.replace(program)

    def _prepare(self, tx: Transaction, account: Account) -> Transaction:
        """Reference the latest block, take the proposal key from chain and sign."""
        block = self.gateway.get_latest_block()
        proposer = self.gateway.get_account(account.address)
        tx.set_reference_block(block)
        tx.set_proposer(proposer, account.key.index)
        return tx.sign()

    def _send_and_wait(self, tx: Transaction, progress: str) -> Tuple[Identifier, TransactionResult]:
        self._emit(EventType.BEFORE_SEND, transaction=tx)
        txid = self.gateway.send_signed_transaction(tx)
        self._emit(EventType.AFTER_SEND, txid=txid.hex())

        self.logger.start_progress(progress)
        try:
            result = self.gateway.get_transaction_result(txid, wait_seal=True)
        finally:
            self.logger.stop_progress()
        self._emit(EventType.TX_SEALED, txid=txid.hex(), result=result)
        return txid, result

    # =========================================================================
    # Accounts
    # =========================================================================

    def ping(self) -> None:
        self.gateway.ping()

    def get_account(self, address: Address) -> FlowAccount:
        return self.gateway.get_account(address)

    def create_account(self, signer: Account, keys: List[AccountKey]) -> Tuple[FlowAccount, Identifier]:
        """
        Create an account holding the given keys, paid for by the signer.

        Args:
            signer: Account paying for and signing the creation.
            keys: Public keys; a zero weight means full weight.

        Returns:
            (new account, transaction id).

        Raises:
            InvalidKeyError: If a key is malformed or mixes incompatible
                algorithms.
            TransactionExecutionError: If the transaction failed on chain.
            TransactionError: If no AccountCreated event was emitted.
        """
        account_keys = []
        for key in keys:
            weight = key.weight or ACCOUNT_KEY_WEIGHT_THRESHOLD
            if not is_compatible(key.sig_algo, key.hash_algo):
                raise InvalidKeyError(
                    f"invalid account key: signing algorithm ({key.sig_algo.value}) and hashing algorithm "
                    f"({key.hash_algo.value}) are not a valid pair for a Flow account key"
                )
            try:
                decode_public_key(key.sig_algo, key.public_key)
            except InvalidKeyError as e:
                raise InvalidKeyError(f"invalid account key: {e.message}")
            account_keys.append(AccountKey(key.public_key, key.sig_algo, key.hash_algo, weight))

        with self.logger.operation("create_account") as op:
            tx = self._prepare(new_create_account(signer, account_keys), signer)
            op.set_txid(tx.id().hex())
            self.logger.info(f"Transaction ID: {tx.id().hex()}")

            try:
                txid, result = self._send_and_wait(tx, "Creating account...")
            except NetworkError as e:
                raise NetworkError(f"account creation transaction failed: {e}", e.details)

            if result.error:
                raise TransactionExecutionError(txid.hex(), result.error)

            created = [
                Address.from_hex(str(event.field("address").value))
                for event in result.events_by_type(ACCOUNT_CREATED_EVENT)
                if event.field("address") is not None
            ]
            if not created:
                raise TransactionError("new account address couldn't be fetched")

            account = self.gateway.get_account(created[0])

        self._emit(EventType.ACCOUNT_CREATED, address=account.address.hex(), txid=txid.hex())
        return account, txid

    # =========================================================================
    # Contracts
    # =========================================================================

    def add_contract(
        self,
        account: Account,
        script: Script,
        update: UpdateContract = False,
        remove_before_update: bool = False
    ) -> Tuple[Identifier, bool]:
        """
        Deploy a contract to an account, or update it.

        Args:
            account: Target account, also the signer.
            script: Contract source, init arguments and location.
            update: Whether an existing contract is updated, or a
                function of (existing, new) code deciding it.
            remove_before_update: Remove the existing contract and add it
                again instead of updating in place.

        Returns:
            (transaction id, whether an existing contract was updated).

        Raises:
            UpdateNoDiffError: If the deployed code is identical.
            ExistingContractError: If present and update was not requested.
            TransactionExecutionError: If the transaction failed on chain.
        """
        state = self.state()
        program = self._replace_imports(Program(script.code, script.args, script.location), "contract")
        name = program.name()
        code = program.code

        self.logger.start_progress(f"Checking contract '{name}' on account '{account.address}'...")
        try:
            flow_account = self.gateway.get_account(account.address)
        finally:
            self.logger.stop_progress()

        exists = name in flow_account.contracts
        existing = flow_account.contracts.get(name, b"")
        if exists and existing == code:
            raise UpdateNoDiffError(name)

        update_existing = _should_update(update, existing, code)
        if exists and not update_existing:
            raise ExistingContractError(name, account.name)

        removed = False
        if exists and remove_before_update:
            try:
                self.remove_contract(account, name)
                removed = True
            except FlowkitError as e:
                self.logger.warning(f"failed to remove contract {name} before update, updating in place", error=str(e))

        if removed:
            tx = new_add_account_contract(account, name, code, script.args)
        elif exists:
            tx = new_update_account_contract(account, name, code)
        else:
            tx = new_add_account_contract(account, name, code, script.args)

        tx = self._prepare(tx, account)
        action = "updating" if exists else "deploying"
        try:
            txid, result = self._send_and_wait(
                tx, f"Contract '{name}' {action} on the account '{account.address}'."
            )
        except NetworkError as e:
            raise NetworkError(f"failed to send transaction to deploy a contract: {e}", e.details)

        if result.error:
            raise TransactionExecutionError(txid.hex(), result.error)

        deployment = state.deployments().by_account_and_network(account.name, self.network.name) \
            if self.network else None
        entry = ContractDeployment(name, list(script.args))
        if deployment is not None:
            deployment.add_contract(entry)
        elif self.network is not None:
            state.deployments().add_or_update(DeploymentConfig(self.network.name, account.name, [entry]))

        if name not in state.contracts():
            state.contracts().add_or_update(ContractConfig(name, script.location))

        return txid, exists and update_existing

    def remove_contract(self, account: Account, name: str) -> Identifier:
        """
        Remove a contract from an account.

        Raises:
            MissingContractError: If the account has no such contract.
            TransactionExecutionError: If the transaction failed on chain.
        """
        flow_account = self.gateway.get_account(account.address)
        if name not in flow_account.contracts:
            raise MissingContractError(name, sorted(flow_account.contracts))

        tx = self._prepare(new_remove_account_contract(account, name), account)
        txid, result = self._send_and_wait(tx, f"Removing Contract {name} from {account.address}...")
        if result.error:
            raise TransactionExecutionError(txid.hex(), result.error)
        return txid

    def deploy_project(self, update: UpdateContract = False) -> List[Contract]:
        """
        Deploy every contract of the network in dependency order.

        Each contract's imports are rewritten to the addresses of the
        contracts deployed before it. Failures are collected per contract
        instead of stopping the run.

        Args:
            update: Update policy for contracts already deployed.

        Returns:
            Contracts in the order they were processed.

        Raises:
            ProjectDeploymentError: Holding every per-contract failure.
        """
        if self.network is None:
            raise MissingNetworkError()

        state = self.state()
        contracts = state.deployment_contracts_by_network(self.network.name)
        ordered = Deployment(contracts, state.aliases_for_network(self.network.name)).sort()

        self.logger.info(
            f"Deploying {len(ordered)} contracts for accounts: "
            f"{','.join(state.accounts_for_network(self.network.name).names())}"
        )

        remove_first = self.network.name == EMULATOR and update is not False
        errors = {}
        with self.logger.operation("deploy_project") as op:
            for contract in ordered:
                target = state.accounts().by_name(contract.account_name)
                self._emit(EventType.BEFORE_DEPLOY_CONTRACT, name=contract.name, address=contract.account_address.hex())

                try:
                    txid, updated = self.add_contract(
                        target,
                        Script(contract.code, contract.args, contract.location),
                        update,
                        remove_first,
                    )
                except UpdateNoDiffError:
                    self.logger.info(f"{contract.name} -> 0x{contract.account_address} [skipping, no changes found]")
                    self._emit(EventType.DEPLOY_SKIPPED, name=contract.name)
                    continue
                except FlowkitError as e:
                    self.logger.error(f"failed to deploy contract {contract.name}", error=e)
                    self._emit(EventType.ON_ERROR, name=contract.name, error=e)
                    errors[contract.name] = e
                    continue

                suffix = " [updated]" if updated else ""
                self.logger.info(f"{contract.name} -> 0x{contract.account_address} ({txid.hex()}){suffix}")
                self._emit(EventType.AFTER_DEPLOY_CONTRACT, name=contract.name, txid=txid.hex(), updated=updated)

            op.add_detail("contracts", len(ordered))
            if errors:
                raise ProjectDeploymentError(errors)

        self.logger.info("All contracts deployed successfully")
        return ordered

    # =========================================================================
    # Scripts
    # =========================================================================

    def execute_script(self, script: Script, query: Optional[str] = None) -> Value:
        """
        Run a read-only script.

        Args:
            script: Code, arguments and location for import resolution.
            query: ``latest``, a block height or a block id.

        Raises:
            MissingNetworkError: If imports need resolving without a network.
            MissingScriptLocationError: If imports need resolving without
                a location.
        """
        program = self._replace_imports(Program(script.code, script.args, script.location), "script")
        kind, value = block_query(query)
        if kind == "height":
            return self.gateway.execute_script_at_height(program.code, script.args, value)
        if kind == "id":
            return self.gateway.execute_script_at_id(program.code, script.args, value)
        return self.gateway.execute_script(program.code, script.args)

    # =========================================================================
    # Blocks and Events
    # =========================================================================

    def get_block(self, query: Optional[str] = "latest") -> Block:
        """
        Fetch a block by ``latest``, height or id.

        Raises:
            InvalidArgumentError: If the query is none of those.
            NetworkError: If the block cannot be fetched.
        """
        try:
            kind, value = block_query(query)
        except InvalidArgumentError:
            raise InvalidArgumentError(
                f'invalid query: {query}, valid are: "latest", block height or block ID'
            )

        try:
            if kind == "height":
                block = self.gateway.get_block_by_height(value)
            elif kind == "id":
                block = self.gateway.get_block_by_id(value)
            else:
                block = self.gateway.get_latest_block()
        except NetworkError as e:
            raise NetworkError(f"error fetching block: {e.message}", e.details)

        if block is None:
            raise NotFoundError("block", str(query), "block not found")
        return block

    def get_collection(self, collection_id: Identifier) -> Collection:
        return self.gateway.get_collection(collection_id)

    def get_events(
        self,
        names: List[str],
        start_height: int,
        end_height: int,
        worker: Optional[EventWorker] = None,
        cancel: Optional[threading.Event] = None
    ) -> List[BlockEvents]:
        """Events of the given types in the inclusive range; see EventScanner."""
        self.logger.start_progress("Fetching events...")
        try:
            return EventScanner(self.gateway).get_events(names, start_height, end_height, worker, cancel)
        finally:
            self.logger.stop_progress()

    # =========================================================================
    # Transactions
    # =========================================================================

    def get_transaction_by_id(self, txid: Identifier, wait_seal: bool = False) -> Tuple[Transaction, TransactionResult]:
        self.logger.start_progress("Fetching Transaction...")
        try:
            tx = self.gateway.get_transaction(txid)
            if wait_seal:
                self.logger.start_progress("Waiting for transaction to be sealed...")
            result = self.gateway.get_transaction_result(txid, wait_seal)
        finally:
            self.logger.stop_progress()
        return tx, result

    def get_transactions_by_block_id(self, block_id: Identifier) -> Tuple[List[Transaction], List[TransactionResult]]:
        txs = self.gateway.get_transactions_by_block_id(block_id)
        results = self.gateway.get_transaction_results_by_block_id(block_id)
        return txs, results

    def get_system_transaction(self, block_id: Identifier) -> Tuple[Transaction, TransactionResult]:
        return self.gateway.get_system_transaction(block_id)

    def build_transaction(
        self,
        addresses: AddressRoles,
        proposer_key_index: int,
        script: Script,
        gas_limit: int = DEFAULT_GAS_LIMIT
    ) -> Transaction:
        """
        Build an unsigned transaction.

        Raises:
            NetworkError: If the latest block or proposer cannot be fetched.
            AuthorizersMismatchError: If the prepare block takes a different
                number of authorizers.
        """
        try:
            latest = self.gateway.get_latest_block()
        except NetworkError as e:
            raise NetworkError(f"failed to get latest sealed block: {e.message}", e.details)
        proposer = self.gateway.get_account(addresses.proposer)

        tx = Transaction()
        tx.set_payer(addresses.payer)
        tx.set_gas_limit(gas_limit)
        tx.set_reference_block(latest)

        program = self._replace_imports(Program(script.code, script.args, script.location), "transaction")

        tx.set_proposer(proposer, proposer_key_index)
        tx.set_script_with_args(program.code, script.args)
        tx.add_authorizers(addresses.authorizers)
        return tx

    def sign_transaction_payload(self, signer: Account, payload) -> Transaction:
        """Decode a hex payload, add the signer's signature and return it."""
        tx = Transaction.from_payload(payload)
        tx.set_signer(signer)
        return tx.sign()

    def send_signed_transaction(self, tx: Transaction) -> Tuple[Transaction, TransactionResult]:
        txid, result = self._send_and_wait(tx, "Waiting for transaction to be sealed...")
        return tx, result

    def send_transaction(
        self,
        roles: AccountRoles,
        script: Script,
        gas_limit: int = DEFAULT_GAS_LIMIT
    ) -> Tuple[Transaction, TransactionResult]:
        """
        Build, sign by every role and send, then wait for the seal.

        Payload signers sign first, the payer signs the envelope last.

        Returns:
            (transaction, sealed result). An execution error is reported in
            the result, not raised.
        """
        with self.logger.operation("send_transaction") as op:
            tx = self.build_transaction(roles.address_roles(), roles.proposer.key.index, script, gas_limit)
            for signer in roles.signers():
                tx.set_signer(signer)
                tx.sign()

            op.set_txid(tx.id().hex())
            self.logger.info(f"Transaction ID: {tx.id().hex()}")
            _, result = self._send_and_wait(tx, "Waiting for transaction to be sealed...")
        return tx, result

    # =========================================================================
    # Keys
    # =========================================================================

    def generate_key(self, sig_algo, seed: str = "") -> PrivateKey:
        """
        Generate a private key, from a seed when given.

        Raises:
            InvalidKeyError: If the seed is shorter than 32 bytes.
        """
        try:
            return generate_private_key(sig_algo, seed.encode() if seed else None)
        except InvalidKeyError as e:
            raise InvalidKeyError(f"failed to generate private key: {e.message}")

    def generate_mnemonic_key(self, sig_algo, derivation_path: str = "") -> Tuple[PrivateKey, str]:
        """New mnemonic and the key derived from it."""
        return hd.generate_mnemonic_key(sig_algo, derivation_path or None)

    def derive_private_key_from_mnemonic(self, mnemonic: str, sig_algo, derivation_path: str = "") -> PrivateKey:
        return hd.derive_private_key_from_mnemonic(mnemonic, sig_algo, derivation_path or None)
