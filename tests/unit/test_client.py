"""
Unit tests for the Flowkit engine.

These tests run the engine against the in-memory gateway from conftest,
covering project deployment, contract management, account creation,
scripts, blocks and multi-role transactions.
"""

from unittest.mock import Mock

import pytest

from flowkit.client import Flowkit, default_gateway
from flowkit.config import Flags, Network
from flowkit.constants import REST_TRANSPORT
from flowkit.core.program import Script
from flowkit.errors import (
    AuthorizersMismatchError,
    ExistingContractError,
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
)
from flowkit.events import EventEmitter, create_audit_hook
from flowkit.infra.rpc import GrpcGateway
from flowkit.logging import create_capture_logger
from flowkit.models import AccountKey, Address, SignatureAlgorithm, TransactionResult, TransactionStatus
from flowkit.roles import AccountRoles, AddressRoles
from flowkit.state import State

from tests.conftest import (
    ALICE_ADDRESS,
    FUNGIBLE_TOKEN_ADDRESS,
    HELLO_SOURCE,
    NEW_ACCOUNT_ADDRESS,
    SERVICE_ADDRESS,
    FakeGateway,
    InMemoryReaderWriter,
    project_config,
)


SINGLE_AUTH = b"transaction { prepare(signer: &Account) { } }"
TWO_AUTH = b"transaction { prepare(a: &Account, b: &Account) { } }"
HELLO_V2 = 'pub contract Hello { init() { log("hello again") } }'


# =============================================================================
# Helper Fixtures
# =============================================================================

class Harness:
    """Engine wired to captured logs and recorded hooks."""

    def __init__(self, files: InMemoryReaderWriter, gateway: FakeGateway, network: str = "emulator"):
        self.files = files
        self.gateway = gateway
        self.entries = []
        self.hooks = []

        self.state = State.load(["flow.json"], files)
        events = EventEmitter()
        events.add_global_handler(create_audit_hook(self.hooks.append))
        self.engine = Flowkit(
            self.state,
            self.state.networks().by_name(network) if network else None,
            gateway,
            create_capture_logger(self.entries.append),
            events,
        )

    def messages(self):
        return [e["message"] for e in self.entries]

    def hook_types(self):
        return [h["event_type"] for h in self.hooks]

    def account(self, name: str):
        return self.state.accounts().by_name(name)


@pytest.fixture
def harness(project_files, gateway):
    return Harness(project_files, gateway)


def chain_project(gateway) -> Harness:
    """Alice deploys B, C and D; A is aliased on the emulator."""
    files = InMemoryReaderWriter({
        "flow.json": project_config(
            extra_contracts={"B": "./B.cdc", "C": "./C.cdc", "D": "./D.cdc"},
            deployments={"alice": ["D", "C", "B"]},
            aliases={"A": FUNGIBLE_TOKEN_ADDRESS},
        ),
        "B.cdc": 'import A from "./A.cdc" ; pub contract B{}',
        "C.cdc": 'import A from "./A.cdc" ; pub contract C{}',
        "D.cdc": 'import C from "./C.cdc" ; pub contract D{}',
    })
    return Harness(files, gateway)


# =============================================================================
# Project Deployment
# =============================================================================

class TestDeployProject:
    """Tests for deploying every contract of a network."""

    @pytest.mark.unit
    def test_deploy_single_contract(self, harness):
        """A contract without imports is deployed unchanged."""
        deployed = harness.engine.deploy_project()

        assert [c.name for c in deployed] == ["Hello"]
        assert harness.gateway.contract_code(SERVICE_ADDRESS, "Hello") == HELLO_SOURCE.encode()
        messages = harness.messages()
        assert "Deploying 1 contracts for accounts: emulator-account" in messages
        assert any(m.startswith(f"Hello -> 0x{SERVICE_ADDRESS} (") for m in messages)
        assert messages[-1] == "All contracts deployed successfully"

    @pytest.mark.unit
    def test_deploy_chain_with_alias(self, gateway):
        """D waits for C, other contracts keep their deployment order."""
        harness = chain_project(gateway)

        deployed = harness.engine.deploy_project()

        assert [c.name for c in deployed] == ["C", "D", "B"]
        code = {name: gateway.contract_code(ALICE_ADDRESS, name).decode() for name in ("B", "C", "D")}
        assert code["B"].startswith(f"import A from 0x{FUNGIBLE_TOKEN_ADDRESS}")
        assert code["C"].startswith(f"import A from 0x{FUNGIBLE_TOKEN_ADDRESS}")
        assert code["D"].startswith(f"import C from 0x{ALICE_ADDRESS}")

    @pytest.mark.unit
    def test_hooks_in_order(self, harness):
        """Deploying a contract runs the deploy and send hooks."""
        harness.engine.deploy_project()
        assert harness.hook_types() == [
            "before_deploy_contract",
            "before_send",
            "after_send",
            "tx_sealed",
            "after_deploy_contract",
        ]

    @pytest.mark.unit
    def test_skip_unchanged(self, harness):
        """Redeploying identical code is skipped."""
        harness.engine.deploy_project()
        sent = len(harness.gateway.sent)

        deployed = harness.engine.deploy_project(update=True)

        assert [c.name for c in deployed] == ["Hello"]
        assert len(harness.gateway.sent) == sent
        assert f"Hello -> 0x{SERVICE_ADDRESS} [skipping, no changes found]" in harness.messages()
        assert "deploy_skipped" in harness.hook_types()

    @pytest.mark.unit
    def test_existing_without_update(self, harness):
        """Changed contracts are not replaced unless update is requested."""
        harness.engine.deploy_project()
        harness.files.files["Hello.cdc"] = HELLO_V2.encode()

        with pytest.raises(ProjectDeploymentError) as exc:
            harness.engine.deploy_project()

        assert isinstance(exc.value.errors["Hello"], ExistingContractError)
        assert "on_error" in harness.hook_types()
        assert harness.gateway.contract_code(SERVICE_ADDRESS, "Hello") == HELLO_SOURCE.encode()

    @pytest.mark.unit
    def test_update_on_emulator_removes_first(self, harness):
        """Emulator updates remove the contract and add it again."""
        harness.engine.deploy_project()
        harness.files.files["Hello.cdc"] = HELLO_V2.encode()

        harness.engine.deploy_project(update=True)

        scripts = [tx.script.decode() for tx in harness.gateway.sent[-2:]]
        assert "contracts.remove" in scripts[0]
        assert "contracts.add" in scripts[1]
        assert harness.gateway.contract_code(SERVICE_ADDRESS, "Hello") == HELLO_V2.encode()
        assert any(m.endswith("[updated]") for m in harness.messages())

    @pytest.mark.unit
    def test_failures_are_collected(self, gateway):
        """One failing contract does not stop the others."""
        harness = chain_project(gateway)
        gateway.failing_contracts = {"B"}

        with pytest.raises(ProjectDeploymentError) as exc:
            harness.engine.deploy_project()

        assert list(exc.value.errors) == ["B"]
        assert isinstance(exc.value.errors["B"], TransactionExecutionError)
        assert "C" in gateway.accounts[Address.from_hex(ALICE_ADDRESS)].contracts

    @pytest.mark.unit
    def test_requires_network(self, project_files, gateway):
        """Deployment targets a network."""
        harness = Harness(project_files, gateway, network=None)
        with pytest.raises(MissingNetworkError):
            harness.engine.deploy_project()


# =============================================================================
# Contracts
# =============================================================================

class TestContracts:
    """Tests for adding, updating and removing single contracts."""

    @pytest.mark.unit
    def test_add_records_deployment(self, harness):
        """A new contract is added to the project deployments."""
        alice = harness.account("alice")
        txid, updated = harness.engine.add_contract(alice, Script(HELLO_SOURCE.encode(), [], "./Hello.cdc"))

        assert not updated
        assert harness.gateway.transactions[txid].authorizers == [alice.address]
        deployment = harness.state.deployments().by_account_and_network("alice", "emulator")
        assert [c.name for c in deployment.contracts] == ["Hello"]

    @pytest.mark.unit
    def test_update_in_place(self, harness):
        """Updates without removal use the update template."""
        alice = harness.account("alice")
        harness.engine.add_contract(alice, Script(HELLO_SOURCE.encode(), [], "./Hello.cdc"))

        _, updated = harness.engine.add_contract(alice, Script(HELLO_V2.encode(), [], "./Hello.cdc"), update=True)

        assert updated
        assert "contracts.update" in harness.gateway.sent[-1].script.decode()
        assert harness.gateway.contract_code(ALICE_ADDRESS, "Hello") == HELLO_V2.encode()

    @pytest.mark.unit
    def test_update_decided_by_callback(self, harness):
        """A callback sees old and new code and can refuse."""
        alice = harness.account("alice")
        harness.engine.add_contract(alice, Script(HELLO_SOURCE.encode(), [], "./Hello.cdc"))
        seen = []

        def refuse(existing, new):
            seen.append((existing, new))
            return False

        with pytest.raises(ExistingContractError):
            harness.engine.add_contract(alice, Script(HELLO_V2.encode(), [], "./Hello.cdc"), update=refuse)
        assert seen == [(HELLO_SOURCE.encode(), HELLO_V2.encode())]

    @pytest.mark.unit
    def test_remove(self, harness):
        """Removal deletes the contract from the account."""
        alice = harness.account("alice")
        harness.engine.add_contract(alice, Script(HELLO_SOURCE.encode(), [], "./Hello.cdc"))

        harness.engine.remove_contract(alice, "Hello")

        assert "Hello" not in harness.gateway.accounts[alice.address].contracts

    @pytest.mark.unit
    def test_remove_missing(self, harness):
        """Removing an absent contract lists what is deployed."""
        with pytest.raises(MissingContractError) as exc:
            harness.engine.remove_contract(harness.account("alice"), "Nope")
        assert exc.value.available == []


# =============================================================================
# Accounts
# =============================================================================

class TestCreateAccount:
    """Tests for account creation."""

    @pytest.mark.unit
    def test_create_account(self, harness):
        """The new address is read from the AccountCreated event."""
        service = harness.account("emulator-account")
        public_key = harness.account("alice").key.private_key().public_key_hex

        account, txid = harness.engine.create_account(service, [AccountKey(public_key, weight=0)])

        assert account.address == Address.from_hex(NEW_ACCOUNT_ADDRESS)
        weights = harness.gateway.transactions[txid].arguments[3]
        assert weights.value[0].value == "1000.00000000"
        assert f"Transaction ID: {txid.hex()}" in harness.messages()
        assert "account_created" in harness.hook_types()

    @pytest.mark.unit
    def test_invalid_public_key(self, harness):
        """Malformed keys fail before anything is sent."""
        with pytest.raises(InvalidKeyError) as exc:
            harness.engine.create_account(harness.account("emulator-account"), [AccountKey("abcd")])
        assert str(exc.value).startswith("invalid account key")
        assert harness.gateway.sent == []

    @pytest.mark.unit
    def test_missing_event(self, harness):
        """Without an AccountCreated event the address is unknown."""
        harness.gateway._execute = lambda tx, txid: TransactionResult(status=TransactionStatus.SEALED, transaction_id=txid)
        public_key = harness.account("alice").key.private_key().public_key_hex

        with pytest.raises(TransactionError):
            harness.engine.create_account(harness.account("emulator-account"), [AccountKey(public_key)])


# =============================================================================
# Scripts and Blocks
# =============================================================================

class TestScripts:
    """Tests for script execution."""

    @pytest.mark.unit
    def test_imports_resolved(self, harness):
        """Script imports resolve against the network's contracts."""
        code = b'import "Hello"\naccess(all) fun main(): Int { return 42 }'

        value = harness.engine.execute_script(Script(code, [], "scripts/main.cdc"))

        assert value.to_python() == 42
        query, sent_code, _ = harness.gateway.scripts[-1]
        assert query == "latest"
        assert sent_code.decode().startswith(f"import Hello from 0x{SERVICE_ADDRESS}")

    @pytest.mark.unit
    def test_query_by_height(self, harness):
        """A numeric query runs at that height."""
        harness.engine.execute_script(Script(b"access(all) fun main() {}"), "12")
        assert harness.gateway.scripts[-1][0] == 12

    @pytest.mark.unit
    def test_imports_need_location(self, harness):
        """Scripts with imports need a location."""
        with pytest.raises(MissingScriptLocationError):
            harness.engine.execute_script(Script(b'import "Hello"\naccess(all) fun main() {}'))

    @pytest.mark.unit
    def test_imports_need_network(self, project_files, gateway):
        """Scripts with imports need a network."""
        harness = Harness(project_files, gateway, network=None)
        with pytest.raises(MissingNetworkError):
            harness.engine.execute_script(Script(b'import "Hello"\naccess(all) fun main() {}', [], "s.cdc"))


class TestBlocks:
    """Tests for block queries."""

    @pytest.mark.unit
    @pytest.mark.parametrize("query,height", [("latest", 100), ("", 100), ("7", 7), (8, 8)])
    def test_queries(self, harness, query, height):
        """Latest, height and id queries are dispatched."""
        assert harness.engine.get_block(query).height == height

    @pytest.mark.unit
    def test_by_id(self, harness):
        """Hex ids fetch by id."""
        block_id = (5).to_bytes(32, "big").hex()
        assert harness.engine.get_block(block_id).height == 5

    @pytest.mark.unit
    def test_invalid_query(self, harness):
        """Queries that are no height or id are rejected."""
        with pytest.raises(InvalidArgumentError) as exc:
            harness.engine.get_block("yesterday")
        assert "valid are" in str(exc.value)

    @pytest.mark.unit
    def test_network_failure(self, harness):
        """Gateway failures are wrapped."""
        harness.gateway.get_latest_block = Mock(side_effect=NetworkError("connection refused"))
        with pytest.raises(NetworkError) as exc:
            harness.engine.get_block()
        assert str(exc.value).startswith("error fetching block")

    @pytest.mark.unit
    def test_system_transaction(self, harness):
        """The system transaction of a block comes with its sealed result."""
        block = harness.engine.get_block(7)

        tx, result = harness.engine.get_system_transaction(block.id)

        assert tx.payer.is_empty
        assert tx.reference_block_id == block.id
        assert result.status == TransactionStatus.SEALED
        assert result.block_id == block.id


# =============================================================================
# Transactions
# =============================================================================

class TestTransactions:
    """Tests for building and sending transactions."""

    @pytest.mark.unit
    def test_send_with_distinct_roles(self, harness, bob, charlie):
        """Proposer, payer and authorizer all sign and the result is sealed."""
        alice = harness.account("alice")
        roles = AccountRoles(proposer=alice, authorizers=[charlie], payer=bob)

        tx, result = harness.engine.send_transaction(roles, Script(SINGLE_AUTH))

        assert result.status == TransactionStatus.SEALED
        assert harness.gateway.sent[-1] is tx
        assert [s.address for s in tx.payload_signatures] == [alice.address, charlie.address]
        assert [s.address for s in tx.envelope_signatures] == [bob.address]
        assert harness.gateway.accounts[alice.address].keys[0].sequence_number == 1

    @pytest.mark.unit
    def test_authorizer_mismatch(self, harness):
        """The prepare block decides the authorizer count."""
        alice = Address.from_hex(ALICE_ADDRESS)
        with pytest.raises(AuthorizersMismatchError):
            harness.engine.build_transaction(AddressRoles(alice, [alice], alice), 0, Script(TWO_AUTH))

    @pytest.mark.unit
    def test_transaction_imports_need_location(self, harness):
        """Transactions with imports need a location."""
        alice = Address.from_hex(ALICE_ADDRESS)
        code = b'import "Hello"\ntransaction { prepare(signer: &Account) {} }'
        with pytest.raises(TransactionError):
            harness.engine.build_transaction(AddressRoles(alice, [alice], alice), 0, Script(code))

    @pytest.mark.unit
    def test_cosign_payload(self, harness):
        """A built payload is signed by each party then sent."""
        alice, service = harness.account("alice"), harness.account("emulator-account")
        tx = harness.engine.build_transaction(
            AddressRoles(alice.address, [alice.address], service.address), 0, Script(SINGLE_AUTH)
        )

        partial = harness.engine.sign_transaction_payload(alice, tx.hex())
        signed = harness.engine.sign_transaction_payload(service, partial.hex())
        _, result = harness.engine.send_signed_transaction(signed)

        assert result.is_sealed
        assert [s.address for s in signed.envelope_signatures] == [service.address]

    @pytest.mark.unit
    def test_get_transaction_by_id(self, harness):
        """Sent transactions can be fetched with their result."""
        tx, _ = harness.engine.send_transaction(AccountRoles.single(harness.account("alice")), Script(SINGLE_AUTH))

        fetched, result = harness.engine.get_transaction_by_id(tx.id(), wait_seal=True)

        assert fetched is tx
        assert result.is_sealed


# =============================================================================
# Keys and Construction
# =============================================================================

class TestEngineSetup:
    """Tests for construction and key helpers."""

    @pytest.mark.unit
    def test_state_required(self, gateway):
        """Engines without state cannot reach project data."""
        with pytest.raises(NotFoundError):
            Flowkit(None, None, gateway).state()

    @pytest.mark.unit
    def test_generate_key_from_seed(self, gateway):
        """Seeds make key generation deterministic."""
        engine = Flowkit(None, None, gateway)
        seed = "s" * 32
        assert engine.generate_key(SignatureAlgorithm.ECDSA_P256, seed) == \
            engine.generate_key(SignatureAlgorithm.ECDSA_P256, seed)

    @pytest.mark.unit
    def test_generate_key_short_seed(self, gateway):
        """Short seeds are rejected."""
        with pytest.raises(InvalidKeyError) as exc:
            Flowkit(None, None, gateway).generate_key(SignatureAlgorithm.ECDSA_P256, "short")
        assert str(exc.value).startswith("failed to generate private key")

    @pytest.mark.unit
    def test_mnemonic_keys(self, gateway):
        """Mnemonic keys derive back to the same key."""
        engine = Flowkit(None, None, gateway)
        key, mnemonic = engine.generate_mnemonic_key(SignatureAlgorithm.ECDSA_P256)
        assert engine.derive_private_key_from_mnemonic(mnemonic, SignatureAlgorithm.ECDSA_P256) == key

    @pytest.mark.integration
    def test_from_flags(self, tmp_path, gateway):
        """Flags select the configuration and network."""
        (tmp_path / "flow.json").write_text(project_config())
        (tmp_path / "Hello.cdc").write_text(HELLO_SOURCE)
        flags = Flags(network="emulator", log="debug", config_paths=[str(tmp_path / "flow.json")])

        engine = Flowkit.from_flags(flags, gateway_factory=lambda network: gateway)

        assert engine.network.name == "emulator"
        assert engine.gateway is gateway
        assert [c.name for c in engine.deploy_project()] == ["Hello"]


class TestDefaultGateway:
    """Tests for transport selection."""

    @pytest.mark.unit
    def test_grpc_is_default(self):
        """Configured hosts are dialed over gRPC, with TLS when keyed."""
        plain = default_gateway(Network("testnet", "access.devnet.nodes.onflow.org:9000"))
        keyed = default_gateway(Network("mainnet", "access.mainnet.nodes.onflow.org:9000", key="ab" * 64))
        try:
            assert isinstance(plain, GrpcGateway)
            assert plain.host == "access.devnet.nodes.onflow.org:9000"
            assert not plain.secure_connection()
            assert keyed.secure_connection()
        finally:
            plain.close()
            keyed.close()

    @pytest.mark.unit
    def test_rest(self):
        """REST maps default networks to their public endpoints."""
        network = Network("testnet", "access.devnet.nodes.onflow.org:9000")

        assert default_gateway(network, REST_TRANSPORT).base_url == "https://rest-testnet.onflow.org"
        assert default_gateway(network, REST_TRANSPORT, custom_host=True).base_url == \
            "http://access.devnet.nodes.onflow.org:9000"

    @pytest.mark.unit
    def test_unknown_transport(self):
        """Unknown transports are rejected."""
        with pytest.raises(InvalidArgumentError):
            default_gateway(Network("emulator", "127.0.0.1:3569"), "carrier-pigeon")
