"""
Flowkit Test Configuration

Shared fixtures and test utilities.
"""

import json
from pathlib import Path
import sys

import pytest

# Ensure flowkit is importable
sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from flowkit.accounts import Account
from flowkit.cadence import Composite, Value
from flowkit.confirmation import SealTracker
from flowkit.core.gateway import Gateway
from flowkit.core import templates
from flowkit.core.transaction import Transaction
from flowkit.errors import NetworkError
from flowkit.infra.files import ReaderWriter
from flowkit.models import (
    AccountKey,
    Address,
    Block,
    BlockEvents,
    Collection,
    FlowAccount,
    FlowEvent,
    Identifier,
    SignatureAlgorithm,
    TransactionResult,
    TransactionStatus,
)
from flowkit.providers import HexKeyProvider


# =============================================================================
# Test Keys (DO NOT USE IN PRODUCTION)
# =============================================================================

SERVICE_KEY = "1" * 64
ALICE_KEY = "2" * 64
BOB_KEY = "3" * 64
CHARLIE_KEY = "4" * 64

# Emulator addresses (valid on the emulator chain)
SERVICE_ADDRESS = "f8d6e0586b0a20c7"
ALICE_ADDRESS = "01cf0e2f2f715450"
BOB_ADDRESS = "179b6b1cb6755e31"
CHARLIE_ADDRESS = "f3fcd2c1a78f5eee"
NEW_ACCOUNT_ADDRESS = "e03daebed8ca0615"
FUNGIBLE_TOKEN_ADDRESS = "ee82856bf20e2aa6"


def make_account(name: str, address: str, private_key: str, index: int = 0) -> Account:
    """Project account with an inline P-256 key."""
    return Account(name, Address.from_hex(address), HexKeyProvider.from_hex(private_key, index))


@pytest.fixture
def service_account():
    return make_account("emulator-account", SERVICE_ADDRESS, SERVICE_KEY)


@pytest.fixture
def alice():
    return make_account("alice", ALICE_ADDRESS, ALICE_KEY)


@pytest.fixture
def bob():
    return make_account("bob", BOB_ADDRESS, BOB_KEY)


@pytest.fixture
def charlie():
    return make_account("charlie", CHARLIE_ADDRESS, CHARLIE_KEY)


# =============================================================================
# In-memory Files
# =============================================================================

class InMemoryReaderWriter(ReaderWriter):
    """ReaderWriter over a dict, recording permission bits."""

    def __init__(self, files=None):
        self.files = {path: data.encode() if isinstance(data, str) else data for path, data in (files or {}).items()}
        self.modes = {}

    def read_file(self, path: str) -> bytes:
        if path not in self.files:
            raise FileNotFoundError(path)
        return self.files[path]

    def write_file(self, path: str, data: bytes, mode: int) -> None:
        self.files[path] = data
        self.modes[path] = mode

    def exists(self, path: str) -> bool:
        return path in self.files


@pytest.fixture
def reader_writer():
    return InMemoryReaderWriter()


HELLO_SOURCE = 'pub contract Hello { init() { log("hi") } }'


def project_config(extra_contracts=None, deployments=None, aliases=None) -> str:
    """flow.json for the emulator with the service account deploying Hello."""
    contracts = {"Hello": "./Hello.cdc"}
    contracts.update(extra_contracts or {})
    for name, address in (aliases or {}).items():
        contracts[name] = {"source": contracts.get(name, f"./{name}.cdc"), "aliases": {"emulator": address}}

    return json.dumps({
        "emulators": {"default": {"port": 3569, "serviceAccount": "emulator-account"}},
        "contracts": contracts,
        "networks": {"emulator": "127.0.0.1:3569", "testnet": "access.devnet.nodes.onflow.org:9000"},
        "accounts": {
            "emulator-account": {"address": SERVICE_ADDRESS, "key": SERVICE_KEY},
            "alice": {"address": ALICE_ADDRESS, "key": ALICE_KEY},
        },
        "deployments": {"emulator": deployments or {"emulator-account": ["Hello"]}},
    })


@pytest.fixture
def project_files():
    """Files of a project deploying Hello to the service account."""
    return InMemoryReaderWriter({
        "flow.json": project_config(),
        "Hello.cdc": HELLO_SOURCE,
    })


# =============================================================================
# Fake Gateway
# =============================================================================

def _bump_id(counter: int) -> Identifier:
    return Identifier(counter.to_bytes(32, "big"))


class FakeGateway(Gateway):
    """
    In-memory ledger applying the account and contract templates.

    Results are reported pending on the first poll and sealed after, so
    waiting for a seal goes through the tracker.
    """

    def __init__(self, accounts=None):
        self.accounts = {}
        for account in accounts or []:
            self.add_account(account)
        self.height = 100
        self.sent = []
        self.transactions = {}
        self.results = {}
        self.polls = {}
        self.scripts = []
        self.event_queries = []
        self.events = {}
        self.fail_events_at = None
        self.failing_contracts = set()
        self.created_address = Address.from_hex(NEW_ACCOUNT_ADDRESS)
        self.tracker = SealTracker(self._fetch_result, poll_interval=0, sleep=lambda _: None)

    def add_account(self, account: Account) -> FlowAccount:
        key = account.key.private_key()
        flow_account = FlowAccount(
            address=account.address,
            keys=[AccountKey(key.public_key_hex, key.sig_algo, account.key.hash_algo, index=account.key.index)],
        )
        self.accounts[account.address] = flow_account
        return flow_account

    def contract_code(self, address: str, name: str) -> bytes:
        return self.accounts[Address.from_hex(address)].contracts[name]

    # ---- Gateway ----

    def ping(self) -> None:
        pass

    def get_account(self, address: Address) -> FlowAccount:
        if address not in self.accounts:
            raise NetworkError(f"account {address} not found")
        return self.accounts[address]

    def get_latest_block(self) -> Block:
        return Block(id=_bump_id(self.height), height=self.height)

    def get_block_by_height(self, height: int) -> Block:
        return Block(id=_bump_id(height), height=height)

    def get_block_by_id(self, block_id: Identifier) -> Block:
        return Block(id=block_id, height=int.from_bytes(block_id.value, "big"))

    def get_collection(self, collection_id: Identifier) -> Collection:
        return Collection(id=collection_id)

    def get_events(self, event_type, start_height, end_height):
        self.event_queries.append((event_type, start_height, end_height))
        if self.fail_events_at is not None and start_height <= self.fail_events_at <= end_height:
            raise NetworkError("event query failed")
        return [
            BlockEvents(block_id=_bump_id(h), height=h, events=self.events.get((event_type, h), []))
            for h in range(start_height, end_height + 1)
            if (event_type, h) in self.events
        ]

    def get_transaction(self, txid: Identifier):
        return self.transactions[txid]

    def _fetch_result(self, txid: Identifier) -> TransactionResult:
        self.polls[txid] = self.polls.get(txid, 0) + 1
        result = self.results[txid]
        if self.polls[txid] == 1:
            return TransactionResult(status=TransactionStatus.PENDING, transaction_id=txid)
        return result

    def get_transaction_result(self, txid: Identifier, wait_seal: bool = False) -> TransactionResult:
        if wait_seal:
            return self.tracker.wait_for_seal(txid)
        return self._fetch_result(txid)

    def get_transactions_by_block_id(self, block_id: Identifier) -> list:
        return list(self.transactions.values())

    def get_transaction_results_by_block_id(self, block_id: Identifier):
        return list(self.results.values())

    def get_system_transaction(self, block_id: Identifier):
        tx = Transaction().set_script_with_args(b"transaction { execute {} }")
        tx.set_reference_block(self.get_block_by_id(block_id))
        return tx, TransactionResult(status=TransactionStatus.SEALED, transaction_id=tx.id(), block_id=block_id)

    def send_signed_transaction(self, tx) -> Identifier:
        txid = tx.id()
        self.sent.append(tx)
        self.transactions[txid] = tx
        proposer = self.accounts.get(tx.proposal_key.address)
        if proposer is not None:
            proposer.keys[tx.proposal_key.key_index].sequence_number += 1
        self.results[txid] = self._execute(tx, txid)
        return txid

    def _execute(self, tx, txid: Identifier) -> TransactionResult:
        script = tx.script.decode()
        args = [arg.value for arg in tx.arguments]
        sealed = TransactionResult(status=TransactionStatus.SEALED, transaction_id=txid)

        if script == templates.CREATE_ACCOUNT:
            address = self.created_address
            keys = [AccountKey(v.value, SignatureAlgorithm.ECDSA_P256, index=i) for i, v in enumerate(args[0])]
            self.accounts[address] = FlowAccount(address=address, keys=keys)
            event = Value("Event", Composite("flow.AccountCreated", [("address", Value.address(address))]))
            sealed.events.append(FlowEvent("flow.AccountCreated", txid, value=event))
            return sealed

        if "signer.contracts" not in script:
            return sealed

        name = args[0]
        if name in self.failing_contracts:
            sealed.error_message = f"contract {name} failed to deploy"
            return sealed

        account = self.accounts[tx.authorizers[0]]
        if "contracts.remove" in script:
            account.contracts.pop(name, None)
        else:
            account.contracts[name] = bytes.fromhex(args[1])
        return sealed

    def execute_script(self, code: bytes, args) -> Value:
        self.scripts.append(("latest", code, args))
        return Value("Int", "42")

    def execute_script_at_height(self, code: bytes, args, height: int) -> Value:
        self.scripts.append((height, code, args))
        return Value("Int", "42")

    def execute_script_at_id(self, code: bytes, args, block_id: Identifier) -> Value:
        self.scripts.append((block_id, code, args))
        return Value("Int", "42")

    def get_latest_protocol_state_snapshot(self) -> bytes:
        return b""


@pytest.fixture
def gateway(service_account, alice, bob, charlie):
    return FakeGateway([service_account, alice, bob, charlie])


# =============================================================================
# Marker Helpers
# =============================================================================

def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line("markers", "unit: Unit tests (no external dependencies)")
    config.addinivalue_line("markers", "integration: Integration tests (mocked services)")
    config.addinivalue_line("markers", "security: Security-focused tests")
