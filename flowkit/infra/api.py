"""
Flowkit - Access Node REST Client

Gateway implementation over the Flow Access REST API.
"""

import base64
from typing import List, Optional, Tuple

import requests

from ..cadence import Value
from ..confirmation import SealTracker
from ..constants import DEFAULT_REST_HOSTS, SEAL_POLL_INTERVAL, SEAL_TIMEOUT
from ..core.gateway import Gateway
from ..core.transaction import ProposalKey, Transaction, TransactionSignature
from ..errors import GatewayTransportError, NetworkError
from ..models import (
    AccountKey,
    Address,
    Block,
    BlockEvents,
    Collection,
    FlowAccount,
    FlowEvent,
    HashAlgorithm,
    Identifier,
    SignatureAlgorithm,
    TransactionResult,
    TransactionStatus,
)


def _b64(data: bytes) -> str:
    return base64.b64encode(data).decode()


def _unb64(data: Optional[str]) -> bytes:
    return base64.b64decode(data) if data else b""


def rest_host(network_name: str, host: str) -> str:
    """
    REST endpoint for a configured network.

    Default networks map to the public REST endpoints; other hosts are
    used as given, with ``http://`` added when no scheme is present.
    """
    if network_name in DEFAULT_REST_HOSTS:
        return DEFAULT_REST_HOSTS[network_name]
    if host.startswith(("http://", "https://")):
        return host.rstrip("/")
    return f"http://{host}"


class HttpGateway(Gateway):
    """
    Client for the Flow Access REST API.

    Every call is a self-contained request, so one instance can be shared
    between threads.

    Example:
        gateway = HttpGateway("https://rest-testnet.onflow.org")
        block = gateway.get_latest_block()
    """

    def __init__(
        self,
        base_url: str,
        timeout: int = 30,
        poll_interval: float = SEAL_POLL_INTERVAL,
        seal_timeout: float = SEAL_TIMEOUT,
        session: Optional[requests.Session] = None
    ):
        """
        Initialize API client.

        Args:
            base_url: REST endpoint, e.g. ``http://127.0.0.1:8888``.
            timeout: Per-request timeout in seconds.
            poll_interval: Seconds between polls while waiting for seal.
            seal_timeout: Seconds to wait for seal.
            session: Session to use, mainly for tests.
        """
        self.base_url = base_url.rstrip("/")
        self.session = session or requests.Session()
        self.timeout = timeout
        self.tracker = SealTracker(self._fetch_result, poll_interval, seal_timeout)

    def _request(self, method: str, endpoint: str, operation: str, params=None, body=None):
        url = f"{self.base_url}/v1/{endpoint}"
        try:
            response = self.session.request(method, url, params=params, json=body, timeout=self.timeout)
        except requests.RequestException as e:
            raise GatewayTransportError(f"{operation} failed: {e}", endpoint=endpoint, operation=operation)

        if not response.ok:
            try:
                message = response.json().get("message", response.text)
            except ValueError:
                message = response.text
            raise GatewayTransportError(
                f"{operation} failed: {message}",
                status_code=response.status_code,
                endpoint=endpoint,
                operation=operation
            )

        try:
            return response.json()
        except ValueError as e:
            raise GatewayTransportError(f"{operation} failed: invalid response: {e}", endpoint=endpoint,
                                        operation=operation)

    def _get(self, endpoint: str, operation: str, params=None):
        return self._request("GET", endpoint, operation, params=params)

    def _post(self, endpoint: str, operation: str, body, params=None):
        return self._request("POST", endpoint, operation, params=params, body=body)

    # =========================================================================
    # Network
    # =========================================================================

    def ping(self) -> None:
        self._get("network/parameters", "ping")

    def secure_connection(self) -> bool:
        return self.base_url.startswith("https://")

    def get_latest_protocol_state_snapshot(self) -> bytes:
        raise NetworkError(
            "protocol state snapshots are not served by the REST access API, use the grpc transport"
        )

    # =========================================================================
    # Accounts
    # =========================================================================

    def get_account(self, address: Address) -> FlowAccount:
        data = self._get(f"accounts/{address.hex()}", "get account", {"expand": "keys,contracts"})
        return _parse_account(data)

    # =========================================================================
    # Blocks and Collections
    # =========================================================================

    def get_latest_block(self) -> Block:
        return self._get_block({"height": "sealed"}, "get latest block")

    def get_block_by_height(self, height: int) -> Block:
        return self._get_block({"height": str(height)}, "get block by height")

    def get_block_by_id(self, block_id: Identifier) -> Block:
        data = self._get(f"blocks/{block_id.hex()}", "get block by id", {"expand": "payload"})
        return _parse_block(data[0] if isinstance(data, list) else data)

    def _get_block(self, params: dict, operation: str) -> Block:
        params = dict(params, expand="payload")
        data = self._get("blocks", operation, params)
        if not data:
            raise GatewayTransportError(f"{operation} failed: block not found", operation=operation)
        return _parse_block(data[0])

    def get_collection(self, collection_id: Identifier) -> Collection:
        data = self._get(f"collections/{collection_id.hex()}", "get collection", {"expand": "transactions"})
        return Collection(
            id=Identifier.from_hex(data["id"]),
            transaction_ids=[Identifier.from_hex(tx["id"]) for tx in data.get("transactions", [])],
        )

    # =========================================================================
    # Events
    # =========================================================================

    def get_events(self, event_type: str, start_height: int, end_height: int) -> List[BlockEvents]:
        data = self._get("events", "get events", {
            "type": event_type,
            "start_height": str(start_height),
            "end_height": str(end_height),
        })
        return [
            BlockEvents(
                block_id=Identifier.from_hex(block["block_id"]),
                height=int(block["block_height"]),
                timestamp=block.get("block_timestamp"),
                events=[_parse_event(e) for e in block.get("events", [])],
            )
            for block in data or []
        ]

    # =========================================================================
    # Transactions
    # =========================================================================

    def get_transaction(self, txid: Identifier) -> Transaction:
        return _parse_transaction(self._get(f"transactions/{txid.hex()}", "get transaction"))

    def _fetch_result(self, txid: Identifier) -> TransactionResult:
        data = self._get(f"transaction_results/{txid.hex()}", "get transaction result")
        return _parse_result(data, txid)

    def get_transaction_result(self, txid: Identifier, wait_seal: bool = False) -> TransactionResult:
        if wait_seal:
            return self.tracker.wait_for_seal(txid)
        return self._fetch_result(txid)

    def _block_transaction_ids(self, block_id: Identifier) -> List[Identifier]:
        block = self.get_block_by_id(block_id)
        ids: List[Identifier] = []
        for collection_id in block.collection_ids:
            ids.extend(self.get_collection(collection_id).transaction_ids)
        return ids

    def get_transactions_by_block_id(self, block_id: Identifier) -> List[Transaction]:
        return [self.get_transaction(txid) for txid in self._block_transaction_ids(block_id)]

    def get_transaction_results_by_block_id(self, block_id: Identifier) -> List[TransactionResult]:
        return [self._fetch_result(txid) for txid in self._block_transaction_ids(block_id)]

    def get_system_transaction(self, block_id: Identifier) -> Tuple[Transaction, TransactionResult]:
        raise NetworkError(
            "system transactions are not served by the REST access API, use the grpc transport"
        )

    def send_signed_transaction(self, tx: Transaction) -> Identifier:
        data = self._post("transactions", "send transaction", _transaction_body(tx))
        return Identifier.from_hex(data["id"])

    # =========================================================================
    # Scripts
    # =========================================================================

    def _execute(self, code: bytes, args: List[Value], params: dict) -> Value:
        body = {"script": _b64(code), "arguments": [_b64(arg.encode()) for arg in args]}
        data = self._post("scripts", "execute script", body, params)
        return Value.decode(_unb64(data))

    def execute_script(self, code: bytes, args: List[Value]) -> Value:
        return self._execute(code, args, {"block_height": "sealed"})

    def execute_script_at_height(self, code: bytes, args: List[Value], height: int) -> Value:
        return self._execute(code, args, {"block_height": str(height)})

    def execute_script_at_id(self, code: bytes, args: List[Value], block_id: Identifier) -> Value:
        return self._execute(code, args, {"block_id": block_id.hex()})

    def close(self) -> None:
        self.session.close()

    def __repr__(self) -> str:
        return f"HttpGateway({self.base_url})"


# =============================================================================
# Response Parsing
# =============================================================================

def _parse_account(data: dict) -> FlowAccount:
    keys = [
        AccountKey(
            public_key=key["public_key"][2:] if key["public_key"].startswith("0x") else key["public_key"],
            sig_algo=SignatureAlgorithm.from_string(key["signing_algorithm"]),
            hash_algo=HashAlgorithm.from_string(key["hashing_algorithm"]),
            weight=int(key.get("weight", 0)),
            index=int(key.get("index", 0)),
            sequence_number=int(key.get("sequence_number", 0)),
            revoked=bool(key.get("revoked", False)),
        )
        for key in data.get("keys", [])
    ]
    contracts = {name: _unb64(code) for name, code in (data.get("contracts") or {}).items()}
    return FlowAccount(
        address=Address.from_hex(data["address"]),
        balance=int(data.get("balance", 0)),
        keys=keys,
        contracts=contracts,
    )


def _parse_block(data: dict) -> Block:
    header = data["header"]
    payload = data.get("payload") or {}
    return Block(
        id=Identifier.from_hex(header["id"]),
        height=int(header["height"]),
        parent_id=Identifier.from_hex(header["parent_id"]),
        timestamp=header.get("timestamp"),
        collection_ids=[
            Identifier.from_hex(g["collection_id"]) for g in payload.get("collection_guarantees", [])
        ],
    )


def _parse_event(data: dict) -> FlowEvent:
    payload = _unb64(data.get("payload"))
    return FlowEvent(
        type=data["type"],
        transaction_id=Identifier.from_hex(data["transaction_id"]),
        transaction_index=int(data.get("transaction_index", 0)),
        event_index=int(data.get("event_index", 0)),
        value=Value.decode(payload) if payload else None,
        payload=payload,
    )


def _parse_result(data: dict, txid: Identifier) -> TransactionResult:
    block_id = data.get("block_id")
    return TransactionResult(
        status=TransactionStatus.parse(data.get("status", "Unknown")),
        error_message=data.get("error_message", ""),
        events=[_parse_event(e) for e in data.get("events", [])],
        block_id=Identifier.from_hex(block_id) if block_id else None,
        block_height=int(data["block_height"]) if data.get("block_height") else None,
        computation_used=int(data.get("computation_used", 0)),
        transaction_id=txid,
    )


def _parse_transaction(data: dict) -> Transaction:
    tx = Transaction()
    tx.script = _unb64(data.get("script"))
    tx.arguments = [Value.decode(_unb64(arg)) for arg in data.get("arguments", [])]
    tx.reference_block_id = Identifier.from_hex(data["reference_block_id"])
    tx.gas_limit = int(data.get("gas_limit", 0))
    proposal = data.get("proposal_key", {})
    tx.proposal_key = ProposalKey(
        Address.from_hex(proposal.get("address", "0")),
        int(proposal.get("key_index", 0)),
        int(proposal.get("sequence_number", 0)),
    )
    tx.payer = Address.from_hex(data.get("payer", "0"))
    tx.authorizers = [Address.from_hex(a) for a in data.get("authorizers", [])]

    signer_list = tx.signer_list()

    def signature(s: dict) -> TransactionSignature:
        address = Address.from_hex(s["address"])
        index = signer_list.index(address) if address in signer_list else 0
        return TransactionSignature(address, index, int(s["key_index"]), _unb64(s["signature"]))

    tx.payload_signatures = [signature(s) for s in data.get("payload_signatures", [])]
    tx.envelope_signatures = [signature(s) for s in data.get("envelope_signatures", [])]
    return tx


def _transaction_body(tx: Transaction) -> dict:
    def signatures(sigs: List[TransactionSignature]) -> list:
        return [
            {"address": s.address.hex(), "key_index": str(s.key_index), "signature": _b64(s.signature)}
            for s in sigs
        ]

    return {
        "script": _b64(tx.script),
        "arguments": [_b64(arg.encode()) for arg in tx.arguments],
        "reference_block_id": tx.reference_block_id.hex(),
        "gas_limit": str(tx.gas_limit),
        "payer": tx.payer.hex(),
        "proposal_key": {
            "address": tx.proposal_key.address.hex(),
            "key_index": str(tx.proposal_key.key_index),
            "sequence_number": str(tx.proposal_key.sequence_number),
        },
        "authorizers": [a.hex() for a in tx.authorizers],
        "payload_signatures": signatures(tx.payload_signatures),
        "envelope_signatures": signatures(tx.envelope_signatures),
    }
