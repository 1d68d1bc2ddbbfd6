"""
Flowkit - Access Node gRPC Client

Gateway implementation over the Flow Access gRPC API. This is the API the
network hosts in ``flow.json`` point at, and the only one that serves
system transactions and protocol state snapshots.
"""

import time
from datetime import datetime, timezone
from typing import Callable, List, Optional, Tuple

import grpc

from ..cadence import Value
from ..confirmation import SealTracker
from ..constants import ADDRESS_LENGTH, GRPC_MAX_MESSAGE_SIZE, GRPC_RETRIES, SEAL_POLL_INTERVAL, SEAL_TIMEOUT
from ..core.gateway import Gateway
from ..core.transaction import ProposalKey, Transaction, TransactionSignature
from ..errors import GatewayTransportError
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
from . import proto


class GrpcGateway(Gateway):
    """
    Client for the Flow Access gRPC API.

    gRPC channels are thread-safe, so one instance can be shared between
    threads.

    Example:
        gateway = GrpcGateway("access.devnet.nodes.onflow.org:9000")
        tx, result = gateway.get_system_transaction(block.id)
    """

    def __init__(
        self,
        host: str,
        secure: bool = False,
        timeout: float = 30,
        poll_interval: float = SEAL_POLL_INTERVAL,
        seal_timeout: float = SEAL_TIMEOUT,
        channel: Optional[grpc.Channel] = None,
        sleep: Callable[[float], None] = time.sleep
    ):
        """
        Initialize API client.

        Args:
            host: Access node ``host:port``.
            secure: Use TLS.
            timeout: Per-call deadline in seconds.
            poll_interval: Seconds between polls while waiting for seal.
            seal_timeout: Seconds to wait for seal.
            channel: Channel to use, mainly for tests.
            sleep: Backoff sleep, mainly for tests.
        """
        self.host = host
        self.secure = secure
        self.timeout = timeout
        self._sleep = sleep
        if channel is None:
            options = [
                ("grpc.max_receive_message_length", GRPC_MAX_MESSAGE_SIZE),
                ("grpc.max_send_message_length", GRPC_MAX_MESSAGE_SIZE),
            ]
            if secure:
                channel = grpc.secure_channel(host, grpc.ssl_channel_credentials(), options=options)
            else:
                channel = grpc.insecure_channel(host, options=options)
        self.channel = channel
        self.tracker = SealTracker(self._fetch_result, poll_interval, seal_timeout)

    def _call(self, method: str, request, response: str, operation: str):
        stub = self.channel.unary_unary(
            proto.method(method),
            request_serializer=lambda m: m.SerializeToString(),
            response_deserializer=proto.message(response).FromString,
        )
        backoff = 1.0
        for attempt in range(GRPC_RETRIES + 1):
            try:
                return stub(request, timeout=self.timeout)
            except grpc.RpcError as e:
                code = e.code()
                if code == grpc.StatusCode.RESOURCE_EXHAUSTED and attempt < GRPC_RETRIES:
                    self._sleep(backoff)
                    backoff *= 2
                    continue
                raise GatewayTransportError(
                    f"{operation} failed: {e.details()}",
                    status_code=code.value[0] if code is not None else None,
                    endpoint=method,
                    operation=operation
                )

    # =========================================================================
    # Network
    # =========================================================================

    def ping(self) -> None:
        self._call("Ping", proto.message("PingRequest")(), "PingResponse", "ping")

    def secure_connection(self) -> bool:
        return self.secure

    def get_latest_protocol_state_snapshot(self) -> bytes:
        response = self._call(
            "GetLatestProtocolStateSnapshot",
            proto.message("GetLatestProtocolStateSnapshotRequest")(),
            "ProtocolStateSnapshotResponse",
            "get latest protocol state snapshot",
        )
        return response.serializedSnapshot

    # =========================================================================
    # Accounts
    # =========================================================================

    def get_account(self, address: Address) -> FlowAccount:
        response = self._call(
            "GetAccountAtLatestBlock",
            proto.message("GetAccountAtLatestBlockRequest")(address=address.value),
            "AccountResponse",
            "get account",
        )
        return _parse_account(response.account)

    # =========================================================================
    # Blocks and Collections
    # =========================================================================

    def get_latest_block(self) -> Block:
        request = proto.message("GetLatestBlockRequest")(is_sealed=True, full_block_response=True)
        return _parse_block(self._call("GetLatestBlock", request, "BlockResponse", "get latest block").block)

    def get_block_by_height(self, height: int) -> Block:
        request = proto.message("GetBlockByHeightRequest")(height=height, full_block_response=True)
        return _parse_block(self._call("GetBlockByHeight", request, "BlockResponse", "get block by height").block)

    def get_block_by_id(self, block_id: Identifier) -> Block:
        request = proto.message("GetBlockByIDRequest")(id=block_id.value, full_block_response=True)
        return _parse_block(self._call("GetBlockByID", request, "BlockResponse", "get block by id").block)

    def get_collection(self, collection_id: Identifier) -> Collection:
        response = self._call(
            "GetCollectionByID",
            proto.message("GetCollectionByIDRequest")(id=collection_id.value),
            "CollectionResponse",
            "get collection",
        )
        return Collection(
            id=Identifier(response.collection.id),
            transaction_ids=[Identifier(txid) for txid in response.collection.transaction_ids],
        )

    # =========================================================================
    # Events
    # =========================================================================

    def get_events(self, event_type: str, start_height: int, end_height: int) -> List[BlockEvents]:
        request = proto.message("GetEventsForHeightRangeRequest")(
            type=event_type, start_height=start_height, end_height=end_height
        )
        response = self._call("GetEventsForHeightRange", request, "EventsResponse", "get events")
        return [
            BlockEvents(
                block_id=Identifier(result.block_id),
                height=result.block_height,
                timestamp=_timestamp(result.block_timestamp) if result.HasField("block_timestamp") else None,
                events=[_parse_event(e) for e in result.events],
            )
            for result in response.results
        ]

    # =========================================================================
    # Transactions
    # =========================================================================

    def get_transaction(self, txid: Identifier) -> Transaction:
        request = proto.message("GetTransactionRequest")(id=txid.value)
        return _parse_transaction(self._call("GetTransaction", request, "TransactionResponse",
                                             "get transaction").transaction)

    def _fetch_result(self, txid: Identifier) -> TransactionResult:
        request = proto.message("GetTransactionRequest")(id=txid.value)
        response = self._call("GetTransactionResult", request, "TransactionResultResponse", "get transaction result")
        return _parse_result(response, txid)

    def get_transaction_result(self, txid: Identifier, wait_seal: bool = False) -> TransactionResult:
        if wait_seal:
            return self.tracker.wait_for_seal(txid)
        return self._fetch_result(txid)

    def get_transactions_by_block_id(self, block_id: Identifier) -> List[Transaction]:
        request = proto.message("GetTransactionsByBlockIDRequest")(block_id=block_id.value)
        response = self._call("GetTransactionsByBlockID", request, "TransactionsResponse",
                              "get transactions by block id")
        return [_parse_transaction(tx) for tx in response.transactions]

    def get_transaction_results_by_block_id(self, block_id: Identifier) -> List[TransactionResult]:
        request = proto.message("GetTransactionsByBlockIDRequest")(block_id=block_id.value)
        response = self._call("GetTransactionResultsByBlockID", request, "TransactionResultsResponse",
                              "get transaction results by block id")
        return [_parse_result(r, Identifier(r.transaction_id)) for r in response.transaction_results]

    def get_system_transaction(self, block_id: Identifier) -> Tuple[Transaction, TransactionResult]:
        tx = _parse_transaction(self._call(
            "GetSystemTransaction",
            proto.message("GetSystemTransactionRequest")(block_id=block_id.value),
            "TransactionResponse",
            "get system transaction",
        ).transaction)
        response = self._call(
            "GetSystemTransactionResult",
            proto.message("GetSystemTransactionResultRequest")(block_id=block_id.value),
            "TransactionResultResponse",
            "get system transaction result",
        )
        txid = Identifier(response.transaction_id) if response.transaction_id else tx.id()
        return tx, _parse_result(response, txid)

    def send_signed_transaction(self, tx: Transaction) -> Identifier:
        request = proto.message("SendTransactionRequest")(transaction=_transaction_message(tx))
        return Identifier(self._call("SendTransaction", request, "SendTransactionResponse", "send transaction").id)

    # =========================================================================
    # Scripts
    # =========================================================================

    def _execute(self, method: str, request_name: str, **fields) -> Value:
        request = proto.message(request_name)(**fields)
        return Value.decode(self._call(method, request, "ExecuteScriptResponse", "execute script").value)

    def execute_script(self, code: bytes, args: List[Value]) -> Value:
        return self._execute("ExecuteScriptAtLatestBlock", "ExecuteScriptAtLatestBlockRequest",
                             script=code, arguments=[arg.encode() for arg in args])

    def execute_script_at_height(self, code: bytes, args: List[Value], height: int) -> Value:
        return self._execute("ExecuteScriptAtBlockHeight", "ExecuteScriptAtBlockHeightRequest",
                             block_height=height, script=code, arguments=[arg.encode() for arg in args])

    def execute_script_at_id(self, code: bytes, args: List[Value], block_id: Identifier) -> Value:
        return self._execute("ExecuteScriptAtBlockID", "ExecuteScriptAtBlockIDRequest",
                             block_id=block_id.value, script=code, arguments=[arg.encode() for arg in args])

    def close(self) -> None:
        self.channel.close()

    def __repr__(self) -> str:
        return f"GrpcGateway({self.host})"


# =============================================================================
# Message Conversion
# =============================================================================

def _address(raw: bytes) -> Address:
    # System transactions carry an empty payer
    return Address(raw.rjust(ADDRESS_LENGTH, b"\x00")) if raw else Address.empty()


def _timestamp(ts) -> str:
    moment = datetime.fromtimestamp(ts.seconds, tz=timezone.utc).replace(microsecond=ts.nanos // 1000)
    return moment.isoformat().replace("+00:00", "Z")


def _parse_account(account) -> FlowAccount:
    keys = [
        AccountKey(
            public_key=key.public_key.hex(),
            sig_algo=SignatureAlgorithm.from_code(key.sign_algo),
            hash_algo=HashAlgorithm.from_code(key.hash_algo),
            weight=key.weight,
            index=key.index,
            sequence_number=key.sequence_number,
            revoked=key.revoked,
        )
        for key in account.keys
    ]
    return FlowAccount(
        address=_address(account.address),
        balance=account.balance,
        keys=keys,
        contracts=dict(account.contracts),
    )


def _parse_block(block) -> Block:
    return Block(
        id=Identifier(block.id),
        height=block.height,
        parent_id=Identifier(block.parent_id),
        timestamp=_timestamp(block.timestamp) if block.HasField("timestamp") else None,
        collection_ids=[Identifier(g.collection_id) for g in block.collection_guarantees],
    )


def _parse_event(event) -> FlowEvent:
    return FlowEvent(
        type=event.type,
        transaction_id=Identifier(event.transaction_id),
        transaction_index=event.transaction_index,
        event_index=event.event_index,
        value=Value.decode(event.payload) if event.payload else None,
        payload=event.payload,
    )


def _parse_result(result, txid: Identifier) -> TransactionResult:
    return TransactionResult(
        status=TransactionStatus.parse(result.status),
        error_message=result.error_message,
        events=[_parse_event(e) for e in result.events],
        block_id=Identifier(result.block_id) if result.block_id else None,
        block_height=result.block_height or None,
        computation_used=result.computation_usage,
        transaction_id=txid,
    )


def _parse_transaction(message) -> Transaction:
    tx = Transaction()
    tx.script = message.script
    tx.arguments = [Value.decode(arg) for arg in message.arguments]
    if message.reference_block_id:
        tx.reference_block_id = Identifier(message.reference_block_id)
    tx.gas_limit = message.gas_limit
    tx.proposal_key = ProposalKey(
        _address(message.proposal_key.address),
        message.proposal_key.key_id,
        message.proposal_key.sequence_number,
    )
    tx.payer = _address(message.payer)
    tx.authorizers = [_address(a) for a in message.authorizers]

    signer_list = tx.signer_list()

    def signature(s) -> TransactionSignature:
        address = _address(s.address)
        index = signer_list.index(address) if address in signer_list else 0
        return TransactionSignature(address, index, s.key_id, s.signature)

    tx.payload_signatures = [signature(s) for s in message.payload_signatures]
    tx.envelope_signatures = [signature(s) for s in message.envelope_signatures]
    return tx


def _transaction_message(tx: Transaction):
    transaction_cls = proto.message("flow.entities.Transaction")
    proposal_cls = proto.message("flow.entities.Transaction.ProposalKey")
    signature_cls = proto.message("flow.entities.Transaction.Signature")

    def signatures(sigs: List[TransactionSignature]) -> list:
        return [signature_cls(address=s.address.value, key_id=s.key_index, signature=s.signature) for s in sigs]

    return transaction_cls(
        script=tx.script,
        arguments=[arg.encode() for arg in tx.arguments],
        reference_block_id=tx.reference_block_id.value,
        gas_limit=tx.gas_limit,
        proposal_key=proposal_cls(
            address=tx.proposal_key.address.value,
            key_id=tx.proposal_key.key_index,
            sequence_number=tx.proposal_key.sequence_number,
        ),
        payer=tx.payer.value,
        authorizers=[a.value for a in tx.authorizers],
        payload_signatures=signatures(tx.payload_signatures),
        envelope_signatures=signatures(tx.envelope_signatures),
    )
