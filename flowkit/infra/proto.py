"""
Flowkit - Access API Messages

Protobuf message classes for the subset of the Flow Access API the gRPC
gateway calls. Descriptors are assembled at import time and registered
in a private pool, so no generated code is shipped.
"""

from functools import lru_cache
from typing import Dict, List, Tuple

from google.protobuf import descriptor_pb2, descriptor_pool, message_factory, timestamp_pb2

FieldProto = descriptor_pb2.FieldDescriptorProto

ACCESS_SERVICE = "flow.access.AccessAPI"

_SCALARS = {
    "bytes": FieldProto.TYPE_BYTES,
    "string": FieldProto.TYPE_STRING,
    "uint64": FieldProto.TYPE_UINT64,
    "uint32": FieldProto.TYPE_UINT32,
    "bool": FieldProto.TYPE_BOOL,
}

# (number, name, type); "repeated " and "map<k,v>" prefixes as in .proto files.
# Enum fields are declared uint32, which shares the varint wire type.
Schema = Dict[str, List[Tuple[int, str, str]]]

ENTITIES: Schema = {
    "AccountKey": [
        (1, "index", "uint32"),
        (2, "public_key", "bytes"),
        (3, "sign_algo", "uint32"),
        (4, "hash_algo", "uint32"),
        (5, "weight", "uint32"),
        (6, "sequence_number", "uint64"),
        (7, "revoked", "bool"),
    ],
    "Account": [
        (1, "address", "bytes"),
        (2, "balance", "uint64"),
        (3, "code", "bytes"),
        (4, "keys", "repeated .flow.entities.AccountKey"),
        (5, "contracts", "map<string,bytes>"),
    ],
    "CollectionGuarantee": [
        (1, "collection_id", "bytes"),
    ],
    "Block": [
        (1, "id", "bytes"),
        (2, "parent_id", "bytes"),
        (3, "height", "uint64"),
        (4, "timestamp", ".google.protobuf.Timestamp"),
        (5, "collection_guarantees", "repeated .flow.entities.CollectionGuarantee"),
    ],
    "Collection": [
        (1, "id", "bytes"),
        (2, "transaction_ids", "repeated bytes"),
    ],
    "Event": [
        (1, "type", "string"),
        (2, "transaction_id", "bytes"),
        (3, "transaction_index", "uint32"),
        (4, "event_index", "uint32"),
        (5, "payload", "bytes"),
    ],
    "Transaction": [
        (1, "script", "bytes"),
        (2, "arguments", "repeated bytes"),
        (3, "reference_block_id", "bytes"),
        (4, "gas_limit", "uint64"),
        (5, "proposal_key", ".flow.entities.Transaction.ProposalKey"),
        (6, "payer", "bytes"),
        (7, "authorizers", "repeated bytes"),
        (8, "payload_signatures", "repeated .flow.entities.Transaction.Signature"),
        (9, "envelope_signatures", "repeated .flow.entities.Transaction.Signature"),
    ],
    "Transaction.ProposalKey": [
        (1, "address", "bytes"),
        (2, "key_id", "uint32"),
        (3, "sequence_number", "uint64"),
    ],
    "Transaction.Signature": [
        (1, "address", "bytes"),
        (2, "key_id", "uint32"),
        (3, "signature", "bytes"),
    ],
}

ACCESS: Schema = {
    "PingRequest": [],
    "PingResponse": [],
    "GetLatestBlockRequest": [
        (1, "is_sealed", "bool"),
        (2, "full_block_response", "bool"),
    ],
    "GetBlockByIDRequest": [
        (1, "id", "bytes"),
        (2, "full_block_response", "bool"),
    ],
    "GetBlockByHeightRequest": [
        (1, "height", "uint64"),
        (2, "full_block_response", "bool"),
    ],
    "BlockResponse": [
        (1, "block", ".flow.entities.Block"),
    ],
    "GetCollectionByIDRequest": [
        (1, "id", "bytes"),
    ],
    "CollectionResponse": [
        (1, "collection", ".flow.entities.Collection"),
    ],
    "SendTransactionRequest": [
        (1, "transaction", ".flow.entities.Transaction"),
    ],
    "SendTransactionResponse": [
        (1, "id", "bytes"),
    ],
    "GetTransactionRequest": [
        (1, "id", "bytes"),
    ],
    "GetSystemTransactionRequest": [
        (1, "block_id", "bytes"),
    ],
    "GetSystemTransactionResultRequest": [
        (1, "block_id", "bytes"),
    ],
    "GetTransactionsByBlockIDRequest": [
        (1, "block_id", "bytes"),
    ],
    "TransactionResponse": [
        (1, "transaction", ".flow.entities.Transaction"),
    ],
    "TransactionsResponse": [
        (1, "transactions", "repeated .flow.entities.Transaction"),
    ],
    "TransactionResultResponse": [
        (1, "status", "uint32"),
        (2, "status_code", "uint32"),
        (3, "error_message", "string"),
        (4, "events", "repeated .flow.entities.Event"),
        (5, "block_id", "bytes"),
        (6, "transaction_id", "bytes"),
        (7, "collection_id", "bytes"),
        (8, "block_height", "uint64"),
        (10, "computation_usage", "uint64"),
    ],
    "TransactionResultsResponse": [
        (1, "transaction_results", "repeated .flow.access.TransactionResultResponse"),
    ],
    "GetAccountAtLatestBlockRequest": [
        (1, "address", "bytes"),
    ],
    "AccountResponse": [
        (1, "account", ".flow.entities.Account"),
    ],
    "ExecuteScriptAtLatestBlockRequest": [
        (1, "script", "bytes"),
        (2, "arguments", "repeated bytes"),
    ],
    "ExecuteScriptAtBlockIDRequest": [
        (1, "block_id", "bytes"),
        (2, "script", "bytes"),
        (3, "arguments", "repeated bytes"),
    ],
    "ExecuteScriptAtBlockHeightRequest": [
        (1, "block_height", "uint64"),
        (2, "script", "bytes"),
        (3, "arguments", "repeated bytes"),
    ],
    "ExecuteScriptResponse": [
        (1, "value", "bytes"),
    ],
    "GetEventsForHeightRangeRequest": [
        (1, "type", "string"),
        (2, "start_height", "uint64"),
        (3, "end_height", "uint64"),
    ],
    "EventsResponse": [
        (1, "results", "repeated .flow.access.EventsResponse.Result"),
    ],
    "EventsResponse.Result": [
        (1, "block_id", "bytes"),
        (2, "block_height", "uint64"),
        (3, "events", "repeated .flow.entities.Event"),
        (4, "block_timestamp", ".google.protobuf.Timestamp"),
    ],
    "GetLatestProtocolStateSnapshotRequest": [],
    "ProtocolStateSnapshotResponse": [
        (1, "serializedSnapshot", "bytes"),
    ],
}


def _add_field(message: descriptor_pb2.DescriptorProto, scope: str, number: int, name: str, type_name: str):
    field = message.field.add(name=name, number=number, label=FieldProto.LABEL_OPTIONAL)

    if type_name.startswith("repeated "):
        field.label = FieldProto.LABEL_REPEATED
        type_name = type_name[len("repeated "):]

    if type_name.startswith("map<"):
        key_type, value_type = type_name[len("map<"):-1].split(",")
        entry = message.nested_type.add(name="".join(p.title() for p in name.split("_")) + "Entry")
        entry.options.map_entry = True
        _add_field(entry, f"{scope}.{entry.name}", 1, "key", key_type)
        _add_field(entry, f"{scope}.{entry.name}", 2, "value", value_type)
        field.label = FieldProto.LABEL_REPEATED
        field.type = FieldProto.TYPE_MESSAGE
        field.type_name = f"{scope}.{entry.name}"
    elif type_name in _SCALARS:
        field.type = _SCALARS[type_name]
    else:
        field.type = FieldProto.TYPE_MESSAGE
        field.type_name = type_name


def build_file(name: str, package: str, messages: Schema, dependencies=()) -> descriptor_pb2.FileDescriptorProto:
    """
    Assemble a proto3 file descriptor.

    Nested messages are keyed ``Parent.Child`` and must follow their parent.
    """
    file = descriptor_pb2.FileDescriptorProto(name=name, package=package, syntax="proto3")
    file.dependency.extend(dependencies)
    protos: Dict[str, descriptor_pb2.DescriptorProto] = {}

    for full_name, fields in messages.items():
        parent, _, short = full_name.rpartition(".")
        container = protos[parent].nested_type if parent else file.message_type
        message = container.add(name=short)
        protos[full_name] = message
        scope = f".{package}.{full_name}"
        for number, field_name, type_name in fields:
            _add_field(message, scope, number, field_name, type_name)
    return file


def _pool() -> descriptor_pool.DescriptorPool:
    pool = descriptor_pool.DescriptorPool()
    timestamp = descriptor_pb2.FileDescriptorProto()
    timestamp_pb2.DESCRIPTOR.CopyToProto(timestamp)
    pool.AddSerializedFile(timestamp.SerializeToString())
    pool.AddSerializedFile(build_file(
        "flow/entities.proto", "flow.entities", ENTITIES, ["google/protobuf/timestamp.proto"]
    ).SerializeToString())
    pool.AddSerializedFile(build_file(
        "flow/access.proto", "flow.access", ACCESS, ["flow/entities.proto"]
    ).SerializeToString())
    return pool


POOL = _pool()


@lru_cache(maxsize=None)
def message(name: str):
    """
    Message class by name.

    Args:
        name: Access API message (``"PingRequest"``) or a fully qualified
            name (``"flow.entities.Transaction"``).
    """
    full_name = name if "." in name and name.startswith("flow.") else f"flow.access.{name}"
    return message_factory.GetMessageClass(POOL.FindMessageTypeByName(full_name))


def method(name: str) -> str:
    """Full gRPC method path of an Access API call."""
    return f"/{ACCESS_SERVICE}/{name}"
