"""
Flowkit - Cadence Values

JSON-Cadence (JSON-CDC) values used as transaction and script arguments,
script results and event payloads.
"""

import json
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Any, List, Optional, Tuple

from .errors import InvalidArgumentError
from .models import Address


INTEGER_TYPES = {
    "Int", "Int8", "Int16", "Int32", "Int64", "Int128", "Int256",
    "UInt", "UInt8", "UInt16", "UInt32", "UInt64", "UInt128", "UInt256",
    "Word8", "Word16", "Word32", "Word64", "Word128", "Word256",
}
FIXED_POINT_TYPES = {"Fix64", "UFix64"}
COMPOSITE_TYPES = {"Struct", "Resource", "Event", "Contract", "Enum"}
PATH_TYPES = {"storage": "StoragePath", "public": "PublicPath", "private": "PrivatePath"}

# Types accepted by the ``Type:Value`` shorthand
SHORTHAND_TYPES = INTEGER_TYPES | FIXED_POINT_TYPES | {"String", "Character", "Bool", "Address"}


@dataclass
class Composite:
    """Struct, resource, event, contract or enum value."""
    id: str
    fields: List[Tuple[str, "Value"]] = field(default_factory=list)

    def get(self, name: str) -> Optional["Value"]:
        for field_name, value in self.fields:
            if field_name == name:
                return value
        return None


@dataclass
class Value:
    """
    A Cadence value in its JSON-CDC shape.

    ``value`` holds the Python form: nested ``Value`` objects for
    optionals and arrays, ``(key, value)`` pairs for dictionaries, a
    ``Composite`` for composites and the raw JSON otherwise.
    """
    type: str
    value: Any = None

    # =========================================================================
    # Constructors
    # =========================================================================

    @classmethod
    def string(cls, value: str) -> "Value":
        return cls("String", value)

    @classmethod
    def boolean(cls, value: bool) -> "Value":
        return cls("Bool", bool(value))

    @classmethod
    def integer(cls, type_name: str, value: int) -> "Value":
        if type_name not in INTEGER_TYPES:
            raise InvalidArgumentError(f"not an integer type: {type_name}")
        return cls(type_name, str(value))

    @classmethod
    def ufix64(cls, value) -> "Value":
        return cls("UFix64", _format_fixed(str(value)))

    @classmethod
    def address(cls, address) -> "Value":
        return cls("Address", "0x" + str(address))

    @classmethod
    def array(cls, values: List["Value"]) -> "Value":
        return cls("Array", list(values))

    @classmethod
    def dictionary(cls, pairs: List[Tuple["Value", "Value"]]) -> "Value":
        return cls("Dictionary", list(pairs))

    @classmethod
    def optional(cls, value: Optional["Value"]) -> "Value":
        return cls("Optional", value)

    # =========================================================================
    # JSON-CDC
    # =========================================================================

    @classmethod
    def from_json(cls, obj: dict) -> "Value":
        """
        Build a value from decoded JSON-CDC.

        Raises:
            InvalidArgumentError: If the object is not a JSON-CDC value.
        """
        if not isinstance(obj, dict) or "type" not in obj:
            raise InvalidArgumentError(f"invalid cadence value: {obj}")

        kind = obj["type"]
        raw = obj.get("value")

        if kind == "Optional":
            return cls(kind, cls.from_json(raw) if raw is not None else None)
        if kind == "Array":
            return cls(kind, [cls.from_json(item) for item in raw or []])
        if kind == "Dictionary":
            return cls(kind, [(cls.from_json(item["key"]), cls.from_json(item["value"])) for item in raw or []])
        if kind in COMPOSITE_TYPES:
            fields = [(f["name"], cls.from_json(f["value"])) for f in raw.get("fields", [])]
            return cls(kind, Composite(raw["id"], fields))
        return cls(kind, raw)

    def to_json(self) -> dict:
        """Convert to the JSON-CDC object form."""
        if self.type == "Void":
            return {"type": "Void"}
        if self.type == "Optional":
            return {"type": "Optional", "value": self.value.to_json() if self.value is not None else None}
        if self.type == "Array":
            return {"type": "Array", "value": [item.to_json() for item in self.value]}
        if self.type == "Dictionary":
            return {
                "type": "Dictionary",
                "value": [{"key": k.to_json(), "value": v.to_json()} for k, v in self.value],
            }
        if self.type in COMPOSITE_TYPES:
            return {
                "type": self.type,
                "value": {
                    "id": self.value.id,
                    "fields": [{"name": n, "value": v.to_json()} for n, v in self.value.fields],
                },
            }
        return {"type": self.type, "value": self.value}

    def encode(self) -> bytes:
        """Encode as JSON-CDC bytes."""
        return json.dumps(self.to_json(), separators=(",", ":")).encode() + b"\n"

    @classmethod
    def decode(cls, data: bytes) -> "Value":
        """Decode JSON-CDC bytes."""
        try:
            return cls.from_json(json.loads(data))
        except (ValueError, KeyError, TypeError, AttributeError) as e:
            raise InvalidArgumentError(f"failed to decode cadence value: {e}")

    # =========================================================================
    # Inspection
    # =========================================================================

    @property
    def type_id(self) -> str:
        """Cadence type of the value as written in source."""
        if self.type == "Optional":
            inner = self.value.type_id if self.value is not None else "AnyStruct"
            return f"{inner}?"
        if self.type == "Array":
            return f"[{self.value[0].type_id}]" if self.value else "[AnyStruct]"
        if self.type == "Dictionary":
            if not self.value:
                return "{String: AnyStruct}"
            key, value = self.value[0]
            return f"{{{key.type_id}: {value.type_id}}}"
        if self.type in COMPOSITE_TYPES:
            return self.value.id
        if self.type == "Path":
            return PATH_TYPES.get(self.value.get("domain"), "Path")
        return self.type

    def field(self, name: str) -> Optional["Value"]:
        """Named field of a composite value."""
        if self.type in COMPOSITE_TYPES:
            return self.value.get(name)
        return None

    def to_python(self) -> Any:
        """Convert to plain Python data."""
        if self.type in INTEGER_TYPES:
            return int(self.value)
        if self.type in FIXED_POINT_TYPES:
            return Decimal(self.value)
        if self.type == "Optional":
            return self.value.to_python() if self.value is not None else None
        if self.type == "Array":
            return [item.to_python() for item in self.value]
        if self.type == "Dictionary":
            return {k.to_python(): v.to_python() for k, v in self.value}
        if self.type in COMPOSITE_TYPES:
            return {n: v.to_python() for n, v in self.value.fields}
        if self.type == "Void":
            return None
        return self.value

    def __str__(self) -> str:
        python = self.to_python()
        return str(python) if not isinstance(python, str) else python


# =============================================================================
# Argument Parsing
# =============================================================================

def _format_fixed(value: str) -> str:
    try:
        number = Decimal(value)
    except InvalidOperation:
        raise InvalidArgumentError(f"invalid fixed point value: {value}")
    return f"{number:.8f}"


def parse_json_args(raw) -> List[Value]:
    """
    Parse arguments given as a JSON array of ``{type, value}`` objects.

    Args:
        raw: JSON text or bytes.

    Returns:
        Parsed values in order.

    Raises:
        InvalidArgumentError: If the input is not a JSON array of values.
    """
    if not raw:
        return []
    try:
        items = json.loads(raw)
    except ValueError as e:
        raise InvalidArgumentError(f"failed to parse arguments: {e}")
    if not isinstance(items, list):
        raise InvalidArgumentError("arguments must be a JSON array")
    return [Value.from_json(item) for item in items]


def parse_shorthand_arg(arg: str) -> Value:
    """
    Parse a single ``Type:Value`` argument.

    Examples: ``String:hello``, ``UInt64:42``, ``Address:0x01``,
    ``UFix64:10.5``, ``Bool:true``.
    """
    type_name, sep, raw = arg.partition(":")
    type_name = type_name.strip()
    if not sep:
        raise InvalidArgumentError(f"argument not passed in correct format, correct format is: Type:Value, got {arg}")
    if type_name not in SHORTHAND_TYPES:
        raise InvalidArgumentError(f"unsupported argument type {type_name}")

    if type_name in INTEGER_TYPES:
        try:
            return Value.integer(type_name, int(raw))
        except ValueError:
            raise InvalidArgumentError(f"invalid {type_name} value: {raw}")
    if type_name in FIXED_POINT_TYPES:
        return Value(type_name, _format_fixed(raw))
    if type_name == "Bool":
        if raw.lower() not in ("true", "false"):
            raise InvalidArgumentError(f"invalid Bool value: {raw}")
        return Value.boolean(raw.lower() == "true")
    if type_name == "Address":
        return Value.address(Address.from_hex(raw))
    return Value(type_name, raw)


def parse_shorthand_args(args: List[str]) -> List[Value]:
    """Parse ``Type:Value`` arguments in order."""
    return [parse_shorthand_arg(arg) for arg in args]
