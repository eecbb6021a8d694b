"""Schema definitions and deterministic schema ids."""

import re
import threading
from dataclasses import dataclass
from typing import Callable

from eth_utils import keccak

_FIELD_PATTERN = re.compile(r"^(?P<type>[a-z]+)(?P<width>\d*)\s+(?P<name>[A-Za-z_]\w*)$")

# Primitive types and whether they take a bit width suffix
_PRIMITIVES = {
    "uint": True,
    "int": True,
    "bytes": True,
    "string": False,
    "bool": False,
    "address": False,
}


@dataclass(frozen=True)
class SchemaField:
    """One typed, named field of a schema."""

    name: str
    type: str
    width: int | None = None

    @property
    def abi_type(self) -> str:
        return f"{self.type}{self.width}" if self.width is not None else self.type

    @property
    def canonical(self) -> str:
        return f"{self.abi_type} {self.name}"


def _parse_field(text: str) -> SchemaField:
    match = _FIELD_PATTERN.match(text.strip())
    if not match:
        raise ValueError(f"Invalid schema field: {text!r}")

    base, width, name = match.group("type", "width", "name")
    if base not in _PRIMITIVES:
        raise ValueError(f"Unsupported field type {base!r} in {text!r}")
    if width and not _PRIMITIVES[base]:
        raise ValueError(f"Type {base!r} does not take a width in {text!r}")

    if base in ("uint", "int"):
        bits = int(width) if width else 256
        if bits % 8 or not 8 <= bits <= 256:
            raise ValueError(f"Invalid integer width in {text!r}")
        return SchemaField(name=name, type=base, width=bits)
    if base == "bytes" and width:
        size = int(width)
        if not 1 <= size <= 32:
            raise ValueError(f"Invalid bytes width in {text!r}")
        return SchemaField(name=name, type=base, width=size)
    return SchemaField(name=name, type=base)


@dataclass(frozen=True)
class SchemaDefinition:
    """A named, ordered field layout.

    Two definitions are the same schema iff their canonical strings are equal.
    """

    name: str
    fields: tuple[SchemaField, ...]

    @classmethod
    def parse(cls, name: str, definition: str) -> "SchemaDefinition":
        """Parse ``"uint64 timestamp, string decision, ..."``."""
        parts = [part for part in definition.split(",") if part.strip()]
        if not parts:
            raise ValueError("Schema definition has no fields")
        fields = tuple(_parse_field(part) for part in parts)
        names = [field.name for field in fields]
        if len(set(names)) != len(names):
            raise ValueError(f"Duplicate field names in schema {name!r}")
        return cls(name=name, fields=fields)

    @property
    def canonical(self) -> str:
        return ", ".join(field.canonical for field in self.fields)

    @property
    def field_names(self) -> tuple[str, ...]:
        return tuple(field.name for field in self.fields)

    @property
    def abi_types(self) -> list[str]:
        return [field.abi_type for field in self.fields]

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, SchemaDefinition):
            return NotImplemented
        return self.canonical == other.canonical

    def __hash__(self) -> int:
        return hash(self.canonical)


def compute_schema_id(canonical: str) -> str:
    """Keccak-256 of the canonical definition as 0x-prefixed hex."""
    return "0x" + keccak(text=canonical).hex()


KEEPER_LOG_SCHEMA = SchemaDefinition.parse(
    "Lucidpay_Keeper_Log_v1",
    "uint64 timestamp, string decision, uint256 feePrice, "
    "string expectedProfit, uint32 batchSize, string reason",
)

STREAM_UPDATE_SCHEMA = SchemaDefinition.parse(
    "Lucidpay_Update_v1",
    "uint256 streamId, uint256 newBalance, string status, uint64 timestamp",
)

ZERO_SCHEMA_ID = "0x" + "00" * 32


class SchemaIdCache:
    """Schema name to schema id map, filled once per name.

    Lookups for a name whose cached canonical string differs from the
    requested definition recompute instead of returning the cached id.
    """

    def __init__(self, compute: Callable[[str], str] = compute_schema_id) -> None:
        self._compute = compute
        self._entries: dict[str, tuple[str, str]] = {}
        self._lock = threading.Lock()

    def get(self, schema: SchemaDefinition) -> str:
        canonical = schema.canonical
        entry = self._entries.get(schema.name)
        if entry is not None and entry[0] == canonical:
            return entry[1]

        with self._lock:
            entry = self._entries.get(schema.name)
            if entry is not None and entry[0] == canonical:
                return entry[1]
            schema_id = self._compute(canonical)
            if entry is None:
                self._entries[schema.name] = (canonical, schema_id)
            return schema_id

    def __contains__(self, name: str) -> bool:
        return name in self._entries

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
