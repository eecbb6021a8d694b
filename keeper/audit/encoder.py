"""ABI encoding of records under a schema."""

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from eth_abi import decode as abi_decode
from eth_abi import encode as abi_encode
from eth_abi.exceptions import DecodingError
from eth_utils import is_address, to_checksum_address

from keeper.audit.schema import SchemaDefinition, SchemaField


class EncodingError(ValueError):
    """Record does not match the schema it is encoded under.

    Raised for arity, field name, type or range mismatches. This signals a
    programming error and is never swallowed by the publisher.
    """


@dataclass(frozen=True)
class DecodeResult:
    """Outcome of decoding one stored entry."""

    values: dict[str, Any] | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


def _check_value(field: SchemaField, value: Any) -> Any:
    if field.type in ("uint", "int"):
        if isinstance(value, bool) or not isinstance(value, int):
            raise EncodingError(
                f"Field {field.name!r} expects {field.abi_type}, got {type(value).__name__}"
            )
        bits = field.width or 256
        if field.type == "uint":
            low, high = 0, 2**bits - 1
        else:
            low, high = -(2 ** (bits - 1)), 2 ** (bits - 1) - 1
        if not low <= value <= high:
            raise EncodingError(
                f"Field {field.name!r} value {value} out of range for {field.abi_type}"
            )
        return value

    if field.type == "string":
        if not isinstance(value, str):
            raise EncodingError(
                f"Field {field.name!r} expects string, got {type(value).__name__}"
            )
        return value

    if field.type == "bool":
        if not isinstance(value, bool):
            raise EncodingError(
                f"Field {field.name!r} expects bool, got {type(value).__name__}"
            )
        return value

    if field.type == "address":
        if not is_address(value):
            raise EncodingError(f"Field {field.name!r} expects an address, got {value!r}")
        return to_checksum_address(value)

    # bytes / bytesN
    if not isinstance(value, (bytes, bytearray)):
        raise EncodingError(
            f"Field {field.name!r} expects {field.abi_type}, got {type(value).__name__}"
        )
    if field.width is not None and len(value) > field.width:
        raise EncodingError(
            f"Field {field.name!r} value longer than {field.width} bytes"
        )
    return bytes(value)


def encode(values: Mapping[str, Any], schema: SchemaDefinition) -> bytes:
    """Encode field values in the schema's field order.

    Args:
        values: Field name to value mapping
        schema: Schema the payload is written under

    Returns:
        ABI encoded payload

    Raises:
        EncodingError: If the fields do not match the schema
    """
    if len(values) != len(schema.fields):
        raise EncodingError(
            f"Schema {schema.name!r} has {len(schema.fields)} fields, "
            f"record has {len(values)}"
        )

    ordered = []
    for field in schema.fields:
        if field.name not in values:
            raise EncodingError(f"Record is missing field {field.name!r}")
        ordered.append(_check_value(field, values[field.name]))

    return abi_encode(schema.abi_types, ordered)


def decode(payload: bytes, schema: SchemaDefinition) -> DecodeResult:
    """Strictly decode a stored payload.

    Returns a failed DecodeResult for malformed or under-length payloads
    instead of raising or filling in defaults.
    """
    if not isinstance(payload, (bytes, bytearray)):
        return DecodeResult(error=f"payload is {type(payload).__name__}, not bytes")

    try:
        decoded = abi_decode(schema.abi_types, bytes(payload), strict=True)
    except (DecodingError, OverflowError, ValueError) as e:
        return DecodeResult(error=f"{type(e).__name__}: {e}")

    return DecodeResult(values=dict(zip(schema.field_names, decoded)))

