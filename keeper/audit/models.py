"""Audit log record models."""

from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

UINT32_MAX = 2**32 - 1
UINT64_MAX = 2**64 - 1
UINT256_MAX = 2**256 - 1


class Decision(str, Enum):
    """Keeper verdict for one tick."""

    EXECUTE = "EXECUTE"
    SKIP = "SKIP"


class AuditRecord(BaseModel):
    """A published keeper decision."""

    model_config = ConfigDict(frozen=True)

    timestamp: int = Field(ge=0, le=UINT64_MAX)
    decision: Decision
    fee_price: int = Field(ge=0, le=UINT256_MAX)
    expected_profit: str
    batch_size: int = Field(ge=0, le=UINT32_MAX)
    reason: str

    @field_validator("expected_profit")
    @classmethod
    def check_decimal_text(cls, value: str) -> str:
        """Expected profit is stored as decimal text."""
        try:
            parsed = Decimal(value)
        except InvalidOperation as e:
            raise ValueError(f"expected_profit is not a decimal: {value!r}") from e
        if not parsed.is_finite():
            raise ValueError(f"expected_profit is not finite: {value!r}")
        return value

    def to_fields(self) -> dict[str, Any]:
        """Values keyed by the keeper log schema field names."""
        return {
            "timestamp": self.timestamp,
            "decision": self.decision.value,
            "feePrice": self.fee_price,
            "expectedProfit": self.expected_profit,
            "batchSize": self.batch_size,
            "reason": self.reason,
        }

    @classmethod
    def from_fields(cls, values: dict[str, Any]) -> "AuditRecord":
        return cls(
            timestamp=values["timestamp"],
            decision=values["decision"],
            fee_price=values["feePrice"],
            expected_profit=values["expectedProfit"],
            batch_size=values["batchSize"],
            reason=values["reason"],
        )


class StreamUpdateRecord(BaseModel):
    """A published stream balance update."""

    model_config = ConfigDict(frozen=True)

    stream_id: int = Field(ge=0, le=UINT256_MAX)
    new_balance: int = Field(ge=0, le=UINT256_MAX)
    status: str
    timestamp: int = Field(ge=0, le=UINT64_MAX)

    def to_fields(self) -> dict[str, Any]:
        return {
            "streamId": self.stream_id,
            "newBalance": self.new_balance,
            "status": self.status,
            "timestamp": self.timestamp,
        }

    @classmethod
    def from_fields(cls, values: dict[str, Any]) -> "StreamUpdateRecord":
        return cls(
            stream_id=values["streamId"],
            new_balance=values["newBalance"],
            status=values["status"],
            timestamp=values["timestamp"],
        )


class StoredEntry(BaseModel):
    """One content-addressed row of the data store."""

    model_config = ConfigDict(frozen=True)

    id: str
    schema_id: str
    payload: bytes


class SchemaRegistration(BaseModel):
    """Request to register a schema definition."""

    model_config = ConfigDict(frozen=True)

    name: str
    definition: str
    parent_schema_id: str
