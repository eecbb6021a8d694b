"""Optimizer input and output models."""

from decimal import Decimal
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, model_validator


class PriorityTier(str, Enum):
    """Settlement priority of a stream."""

    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"

    @property
    def rank(self) -> int:
        """Sort rank, lower settles first."""
        return _TIER_RANK[self]

    @classmethod
    def for_position(cls, index: int) -> "PriorityTier":
        """Tier assigned to the stream at ``index`` of the active list."""
        return (cls.HIGH, cls.MEDIUM, cls.LOW)[index % 3]


_TIER_RANK = {PriorityTier.HIGH: 0, PriorityTier.MEDIUM: 1, PriorityTier.LOW: 2}


class WorkItem(BaseModel):
    """A pending settlement for one stream."""

    model_config = ConfigDict(frozen=True)

    id: int = Field(ge=0)
    priority_tier: PriorityTier
    reward_rate: float = 0.0
    flow_rate: int = 0


class Batch(BaseModel):
    """Stream ids settled together in one transaction."""

    model_config = ConfigDict(frozen=True)

    stream_ids: tuple[int, ...]

    @model_validator(mode="after")
    def check_unique(self) -> "Batch":
        """A batch never lists a stream twice."""
        if len(set(self.stream_ids)) != len(self.stream_ids):
            raise ValueError("stream_ids must be unique within a batch")
        return self

    @property
    def count(self) -> int:
        return len(self.stream_ids)


class OptimizationResult(BaseModel):
    """Verdict of the batching optimizer."""

    model_config = ConfigDict(frozen=True)

    is_profitable: bool
    decision: str
    total_profit: Decimal = Decimal(0)
    batches: tuple[Batch, ...] = ()

    @model_validator(mode="after")
    def check_verdict(self) -> "OptimizationResult":
        """Unprofitable results carry no batches and no positive profit."""
        if not self.is_profitable and (self.batches or self.total_profit > 0):
            raise ValueError("unprofitable result must have no batches and profit <= 0")
        seen: set[int] = set()
        for batch in self.batches:
            if seen.intersection(batch.stream_ids):
                raise ValueError("a stream id appears in more than one batch")
            seen.update(batch.stream_ids)
        return self

    @property
    def stream_ids(self) -> list[int]:
        """All stream ids across batches, in submission order."""
        return [stream_id for batch in self.batches for stream_id in batch.stream_ids]
