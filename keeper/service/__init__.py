"""Periodic keeper execution loop."""

from keeper.service.service import (
    FAILURE_POLICY,
    BatchOutcome,
    FailureCategory,
    FailurePolicy,
    KeeperService,
    KeeperState,
    OptimizerParams,
    StepFailure,
    TickOutcome,
    TickStatus,
    build_work_items,
)

__all__ = [
    "FAILURE_POLICY",
    "BatchOutcome",
    "FailureCategory",
    "FailurePolicy",
    "KeeperService",
    "KeeperState",
    "OptimizerParams",
    "StepFailure",
    "TickOutcome",
    "TickStatus",
    "build_work_items",
]
