"""
Keeper Service

Runs the decide/execute/audit cycle on a fixed cadence. Each tick reads the
active streams and fee price, asks the optimizer for a verdict, publishes the
verdict to the audit log and, when profitable, submits the batches one after
another from the keeper's signing identity.
"""

import signal
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from decimal import InvalidOperation
from enum import Enum

from pydantic import ValidationError

from keeper.audit.encoder import EncodingError
from keeper.audit.models import AuditRecord, Decision
from keeper.audit.publisher import AuditLogPublisher
from keeper.core.config import Settings
from keeper.core.logging import get_logger, get_tick_logger
from keeper.core.retry import with_retry
from keeper.ledger.base import ConfirmationReceipt, ConfirmationTimeout, Ledger
from keeper.optimizer import (
    Batch,
    GasModel,
    OptimizationResult,
    PriorityTier,
    WorkItem,
    optimize,
)
from keeper.service.metrics import (
    KEEPER_AUDIT_PUBLISH_FAILURES,
    KEEPER_BATCHES,
    KEEPER_DECISIONS,
    KEEPER_FEE_PRICE,
    KEEPER_TICKS,
)

logger = get_logger(__name__)


class KeeperState(str, Enum):
    IDLE = "idle"
    FETCHING = "fetching"
    DECIDING = "deciding"
    PUBLISHING = "publishing"
    EXECUTING = "executing"


class TickStatus(str, Enum):
    BUSY = "busy"
    ABORTED = "aborted"
    NO_STREAMS = "no_streams"
    SKIPPED = "skipped"
    EXECUTED = "executed"


class FailureCategory(str, Enum):
    LEDGER_READ = "ledger_read"
    OPTIMIZER = "optimizer"
    AUDIT_PUBLISH = "audit_publish"
    BATCH_EXECUTION = "batch_execution"


class FailurePolicy(str, Enum):
    ABORT_TICK = "abort_tick"
    LOG_AND_CONTINUE = "log_and_continue"
    ISOLATE_AND_CONTINUE = "isolate_and_continue"


FAILURE_POLICY: dict[FailureCategory, FailurePolicy] = {
    FailureCategory.LEDGER_READ: FailurePolicy.ABORT_TICK,
    FailureCategory.OPTIMIZER: FailurePolicy.ABORT_TICK,
    FailureCategory.AUDIT_PUBLISH: FailurePolicy.LOG_AND_CONTINUE,
    FailureCategory.BATCH_EXECUTION: FailurePolicy.ISOLATE_AND_CONTINUE,
}


@dataclass(frozen=True)
class StepFailure:
    """A failed tick step, handled at the tick boundary by FAILURE_POLICY."""

    category: FailureCategory
    message: str

    @property
    def policy(self) -> FailurePolicy:
        return FAILURE_POLICY[self.category]


@dataclass
class BatchOutcome:
    stream_ids: tuple[int, ...]
    tx_hash: str | None = None
    block_number: int | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None and self.tx_hash is not None


@dataclass
class TickOutcome:
    """Summary of one tick, returned for logging and tests."""

    tick_id: int
    status: TickStatus
    stream_count: int = 0
    fee_price: int | None = None
    decision: Decision | None = None
    result: OptimizationResult | None = None
    publish_handle: str | None = None
    batches: list[BatchOutcome] = field(default_factory=list)
    failures: list[StepFailure] = field(default_factory=list)


@dataclass(frozen=True)
class OptimizerParams:
    reward_rate_per_item: float = 0.001
    reference_price_a: float = 2000.0
    reference_price_b: float = 20.0
    max_batch_size: int = 50
    gas_model: GasModel = field(default_factory=GasModel)

    @classmethod
    def from_settings(cls, settings: Settings) -> "OptimizerParams":
        return cls(
            reward_rate_per_item=settings.REWARD_RATE_PER_ITEM,
            reference_price_a=settings.REFERENCE_PRICE_A,
            reference_price_b=settings.REFERENCE_PRICE_B,
            max_batch_size=settings.MAX_BATCH_SIZE,
            gas_model=GasModel(
                base_gas=settings.BATCH_BASE_GAS,
                per_item_gas=settings.PER_ITEM_GAS,
            ),
        )


def _now_ms() -> int:
    return int(time.time() * 1000)


def _checked_stream_id(value: object) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise ValueError(f"Invalid stream id from ledger: {value!r}")
    return value


def build_work_items(stream_ids: list[int], reward_rate: float) -> list[WorkItem]:
    """WorkItems for the active streams; tiers rotate high, medium, low."""
    return [
        WorkItem(
            id=stream_id,
            priority_tier=PriorityTier.for_position(index),
            reward_rate=reward_rate,
            flow_rate=0,
        )
        for index, stream_id in enumerate(stream_ids)
    ]


class KeeperService:
    def __init__(
        self,
        ledger: Ledger,
        publisher: AuditLogPublisher,
        optimizer_params: OptimizerParams | None = None,
        interval: float = 10.0,
        confirmation_timeout: float = 120.0,
        confirmation_retries: int = 3,
        backoff_base: float = 2.0,
        backoff_max: float = 30.0,
        optimizer: Callable[..., OptimizationResult] = optimize,
        timestamp_ms: Callable[[], int] = _now_ms,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ):
        if interval <= 0:
            raise ValueError("interval must be positive")

        self.ledger = ledger
        self.publisher = publisher
        self.optimizer_params = optimizer_params or OptimizerParams()
        self.interval = interval
        self.confirmation_timeout = confirmation_timeout
        self.confirmation_retries = confirmation_retries
        self.backoff_base = backoff_base
        self.backoff_max = backoff_max
        self._optimizer = optimizer
        self._timestamp_ms = timestamp_ms
        self._clock = clock
        self._sleep = sleep

        self._state = KeeperState.IDLE
        self._tick_lock = threading.Lock()
        self._stop_event = threading.Event()
        self._tick_count = 0

    @classmethod
    def from_settings(
        cls, settings: Settings, ledger: Ledger, publisher: AuditLogPublisher
    ) -> "KeeperService":
        return cls(
            ledger=ledger,
            publisher=publisher,
            optimizer_params=OptimizerParams.from_settings(settings),
            interval=settings.POLL_INTERVAL,
            confirmation_timeout=settings.CONFIRMATION_TIMEOUT,
            confirmation_retries=settings.CONFIRMATION_RETRIES,
            backoff_base=settings.CONFIRMATION_BACKOFF_BASE,
            backoff_max=settings.CONFIRMATION_BACKOFF_MAX,
        )

    @property
    def state(self) -> KeeperState:
        return self._state

    @property
    def stopping(self) -> bool:
        return self._stop_event.is_set()

    def stop(self) -> None:
        """Ask the loop to stop once the batch in flight (if any) completes."""
        self._stop_event.set()

    # Tick steps. Each returns its value or a StepFailure for the tick boundary.

    def _fetch(self) -> tuple[list[int], int] | StepFailure:
        self._state = KeeperState.FETCHING
        try:
            active = self.ledger.get_active_stream_ids()
            stream_ids = [_checked_stream_id(value) for value in active]
            if not stream_ids:
                return stream_ids, 0
            fee_price = int(self.ledger.get_fee_price())
        except Exception as e:
            return StepFailure(FailureCategory.LEDGER_READ, str(e))
        return stream_ids, fee_price

    def _decide(
        self, stream_ids: list[int], fee_price: int
    ) -> OptimizationResult | StepFailure:
        self._state = KeeperState.DECIDING
        params = self.optimizer_params
        try:
            items = build_work_items(stream_ids, params.reward_rate_per_item)
            return self._optimizer(
                items,
                fee_price,
                params.reward_rate_per_item,
                params.reference_price_a,
                params.reference_price_b,
                max_batch_size=params.max_batch_size,
                gas_model=params.gas_model,
            )
        except Exception as e:
            return StepFailure(FailureCategory.OPTIMIZER, f"{type(e).__name__}: {e}")

    def _decision_record(self, result: OptimizationResult, fee_price: int) -> AuditRecord:
        if result.is_profitable:
            return AuditRecord(
                timestamp=self._timestamp_ms(),
                decision=Decision.EXECUTE,
                fee_price=fee_price,
                expected_profit=f"{result.total_profit:.6f}",
                batch_size=len(result.batches),
                reason=result.decision,
            )
        return AuditRecord(
            timestamp=self._timestamp_ms(),
            decision=Decision.SKIP,
            fee_price=fee_price,
            expected_profit="0",
            batch_size=0,
            reason=result.decision,
        )

    def _publish(self, result: OptimizationResult, fee_price: int) -> str | StepFailure:
        self._state = KeeperState.PUBLISHING
        try:
            record = self._decision_record(result, fee_price)
        except (InvalidOperation, ValidationError) as e:
            logger.exception("decision_record_invalid", error=str(e))
            KEEPER_AUDIT_PUBLISH_FAILURES.labels(reason="record").inc()
            return StepFailure(FailureCategory.AUDIT_PUBLISH, f"record: {e}")

        try:
            return self.publisher.publish(record)
        except EncodingError as e:
            # A record that does not fit its schema is a bug; log it loudly
            logger.exception("decision_record_encoding_failed", error=str(e))
            KEEPER_AUDIT_PUBLISH_FAILURES.labels(reason="encoding").inc()
            return StepFailure(FailureCategory.AUDIT_PUBLISH, f"encoding: {e}")
        except Exception as e:
            KEEPER_AUDIT_PUBLISH_FAILURES.labels(reason="store").inc()
            return StepFailure(FailureCategory.AUDIT_PUBLISH, str(e))

    def _confirm(self, tx_hash: str) -> ConfirmationReceipt:
        wait = with_retry(
            max_retries=self.confirmation_retries,
            base_delay=self.backoff_base,
            max_delay=self.backoff_max,
            retry_on=(ConfirmationTimeout,),
            sleep=self._sleep,
        )(self.ledger.await_confirmation)
        return wait(tx_hash, self.confirmation_timeout)

    def _execute_batch(self, batch: Batch) -> BatchOutcome:
        outcome = BatchOutcome(stream_ids=batch.stream_ids)
        try:
            outcome.tx_hash = self.ledger.submit_batch_update(list(batch.stream_ids))
            receipt = self._confirm(outcome.tx_hash)
            outcome.block_number = receipt.block_number
        except Exception as e:
            outcome.error = f"{type(e).__name__}: {e}"
        return outcome

    def tick(self) -> TickOutcome:
        """Run one decide/publish/execute cycle.

        Returns immediately with status BUSY when another tick is running.
        """
        if not self._tick_lock.acquire(blocking=False):
            logger.warning("tick_skipped_previous_tick_running")
            KEEPER_TICKS.labels(status=TickStatus.BUSY.value).inc()
            return TickOutcome(tick_id=self._tick_count, status=TickStatus.BUSY)

        try:
            self._tick_count += 1
            outcome = self._run_tick(self._tick_count)
        finally:
            self._state = KeeperState.IDLE
            self._tick_lock.release()

        KEEPER_TICKS.labels(status=outcome.status.value).inc()
        return outcome

    def _run_tick(self, tick_id: int) -> TickOutcome:
        log = get_tick_logger(tick_id, __name__)

        fetched = self._fetch()
        if isinstance(fetched, StepFailure):
            log.error(
                "keeper_cycle_error",
                category=fetched.category.value,
                policy=fetched.policy.value,
                error=fetched.message,
            )
            return TickOutcome(tick_id, TickStatus.ABORTED, failures=[fetched])

        stream_ids, fee_price = fetched
        if not stream_ids:
            log.info("no_streams_to_update")
            return TickOutcome(tick_id, TickStatus.NO_STREAMS)

        KEEPER_FEE_PRICE.set(fee_price)
        log.info("analyzing_streams", stream_count=len(stream_ids), fee_price=fee_price)
        outcome = TickOutcome(
            tick_id, TickStatus.SKIPPED, stream_count=len(stream_ids), fee_price=fee_price
        )

        result = self._decide(stream_ids, fee_price)
        if isinstance(result, StepFailure):
            log.error(
                "optimizer_failed",
                category=result.category.value,
                policy=result.policy.value,
                error=result.message,
            )
            outcome.status = TickStatus.ABORTED
            outcome.failures.append(result)
            return outcome

        outcome.result = result
        outcome.decision = Decision.EXECUTE if result.is_profitable else Decision.SKIP
        KEEPER_DECISIONS.labels(decision=outcome.decision.value).inc()
        if result.is_profitable:
            log.info(
                "profitable",
                reason=result.decision,
                expected_profit=f"{result.total_profit:.4f}",
                batch_count=len(result.batches),
            )
        else:
            log.info("not_profitable", reason=result.decision)

        published = self._publish(result, fee_price)
        if isinstance(published, StepFailure):
            outcome.failures.append(published)
            log.warning(
                "failed_to_publish_to_data_stream",
                policy=published.policy.value,
                error=published.message,
            )
        else:
            outcome.publish_handle = published
            log.info(
                "decision_published",
                decision=outcome.decision.value,
                handle=published,
            )

        if not result.is_profitable:
            return outcome

        outcome.status = TickStatus.EXECUTED
        self._state = KeeperState.EXECUTING
        for position, batch in enumerate(result.batches):
            if self.stopping:
                remaining = len(result.batches) - position
                log.warning("shutdown_requested_skipping_batches", remaining=remaining)
                KEEPER_BATCHES.labels(result="not_attempted").inc(remaining)
                break

            log.info("updating_batch", batch=position, count=batch.count)
            batch_outcome = self._execute_batch(batch)
            outcome.batches.append(batch_outcome)

            if batch_outcome.ok:
                KEEPER_BATCHES.labels(result="confirmed").inc()
                log.info(
                    "batch_confirmed",
                    batch=position,
                    tx_hash=batch_outcome.tx_hash,
                    block_number=batch_outcome.block_number,
                )
            else:
                failure = StepFailure(
                    FailureCategory.BATCH_EXECUTION, batch_outcome.error or "unknown"
                )
                outcome.failures.append(failure)
                KEEPER_BATCHES.labels(result="failed").inc()
                log.error(
                    "batch_failed",
                    batch=position,
                    tx_hash=batch_outcome.tx_hash,
                    policy=failure.policy.value,
                    error=failure.message,
                )

        return outcome

    def _shutdown_handler(self, signum=None, frame=None):
        """Handle SIGTERM/SIGINT by letting the current tick wind down."""
        _ = frame  # Signal handler parameter, not used but required
        logger.info("shutdown_signal_received", signal=signum)
        self.stop()

    def run(self, max_ticks: int | None = None, handle_signals: bool = True) -> None:
        """Run ticks every ``interval`` seconds until stopped.

        A tick that overruns the interval causes the missed firings to be
        skipped rather than queued.

        Args:
            max_ticks: Stop after this many ticks (runs forever when None)
            handle_signals: Install SIGTERM/SIGINT handlers (main thread only)
        """
        logger.info("keeper_service_started", interval=self.interval)

        if handle_signals and threading.current_thread() is threading.main_thread():
            signal.signal(signal.SIGTERM, self._shutdown_handler)
            signal.signal(signal.SIGINT, self._shutdown_handler)

        ticks = 0
        next_fire = self._clock()
        while not self._stop_event.is_set():
            try:
                self.tick()
            except Exception:
                logger.exception("keeper_cycle_error")
            ticks += 1
            if max_ticks is not None and ticks >= max_ticks:
                break

            next_fire += self.interval
            now = self._clock()
            if now > next_fire:
                missed = int((now - next_fire) // self.interval) + 1
                logger.warning("tick_overran_interval", skipped_firings=missed)
                next_fire += missed * self.interval
            self._stop_event.wait(max(0.0, next_fire - now))

        logger.info("keeper_service_stopped", ticks=ticks)
