"""Prometheus metrics for the keeper service."""

from prometheus_client import Counter, Gauge

KEEPER_TICKS = Counter(
    "keeper_ticks_total",
    "Total number of keeper ticks by outcome",
    ["status"],  # busy, aborted, no_streams, skipped, executed
)

KEEPER_DECISIONS = Counter(
    "keeper_decisions_total",
    "Total number of optimizer verdicts",
    ["decision"],  # EXECUTE, SKIP
)

KEEPER_BATCHES = Counter(
    "keeper_batches_total",
    "Total number of settlement batches by result",
    ["result"],  # confirmed, failed, not_attempted
)

KEEPER_AUDIT_PUBLISH_FAILURES = Counter(
    "keeper_audit_publish_failures_total",
    "Total number of decision records that failed to publish",
    ["reason"],  # record, encoding, store
)

KEEPER_FEE_PRICE = Gauge(
    "keeper_fee_price_wei",
    "Last observed network fee price in wei",
)
