"""Profitability and batching decision.

``optimize`` is a pure function of its arguments. It reads no clock and draws
no random numbers, so a published decision can be replayed from the logged
fee price and the same stream set.

Cost model: a batch of ``n`` streams costs ``base_gas + n * per_item_gas`` gas,
priced at ``fee_price`` wei per gas and converted to the common value unit
with ``reference_price_b`` (price of the native gas token). Each stream is
worth its reward rate times ``reference_price_a`` (price of the reward asset).
"""

from collections.abc import Iterable
from dataclasses import dataclass
from decimal import Decimal

from keeper.optimizer.models import Batch, OptimizationResult, WorkItem

WEI_PER_TOKEN = Decimal(10) ** 18

DEFAULT_MAX_BATCH_SIZE = 50


@dataclass(frozen=True)
class GasModel:
    """Gas consumed by one ``batchUpdateStreams`` call."""

    base_gas: int = 60_000
    per_item_gas: int = 25_000

    def batch_gas(self, size: int) -> int:
        return self.base_gas + size * self.per_item_gas


def _to_decimal(value: float | int | Decimal) -> Decimal:
    # via str(): Decimal(0.001) would carry the binary float expansion
    return value if isinstance(value, Decimal) else Decimal(str(value))


def _gas_cost(gas: int, fee_price: int, reference_price_b: Decimal) -> Decimal:
    return Decimal(gas) * Decimal(fee_price) / WEI_PER_TOKEN * reference_price_b


def _unique(items: Iterable[WorkItem]) -> list[WorkItem]:
    seen: set[int] = set()
    unique = []
    for item in items:
        if item.id not in seen:
            seen.add(item.id)
            unique.append(item)
    return unique


def optimize(
    items: Iterable[WorkItem],
    fee_price: int,
    reward_rate_per_item: float,
    reference_price_a: float,
    reference_price_b: float,
    *,
    max_batch_size: int = DEFAULT_MAX_BATCH_SIZE,
    gas_model: GasModel | None = None,
) -> OptimizationResult:
    """Decide whether settling the pending streams is worth the fee.

    Args:
        items: Pending work items for this tick
        fee_price: Network fee per gas unit, in wei
        reward_rate_per_item: Reward rate used for items reporting none
        reference_price_a: Value of one unit of the reward asset
        reference_price_b: Value of one unit of the native gas token
        max_batch_size: Largest number of streams in one transaction
        gas_model: Gas consumption model (defaults to ``GasModel()``)

    Returns:
        OptimizationResult with the verdict, a rationale, expected net value
        and the batches to submit in order
    """
    if fee_price < 0:
        raise ValueError("fee_price must be non-negative")
    if max_batch_size < 1:
        raise ValueError("max_batch_size must be at least 1")

    pending = _unique(items)
    if not pending:
        return OptimizationResult(
            is_profitable=False, decision="no pending work", total_profit=Decimal(0)
        )

    gas = gas_model or GasModel()
    price_a = _to_decimal(reference_price_a)
    price_b = _to_decimal(reference_price_b)
    default_rate = _to_decimal(reward_rate_per_item)

    def value_of(item: WorkItem) -> Decimal:
        rate = _to_decimal(item.reward_rate)
        return (rate if rate > 0 else default_rate) * price_a

    marginal_cost = _gas_cost(gas.per_item_gas, fee_price, price_b)
    ranked = sorted(
        pending, key=lambda item: (item.priority_tier.rank, -value_of(item), item.id)
    )
    candidates = [item for item in ranked if value_of(item) > marginal_cost]

    if not candidates:
        return OptimizationResult(
            is_profitable=False,
            decision=(
                f"Gas too expensive: per-stream fee cost {marginal_cost:.6f} "
                f"exceeds the reward of every one of {len(pending)} streams"
            ),
            total_profit=Decimal(0),
        )

    batches: list[Batch] = []
    total_profit = Decimal(0)
    for start in range(0, len(candidates), max_batch_size):
        chunk = candidates[start : start + max_batch_size]
        value = sum((value_of(item) for item in chunk), Decimal(0))
        cost = _gas_cost(gas.batch_gas(len(chunk)), fee_price, price_b)
        if value - cost > 0:
            batches.append(Batch(stream_ids=tuple(item.id for item in chunk)))
            total_profit += value - cost

    if not batches:
        return OptimizationResult(
            is_profitable=False,
            decision=(
                f"Batch overhead not covered: {len(candidates)} profitable streams "
                f"cannot pay the base transaction cost at fee price {fee_price}"
            ),
            total_profit=Decimal(0),
        )

    settled = sum(batch.count for batch in batches)
    return OptimizationResult(
        is_profitable=True,
        decision=(
            f"Batch {settled} of {len(pending)} streams into {len(batches)} "
            f"transaction(s) at fee price {fee_price}, "
            f"expected net value {total_profit:.6f}"
        ),
        total_profit=total_profit,
        batches=tuple(batches),
    )
