"""Tests for the batching optimizer."""

from decimal import Decimal

import pytest

from keeper.optimizer import GasModel, PriorityTier, WorkItem, optimize

ONE_GWEI = 10**9


def make_items(count: int, reward_rate: float = 0.001, start: int = 1) -> list[WorkItem]:
    return [
        WorkItem(
            id=start + index,
            priority_tier=PriorityTier.for_position(index),
            reward_rate=reward_rate,
        )
        for index in range(count)
    ]


def run(items, fee_price=ONE_GWEI, **kwargs):
    return optimize(items, fee_price, 0.001, 2000, 20, **kwargs)


class TestOptimizerVerdicts:
    """Profitability verdicts."""

    def test_should_return_no_pending_work_for_empty_input(self):
        """Zero items yields the trivial unprofitable result."""
        result = run([])

        assert result.is_profitable is False
        assert result.decision == "no pending work"
        assert result.total_profit == 0
        assert result.batches == ()

    def test_should_execute_nine_streams_at_low_fee(self):
        """Nine streams at 1 gwei fit in one profitable batch."""
        result = run(make_items(9))

        assert result.is_profitable is True
        assert len(result.batches) == 1
        assert result.batches[0].count == 9
        # 9 * 0.001 * 2000 - (60000 + 9 * 25000) gas * 1 gwei * 20
        assert result.total_profit == Decimal("17.9943")

    @pytest.mark.parametrize("count", [1, 9, 200])
    def test_should_skip_when_fee_is_prohibitive(self, count):
        """No grouping is profitable when a single stream's fee exceeds its reward."""
        result = run(make_items(count), fee_price=10**15)

        assert result.is_profitable is False
        assert result.batches == ()
        assert result.total_profit <= 0
        assert "Gas too expensive" in result.decision

    def test_should_skip_when_batch_overhead_is_not_covered(self):
        """Items individually worth their gas can still fail on the base cost."""
        # per item cost 1.95 < value 2, but the base gas pushes every batch negative
        result = run(make_items(9), fee_price=3_900_000_000_000)

        assert result.is_profitable is False
        assert result.batches == ()
        assert result.total_profit == 0
        assert "overhead" in result.decision

    def test_should_treat_zero_fee_as_free(self):
        result = run(make_items(3), fee_price=0)

        assert result.is_profitable is True
        assert result.total_profit == Decimal("6.000")

    def test_should_reject_negative_fee(self):
        with pytest.raises(ValueError):
            run(make_items(3), fee_price=-1)


class TestOptimizerBatching:
    """Partition invariants."""

    def test_should_cap_batches_at_max_batch_size(self):
        result = run(make_items(9), max_batch_size=4)

        assert [batch.count for batch in result.batches] == [4, 4, 1]

    def test_should_order_streams_by_priority_tier(self):
        """High tier streams are settled first."""
        result = run(make_items(9), max_batch_size=4)

        # ids 1, 4, 7 are high; 2, 5, 8 medium; 3, 6, 9 low
        assert result.batches[0].stream_ids == (1, 4, 7, 2)
        assert result.stream_ids == [1, 4, 7, 2, 5, 8, 3, 6, 9]

    def test_should_never_repeat_an_id_across_batches(self):
        items = make_items(30) + make_items(5)  # ids 1-5 appear twice
        result = run(items, max_batch_size=7)

        ids = result.stream_ids
        assert len(ids) == len(set(ids))
        assert set(ids) <= {item.id for item in items}

    def test_should_drop_streams_worth_less_than_their_gas(self):
        """Low reward streams are left out while the rest still settle."""
        items = make_items(3) + [
            WorkItem(id=99, priority_tier=PriorityTier.HIGH, reward_rate=0.0000001)
        ]
        result = run(items)

        assert result.is_profitable is True
        assert 99 not in result.stream_ids
        assert sorted(result.stream_ids) == [1, 2, 3]

    def test_should_use_default_reward_rate_for_unpriced_items(self):
        items = [WorkItem(id=1, priority_tier=PriorityTier.LOW, reward_rate=0.0)]
        result = optimize(items, ONE_GWEI, 0.001, 2000, 20)

        assert result.is_profitable is True
        assert result.stream_ids == [1]

    def test_should_drop_unprofitable_trailing_batch(self):
        """A small last bin that cannot pay the base gas is not submitted."""
        gas = GasModel(base_gas=1_000_000, per_item_gas=1_000)
        # per item cost 0.002, base cost 2.0; a lone item worth 2 nets -0.002
        result = run(make_items(5), fee_price=100_000_000_000, max_batch_size=4, gas_model=gas)

        assert result.is_profitable is True
        assert [batch.count for batch in result.batches] == [4]
        assert result.total_profit == Decimal("5.992")

    def test_should_be_deterministic(self):
        """Same inputs reproduce the same decision."""
        items = make_items(17)

        first = run(items, max_batch_size=5)
        second = run(list(items), max_batch_size=5)

        assert first == second
