"""Tests for the outcome reconciler."""

import logging
from decimal import Decimal

import pytest

from core.errors import ReconciliationError
from core.reconciler import OutcomeReconciler, find_missing_outcomes
from tests.conftest import StaticPriceFeed, fixed_clock


def make_reconciler(store, price_feed, **kwargs) -> OutcomeReconciler:
    return OutcomeReconciler(store, price_feed, clock=fixed_clock, **kwargs)


class TestFindMissingOutcomes:

    async def test_complement_of_covered_ids(self, store):
        store.add_signal(id="a")
        store.add_signal(id="b")
        store.add_signal(id="c", status="active")
        store.outcomes["a"] = object()

        expired, missing = await find_missing_outcomes(store, limit=100)

        assert [r["id"] for r in expired] == ["b", "a"]
        assert [r["id"] for r in missing] == ["b"]

    async def test_no_expired_signals(self, store):
        assert await find_missing_outcomes(store, limit=100) == ([], [])


class TestInvestigateAndRepair:

    async def test_nothing_to_repair(self, store, price_feed):
        reconciler = make_reconciler(store, price_feed)

        result = await reconciler.investigate_and_repair()

        assert result.examined == 0
        assert result.repaired == 0
        assert result.message == "All expired signals have outcome records"
        assert store.insert_calls == 0

    async def test_repairs_stop_loss_from_market_price(self, store):
        store.add_signal(id="buy-1")
        feed = StaticPriceFeed({"EURUSD": "1.0940"})
        reconciler = make_reconciler(store, feed)

        result = await reconciler.investigate_and_repair()

        assert result.repaired == 1
        outcome = store.outcomes["buy-1"]
        assert outcome.hit_target is False
        assert outcome.exit_price == Decimal("1.0950")
        assert outcome.pnl_pips == -50
        assert outcome.exit_timestamp == fixed_clock()

    async def test_falls_back_to_entry_price(self, store, price_feed):
        store.add_signal(id="no-price", symbol="AUDNZD")
        reconciler = make_reconciler(store, price_feed)

        await reconciler.investigate_and_repair()

        outcome = store.outcomes["no-price"]
        assert outcome.exit_price == Decimal("1.1000")
        assert outcome.pnl_pips == 0
        assert outcome.notes.startswith("Unknown Exit Reason")

    async def test_price_feed_failure_does_not_abort(self, store):
        store.add_signal(id="s1")
        reconciler = make_reconciler(store, StaticPriceFeed(fail=True))

        result = await reconciler.investigate_and_repair()

        assert result.repaired == 1
        assert store.outcomes["s1"].exit_price == Decimal("1.1000")

    async def test_prices_fetched_once_per_symbol(self, store):
        store.add_signal(symbol="EURUSD")
        store.add_signal(symbol="EURUSD")
        store.add_signal(symbol="USDJPY", entry_price="150.00", stop_loss="149.00",
                         take_profit_levels=["151.00"])
        feed = StaticPriceFeed({"EURUSD": "1.1010", "USDJPY": "150.10"})
        reconciler = make_reconciler(store, feed)

        await reconciler.investigate_and_repair()

        assert feed.requested == [{"EURUSD", "USDJPY"}]

    async def test_second_run_is_a_no_op(self, store, price_feed):
        for _ in range(4):
            store.add_signal()
        reconciler = make_reconciler(store, price_feed)

        first = await reconciler.investigate_and_repair()
        second = await reconciler.investigate_and_repair()

        assert first.repaired == 4
        assert second.total_without_outcomes == 0
        assert second.repaired == 0
        assert len(store.outcomes) == 4
        assert store.insert_calls == 4

    async def test_recorded_targets_take_priority(self, store):
        store.add_signal(id="fast-market", targets_hit=[1, 2])
        feed = StaticPriceFeed({"EURUSD": "1.0900"})  # Past the stop-loss
        reconciler = make_reconciler(store, feed)

        await reconciler.investigate_and_repair()

        outcome = store.outcomes["fast-market"]
        assert outcome.hit_target is True
        assert outcome.target_hit_level == 2
        assert outcome.exit_price == Decimal("1.1100")
        assert outcome.pnl_pips == 100

    async def test_malformed_row_is_isolated(self, store, price_feed, caplog):
        for i in range(12):
            if i == 6:
                store.add_signal(id="broken", stop_loss="not-a-number")
            else:
                store.add_signal(id=f"ok-{i}")
        reconciler = make_reconciler(store, price_feed)

        with caplog.at_level(logging.WARNING):
            result = await reconciler.investigate_and_repair()

        assert result.total_without_outcomes == 12
        assert result.repaired == 11
        assert result.skipped == 1
        assert "broken" not in store.outcomes
        assert "Skipping malformed signal broken" in caplog.text

    async def test_insert_failure_is_isolated(self, store, price_feed):
        store.add_signal(id="s1")
        store.add_signal(id="s2")
        store.add_signal(id="s3")
        store.fail_inserts.add("s2")
        reconciler = make_reconciler(store, price_feed)

        result = await reconciler.investigate_and_repair()

        assert result.repaired == 2
        assert result.skipped == 1
        assert set(result.repaired_signal_ids) == {"s1", "s3"}

        # Still eligible on the next run
        store.fail_inserts.clear()
        retry = await reconciler.investigate_and_repair()
        assert retry.repaired_signal_ids == ["s2"]

    async def test_conflicting_insert_counts_as_already_recorded(self, store, price_feed):
        store.add_signal(id="raced")

        original_insert = store.insert_outcome

        async def insert_after_other_writer(outcome):
            store.outcomes[outcome.signal_id] = outcome
            return await original_insert(outcome)

        store.insert_outcome = insert_after_other_writer
        reconciler = make_reconciler(store, price_feed)

        result = await reconciler.investigate_and_repair()

        assert result.repaired == 0
        assert result.already_recorded == 1
        assert result.skipped == 0

    async def test_query_failure_raises(self, store, price_feed):
        store.add_signal()
        store.fail_queries = True
        reconciler = make_reconciler(store, price_feed)

        with pytest.raises(ReconciliationError):
            await reconciler.investigate_and_repair()

        assert store.insert_calls == 0

    async def test_scan_limit_bounds_examined(self, store, price_feed):
        for _ in range(5):
            store.add_signal()
        reconciler = make_reconciler(store, price_feed, scan_limit=3)

        result = await reconciler.investigate_and_repair()

        assert result.examined == 3
        # Newest first
        assert set(result.repaired_signal_ids) == {"sig-3", "sig-4", "sig-5"}

    async def test_max_repairs_per_run(self, store, price_feed):
        for _ in range(15):
            store.add_signal()
        reconciler = make_reconciler(store, price_feed, max_repairs_per_run=10)

        first = await reconciler.investigate_and_repair()
        second = await reconciler.investigate_and_repair()

        assert first.total_without_outcomes == 15
        assert first.repaired == 10
        assert second.total_without_outcomes == 5
        assert second.repaired == 5

    async def test_records_last_result(self, store, price_feed):
        store.add_signal()
        reconciler = make_reconciler(store, price_feed)

        result = await reconciler.investigate_and_repair()

        assert reconciler.last_result is result
        assert reconciler.last_run_at == fixed_clock()
        assert result.message == "Repaired 1 of 1 signals without outcome records"

    def test_rejects_zero_batch_size(self, store, price_feed):
        with pytest.raises(ValueError):
            OutcomeReconciler(store, price_feed, batch_size=0)
