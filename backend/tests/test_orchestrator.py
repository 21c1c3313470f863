"""
Tests for the cluster performance update cycle.

Runs the whole cycle against in-memory SQLite with a fake provider and clock.
"""

import pytest
from sqlalchemy import func, select

from clusterperf.db.models import ClusterDefinition, ClusterPerformance
from clusterperf.services.performance_summary import get_cluster_performance_summary
from clusterperf.services.prices import PriceSource
from clusterperf.utils.cache import TTLCache
from clusterperf.utils.errors import ProviderNoticeError, ValidationError
from clusterperf.utils.rate_limit import RateLimiter
from jobs.update_cluster_performance import group_by_ticker, main, run_cycle


def _snapshot_count(db_session, action_id=None):
    db_session.expire_all()
    query = select(func.count(ClusterPerformance.id))
    if action_id is not None:
        query = query.where(ClusterPerformance.cluster_action_id == action_id)
    return db_session.execute(query).scalar_one()


@pytest.fixture
def cycle(session_factory, price_source, clock):
    """Run one cycle with the test database, provider and clock."""

    def _run(**kwargs):
        kwargs.setdefault("price_source", price_source)
        return run_cycle(session_factory=session_factory, clock=clock, **kwargs)

    return _run


class TestEndToEnd:

    def test_single_buy_action(self, db_session, provider, cycle, make_cluster, make_action):
        """Buy at 100, price now 120, 30 days ago."""
        cluster = make_cluster()
        make_action(cluster, ticker="ACME", direction="buy", days_ago=30, entry_price=100.0)
        provider.prices["ACME"] = 120.0

        stats = cycle()

        assert stats == {
            "tickers_processed": 1,
            "tickers_skipped": 0,
            "snapshots_recorded": 1,
            "actions_skipped": 0,
            "clusters_updated": 1,
            "errors": 0,
        }
        db_session.expire_all()
        summary = get_cluster_performance_summary(db_session, cluster.id)
        assert summary.avg_return_30d == pytest.approx(20.0)
        assert summary.win_rate == pytest.approx(1.0)
        assert summary.avg_return_90d is None
        assert summary.total_actions == 1
        assert summary.recent_performance[0].current_return == pytest.approx(20.0)


class TestTickerGrouping:

    def test_one_fetch_per_ticker(self, db_session, provider, cycle, make_cluster, make_action):
        first = make_cluster()
        second = make_cluster()
        make_action(first, ticker="ACME", days_ago=10)
        make_action(second, ticker="ACME", direction="sell", days_ago=20)
        make_action(second, ticker="BETA", days_ago=5)
        provider.prices.update({"ACME": 110.0, "BETA": 95.0})

        stats = cycle()

        assert sorted(provider.quote_calls) == ["ACME", "BETA"]
        assert stats["snapshots_recorded"] == 3
        assert stats["tickers_processed"] == 2

    def test_group_by_ticker(self, make_cluster, make_action):
        from clusterperf.domain.clusters import ClusterActionRecord

        cluster = make_cluster()
        records = [
            ClusterActionRecord.model_validate(make_action(cluster, ticker=ticker))
            for ticker in ("ACME", "BETA", "acme")
        ]

        groups = group_by_ticker(records)

        assert sorted(groups) == ["ACME", "BETA"]
        assert len(groups["ACME"]) == 2

    def test_missing_price_skips_group(self, db_session, provider, cycle, make_cluster, make_action):
        cluster = make_cluster()
        skipped = make_action(cluster, ticker="GONE", days_ago=10)
        kept = make_action(cluster, ticker="ACME", days_ago=10)
        provider.prices["ACME"] = 105.0
        provider.failures["GONE"] = ProviderNoticeError("Invalid API call")

        stats = cycle()

        assert stats["tickers_skipped"] == 1
        assert stats["tickers_processed"] == 1
        assert stats["errors"] == 0
        assert _snapshot_count(db_session, skipped.id) == 0
        assert _snapshot_count(db_session, kept.id) == 1

    def test_actions_outside_lookback_are_ignored(self, db_session, provider, cycle, make_cluster, make_action):
        cluster = make_cluster()
        old = make_action(cluster, ticker="OLD", days_ago=91)
        edge = make_action(cluster, ticker="EDGE", days_ago=90)
        provider.prices.update({"OLD": 1.0, "EDGE": 1.0})

        cycle()

        assert provider.quote_calls == ["EDGE"]
        assert _snapshot_count(db_session, old.id) == 0
        assert _snapshot_count(db_session, edge.id) == 1

    def test_future_dated_actions_are_not_loaded(self, db_session, provider, cycle, make_cluster, make_action):
        cluster = make_cluster()
        future = make_action(cluster, ticker="SOON", days_ago=-3, entry_price=100.0)
        provider.prices["SOON"] = 120.0

        stats = cycle()

        assert provider.quote_calls == []
        assert stats["snapshots_recorded"] == 0
        assert _snapshot_count(db_session, future.id) == 0


class TestFaultIsolation:

    def test_failing_ticker_does_not_abort_cycle(self, db_session, provider, cycle, make_cluster, make_action, monkeypatch):
        from clusterperf.services import performance_recorder

        cluster = make_cluster()
        make_action(cluster, ticker="ACME", days_ago=30)
        good = make_action(cluster, ticker="BETA", days_ago=30)
        provider.prices.update({"ACME": 110.0, "BETA": 130.0})

        original = performance_recorder.PerformanceRecorder.record

        def record(self, action, current_price):
            if action.ticker == "ACME":
                raise RuntimeError("disk full")
            return original(self, action, current_price)

        monkeypatch.setattr(performance_recorder.PerformanceRecorder, "record", record)

        stats = cycle()

        assert stats["errors"] == 1
        assert stats["tickers_processed"] == 1
        assert _snapshot_count(db_session, good.id) == 1
        # Aggregates still run after a ticker failure
        db_session.expire_all()
        assert db_session.get(ClusterDefinition, cluster.id).avg_return_30d == pytest.approx(30.0)


class TestPacing:

    def test_provider_calls_are_spaced(self, session_factory, provider, clock, make_cluster, make_action):
        cluster = make_cluster()
        for ticker in ("AAA", "BBB", "CCC"):
            make_action(cluster, ticker=ticker, days_ago=10)
            provider.prices[ticker] = 10.0

        limiter = RateLimiter(requests=1, period=0.5, clock=clock)
        source = PriceSource(provider=provider, cache=TTLCache(clock=clock), rate_limiter=limiter, clock=clock)

        run_cycle(session_factory=session_factory, price_source=source, clock=clock)

        assert clock.sleeps == pytest.approx([0.5, 0.5])


class TestEntryPriceExclusion:

    @pytest.mark.parametrize("entry_price", [None, 0.0])
    def test_never_recorded_across_cycles(self, db_session, provider, clock, cycle, make_cluster, make_action, entry_price):
        cluster = make_cluster()
        action = make_action(cluster, ticker="ACME", days_ago=30, entry_price=entry_price)
        provider.prices["ACME"] = 120.0

        first = cycle()
        clock.advance(days=1)
        second = cycle()

        assert first["actions_skipped"] == 1
        assert second["actions_skipped"] == 1
        assert _snapshot_count(db_session, action.id) == 0

    def test_repeated_cycle_same_day_is_idempotent(self, db_session, provider, clock, cycle, make_cluster, make_action):
        cluster = make_cluster()
        action = make_action(cluster, ticker="ACME", days_ago=30, entry_price=100.0)
        provider.prices["ACME"] = 120.0

        cycle()
        clock.advance(seconds=600)
        provider.prices["ACME"] = 125.0
        cycle()

        assert _snapshot_count(db_session, action.id) == 1
        db_session.expire_all()
        assert db_session.get(ClusterDefinition, cluster.id).avg_return_30d == pytest.approx(25.0)


class TestRunCycleArguments:

    def test_rejects_non_positive_lookback(self, cycle):
        with pytest.raises(ValidationError):
            cycle(lookback_days=0)

    def test_main_exits_non_zero_on_errors(self, monkeypatch):
        from jobs import update_cluster_performance

        monkeypatch.setattr(update_cluster_performance, "run_cycle", lambda lookback_days: {"errors": 2})

        with pytest.raises(SystemExit) as exc_info:
            main(["--once", "--lookback-days", "30"])

        assert exc_info.value.code == 1

    def test_main_exits_zero_on_success(self, monkeypatch):
        from jobs import update_cluster_performance

        calls = []

        def fake_run_cycle(lookback_days):
            calls.append(lookback_days)
            return {"errors": 0}

        monkeypatch.setattr(update_cluster_performance, "run_cycle", fake_run_cycle)

        with pytest.raises(SystemExit) as exc_info:
            main(["--once", "--lookback-days", "30"])

        assert exc_info.value.code == 0
        assert calls == [30]
