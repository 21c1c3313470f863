"""
Cluster performance update job.

One cycle:
1. Load cluster actions from the lookback window (default 90 days)
2. Group them by ticker and fetch each ticker's current price once
3. Record a performance snapshot for every action of the ticker
4. Recompute aggregate stats for every active cluster

A ticker or cluster that fails is rolled back, logged and counted; the cycle
carries on. There is no retry within a cycle, the next cycle picks it up.
"""

import argparse
import os
import sys
from collections import defaultdict
from datetime import timedelta
from typing import Dict, List, Optional

import pydantic

# Add parent directory to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from clusterperf.config import settings
from clusterperf.db.repositories import ClusterActionRepository
from clusterperf.db.session import init_db, session_scope
from clusterperf.domain.clusters import ClusterActionRecord
from clusterperf.log_config import get_logger, logger
from clusterperf.services.aggregate_stats import AggregateStatsComputer
from clusterperf.services.performance_recorder import PerformanceRecorder
from clusterperf.services.prices import PriceSource
from clusterperf.utils.clock import system_clock
from clusterperf.utils.errors import ValidationError
from clusterperf.utils.rate_limit import RateLimiter

log = get_logger(__name__)


def load_recent_actions(db, since, until=None) -> tuple:
    """
    Actions dated in [since, until] as detached records.

    Returns:
        (records, rejected) where rejected counts rows that failed validation
    """
    records = []
    rejected = 0
    for row in ClusterActionRepository(db).get_since(since, until):
        try:
            records.append(ClusterActionRecord.model_validate(row))
        except pydantic.ValidationError as e:
            logger.warning(f"Skipping invalid cluster action {row.id}: {e}")
            rejected += 1
    return records, rejected


def group_by_ticker(actions: List[ClusterActionRecord]) -> Dict[str, List[ClusterActionRecord]]:
    groups = defaultdict(list)
    for action in actions:
        groups[action.ticker].append(action)
    return dict(groups)


def run_cycle(
    session_factory=None,
    price_source: Optional[PriceSource] = None,
    clock=None,
    lookback_days: Optional[int] = None,
) -> dict:
    """
    Run one performance update cycle.

    Args:
        session_factory: Callable returning a new Session (defaults to SessionLocal)
        price_source: PriceSource to use; by default one is built with a rate
            limiter sized from settings
        clock: Clock for "today" and pacing (defaults to the system clock)
        lookback_days: Only actions this recent are refreshed

    Returns:
        Statistics about the cycle
    """
    lookback_days = settings.performance_lookback_days if lookback_days is None else lookback_days
    if lookback_days < 1:
        raise ValidationError("lookback_days must be >= 1", details={"lookback_days": lookback_days})

    clock = clock or system_clock
    if price_source is None:
        rate_limiter = RateLimiter(
            requests=settings.provider_rate_limit_requests,
            period=settings.provider_rate_limit_period,
            clock=clock,
        )
        price_source = PriceSource(rate_limiter=rate_limiter, clock=clock)

    stats = {
        "tickers_processed": 0,
        "tickers_skipped": 0,
        "snapshots_recorded": 0,
        "actions_skipped": 0,
        "clusters_updated": 0,
        "errors": 0,
    }

    with session_scope(session_factory) as db:
        since = clock.today() - timedelta(days=lookback_days)
        actions, rejected = load_recent_actions(db, since, clock.today())
        stats["actions_skipped"] += rejected

        groups = group_by_ticker(actions)
        logger.info(f"Updating performance for {len(actions)} actions across {len(groups)} tickers")

        recorder = PerformanceRecorder(db, clock=clock)

        for ticker in sorted(groups):
            group = groups[ticker]
            try:
                quote = price_source.get_current_price(ticker)
                if quote is None:
                    logger.warning(f"{ticker}: no current price, skipping {len(group)} actions")
                    stats["tickers_skipped"] += 1
                    continue

                recorded = 0
                skipped = 0
                for action in group:
                    if recorder.record(action, quote.price) is None:
                        skipped += 1
                    else:
                        recorded += 1

                db.commit()
                stats["tickers_processed"] += 1
                stats["snapshots_recorded"] += recorded
                stats["actions_skipped"] += skipped
                logger.info(f"✓ {ticker}: {recorded} snapshots at {quote.price}")

            except Exception as e:
                logger.error(f"Error updating performance for {ticker}: {e}")
                db.rollback()
                stats["errors"] += 1
                continue

        aggregate = AggregateStatsComputer(db, clock=clock).recompute_all()
        stats["clusters_updated"] = aggregate["clusters_updated"]
        stats["errors"] += aggregate["errors"]

    log.info("cluster_performance_cycle_complete", lookback_days=lookback_days, **stats)
    return stats


def main(argv=None):
    """Entry point for the scheduled job."""
    parser = argparse.ArgumentParser(description="Update cluster action performance snapshots")
    parser.add_argument("--once", action="store_true", help="Run a single cycle and exit")
    parser.add_argument(
        "--lookback-days",
        type=int,
        default=settings.performance_lookback_days,
        help="Refresh actions from this many days back",
    )
    parser.add_argument("--init-db", action="store_true", help="Create missing tables before running")
    args = parser.parse_args(argv)

    if args.init_db:
        init_db()

    if not args.once:
        from jobs.scheduler import run_scheduler

        run_scheduler(lookback_days=args.lookback_days)
        return

    logger.info("Starting cluster performance update")
    stats = run_cycle(lookback_days=args.lookback_days)

    if stats["errors"] > 0:
        logger.warning(f"Completed with {stats['errors']} errors")
        sys.exit(1)
    else:
        logger.info("Cluster performance update completed successfully")
        sys.exit(0)


if __name__ == "__main__":
    main()
