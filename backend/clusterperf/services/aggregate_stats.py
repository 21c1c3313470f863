"""
Cluster-level performance statistics.

Every recompute is a full rescan of the cluster's snapshots, so the stored
aggregates are always a pure function of cluster_performance:
- avg_return_30d: mean change of snapshots 25-35 days after the action
- avg_return_90d: mean change of snapshots 85-95 days after the action
- win_rate: share of snapshots at least 7 days old with a strictly positive change
"""

from typing import Dict, Optional

import pandas as pd
from sqlalchemy.orm import Session

from clusterperf.db.repositories import (
    ClusterActionRepository,
    ClusterDefinitionRepository,
    ClusterPerformanceRepository,
)
from clusterperf.domain.clusters import ClusterAggregateStats
from clusterperf.log_config import logger
from clusterperf.utils.clock import system_clock
from clusterperf.utils.errors import RecordNotFoundError

WINDOW_30D = (25, 35)
WINDOW_90D = (85, 95)
WIN_RATE_MIN_DAYS = 7


def _window_mean(df: pd.DataFrame, window: tuple) -> Optional[float]:
    low, high = window
    changes = df.loc[df["days"].between(low, high), "change"]
    if changes.empty:
        return None
    return float(changes.mean())


def compute_cluster_stats(df: pd.DataFrame) -> Dict[str, Optional[float]]:
    """
    Aggregate a frame of snapshots with ``days`` and ``change`` columns.

    Windows with no snapshots yield None. A change of exactly 0 counts as a loss.
    """
    payload = {
        "avg_return_30d": None,
        "avg_return_90d": None,
        "win_rate": None,
    }
    if df.empty:
        return payload

    payload["avg_return_30d"] = _window_mean(df, WINDOW_30D)
    payload["avg_return_90d"] = _window_mean(df, WINDOW_90D)

    matured = df.loc[df["days"] >= WIN_RATE_MIN_DAYS, "change"]
    if len(matured) > 0:
        payload["win_rate"] = float((matured > 0).sum() / len(matured))

    return payload


class AggregateStatsComputer:
    """Recomputes and stores the aggregate columns of cluster definitions."""

    def __init__(self, db: Session, clock=None):
        self.db = db
        self.clock = clock or system_clock
        self.clusters = ClusterDefinitionRepository(db)
        self.actions = ClusterActionRepository(db)
        self.snapshots = ClusterPerformanceRepository(db)

    def recompute(self, cluster_id: str) -> Optional[ClusterAggregateStats]:
        """
        Recompute one cluster and write the result onto its definition.

        Returns None, leaving the stored values untouched, when the cluster has
        no actions.

        Raises:
            RecordNotFoundError: If the cluster does not exist
        """
        if self.clusters.get_by_id(cluster_id) is None:
            raise RecordNotFoundError(f"Cluster {cluster_id} not found", details={"cluster_id": cluster_id})

        action_ids = self.actions.get_ids_by_cluster(cluster_id)
        if not action_ids:
            logger.debug(f"Cluster {cluster_id} has no actions, aggregates left unchanged")
            return None

        rows = self.snapshots.get_changes_for_actions(action_ids)
        df = pd.DataFrame(rows, columns=["days", "change"])
        payload = compute_cluster_stats(df)

        stats = ClusterAggregateStats(
            cluster_id=cluster_id,
            sample_size=len(df),
            updated_at=self.clock.now(),
            **payload,
        )
        self.clusters.update_aggregate_stats(
            cluster_id,
            avg_return_30d=stats.avg_return_30d,
            avg_return_90d=stats.avg_return_90d,
            win_rate=stats.win_rate,
            updated_at=stats.updated_at,
        )
        return stats

    def recompute_all(self) -> dict:
        """
        Recompute every active cluster, committing each one on its own.

        A failing cluster is rolled back and counted; the rest still run.
        """
        stats = {
            "clusters_processed": 0,
            "clusters_updated": 0,
            "clusters_without_actions": 0,
            "errors": 0,
        }

        for cluster_id in self.clusters.get_active_ids():
            try:
                result = self.recompute(cluster_id)
                self.db.commit()
                if result is None:
                    stats["clusters_without_actions"] += 1
                else:
                    stats["clusters_updated"] += 1
                    win_rate = f"{result.win_rate:.2%}" if result.win_rate is not None else "n/a"
                    logger.info(
                        f"Cluster {cluster_id}: {result.sample_size} snapshots, "
                        f"avg_30d={result.avg_return_30d}, avg_90d={result.avg_return_90d}, "
                        f"win_rate={win_rate}"
                    )
            except Exception as e:
                logger.error(f"Error recomputing cluster {cluster_id}: {e}")
                self.db.rollback()
                stats["errors"] += 1
                continue

            stats["clusters_processed"] += 1

        return stats
