"""
Read-only performance views for ranking and display consumers.
"""

from sqlalchemy.orm import Session

from clusterperf.db.repositories import (
    ClusterActionRepository,
    ClusterDefinitionRepository,
    ClusterPerformanceRepository,
)
from clusterperf.domain.clusters import (
    ActionPerformance,
    ClusterPerformanceSummary,
    RecentActionPerformance,
)
from clusterperf.utils.errors import RecordNotFoundError

RECENT_ACTIONS_LIMIT = 5


def get_cluster_performance_summary(db: Session, cluster_id: str) -> ClusterPerformanceSummary:
    """
    Stored aggregates of a cluster plus the latest return of its 5 newest actions.

    Raises:
        RecordNotFoundError: If the cluster does not exist
    """
    cluster = ClusterDefinitionRepository(db).get_by_id(cluster_id)
    if cluster is None:
        raise RecordNotFoundError(f"Cluster {cluster_id} not found", details={"cluster_id": cluster_id})

    actions = ClusterActionRepository(db)
    snapshots = ClusterPerformanceRepository(db)

    recent = []
    for action in actions.get_by_cluster(cluster_id, limit=RECENT_ACTIONS_LIMIT):
        latest = snapshots.get_latest_for_action(action.id)
        recent.append(RecentActionPerformance(
            ticker=action.ticker,
            direction=action.direction,
            action_date=action.action_date,
            current_return=latest.price_change_pct if latest is not None else None,
        ))

    return ClusterPerformanceSummary(
        cluster_id=cluster.id,
        avg_return_30d=cluster.avg_return_30d,
        avg_return_90d=cluster.avg_return_90d,
        win_rate=cluster.win_rate,
        total_actions=actions.count_by_cluster(cluster_id),
        recent_performance=recent,
    )


def get_action_performance(db: Session, action_id: str) -> ActionPerformance:
    """
    Latest snapshot of an action. Fields are None until one has been recorded.

    Raises:
        RecordNotFoundError: If the action does not exist
    """
    if ClusterActionRepository(db).get_by_id(action_id) is None:
        raise RecordNotFoundError(f"Cluster action {action_id} not found", details={"action_id": action_id})

    latest = ClusterPerformanceRepository(db).get_latest_for_action(action_id)
    if latest is None:
        return ActionPerformance(cluster_action_id=action_id)

    return ActionPerformance(
        cluster_action_id=action_id,
        current_price=latest.current_price,
        price_change_pct=latest.price_change_pct,
        days_since_action=latest.days_since_action,
    )
