"""
Repository pattern for data access.

Provides clean interfaces for database operations, abstracting SQLAlchemy details.
Each repository handles a single table: cluster definitions, cluster actions,
and performance snapshots.
"""

from datetime import date, datetime
from typing import List, Optional, Sequence, Tuple

from sqlalchemy import desc, func, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import Session

from clusterperf.db.models import ClusterAction, ClusterDefinition, ClusterPerformance
from clusterperf.utils.errors import DatabaseError, RecordNotFoundError


def _dialect_insert(db: Session):
    """INSERT construct supporting ON CONFLICT for the session's dialect."""
    dialect = db.get_bind().dialect.name
    if dialect == "postgresql":
        return postgresql.insert
    if dialect == "sqlite":
        return sqlite.insert
    raise DatabaseError(f"Upsert not supported for dialect '{dialect}'")


class ClusterDefinitionRepository:
    """Repository for ClusterDefinition operations."""

    def __init__(self, db: Session):
        self.db = db

    def get_by_id(self, cluster_id: str) -> Optional[ClusterDefinition]:
        """Get cluster by ID."""
        return self.db.get(ClusterDefinition, cluster_id)

    def get_active_ids(self) -> List[str]:
        """IDs of every active cluster."""
        result = self.db.execute(
            select(ClusterDefinition.id)
            .where(ClusterDefinition.is_active.is_(True))
            .order_by(ClusterDefinition.id)
        )
        return [row[0] for row in result]

    def update_aggregate_stats(
        self,
        cluster_id: str,
        avg_return_30d: Optional[float],
        avg_return_90d: Optional[float],
        win_rate: Optional[float],
        updated_at: datetime,
    ) -> None:
        """Overwrite the aggregate columns of a cluster."""
        cluster = self.get_by_id(cluster_id)
        if cluster is None:
            raise RecordNotFoundError(f"Cluster {cluster_id} not found", details={"cluster_id": cluster_id})

        cluster.avg_return_30d = avg_return_30d
        cluster.avg_return_90d = avg_return_90d
        cluster.win_rate = win_rate
        cluster.updated_at = updated_at
        self.db.flush()


class ClusterActionRepository:
    """Repository for ClusterAction reads."""

    def __init__(self, db: Session):
        self.db = db

    def get_by_id(self, action_id: str) -> Optional[ClusterAction]:
        """Get action by ID."""
        return self.db.get(ClusterAction, action_id)

    def get_since(self, since: date, until: Optional[date] = None) -> List[ClusterAction]:
        """Actions dated on or after ``since`` (and not after ``until``), newest first."""
        query = select(ClusterAction).where(ClusterAction.action_date >= since)
        if until is not None:
            query = query.where(ClusterAction.action_date <= until)
        result = self.db.execute(query.order_by(desc(ClusterAction.action_date), ClusterAction.id))
        return list(result.scalars())

    def get_by_cluster(self, cluster_id: str, limit: Optional[int] = None) -> List[ClusterAction]:
        """Actions of a cluster, newest first."""
        query = (
            select(ClusterAction)
            .where(ClusterAction.cluster_id == cluster_id)
            .order_by(desc(ClusterAction.action_date), ClusterAction.id)
        )
        if limit:
            query = query.limit(limit)
        return list(self.db.execute(query).scalars())

    def get_ids_by_cluster(self, cluster_id: str) -> List[str]:
        """IDs of every action belonging to a cluster."""
        result = self.db.execute(
            select(ClusterAction.id).where(ClusterAction.cluster_id == cluster_id)
        )
        return [row[0] for row in result]

    def count_by_cluster(self, cluster_id: str) -> int:
        """Number of actions belonging to a cluster."""
        return self.db.execute(
            select(func.count(ClusterAction.id)).where(ClusterAction.cluster_id == cluster_id)
        ).scalar_one()


class ClusterPerformanceRepository:
    """Repository for performance snapshots."""

    def __init__(self, db: Session):
        self.db = db

    def upsert(
        self,
        cluster_action_id: str,
        days_since_action: int,
        current_price: float,
        price_change_pct: float,
        recorded_at: datetime,
    ) -> None:
        """Insert a snapshot, or overwrite the one already stored for (action, day)."""
        insert = _dialect_insert(self.db)
        stmt = insert(ClusterPerformance).values(
            cluster_action_id=cluster_action_id,
            days_since_action=days_since_action,
            current_price=current_price,
            price_change_pct=price_change_pct,
            recorded_at=recorded_at,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["cluster_action_id", "days_since_action"],
            set_={
                "current_price": stmt.excluded.current_price,
                "price_change_pct": stmt.excluded.price_change_pct,
                "recorded_at": stmt.excluded.recorded_at,
            },
        )
        self.db.execute(stmt)

    def get_changes_for_actions(self, action_ids: Sequence[str]) -> List[Tuple[int, float]]:
        """(days_since_action, price_change_pct) for every snapshot of the given actions."""
        if not action_ids:
            return []
        result = self.db.execute(
            select(ClusterPerformance.days_since_action, ClusterPerformance.price_change_pct)
            .where(ClusterPerformance.cluster_action_id.in_(list(action_ids)))
        )
        return [(row[0], row[1]) for row in result]

    def get_latest_for_action(self, action_id: str) -> Optional[ClusterPerformance]:
        """Snapshot with the highest days_since_action for an action."""
        return self.db.execute(
            select(ClusterPerformance)
            .where(ClusterPerformance.cluster_action_id == action_id)
            .order_by(desc(ClusterPerformance.days_since_action))
            .limit(1)
        ).scalars().first()
