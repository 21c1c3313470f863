"""
Per-action performance snapshots.

One snapshot per (action, days since action). The stored change is relative to
the action's entry price, with the sign flipped for sell actions so that a
price drop after a sell counts as a gain. Mixed actions keep the raw sign.
"""

from typing import Optional

from sqlalchemy.orm import Session

from clusterperf.db.repositories import ClusterPerformanceRepository
from clusterperf.domain.clusters import ClusterActionRecord
from clusterperf.log_config import logger
from clusterperf.services.prices import calculate_return
from clusterperf.utils.clock import system_clock


def directional_change(direction: str, entry_price: float, current_price: float) -> float:
    """Percentage change versus entry, negated for sell actions."""
    change = calculate_return(entry_price, current_price)
    if direction == "sell":
        return -change
    return change


class PerformanceRecorder:
    """Writes performance snapshots for cluster actions."""

    def __init__(self, db: Session, clock=None):
        self.db = db
        self.clock = clock or system_clock
        self.snapshots = ClusterPerformanceRepository(db)

    def record(self, action: ClusterActionRecord, current_price: float) -> Optional[float]:
        """
        Upsert today's snapshot for an action.

        Returns the stored percentage change, or None when the action has no
        usable entry price or is dated in the future. Recording twice on the same day overwrites.
        """
        if not action.has_entry_price:
            logger.debug(f"Skipping action {action.id} ({action.ticker}): no entry price")
            return None

        days_since_action = (self.clock.today() - action.action_date).days
        if days_since_action < 0:
            logger.debug(f"Skipping action {action.id} ({action.ticker}): dated {action.action_date}, in the future")
            return None

        change = directional_change(action.direction, action.avg_entry_price, current_price)

        self.snapshots.upsert(
            cluster_action_id=action.id,
            days_since_action=days_since_action,
            current_price=current_price,
            price_change_pct=change,
            recorded_at=self.clock.now(),
        )
        logger.debug(
            f"Recorded {action.ticker} {action.direction} action {action.id}: "
            f"day {days_since_action}, {change:+.2f}%"
        )
        return change
