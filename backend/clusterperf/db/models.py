"""
SQLAlchemy 2.0 database models for cluster performance tracking.

cluster_definitions and cluster_actions are written by the detection subsystem;
this package only reads them, apart from the aggregate columns on
cluster_definitions. cluster_performance is owned here.
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()

CLUSTER_TYPES = (
    "company_insider",
    "cross_company_exec",
    "congressional",
    "institutional",
    "mixed_influential",
)

ACTION_DIRECTIONS = ("buy", "sell", "mixed")


def _in_list(column: str, values) -> str:
    return f"{column} IN (" + ", ".join(f"'{v}'" for v in values) + ")"


def _new_id() -> str:
    return str(uuid.uuid4())


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ClusterDefinition(Base):
    """A recurring group of correlated participants, with its rolled-up performance."""

    __tablename__ = "cluster_definitions"
    __table_args__ = (
        CheckConstraint(_in_list("type", CLUSTER_TYPES), name="ck_cluster_definitions_type"),
        Index("ix_cluster_definitions_is_active", "is_active"),
    )

    id = Column(String(36), primary_key=True, default=_new_id)
    member_fingerprint = Column(String, nullable=False, unique=True)
    name = Column(String, nullable=True)
    description = Column(Text, nullable=True)
    type = Column(String, nullable=False)
    correlation_score = Column(Float, nullable=False, default=0.0)
    total_occurrences = Column(Integer, nullable=False, default=0)

    # Derived from cluster_performance; rewritten wholesale on every recompute
    avg_return_30d = Column(Float, nullable=True)
    avg_return_90d = Column(Float, nullable=True)
    win_rate = Column(Float, nullable=True)

    first_detected_at = Column(DateTime(timezone=True), default=_utcnow)
    last_activity_at = Column(DateTime(timezone=True), default=_utcnow)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow)
    updated_at = Column(DateTime(timezone=True), default=_utcnow)

    actions = relationship("ClusterAction", back_populates="cluster")

    def __repr__(self) -> str:
        return f"<ClusterDefinition(id={self.id}, type={self.type}, active={self.is_active})>"


class ClusterAction(Base):
    """One directional trading event attributed to a cluster."""

    __tablename__ = "cluster_actions"
    __table_args__ = (
        CheckConstraint(_in_list("direction", ACTION_DIRECTIONS), name="ck_cluster_actions_direction"),
        Index("ix_cluster_actions_cluster_id", "cluster_id"),
        Index("ix_cluster_actions_ticker", "ticker"),
        Index("ix_cluster_actions_action_date", "action_date"),
    )

    id = Column(String(36), primary_key=True, default=_new_id)
    cluster_id = Column(String(36), ForeignKey("cluster_definitions.id"), nullable=False)
    ticker = Column(String, nullable=False)
    company_name = Column(String, nullable=True)
    direction = Column(String, nullable=False)
    action_date = Column(Date, nullable=False)
    participant_count = Column(Integer, nullable=False, default=0)
    total_value = Column(Float, nullable=False, default=0.0)
    avg_entry_price = Column(Float, nullable=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow)

    cluster = relationship("ClusterDefinition", back_populates="actions")
    performance = relationship("ClusterPerformance", back_populates="action")

    def __repr__(self) -> str:
        return (
            f"<ClusterAction(id={self.id}, ticker={self.ticker}, "
            f"direction={self.direction}, date={self.action_date})>"
        )


class ClusterPerformance(Base):
    """Price observation for an action, one row per (action, days since action)."""

    __tablename__ = "cluster_performance"
    __table_args__ = (
        UniqueConstraint(
            "cluster_action_id", "days_since_action", name="uq_cluster_performance_action_day"
        ),
        Index("ix_cluster_performance_action_id", "cluster_action_id"),
        Index("ix_cluster_performance_days", "days_since_action"),
    )

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    cluster_action_id = Column(String(36), ForeignKey("cluster_actions.id"), nullable=False)
    days_since_action = Column(Integer, nullable=False)
    current_price = Column(Float, nullable=False)
    price_change_pct = Column(Float, nullable=False)  # sign flipped for sell actions
    recorded_at = Column(DateTime(timezone=True), default=_utcnow)

    action = relationship("ClusterAction", back_populates="performance")

    def __repr__(self) -> str:
        return (
            f"<ClusterPerformance(action_id={self.cluster_action_id}, "
            f"days={self.days_since_action}, change={self.price_change_pct:.2f}%)>"
        )
