"""
Domain models for cluster actions, price data, and derived performance views.

Pure data models without database or external dependencies.
"""

from datetime import date, datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

VALID_DIRECTIONS = {"buy", "sell", "mixed"}


class ClusterActionRecord(BaseModel):
    """Read-only view of a cluster action as consumed by performance tracking."""

    model_config = ConfigDict(from_attributes=True, frozen=True)

    id: str
    cluster_id: str
    ticker: str = Field(..., min_length=1, max_length=12)
    direction: str
    action_date: date
    avg_entry_price: Optional[float] = None

    @field_validator("direction")
    @classmethod
    def validate_direction(cls, v: str) -> str:
        v_lower = v.lower()
        if v_lower not in VALID_DIRECTIONS:
            raise ValueError(f"Invalid direction '{v}'. Must be one of: {sorted(VALID_DIRECTIONS)}")
        return v_lower

    @field_validator("ticker")
    @classmethod
    def validate_ticker(cls, v: str) -> str:
        """Normalize ticker to uppercase."""
        return v.strip().upper()

    @property
    def has_entry_price(self) -> bool:
        """Actions without a usable entry price never produce a return."""
        return bool(self.avg_entry_price)


class PriceQuote(BaseModel):
    """Current quote for a ticker. Lives only in the price cache."""

    symbol: str
    price: float
    previous_close: Optional[float] = None
    change: Optional[float] = None
    change_percent: Optional[float] = None
    timestamp: datetime
    expires_at: Optional[datetime] = None


class DailyBar(BaseModel):
    """One daily OHLCV bar."""

    date: date
    open: float
    high: float
    low: float
    close: float
    volume: int = 0


class PerformanceMetrics(BaseModel):
    """Entry-relative and trailing returns for a ticker, in percent."""

    entry_price: float
    current_price: float
    return_7d: Optional[float] = None
    return_30d: Optional[float] = None
    return_90d: Optional[float] = None
    return_total: float


class ClusterAggregateStats(BaseModel):
    """Rolled-up performance of one cluster."""

    cluster_id: str
    avg_return_30d: Optional[float] = None
    avg_return_90d: Optional[float] = None
    win_rate: Optional[float] = Field(None, ge=0.0, le=1.0)
    sample_size: int = 0
    updated_at: datetime


class RecentActionPerformance(BaseModel):
    """Latest known return of one recent action."""

    ticker: str
    direction: str
    action_date: date
    current_return: Optional[float] = None


class ClusterPerformanceSummary(BaseModel):
    """Per-cluster view exposed to ranking and display consumers."""

    cluster_id: str
    avg_return_30d: Optional[float] = None
    avg_return_90d: Optional[float] = None
    win_rate: Optional[float] = None
    total_actions: int = 0
    recent_performance: List[RecentActionPerformance] = Field(default_factory=list)


class ActionPerformance(BaseModel):
    """Per-action view built from its latest snapshot."""

    cluster_action_id: str
    current_price: Optional[float] = None
    price_change_pct: Optional[float] = None
    days_since_action: Optional[int] = None
