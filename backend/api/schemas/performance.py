"""
Cluster performance API response schemas.

Returns are percentages; sell actions are already sign-flipped so a positive
value always means the signal was right.
"""

from datetime import date
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class RecentActionResponse(BaseModel):
    """Latest known return of one of a cluster's newest actions."""
    ticker: str = Field(description="Stock ticker symbol")
    direction: str = Field(description="Action direction: buy, sell or mixed")
    action_date: date = Field(description="Date of the cluster action")
    current_return: Optional[float] = Field(None, description="Latest recorded return (%), null before the first snapshot")


class ClusterPerformanceResponse(BaseModel):
    """
    Rolled-up performance of a cluster.

    Aggregates are recomputed after every update cycle from all recorded
    snapshots of the cluster's actions.
    """
    cluster_id: str = Field(description="Cluster identifier")
    avg_return_30d: Optional[float] = Field(None, description="Mean return of snapshots 25-35 days after the action (%)")
    avg_return_90d: Optional[float] = Field(None, description="Mean return of snapshots 85-95 days after the action (%)")
    win_rate: Optional[float] = Field(None, description="Share of snapshots 7+ days old with a positive return (0-1)")
    total_actions: int = Field(description="Number of actions attributed to the cluster")
    recent_performance: List[RecentActionResponse] = Field(default_factory=list, description="Up to 5 newest actions")

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "cluster_id": "5f0c7a62-9d7e-4a59-8d0e-0d6f3f9a1c2b",
                "avg_return_30d": 4.8,
                "avg_return_90d": 11.2,
                "win_rate": 0.64,
                "total_actions": 14,
                "recent_performance": [
                    {"ticker": "NVDA", "direction": "buy", "action_date": "2025-03-03", "current_return": 6.1}
                ],
            }
        }
    )


class ActionPerformanceResponse(BaseModel):
    """Latest snapshot of a single cluster action."""
    cluster_action_id: str = Field(description="Cluster action identifier")
    current_price: Optional[float] = Field(None, description="Price at the latest observation")
    price_change_pct: Optional[float] = Field(None, description="Return versus entry price (%), sign flipped for sells")
    days_since_action: Optional[int] = Field(None, description="Days between the action and the latest observation")
