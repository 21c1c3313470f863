"""
Cluster performance API router.

Read-only views over recorded performance snapshots and the aggregate stats
stored on cluster definitions.
"""

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from api.dependencies import get_db
from api.schemas.performance import ActionPerformanceResponse, ClusterPerformanceResponse
from clusterperf.services.performance_summary import (
    get_action_performance,
    get_cluster_performance_summary,
)
from clusterperf.utils.errors import RecordNotFoundError

router = APIRouter(tags=["cluster-performance"])


@router.get(
    "/clusters/{cluster_id}/performance",
    response_model=ClusterPerformanceResponse,
    summary="Get cluster performance",
    description="Returns 30/90-day average returns, win rate, action count and the latest returns of the 5 newest actions.",
)
def get_cluster_performance(cluster_id: str, db: Session = Depends(get_db)):
    try:
        summary = get_cluster_performance_summary(db, cluster_id)
    except RecordNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=e.message)

    return ClusterPerformanceResponse(**summary.model_dump())


@router.get(
    "/cluster-actions/{action_id}/performance",
    response_model=ActionPerformanceResponse,
    summary="Get cluster action performance",
    description="Returns the latest performance snapshot of a cluster action. Fields are null until the first snapshot is recorded.",
)
def get_cluster_action_performance(action_id: str, db: Session = Depends(get_db)):
    try:
        performance = get_action_performance(db, action_id)
    except RecordNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=e.message)

    return ActionPerformanceResponse(**performance.model_dump())
