"""
Cluster performance API.

Serves the read-only performance views. Snapshots and aggregates are written by
the update job (jobs/update_cluster_performance.py), never by the API.
"""

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from api.routers import cluster_performance
from clusterperf.log_config import logger
from clusterperf.utils.errors import ClusterPerfError

app = FastAPI(
    title="Cluster Performance API",
    description="Performance attribution for cluster trading actions: per-action returns and per-cluster aggregates.",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_tags=[
        {"name": "cluster-performance", "description": "Cluster and cluster action performance"},
    ],
)


@app.exception_handler(ClusterPerfError)
async def cluster_perf_exception_handler(request: Request, exc: ClusterPerfError):
    """Handle application errors that escape a router"""
    logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=exc.to_dict(),
    )


@app.get("/health", tags=["cluster-performance"])
def health():
    return {"status": "ok"}


app.include_router(cluster_performance.router)
