"""
Utility routes
"""
from fastapi import APIRouter

router = APIRouter(prefix="/utils", tags=["utils"])


@router.get("/health-check/")
async def health_check() -> bool:
    """
    Liveness check

    GET /api/v1/utils/health-check/ always returns true while the process
    serves requests; used by the load balancer and container orchestrator.
    """
    return True
