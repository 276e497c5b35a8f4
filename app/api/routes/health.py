from fastapi import APIRouter

from app.core.limiter import limiter
from app.core.health import health_payload, ready_payload

router = APIRouter(prefix="/api", tags=["health"])


@router.get("/health", summary="Service health check")
@limiter.exempt
async def read_health() -> dict:
    return await health_payload()


@router.get("/health/ready", summary="Service readiness check")
@limiter.exempt
async def health_ready() -> dict:
    return await ready_payload()
