"""
Dial-by-Name Directory - Health Check Endpoints

System health monitoring endpoints for load balancers, monitoring,
and operational visibility.
"""

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Request

from dialbyname import __version__
from dialbyname.config import Settings
from dialbyname.core.cache import ResultCache

router = APIRouter(prefix="/api/system", tags=["system"])


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_cache(request: Request) -> Optional[ResultCache]:
    return getattr(request.app.state, "cache", None)


def _timestamp() -> str:
    return datetime.utcnow().isoformat() + "Z"


@router.get("/health")
async def health_check(
    settings: Settings = Depends(get_app_settings),
    cache: Optional[ResultCache] = Depends(get_cache),
) -> dict:
    """
    Overall system health check.

    Returns:
        - status: "healthy" or "degraded"
        - checks: Individual component statuses
        - timestamp: Current server time

    Used by load balancers and monitoring systems.
    """
    checks = {}

    checks["directory_api"] = {
        "status": "healthy" if settings.ns_api_key else "degraded",
        "host": settings.ns_api_host,
        "credentials": "configured" if settings.ns_api_key else "missing",
    }

    if cache is None:
        checks["cache"] = {"status": "disabled"}
    else:
        checks["cache"] = {
            "status": "healthy" if cache.cache_dir.is_dir() else "degraded",
            "ttl_seconds": cache.ttl_seconds,
        }

    checks["sessions"] = {
        "status": "healthy",
        "backend": settings.session_backend,
    }

    all_healthy = all(
        c.get("status") in ("healthy", "disabled")
        for c in checks.values()
    )

    return {
        "status": "healthy" if all_healthy else "degraded",
        "timestamp": _timestamp(),
        "version": __version__,
        "environment": settings.app_env,
        "checks": checks,
    }


@router.get("/ready")
async def readiness_check() -> dict:
    """
    Readiness probe for Kubernetes/container orchestration.

    Returns 200 if the service is ready to accept requests.
    """
    return {
        "ready": True,
        "timestamp": _timestamp(),
    }


@router.get("/live")
async def liveness_check() -> dict:
    """
    Liveness probe for Kubernetes/container orchestration.

    Returns 200 if the service is alive.
    """
    return {
        "alive": True,
        "timestamp": _timestamp(),
    }


@router.get("/cache_status")
async def cache_status(
    cache: Optional[ResultCache] = Depends(get_cache),
) -> dict:
    """
    Result cache status.

    Returns:
        - enabled: Whether the cache is in use
        - cache_dir / ttl_seconds: Cache configuration
        - entries / valid / expired: Record counts
        - users: Users held across valid records
    """
    if cache is None:
        return {"enabled": False, "timestamp": _timestamp()}

    entries = cache.list_entries()
    valid = [e for e in entries if e.is_valid]

    return {
        "enabled": True,
        "cache_dir": str(cache.cache_dir),
        "ttl_seconds": cache.ttl_seconds,
        "entries": len(entries),
        "valid": len(valid),
        "expired": len(entries) - len(valid),
        "users": sum(e.user_count for e in valid),
        "total_bytes": sum(e.file_size_bytes for e in entries),
        "timestamp": _timestamp(),
    }
