"""Health check router."""

from fastapi import APIRouter, Request

router = APIRouter()


@router.get("/health")
async def health_check(request: Request):
    """Check API and vulnerability catalog health."""
    database = getattr(request.app.state, "database", None)
    load_error = getattr(request.app.state, "catalog_error", None)
    if database is not None:
        catalog_status = "healthy"
    else:
        catalog_status = f"unhealthy: {load_error or 'not loaded'}"

    return {
        "status": "healthy" if database is not None else "degraded",
        "catalog": catalog_status,
        "vulnerabilities": len(database) if database is not None else 0,
        "version": "0.1.0",
    }


@router.get("/ready")
async def readiness_check(request: Request):
    """Check if the API is ready to run scans."""
    return {"ready": getattr(request.app.state, "database", None) is not None}
