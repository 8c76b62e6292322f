from fastapi import APIRouter, Request
from sqlalchemy import text

from stock_management.utils.cache import redis_client

router = APIRouter(prefix="/health", tags=["Health"])


@router.get(
    "/",
    summary="Health check",
    description="Basic health check endpoint."
)
def health_check():
    """Simple health check."""
    return {"status": "healthy"}


@router.get(
    "/ready",
    summary="Readiness check",
    description="Check if all services (DB, Redis) are ready."
)
def readiness_check(request: Request):
    """
    Readiness check for all dependencies.

    Returns status of:
    - Database connection
    - Redis connection (cache and Celery broker)
    """
    checks = {
        "database": False,
        "redis": False
    }

    # Check database
    try:
        with request.app.state.database.engine.connect() as conn:
            conn.execute(text("SELECT 1"))
            checks["database"] = True
    except Exception as e:
        checks["database_error"] = str(e)

    # Check Redis
    try:
        redis_client.ping()
        checks["redis"] = True
    except Exception as e:
        checks["redis_error"] = str(e)

    # Determine overall status
    all_healthy = all([checks["database"], checks["redis"]])

    return {
        "status": "ready" if all_healthy else "not_ready",
        "checks": checks
    }
