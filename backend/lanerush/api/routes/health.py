"""
Health check endpoints.

Provides basic health and status information about the server.
"""

from fastapi import APIRouter
from datetime import datetime, timezone

from lanerush.config import get_settings
from lanerush.core.synchronizer import get_synchronizer

router = APIRouter()
settings = get_settings()


@router.get("/health")
async def health_check() -> dict:
    """
    Basic health check endpoint.

    Returns:
        dict: Server status information including version and race phase.

    Example response:
        {
            "status": "healthy",
            "app_name": "LaneRush",
            "version": "0.1.0",
            "timestamp": "2024-12-11T23:00:00Z",
            "race": {"phase": "waiting", "participants": 0, "connections": 1, "tick_loop": false}
        }
    """
    return {
        "status": "healthy",
        "app_name": settings.APP_NAME,
        "version": settings.VERSION,
        "timestamp": datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ"),
        "race": get_synchronizer().status(),
    }


@router.get("/health/ready")
async def readiness_check() -> dict:
    """
    Readiness check for the service.

    The server is ready when the race is in a consistent state: a tick
    loop is running exactly when a countdown or race is in progress.

    Returns:
        dict: Readiness status.
    """
    synchronizer = get_synchronizer()
    race_status = synchronizer.status()
    active = race_status["phase"] in ("countdown", "running")
    consistent = active == race_status["tick_loop"]

    return {
        "ready": consistent,
        "checks": {
            "race": "ok" if consistent else f"tick loop {'stopped' if active else 'running'} in phase {race_status['phase']}",
        }
    }
