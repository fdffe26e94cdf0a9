"""
Health check endpoints.

Provides basic health and status information about the server.
"""

from fastapi import APIRouter, Depends
from datetime import datetime, timezone

from buzzboard.config import get_settings
from buzzboard.core.lobby_service import LobbyService, get_lobby_service

router = APIRouter()
settings = get_settings()


@router.get("/health")
async def health_check(service: LobbyService = Depends(get_lobby_service)) -> dict:
    """
    Basic health check endpoint.

    Returns:
        dict: Server status information including version, store status
            and the number of live lobbies.

    Example response:
        {
            "status": "healthy",
            "version": "0.1.0",
            "timestamp": "2026-10-19T23:00:00Z",
            "store": "connected",
            "lobbies": 3
        }
    """
    store_ok = await service.store.ping()

    return {
        "status": "healthy",
        "app_name": settings.APP_NAME,
        "version": settings.VERSION,
        "timestamp": datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ"),
        "store": "connected" if store_ok else "unavailable",
        "lobbies": await service.count_lobbies() if store_ok else None,
    }


@router.get("/health/ready")
async def readiness_check(service: LobbyService = Depends(get_lobby_service)) -> dict:
    """
    Readiness check for the service.

    Verifies that the lobby store answers before the instance takes traffic.

    Returns:
        dict: Readiness status.
    """
    if await service.store.ping():
        return {
            "ready": True,
            "checks": {
                "store": "ok"
            }
        }
    return {
        "ready": False,
        "checks": {
            "store": "failed"
        }
    }
