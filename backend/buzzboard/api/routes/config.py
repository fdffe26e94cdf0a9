"""
Configuration API endpoints.

Provides access to server configuration for clients.
"""

from fastapi import APIRouter
from typing import Dict, Any

from buzzboard.config import get_settings

router = APIRouter(prefix="/config", tags=["config"])


@router.get("/polling")
async def get_polling_config() -> Dict[str, Any]:
    """
    Get polling and lobby parameters.

    Clients use these to pace their version polling and to know how long
    an idle lobby survives.

    Returns:
        dict: Polling interval hints and lobby limits
    """
    settings = get_settings()

    return {
        "POLL_INTERVAL_MS": settings.polling.POLL_INTERVAL_MS,
        "MAX_POLL_INTERVAL_MS": settings.polling.MAX_POLL_INTERVAL_MS,
        "LOBBY_TTL_SECONDS": settings.lobby.LOBBY_TTL_SECONDS,
        "CODE_LENGTH": settings.lobby.CODE_LENGTH,
        "MAX_PLAYER_NAME_LENGTH": settings.lobby.MAX_PLAYER_NAME_LENGTH,
        "DEFAULT_TIMER_SECONDS": settings.lobby.DEFAULT_TIMER_SECONDS,
    }
