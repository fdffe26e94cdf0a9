"""
REST API endpoints for lobby management.

Provides the lobby lifecycle and the polling read path:
- Create and join lobbies
- Get lobby details and the lightweight version for polling
- Rename, deactivate and close lobbies (host only)
- Leave a lobby
"""

from typing import Any, Dict, Optional
from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field
import logging

from buzzboard.config import get_settings
from buzzboard.core.lobby_service import LobbyService, get_lobby_service

logger = logging.getLogger(__name__)

settings = get_settings()

router = APIRouter(prefix="/lobbies")


# ===== Pydantic Models =====

class CreateLobbyRequest(BaseModel):
    """Request to create a new lobby."""
    password: Optional[str] = Field(default=None, max_length=settings.lobby.MAX_PASSWORD_LENGTH, description="Optional join password")
    lobby_name: Optional[str] = Field(default=None, max_length=settings.lobby.MAX_LOBBY_NAME_LENGTH, description="Optional display name")


class CreateLobbyResponse(BaseModel):
    code: str
    host_id: str


class JoinLobbyRequest(BaseModel):
    """Request to join a lobby by code."""
    code: str = Field(..., min_length=1, max_length=8, description="Lobby code (case-insensitive)")
    player_name: str = Field(..., min_length=1, max_length=settings.lobby.MAX_PLAYER_NAME_LENGTH, description="Display name, unique per lobby")
    password: Optional[str] = Field(default=None, description="Lobby password, if one is set")


class JoinLobbyResponse(BaseModel):
    player_id: str
    code: str


class RenameLobbyRequest(BaseModel):
    host_id: str
    lobby_name: Optional[str] = Field(default=None, max_length=settings.lobby.MAX_LOBBY_NAME_LENGTH)


class RenameLobbyResponse(BaseModel):
    lobby_name: Optional[str] = None


class LeaveLobbyRequest(BaseModel):
    """Host leaving (is_host with the host token as player_id) closes the lobby."""
    player_id: str
    is_host: bool = False


class LeaveLobbyResponse(BaseModel):
    lobby_deleted: bool


class HostRequest(BaseModel):
    host_id: str


class LobbyResponse(BaseModel):
    """Full lobby details response. The password itself is never included."""
    code: str
    host_id: str
    lobby_name: Optional[str] = None
    has_password: bool
    is_active: bool
    created_at: int
    version: int
    last_modified: int
    game_state: Dict[str, Any]


class VersionResponse(BaseModel):
    """Polling response; fetch the full lobby only when version changes."""
    version: int
    last_modified: int
    buzzer_active: bool
    buzzer_queue_length: int


# ===== REST Endpoints =====

@router.post("", response_model=CreateLobbyResponse, status_code=201)
async def create_lobby(
    request: CreateLobbyRequest,
    service: LobbyService = Depends(get_lobby_service)
):
    """
    Create a new lobby.

    Returns:
        Lobby code and the host token (keep it secret, it administers the lobby)
    """
    created = await service.create_lobby(password=request.password, lobby_name=request.lobby_name)
    return CreateLobbyResponse(code=created.code, host_id=created.host_id)


@router.post("/join", response_model=JoinLobbyResponse)
async def join_lobby(
    request: JoinLobbyRequest,
    service: LobbyService = Depends(get_lobby_service)
):
    """
    Join a lobby.

    Raises:
        404: Lobby not found
        410: Lobby no longer active
        403: Incorrect password
        409: Player name already taken
    """
    joined = await service.join_lobby(request.code, request.player_name, request.password)
    return JoinLobbyResponse(player_id=joined.player_id, code=joined.code)


@router.get("/{code}", response_model=LobbyResponse)
async def get_lobby(code: str, service: LobbyService = Depends(get_lobby_service)):
    """
    Get full lobby details.

    Raises:
        404: Lobby not found
    """
    return await service.get_lobby(code)


@router.get("/{code}/version", response_model=VersionResponse)
async def get_lobby_version(code: str, service: LobbyService = Depends(get_lobby_service)):
    """
    Lightweight change-detection endpoint for polling clients.

    Raises:
        404: Lobby not found
    """
    info = await service.get_version(code)
    return VersionResponse(
        version=info.version,
        last_modified=info.last_modified,
        buzzer_active=info.buzzer_active,
        buzzer_queue_length=info.buzzer_queue_length,
    )


@router.put("/{code}/name", response_model=RenameLobbyResponse)
async def rename_lobby(
    code: str,
    request: RenameLobbyRequest,
    service: LobbyService = Depends(get_lobby_service)
):
    """
    Rename lobby (host only).

    Raises:
        404: Lobby not found
        403: Not the host
    """
    name = await service.rename_lobby(code, request.host_id, request.lobby_name)
    return RenameLobbyResponse(lobby_name=name)


@router.post("/{code}/leave", response_model=LeaveLobbyResponse)
async def leave_lobby(
    code: str,
    request: LeaveLobbyRequest,
    service: LobbyService = Depends(get_lobby_service)
):
    """
    Leave a lobby. The host leaving closes the lobby for everyone.

    Raises:
        404: Lobby not found
    """
    deleted = await service.leave_lobby(code, request.player_id, request.is_host)
    return LeaveLobbyResponse(lobby_deleted=deleted)


@router.post("/{code}/deactivate", status_code=204)
async def deactivate_lobby(
    code: str,
    request: HostRequest,
    service: LobbyService = Depends(get_lobby_service)
):
    """
    Stop accepting new players (host only). The lobby stays readable.

    Raises:
        404: Lobby not found
        403: Not the host
    """
    await service.deactivate_lobby(code, request.host_id)
    return None


@router.delete("/{code}", status_code=204)
async def close_lobby(
    code: str,
    host_id: str = Query(..., description="Host token of the lobby"),
    service: LobbyService = Depends(get_lobby_service)
):
    """
    Close lobby (host only).

    Raises:
        404: Lobby not found
        403: Not the host
    """
    await service.close_lobby(code, host_id)

    # 204 No Content - no response body
    return None
