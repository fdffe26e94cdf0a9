"""
Lobby service for trivia lobbies.

This module implements every lobby operation on top of a LobbyStore:
lifecycle (create, join, leave, rename, close), game state reads and
writes, buzzing, and the lightweight version read used by polling clients.

Every mutation is an optimistic-concurrency transaction: read the record,
apply the change to the loaded copy, bump the version, and write back only
if the stored version is still the one that was read. Conflicting writers
retry with backoff, so concurrent buzzes or edits never silently drop each
other.
"""

import asyncio
import logging
import random
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional

from buzzboard.config import Settings, get_settings
from buzzboard.core.buzzer import Buzz, queue_position
from buzzboard.core.commands import GameCommand, PatchGameState
from buzzboard.core.errors import (
    ConflictError,
    ForbiddenError,
    InternalError,
    InvalidStateError,
    LobbyGoneError,
    LobbyNotFoundError,
)
from buzzboard.core.join_code import (
    generate_host_id,
    generate_lobby_code,
    generate_player_id,
    is_valid_lobby_code,
    normalize_lobby_code,
)
from buzzboard.core.lobby import GameState, Lobby, Player, now_ms
from buzzboard.core.store import LobbyStore, StoreUnavailable, VersionConflict, create_lobby_store

logger = logging.getLogger(__name__)

Mutation = Callable[[Lobby, int], None]


@dataclass
class CreatedLobby:
    code: str
    host_id: str


@dataclass
class JoinedLobby:
    player_id: str
    code: str


@dataclass
class VersionInfo:
    """What polling clients need to decide whether to fetch the full lobby."""
    version: int
    last_modified: int
    buzzer_active: bool
    buzzer_queue_length: int


@dataclass
class BuzzResult:
    position: int
    timestamp: int


def _mask(token: str) -> str:
    """Shorten a bearer token for log output."""
    return f"{token[:10]}..." if token and len(token) > 10 else "?"


class LobbyService:
    """
    Lobby operations over an injected store.

    The service holds no lobby state of its own; any number of instances
    (in one process or many) can serve the same lobbies through a shared
    store.
    """

    def __init__(
        self,
        store: LobbyStore,
        settings: Optional[Settings] = None,
        clock: Callable[[], int] = now_ms,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        """
        Initialize lobby service.

        Args:
            store: Lobby record store
            settings: Application settings (global settings if None)
            clock: Epoch-milliseconds clock for versions and buzz timestamps
            sleep: Coroutine used for retry backoff
        """
        self._store = store
        self._settings = settings or get_settings()
        self._clock = clock
        self._sleep = sleep

    @property
    def store(self) -> LobbyStore:
        return self._store

    @property
    def _ttl(self) -> int:
        return self._settings.lobby.LOBBY_TTL_SECONDS

    # ===== Store access =====

    async def _load(self, code: str) -> Lobby:
        if not is_valid_lobby_code(code):
            # Malformed codes can never exist in the store
            raise LobbyNotFoundError(f"Lobby {code} not found")

        try:
            lobby = await self._store.get(code)
        except StoreUnavailable as e:
            raise InternalError("Lobby store unavailable") from e

        if lobby is None:
            raise LobbyNotFoundError(f"Lobby {code} not found")
        return lobby

    async def _mutate(self, code: str, mutation: Mutation) -> Lobby:
        """
        Apply a mutation as a versioned conditional write.

        The mutation runs against a freshly loaded lobby on every attempt and
        receives the server time for that attempt. Any LobbyError it raises
        aborts the operation without writing.

        Args:
            code: Normalized lobby code
            mutation: Callable(lobby, now) that changes the lobby in place

        Returns:
            The lobby as persisted

        Raises:
            LobbyNotFoundError: Lobby absent (or deleted mid-retry)
            InternalError: Store unavailable or retries exhausted
        """
        lobby_settings = self._settings.lobby
        for attempt in range(lobby_settings.MAX_WRITE_RETRIES + 1):
            lobby = await self._load(code)
            read_version = lobby.version
            now = self._clock()

            mutation(lobby, now)
            lobby.version = read_version + 1
            lobby.last_modified = now

            try:
                await self._store.put(code, lobby, self._ttl, expected_version=read_version)
                return lobby
            except VersionConflict:
                delay_ms = lobby_settings.WRITE_RETRY_BASE_MS * (2 ** attempt)
                logger.debug(f"Version conflict on lobby {code} at v{read_version}, retry {attempt + 1} in ~{delay_ms}ms")
                await self._sleep(delay_ms * (1 + random.random()) / 1000)
            except StoreUnavailable as e:
                raise InternalError("Lobby store unavailable") from e

        logger.error(f"Gave up writing lobby {code} after {lobby_settings.MAX_WRITE_RETRIES + 1} attempts")
        raise InternalError("Lobby is busy, please retry")

    async def _delete(self, code: str) -> None:
        try:
            await self._store.delete(code)
        except StoreUnavailable as e:
            raise InternalError("Lobby store unavailable") from e

    # ===== Lifecycle =====

    async def create_lobby(
        self,
        password: Optional[str] = None,
        lobby_name: Optional[str] = None
    ) -> CreatedLobby:
        """
        Create a new lobby with an empty game.

        Args:
            password: Optional join password
            lobby_name: Optional display name

        Returns:
            CreatedLobby with the code and the host token

        Raises:
            InternalError: No free code found within MAX_CODE_ATTEMPTS
        """
        host_id = generate_host_id()
        now = self._clock()
        game_state = GameState(timer_duration=self._settings.lobby.DEFAULT_TIMER_SECONDS)

        for _ in range(self._settings.lobby.MAX_CODE_ATTEMPTS):
            code = generate_lobby_code()
            lobby = Lobby(
                code=code,
                host_id=host_id,
                game_state=game_state,
                lobby_name=(lobby_name or "").strip() or None,
                password=password or None,
                created_at=now,
            )
            try:
                added = await self._store.add(code, lobby, self._ttl)
            except StoreUnavailable as e:
                raise InternalError("Lobby store unavailable") from e

            if added:
                logger.info(f"Created lobby {code} (password: {'yes' if lobby.has_password else 'no'})")
                return CreatedLobby(code=code, host_id=host_id)

        logger.error(f"Failed to generate unique lobby code after {self._settings.lobby.MAX_CODE_ATTEMPTS} attempts")
        raise InternalError("Failed to generate unique code")

    async def join_lobby(
        self,
        code: str,
        player_name: str,
        password: Optional[str] = None
    ) -> JoinedLobby:
        """
        Add a player to a lobby.

        Raises:
            LobbyNotFoundError: No such lobby
            LobbyGoneError: Lobby deactivated by its host
            ForbiddenError: Wrong password
            ConflictError: Name already taken (case-insensitive)
        """
        code = normalize_lobby_code(code)
        name = (player_name or "").strip()
        if not name:
            raise InvalidStateError("Player name required")

        player_id = generate_player_id()

        def join(lobby: Lobby, now: int) -> None:
            if not lobby.is_active:
                raise LobbyGoneError()
            if not lobby.check_password(password):
                logger.warning(f"Wrong password for lobby {code}")
                raise ForbiddenError("Incorrect password")
            if lobby.game_state.find_player_by_name(name):
                raise ConflictError("Player name already taken")
            lobby.game_state.players.append(Player(id=player_id, name=name))

        lobby = await self._mutate(code, join)
        logger.info(f"Player '{name}' joined lobby {code} ({len(lobby.game_state.players)} players)")
        return JoinedLobby(player_id=player_id, code=code)

    async def leave_lobby(self, code: str, player_id: str, is_host: bool = False) -> bool:
        """
        Leave a lobby.

        The host leaving ends the session: the lobby is deleted for everyone.
        A player leaving is removed from the roster and the buzzer queue.

        Args:
            code: Lobby code
            player_id: Leaving player's id (the host token when is_host)
            is_host: Whether the caller claims to be the host

        Returns:
            True if the lobby was deleted
        """
        code = normalize_lobby_code(code)
        lobby = await self._load(code)

        if is_host and lobby.is_host(player_id):
            await self._delete(code)
            logger.info(f"Lobby {code} closed by host leaving")
            return True

        if lobby.game_state.find_player(player_id) is None:
            logger.debug(f"Leave for unknown player {_mask(player_id)} in lobby {code}, nothing to do")
            return False

        def leave(lobby: Lobby, now: int) -> None:
            state = lobby.game_state
            state.players = [p for p in state.players if p.id != player_id]
            state.buzzer_queue = [b for b in state.buzzer_queue if b.player_id != player_id]

        lobby = await self._mutate(code, leave)
        logger.info(f"Player {_mask(player_id)} left lobby {code} ({len(lobby.game_state.players)} remaining)")
        return False

    def _require_host(self, lobby: Lobby, host_id: str, action: str) -> None:
        if not lobby.is_host(host_id):
            logger.warning(f"Rejected {action} on lobby {lobby.code}: not host")
            raise ForbiddenError(f"Only the host can {action}")

    async def rename_lobby(self, code: str, host_id: str, lobby_name: Optional[str]) -> Optional[str]:
        """
        Set the lobby display name (host only). A blank name clears it.

        Returns:
            The new name, or None if cleared
        """
        code = normalize_lobby_code(code)
        new_name = (lobby_name or "").strip() or None

        def rename(lobby: Lobby, now: int) -> None:
            self._require_host(lobby, host_id, "rename the lobby")
            lobby.lobby_name = new_name

        lobby = await self._mutate(code, rename)
        return lobby.lobby_name

    async def close_lobby(self, code: str, host_id: str) -> None:
        """Delete a lobby outright (host only)."""
        code = normalize_lobby_code(code)
        lobby = await self._load(code)
        self._require_host(lobby, host_id, "close the lobby")
        await self._delete(code)
        logger.info(f"Lobby {code} closed by host")

    async def deactivate_lobby(self, code: str, host_id: str) -> None:
        """
        Stop accepting new players (host only).

        The lobby stays readable; joins fail with LobbyGoneError.
        """
        code = normalize_lobby_code(code)

        def deactivate(lobby: Lobby, now: int) -> None:
            self._require_host(lobby, host_id, "deactivate the lobby")
            lobby.is_active = False

        await self._mutate(code, deactivate)
        logger.info(f"Lobby {code} deactivated")

    # ===== Reads =====

    async def get_lobby(self, code: str) -> Dict[str, Any]:
        """Full lobby without its password, as sent to clients."""
        lobby = await self._load(normalize_lobby_code(code))
        return lobby.to_public_dict()

    async def get_version(self, code: str) -> VersionInfo:
        """Cheap change-detection read for polling clients."""
        lobby = await self._load(normalize_lobby_code(code))
        return VersionInfo(
            version=lobby.version,
            last_modified=lobby.last_modified,
            buzzer_active=lobby.game_state.buzzer_active,
            buzzer_queue_length=len(lobby.game_state.buzzer_queue),
        )

    async def get_game_state(self, code: str) -> GameState:
        lobby = await self._load(normalize_lobby_code(code))
        return lobby.game_state

    # ===== Game state writes =====

    async def set_game_state(self, code: str, values: Dict[str, Any]) -> GameState:
        """
        Replace the given game state fields.

        Args:
            code: Lobby code
            values: Game state fields in document form

        Returns:
            The persisted game state
        """
        command = PatchGameState(values=values)
        lobby = await self._mutate(
            normalize_lobby_code(code),
            lambda lobby, now: command.apply(lobby.game_state, now, lobby.host_id),
        )
        logger.debug(f"Game state of lobby {lobby.code} patched ({', '.join(sorted(values))}) -> v{lobby.version}")
        return lobby.game_state

    async def apply_command(self, code: str, host_id: str, command: GameCommand) -> GameState:
        """
        Run a host game command (show question, score, buzzer control, ...).

        Raises:
            ForbiddenError: Caller is not the host
            InvalidStateError: Command not valid for the current state
        """
        code = normalize_lobby_code(code)
        action = type(command).__name__

        def run(lobby: Lobby, now: int) -> None:
            self._require_host(lobby, host_id, "control the game")
            command.apply(lobby.game_state, now, lobby.host_id)

        lobby = await self._mutate(code, run)
        logger.debug(f"{action} applied to lobby {code} -> v{lobby.version}")
        return lobby.game_state

    async def buzz(self, code: str, player_id: str, player_name: str = "") -> BuzzResult:
        """
        Register a buzz.

        The timestamp is taken from the server clock inside the write attempt
        that succeeds; nothing the client sends influences the ranking.

        Returns:
            BuzzResult with the 1-based queue position and server timestamp

        Raises:
            LobbyNotFoundError: No such lobby
            InvalidStateError: Buzzer not active, or player not in lobby
            ConflictError: Player already buzzed in this round
        """
        code = normalize_lobby_code(code)
        command = Buzz(player_id=player_id, player_name=player_name)

        try:
            lobby = await self._mutate(
                code,
                lambda lobby, now: command.apply(lobby.game_state, now, lobby.host_id),
            )
        except (ConflictError, InvalidStateError) as e:
            logger.warning(f"Buzz rejected in lobby {code} for {_mask(player_id)}: {e.message}")
            raise

        position = queue_position(lobby.game_state.buzzer_queue, player_id)
        logger.info(f"Buzz in lobby {code}: '{command.event.player_name}' at position {position}")
        return BuzzResult(position=position, timestamp=command.event.timestamp)

    # ===== Maintenance =====

    async def count_lobbies(self) -> int:
        """Number of live lobbies, for health reporting."""
        try:
            return len(await self._store.codes())
        except StoreUnavailable as e:
            raise InternalError("Lobby store unavailable") from e

    async def reap_expired(self) -> int:
        """Drop expired records from stores without native expiry."""
        try:
            removed = await self._store.purge_expired()
        except StoreUnavailable as e:
            raise InternalError("Lobby store unavailable") from e

        if removed:
            logger.info(f"Reaped {removed} expired lobbies")
        return removed


# Global lobby service instance (created on first use)
_lobby_service: Optional[LobbyService] = None


def get_lobby_service() -> LobbyService:
    """Get global lobby service instance."""
    global _lobby_service
    if _lobby_service is None:
        _lobby_service = LobbyService(create_lobby_store(get_settings()))
    return _lobby_service
