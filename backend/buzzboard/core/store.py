"""
Lobby record store.

A key-value store of serialized lobby documents with a sliding TTL: every
write re-persists the record with the full TTL. Two backends share one
contract:

- InMemoryLobbyStore: a dict, for single-instance/dev use and tests
- SqlLobbyStore: a SQLAlchemy table, for deployments where several server
  instances serve the same lobbies

Besides plain get/put/delete, the store offers a conditional put keyed on
the lobby version. The lobby service builds its optimistic-concurrency
write loop on top of it.
"""

import json
import logging
import threading
from abc import ABC, abstractmethod
from typing import Callable, Dict, List, Optional, Tuple

from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from buzzboard.config import Settings
from buzzboard.core.lobby import Lobby, now_ms
from buzzboard.models.lobby_record import LobbyRecord

logger = logging.getLogger(__name__)

KEY_PREFIX = "lobby:"


def lobby_key(code: str) -> str:
    """Store key for a lobby code."""
    return f"{KEY_PREFIX}{code}"


def serialize_lobby(lobby: Lobby) -> str:
    return json.dumps(lobby.to_dict(), separators=(",", ":"))


def deserialize_lobby(payload: str) -> Lobby:
    return Lobby.from_dict(json.loads(payload))


class VersionConflict(Exception):
    """Conditional write lost: the stored version changed or the record vanished."""

    def __init__(self, code: str, expected_version: int):
        self.code = code
        self.expected_version = expected_version
        super().__init__(f"Lobby {code} is no longer at version {expected_version}")


class StoreUnavailable(Exception):
    """The backing store failed to serve a request."""


class LobbyStore(ABC):
    """Contract shared by all lobby store backends."""

    @abstractmethod
    async def get(self, code: str) -> Optional[Lobby]:
        """Return the live lobby for a code, or None if absent or expired."""

    @abstractmethod
    async def add(self, code: str, lobby: Lobby, ttl_seconds: int) -> bool:
        """Insert a lobby only if no live record holds the code."""

    @abstractmethod
    async def put(
        self,
        code: str,
        lobby: Lobby,
        ttl_seconds: int,
        expected_version: Optional[int] = None
    ) -> None:
        """
        Write a lobby and reset its TTL.

        Args:
            code: Lobby code
            lobby: Lobby to persist
            ttl_seconds: Time-to-live from now
            expected_version: If given, only write when the stored record
                still has this version

        Raises:
            VersionConflict: Conditional write found another version or no record
        """

    @abstractmethod
    async def delete(self, code: str) -> bool:
        """Remove a lobby. Returns True if a live record was removed."""

    @abstractmethod
    async def codes(self) -> List[str]:
        """Codes of all live lobbies."""

    @abstractmethod
    async def purge_expired(self) -> int:
        """Remove expired records. Returns number removed."""

    async def ping(self) -> bool:
        """Health probe."""
        return True


class InMemoryLobbyStore(LobbyStore):
    """
    Process-local lobby store.

    Records are kept serialized so callers never share objects with the
    store, matching the behaviour of a real key-value service.
    """

    def __init__(self, clock: Callable[[], int] = now_ms):
        """
        Initialize an empty store.

        Args:
            clock: Epoch-milliseconds clock used for TTL bookkeeping
        """
        # key -> (payload, version, expires_at)
        self._records: Dict[str, Tuple[str, int, int]] = {}
        self._lock = threading.Lock()
        self._clock = clock

    def _live(self, key: str) -> Optional[Tuple[str, int, int]]:
        record = self._records.get(key)
        if record is None:
            return None
        if record[2] <= self._clock():
            del self._records[key]
            logger.debug(f"Expired {key}")
            return None
        return record

    def _expiry(self, ttl_seconds: int) -> int:
        return self._clock() + ttl_seconds * 1000

    async def get(self, code: str) -> Optional[Lobby]:
        with self._lock:
            record = self._live(lobby_key(code))
        if record is None:
            return None
        return deserialize_lobby(record[0])

    async def add(self, code: str, lobby: Lobby, ttl_seconds: int) -> bool:
        key = lobby_key(code)
        payload = serialize_lobby(lobby)
        with self._lock:
            if self._live(key) is not None:
                return False
            self._records[key] = (payload, lobby.version, self._expiry(ttl_seconds))
        return True

    async def put(
        self,
        code: str,
        lobby: Lobby,
        ttl_seconds: int,
        expected_version: Optional[int] = None
    ) -> None:
        key = lobby_key(code)
        payload = serialize_lobby(lobby)
        with self._lock:
            if expected_version is not None:
                current = self._live(key)
                if current is None or current[1] != expected_version:
                    raise VersionConflict(code, expected_version)
            self._records[key] = (payload, lobby.version, self._expiry(ttl_seconds))

    async def delete(self, code: str) -> bool:
        key = lobby_key(code)
        with self._lock:
            if self._live(key) is None:
                return False
            del self._records[key]
        return True

    async def codes(self) -> List[str]:
        with self._lock:
            keys = [key for key in list(self._records) if self._live(key) is not None]
        return [key[len(KEY_PREFIX):] for key in keys]

    async def purge_expired(self) -> int:
        now = self._clock()
        with self._lock:
            expired = [key for key, record in self._records.items() if record[2] <= now]
            for key in expired:
                del self._records[key]
        return len(expired)


class SqlLobbyStore(LobbyStore):
    """
    SQLAlchemy-backed lobby store.

    SQL has no native expiry, so reads filter on expires_at and
    purge_expired() is run periodically by the application.
    """

    def __init__(self, session_factory: sessionmaker, clock: Callable[[], int] = now_ms):
        self._session_factory = session_factory
        self._clock = clock

    def _expiry(self, ttl_seconds: int) -> int:
        return self._clock() + ttl_seconds * 1000

    async def get(self, code: str) -> Optional[Lobby]:
        try:
            with self._session_factory() as session:
                record = session.execute(
                    select(LobbyRecord).where(
                        LobbyRecord.key == lobby_key(code),
                        LobbyRecord.expires_at > self._clock(),
                    )
                ).scalar_one_or_none()
                payload = record.payload if record else None
        except SQLAlchemyError as e:
            logger.error(f"Store get failed for {code}: {str(e)}")
            raise StoreUnavailable(str(e)) from e

        return deserialize_lobby(payload) if payload else None

    async def add(self, code: str, lobby: Lobby, ttl_seconds: int) -> bool:
        key = lobby_key(code)
        try:
            with self._session_factory() as session:
                existing = session.get(LobbyRecord, key)
                if existing is not None:
                    if existing.expires_at > self._clock():
                        return False
                    session.delete(existing)
                    session.flush()

                session.add(LobbyRecord(
                    key=key,
                    payload=serialize_lobby(lobby),
                    version=lobby.version,
                    expires_at=self._expiry(ttl_seconds),
                ))
                try:
                    session.commit()
                except IntegrityError:
                    # Another instance inserted the same code first
                    session.rollback()
                    return False
        except SQLAlchemyError as e:
            logger.error(f"Store add failed for {code}: {str(e)}")
            raise StoreUnavailable(str(e)) from e

        return True

    async def put(
        self,
        code: str,
        lobby: Lobby,
        ttl_seconds: int,
        expected_version: Optional[int] = None
    ) -> None:
        key = lobby_key(code)
        payload = serialize_lobby(lobby)
        expires_at = self._expiry(ttl_seconds)
        try:
            with self._session_factory() as session:
                if expected_version is None:
                    record = session.get(LobbyRecord, key)
                    if record is None:
                        session.add(LobbyRecord(
                            key=key, payload=payload, version=lobby.version, expires_at=expires_at
                        ))
                    else:
                        record.payload = payload
                        record.version = lobby.version
                        record.expires_at = expires_at
                    session.commit()
                    return

                result = session.execute(
                    update(LobbyRecord)
                    .where(
                        LobbyRecord.key == key,
                        LobbyRecord.version == expected_version,
                        LobbyRecord.expires_at > self._clock(),
                    )
                    .values(payload=payload, version=lobby.version, expires_at=expires_at)
                )
                if result.rowcount != 1:
                    session.rollback()
                    raise VersionConflict(code, expected_version)
                session.commit()
        except SQLAlchemyError as e:
            logger.error(f"Store put failed for {code}: {str(e)}")
            raise StoreUnavailable(str(e)) from e

    async def delete(self, code: str) -> bool:
        try:
            with self._session_factory() as session:
                result = session.execute(
                    delete(LobbyRecord).where(
                        LobbyRecord.key == lobby_key(code),
                        LobbyRecord.expires_at > self._clock(),
                    )
                )
                session.commit()
                return result.rowcount > 0
        except SQLAlchemyError as e:
            logger.error(f"Store delete failed for {code}: {str(e)}")
            raise StoreUnavailable(str(e)) from e

    async def codes(self) -> List[str]:
        try:
            with self._session_factory() as session:
                keys = session.execute(
                    select(LobbyRecord.key).where(LobbyRecord.expires_at > self._clock())
                ).scalars().all()
        except SQLAlchemyError as e:
            logger.error(f"Store key listing failed: {str(e)}")
            raise StoreUnavailable(str(e)) from e

        return [key[len(KEY_PREFIX):] for key in keys]

    async def purge_expired(self) -> int:
        try:
            with self._session_factory() as session:
                result = session.execute(
                    delete(LobbyRecord).where(LobbyRecord.expires_at <= self._clock())
                )
                session.commit()
                return result.rowcount
        except SQLAlchemyError as e:
            logger.error(f"Store purge failed: {str(e)}")
            raise StoreUnavailable(str(e)) from e

    async def ping(self) -> bool:
        try:
            with self._session_factory() as session:
                session.execute(select(1))
            return True
        except SQLAlchemyError as e:
            logger.error(f"Store ping failed: {str(e)}")
            return False


def create_lobby_store(settings: Settings) -> LobbyStore:
    """
    Build the store backend selected in settings.

    Args:
        settings: Application settings

    Returns:
        A ready-to-use LobbyStore

    Raises:
        ValueError: If the configured backend is unknown
    """
    backend = settings.store.BACKEND
    if backend == "memory":
        logger.info("Using in-memory lobby store")
        return InMemoryLobbyStore()

    if backend == "sql":
        from buzzboard.database import get_engine, init_db, make_session_factory

        engine = get_engine()
        init_db(engine)
        logger.info(f"Using SQL lobby store at {engine.url}")
        return SqlLobbyStore(make_session_factory(engine))

    raise ValueError(f"Unknown lobby store backend: {backend}")
