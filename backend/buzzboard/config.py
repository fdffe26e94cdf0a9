"""
BuzzBoard Server Configuration

This file contains all server-side configurable settings.
Modify these values to tune lobby lifetime, polling and storage.
"""

from dataclasses import dataclass
import os


@dataclass
class ServerConfig:
    """Server networking configuration."""
    HOST: str = "0.0.0.0"
    PORT: int = 8000
    CORS_ORIGINS: tuple = (
        "http://localhost:5173",  # Vite default port
        "http://localhost:3000",  # Alternative React port
        "http://127.0.0.1:5173",
        "http://127.0.0.1:3000",
    )


@dataclass
class LobbyConfig:
    """Lobby lifecycle and game rules."""
    LOBBY_TTL_SECONDS: int = 86400  # Refreshed on every write

    # Join codes (no 0/O/1/I to avoid misreading)
    CODE_ALPHABET: str = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
    CODE_LENGTH: int = 4
    MAX_CODE_ATTEMPTS: int = 10

    MAX_PLAYER_NAME_LENGTH: int = 30
    MAX_LOBBY_NAME_LENGTH: int = 50
    MAX_PASSWORD_LENGTH: int = 100

    DEFAULT_TIMER_SECONDS: int = 30

    # Optimistic concurrency on the version counter
    MAX_WRITE_RETRIES: int = 5
    WRITE_RETRY_BASE_MS: int = 10


@dataclass
class PollingConfig:
    """Client polling hints."""
    POLL_INTERVAL_MS: int = 1500
    MAX_POLL_INTERVAL_MS: int = 2000


@dataclass
class StoreConfig:
    """Lobby record store configuration."""
    BACKEND: str = "memory"  # memory, sql
    DATABASE_URL: str = ""  # Empty = SQLite file under backend/data
    ECHO_SQL: bool = False  # Log SQL queries
    REAPER_INTERVAL_SECONDS: int = 300  # Expired-record sweep (sql backend)

    def __post_init__(self):
        self.BACKEND = os.getenv("BUZZBOARD_STORE", self.BACKEND).lower()
        self.DATABASE_URL = os.getenv("BUZZBOARD_DATABASE_URL", self.DATABASE_URL)


@dataclass
class Settings:
    """Main settings container."""
    server: ServerConfig = None
    lobby: LobbyConfig = None
    polling: PollingConfig = None
    store: StoreConfig = None

    # Application info
    APP_NAME: str = "BuzzBoard"
    VERSION: str = "0.1.0"
    DEBUG: bool = False

    def __post_init__(self):
        self.server = self.server or ServerConfig()
        self.lobby = self.lobby or LobbyConfig()
        self.polling = self.polling or PollingConfig()
        self.store = self.store or StoreConfig()


# Global settings instance
settings = Settings()


def get_settings() -> Settings:
    """Get the global settings instance."""
    return settings
