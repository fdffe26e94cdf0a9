"""
BuzzBoard FastAPI Application

Main entry point for the BuzzBoard trivia server.
Configures FastAPI with CORS, routes, error handling and the lobby store.
"""

import asyncio
import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager, suppress

from buzzboard.config import get_settings
from buzzboard.core.errors import LobbyError
from buzzboard.core.lobby_service import LobbyService, get_lobby_service
from buzzboard.api.routes import health, lobbies, game, config

logger = logging.getLogger(__name__)

settings = get_settings()


async def reap_expired_lobbies(service: LobbyService, interval_seconds: int) -> None:
    """Periodically drop expired records from stores without native TTL."""
    while True:
        await asyncio.sleep(interval_seconds)
        try:
            await service.reap_expired()
        except LobbyError as e:
            logger.error(f"Lobby reaper failed: {e.message}")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager for startup and shutdown events.

    Handles:
    - Expired-lobby reaper for the SQL backend (initialises the store)
    - Cleanup on shutdown

    The memory store is created lazily on the first request, so an
    overridden lobby service never builds the global one.
    """
    # Startup
    print(f"Starting {settings.APP_NAME} v{settings.VERSION} (store: {settings.store.BACKEND})")

    reaper = None
    if settings.store.BACKEND == "sql":
        provider = app.dependency_overrides.get(get_lobby_service, get_lobby_service)
        reaper = asyncio.create_task(
            reap_expired_lobbies(provider(), settings.store.REAPER_INTERVAL_SECONDS)
        )
    print(f"Server ready on {settings.server.HOST}:{settings.server.PORT}")

    yield

    # Shutdown
    print("Shutting down server...")
    if reaper:
        reaper.cancel()
        with suppress(asyncio.CancelledError):
            await reaper


# Create FastAPI application
app = FastAPI(
    title=settings.APP_NAME,
    version=settings.VERSION,
    description="Multiplayer trivia lobbies with server-ordered buzzers",
    lifespan=lifespan,
    debug=settings.DEBUG,
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=list(settings.server.CORS_ORIGINS),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(LobbyError)
async def lobby_error_handler(request: Request, exc: LobbyError):
    """Render lobby failures with their status and machine-readable code."""
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, "code": exc.code},
    )


# Include routers
app.include_router(health.router, tags=["health"])
app.include_router(lobbies.router, tags=["lobbies"])
app.include_router(game.router)
app.include_router(config.router)


@app.get("/")
async def root() -> dict:
    """
    Root endpoint.

    Returns:
        dict: Welcome message and API information.
    """
    return {
        "message": f"Welcome to {settings.APP_NAME}",
        "version": settings.VERSION,
        "docs": "/docs",
        "health": "/health",
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("main:app", host=settings.server.HOST, port=settings.server.PORT, reload=settings.DEBUG)
