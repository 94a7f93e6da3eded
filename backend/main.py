"""
LaneRush FastAPI Application

Main entry point for the LaneRush race server.
Configures FastAPI with CORS, routes and the race tick loop lifecycle.
"""

import logging

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager

from lanerush.config import get_settings
from lanerush.core.synchronizer import get_synchronizer
from lanerush.api.routes import config, health, race

settings = get_settings()

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager for startup and shutdown events.

    Handles:
    - Startup logging
    - Stopping the tick loop and session senders on shutdown
    """
    # Startup
    logger.info(f"Starting {settings.APP_NAME} v{settings.VERSION}")
    logger.info(f"Race socket at ws://{settings.server.HOST}:{settings.server.PORT}{settings.server.WEBSOCKET_PATH}")

    yield

    # Shutdown
    logger.info("Shutting down server...")
    await get_synchronizer().shutdown()


# Create FastAPI application
app = FastAPI(
    title=settings.APP_NAME,
    version=settings.VERSION,
    description="A real-time multiplayer lane sprint",
    lifespan=lifespan,
    debug=settings.DEBUG,
)

# Configure CORS
origins = [
    "http://localhost:5173",  # Vite default port
    "http://localhost:3000",  # Alternative React port
    "http://127.0.0.1:5173",
    "http://127.0.0.1:3000",
]

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(health.router, tags=["health"])
app.include_router(config.router)
app.include_router(race.router, tags=["race"])


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
        "websocket": settings.server.WEBSOCKET_PATH,
    }


if __name__ == "__main__":
    uvicorn.run(app, host=settings.server.HOST, port=settings.server.PORT)
