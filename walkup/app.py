"""FastAPI application factory for the walk-up music service."""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .config import AppConfig, load_app_config
from .container import ContainerHolder, container_holder as default_container_holder
from .logging_config import get_logger, setup_logging
from .routers import auth_router, game_router, music_router, settings_router

logger = get_logger(__name__)


def create_app(
    config: Optional[AppConfig] = None,
    container_holder: Optional[ContainerHolder] = None,
) -> FastAPI:
    """Build the app. Without ``config`` it is read from the environment now."""
    holder = container_holder or default_container_holder
    app_config = config or load_app_config()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        setup_logging(app_config.log_level)
        logger.info("Starting walk-up music service...")
        holder.config.initialize(app_config)
        holder.initialize()
        logger.info("Service initialization completed.")
        yield
        logger.info("Service shutdown completed.")

    app = FastAPI(
        title="Walk-up Music Service",
        lifespan=lifespan,
        root_path=app_config.base_path,
    )
    app.state.container_holder = holder

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/health", summary="Liveness check")
    async def health() -> dict:
        return {"status": "ok", "initialized": holder.is_initialized()}

    app.include_router(auth_router.router)
    app.include_router(music_router.router)
    app.include_router(settings_router.router)
    app.include_router(game_router.router)

    return app
