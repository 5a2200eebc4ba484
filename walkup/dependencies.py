"""Common FastAPI dependencies."""

from __future__ import annotations

from fastapi import Depends, HTTPException, Request

from .config import AppConfig
from .container import ContainerHolder, ServiceContainer
from .settings import UserSettingsStore


def get_container_holder(request: Request) -> ContainerHolder:  # pragma: no cover - trivial accessor
    return request.app.state.container_holder  # type: ignore[attr-defined]


def get_container(holder: ContainerHolder = Depends(get_container_holder)) -> ServiceContainer:
    return holder.get()


def get_config(container: ServiceContainer = Depends(get_container)) -> AppConfig:
    return container.config


async def require_authenticated(container: ServiceContainer = Depends(get_container)) -> None:
    """Reject the request unless the music provider session is live."""
    if not await container.auth.is_authenticated():
        raise HTTPException(
            status_code=401,
            detail="Not logged in to Spotify. Visit /auth/login first.",
        )


def get_settings_store(
    container: ServiceContainer = Depends(get_container),
    config: AppConfig = Depends(get_config),
) -> UserSettingsStore:
    return UserSettingsStore(container.storage, config)
