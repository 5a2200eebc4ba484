"""Router exposing the music provider login flow."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException

from ..container import ServiceContainer
from ..dependencies import get_container
from ..errors import AuthError, HttpError
from ..logging_config import get_logger

logger = get_logger(__name__)

router = APIRouter()


@router.get("/auth/login")
async def login(container: ServiceContainer = Depends(get_container)) -> dict:
    """Return the URL the user must open to grant access."""
    return {"authorization_url": await container.auth.login()}


@router.get("/callback")
async def callback(code: str, state: str, container: ServiceContainer = Depends(get_container)) -> dict:
    """Receive ``code`` & ``state`` from the provider redirect."""
    try:
        await container.auth.handle_callback(code, state)
    except AuthError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except HttpError as exc:
        logger.error(f"Token exchange failed: {exc}")
        raise HTTPException(status_code=502, detail=f"Token exchange failed: {exc}") from exc
    return {"authenticated": True}


@router.post("/auth/logout")
async def logout(container: ServiceContainer = Depends(get_container)) -> dict:
    await container.auth.logout()
    return {"authenticated": False}


@router.get("/auth/status")
async def status(container: ServiceContainer = Depends(get_container)) -> dict:
    authenticated = await container.auth.is_authenticated()
    profile = None
    if authenticated:
        try:
            user = await container.auth.get_user_profile()
        except HttpError as exc:
            logger.warning(f"Could not fetch user profile: {exc}")
            user = None
        profile = user.model_dump() if user else None
    return {"authenticated": authenticated, "user": profile}
