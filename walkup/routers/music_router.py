"""Router exposing track search and playback control."""

from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends, HTTPException, Query

from ..container import ServiceContainer
from ..dependencies import get_container, get_settings_store, require_authenticated
from ..errors import AuthError, HttpError
from ..logging_config import get_logger
from ..models import PlayRequest, PreviewRequest, SpotifyTrack
from ..settings import UserSettingsStore

logger = get_logger(__name__)

router = APIRouter(dependencies=[Depends(require_authenticated)])


def _translate(exc: Exception) -> HTTPException:
    if isinstance(exc, AuthError):
        return HTTPException(status_code=401, detail=str(exc))
    logger.error(f"Music provider call failed: {exc}")
    return HTTPException(status_code=502, detail=str(exc))


@router.get("/tracks/search", response_model=List[SpotifyTrack])
async def search_tracks(
    q: str = Query(..., description="Free-text search"),
    container: ServiceContainer = Depends(get_container),
) -> List[SpotifyTrack]:
    try:
        return await container.music.search_tracks(q)
    except (AuthError, HttpError) as exc:
        raise _translate(exc) from exc


@router.post("/playback/play")
async def play(request: PlayRequest, container: ServiceContainer = Depends(get_container)) -> dict:
    try:
        await container.music.play_track(request.uri, request.start_position_ms)
    except (AuthError, HttpError) as exc:
        raise _translate(exc) from exc
    return {"playing": request.uri}


@router.post("/playback/preview")
async def preview(
    request: PreviewRequest,
    container: ServiceContainer = Depends(get_container),
    store: UserSettingsStore = Depends(get_settings_store),
) -> dict:
    """Play a segment, capped by the user's (or configured) maximum length."""
    cap_ms = int(await store.max_segment_seconds() * 1000)
    duration_ms = min(request.duration_ms, cap_ms) if request.duration_ms else cap_ms
    try:
        await container.music.preview_track(request.uri, request.start_position_ms, duration_ms)
    except (AuthError, HttpError) as exc:
        raise _translate(exc) from exc
    return {"playing": request.uri, "duration_ms": duration_ms}


@router.post("/playback/pause")
async def pause(container: ServiceContainer = Depends(get_container)) -> dict:
    try:
        await container.music.pause()
    except (AuthError, HttpError) as exc:
        raise _translate(exc) from exc
    return {"paused": True, "ready": container.player.is_ready()}
