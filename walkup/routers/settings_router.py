"""Router exposing persisted user settings."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException

from ..dependencies import get_settings_store
from ..errors import StorageError
from ..models import UserSettings
from ..settings import UserSettingsStore

router = APIRouter()


@router.get("/settings", response_model=UserSettings)
async def read_settings(store: UserSettingsStore = Depends(get_settings_store)) -> UserSettings:
    return await store.load()


@router.put("/settings", response_model=UserSettings)
async def write_settings(
    settings: UserSettings,
    store: UserSettingsStore = Depends(get_settings_store),
) -> UserSettings:
    try:
        return await store.save(settings)
    except StorageError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
