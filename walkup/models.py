"""Pydantic models shared by the services and the HTTP surface."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator


class SpotifyTrack(BaseModel):
    id: str
    name: str
    artists: List[str]
    album: str = ""
    album_art: str = ""
    preview_url: Optional[str] = None
    duration_ms: int = 0
    uri: str

    @field_validator("id", "name", "uri")
    @classmethod
    def _ensure_text(cls, value: str, info):
        if not value.strip():
            raise ValueError(f"{info.field_name} must be a non-empty string")
        return value

    @field_validator("artists")
    @classmethod
    def _ensure_artists(cls, value: List[str]):
        if not value or any(not artist.strip() for artist in value):
            raise ValueError("artists must be a non-empty list of names")
        return value


class HttpResponse(BaseModel):
    """Result of an outbound HTTP call. ``data`` is None when the body is not JSON."""

    data: Any = None
    status: int
    headers: Dict[str, str] = Field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300


class TokenSet(BaseModel):
    access_token: str
    refresh_token: Optional[str] = None
    expires_at: float
    scope: str = ""


class UserProfile(BaseModel):
    id: str
    email: Optional[str] = None
    display_name: Optional[str] = None
    product: Optional[str] = None


class UserSettings(BaseModel):
    theme: str = "light"
    max_segment_seconds: Optional[float] = None


class PlayRequest(BaseModel):
    uri: str
    start_position_ms: Optional[int] = Field(default=None, ge=0)


class PreviewRequest(PlayRequest):
    duration_ms: Optional[int] = Field(default=None, gt=0)


# Longest walk-up segment a player may store, in seconds
MAX_SEGMENT_DURATION = 60


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SongSegment(BaseModel):
    """The part of a track played when a player walks up."""

    track: SpotifyTrack
    start_time: float = Field(default=0, ge=0, description="Offset into the track, in seconds")
    duration: float = Field(..., gt=0, le=MAX_SEGMENT_DURATION, description="Segment length, in seconds")


class Player(BaseModel):
    id: str
    name: str
    song: Optional[SongSegment] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @field_validator("id", "name")
    @classmethod
    def _ensure_text(cls, value: str, info):
        value = value.strip()
        if not value:
            raise ValueError(f"{info.field_name} must be a non-empty string")
        return value


class PlayerCreate(BaseModel):
    name: str


class PlayerUpdate(BaseModel):
    """Partial update. An explicit ``"song": null`` clears the song."""

    name: Optional[str] = None
    song: Optional[SongSegment] = None


class BattingOrder(BaseModel):
    id: str
    name: str
    player_ids: List[str] = Field(default_factory=list)
    current_position: int = Field(default=0, ge=0)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class BattingOrderCreate(BaseModel):
    player_ids: List[str]


class GameState(BaseModel):
    is_game_active: bool = False
    current_batting_order: Optional[BattingOrder] = None
    timestamp: datetime = Field(default_factory=utcnow)
