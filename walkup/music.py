"""Track search and playback facade used by the HTTP surface."""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, List, Optional, Sequence
from urllib.parse import urlencode

from pydantic import ValidationError

from .auth import AuthService
from .errors import AuthError, HttpError, HttpErrorKind
from .http_client import HttpService, is_retryable_http_error
from .logging_config import get_logger
from .models import SpotifyTrack
from .playback import PlaybackService
from .retry import RetryOptions, retry

logger = get_logger(__name__)

MOCK_SEARCH_LIMIT = 8

DEFAULT_MOCK_TRACKS: List[SpotifyTrack] = [
    SpotifyTrack(id="track1", name="Eye of the Tiger", artists=["Survivor"], album="Eye of the Tiger",
                 duration_ms=245000, uri="spotify:track:2KH16WveTQWT6KOG9Rg6e2"),
    SpotifyTrack(id="track2", name="We Will Rock You", artists=["Queen"], album="News of the World",
                 duration_ms=122000, uri="spotify:track:4fzsfWzRhPawzqhX8Qt9F3"),
    SpotifyTrack(id="track3", name="Thunderstruck", artists=["AC/DC"], album="The Razors Edge",
                 duration_ms=292000, uri="spotify:track:57bgtoPSgt236HzfBOd8kj"),
    SpotifyTrack(id="track4", name="Welcome to the Jungle", artists=["Guns N' Roses"],
                 album="Appetite for Destruction", duration_ms=267000, uri="spotify:track:0G3fbTaUlkPz5zUFuJ3UKB"),
    SpotifyTrack(id="track5", name="Enter Sandman", artists=["Metallica"], album="Metallica (The Black Album)",
                 duration_ms=331000, uri="spotify:track:5QO79kh1waicV47BqGRL3g"),
    SpotifyTrack(id="track6", name="Sweet Caroline", artists=["Neil Diamond"],
                 album="Brother Love's Travelling Salvation Show", duration_ms=201000,
                 uri="spotify:track:1mea3bSkSGXuIRvnydlB5b"),
    SpotifyTrack(id="track7", name="Don't Stop Believin'", artists=["Journey"], album="Escape",
                 duration_ms=251000, uri="spotify:track:4bHsxqR3GMrXTxEPLuK5ue"),
    SpotifyTrack(id="track8", name="Pump It Up", artists=["Elvis Costello"], album="This Year's Model",
                 duration_ms=193000, uri="spotify:track:6fxVffaTuwjgEk5h9QyRjy"),
    SpotifyTrack(id="track9", name="Centerfield", artists=["John Fogerty"], album="Centerfield",
                 duration_ms=225000, uri="spotify:track:4u7EnebtmKWzUH433cf5Qv"),
    SpotifyTrack(id="track10", name="Take Me Home, Country Roads", artists=["John Denver"],
                 album="Poems, Prayers & Promises", duration_ms=195000, uri="spotify:track:1TjOHwQU0b3GRhY5vr8VYe"),
]


class SpotifyApiService:
    """Spotify Web API search client."""

    API_BASE_URL = "https://api.spotify.com/v1"
    MAX_LIMIT = 50

    def __init__(
        self,
        auth: AuthService,
        http: HttpService,
        enable_retry: bool = True,
        timeout_ms: Optional[int] = 8000,
    ):
        self.auth = auth
        self.http = http
        self.enable_retry = enable_retry
        self.timeout_ms = timeout_ms

    def build_search_url(self, query: str, limit: int) -> str:
        params = {
            "q": query,
            "type": "track",
            "limit": str(min(limit, self.MAX_LIMIT)),
            "market": "US",
        }
        return f"{self.API_BASE_URL}/search?{urlencode(params)}"

    async def search_tracks(self, query: str, limit: int = 20) -> List[SpotifyTrack]:
        if not query.strip():
            return []

        access_token = await self.auth.get_access_token()
        if not access_token:
            raise AuthError("No valid access token available for Spotify API")

        url = self.build_search_url(query, limit)

        async def fetch_once():
            response = await self.http.get(
                url,
                headers={"Authorization": f"Bearer {access_token}"},
                timeout_ms=self.timeout_ms,
            )
            if not response.ok:
                raise HttpError(HttpErrorKind.HTTP, _api_error_message(response.status, response.data),
                                status=response.status, url=url)
            return response

        if self.enable_retry:
            response = await retry(
                fetch_once,
                RetryOptions(max_retries=2, initial_delay_ms=300, should_retry=is_retryable_http_error),
                label=f"spotify search '{query}'",
            )
        else:
            response = await fetch_once()

        items = _validate_search_response(response.data, response.status, url)
        tracks: List[SpotifyTrack] = []
        seen = set()
        for item in items:
            try:
                track = _to_track(item)
            except (KeyError, TypeError, AttributeError, ValidationError) as exc:
                logger.warning(f"Skipping malformed track in search response: {exc!r}")
                continue
            if track.id in seen:
                continue
            seen.add(track.id)
            tracks.append(track)
        return tracks


def _api_error_message(status: int, data: Any) -> str:
    if status == 401:
        return "Spotify authentication expired. Please log in again."
    if status == 403:
        return "Access forbidden. Please check your Spotify Premium subscription."
    if status == 429:
        return "Too many requests to Spotify API. Please try again later."
    if status in (500, 502, 503):
        return "Spotify service is temporarily unavailable. Please try again later."
    if isinstance(data, dict) and isinstance(data.get("error"), dict) and data["error"].get("message"):
        return f"Spotify API error: {data['error']['message']}"
    return f"Spotify API error: {status}"


def _validate_search_response(data: Any, status: int, url: str) -> List[Any]:
    def invalid(reason: str) -> HttpError:
        return HttpError(HttpErrorKind.HTTP, f"Invalid search response: {reason}", status=status, url=url)

    if not isinstance(data, dict):
        raise invalid("must be an object")
    tracks = data.get("tracks")
    if not isinstance(tracks, dict):
        raise invalid("missing tracks object")
    items = tracks.get("items")
    if not isinstance(items, list):
        raise invalid("tracks.items must be an array")
    return items


def _select_album_art(images: Sequence[Dict[str, Any]]) -> str:
    """Prefer the image closest to 300px high, larger on ties."""
    if not images:
        return ""
    best = sorted(images, key=lambda img: (abs((img.get("height") or 0) - 300), -(img.get("height") or 0)))[0]
    return best.get("url", "")


def _to_track(item: Dict[str, Any]) -> SpotifyTrack:
    album = item.get("album") or {}
    return SpotifyTrack(
        id=item["id"],
        name=item["name"],
        artists=[artist["name"] for artist in item.get("artists", [])],
        album=album.get("name", ""),
        album_art=_select_album_art(album.get("images") or []),
        preview_url=item.get("preview_url"),
        duration_ms=item.get("duration_ms", 0),
        uri=item["uri"],
    )


class MusicService(ABC):
    @abstractmethod
    async def search_tracks(self, query: str) -> List[SpotifyTrack]: ...

    @abstractmethod
    async def play_track(self, uri: str, start_position_ms: Optional[int] = None) -> None: ...

    @abstractmethod
    async def preview_track(
        self,
        uri: str,
        start_position_ms: Optional[int] = None,
        duration_ms: Optional[int] = None,
        on_track_end: Optional[Callable[[], None]] = None,
    ) -> None: ...

    @abstractmethod
    async def pause(self) -> None: ...

    @abstractmethod
    def is_playback_ready(self) -> bool: ...


class _PlaybackMusicService(MusicService):
    """Shared play/preview/pause logic on top of a PlaybackService."""

    def __init__(self, playback: PlaybackService):
        self.playback = playback
        self._preview_task: Optional[asyncio.Task] = None

    def _cancel_preview(self) -> None:
        if self._preview_task is not None and not self._preview_task.done():
            self._preview_task.cancel()
        self._preview_task = None

    async def play_track(self, uri: str, start_position_ms: Optional[int] = None) -> None:
        self._cancel_preview()
        await self.playback.play(uri, start_position_ms)

    async def preview_track(self, uri, start_position_ms=None, duration_ms=None, on_track_end=None) -> None:
        self._cancel_preview()
        await self.playback.play(uri, start_position_ms)
        if duration_ms:
            self._preview_task = asyncio.ensure_future(self._auto_pause(duration_ms, on_track_end))

    async def _auto_pause(self, duration_ms: int, on_track_end: Optional[Callable[[], None]]) -> None:
        await asyncio.sleep(duration_ms / 1000)
        self._preview_task = None
        try:
            await self.playback.pause()
            if on_track_end is not None:
                on_track_end()
        except Exception as exc:
            # Nothing awaits this task, so failures end here
            logger.error(f"Failed to auto-pause preview: {exc!r}")

    async def pause(self) -> None:
        self._cancel_preview()
        await self.playback.pause()

    def is_playback_ready(self) -> bool:
        return self.playback.is_ready()


class MockMusicService(_PlaybackMusicService):
    """Searches a fixed in-memory dataset."""

    def __init__(self, playback: PlaybackService, tracks: Optional[Sequence[SpotifyTrack]] = None):
        super().__init__(playback)
        self.tracks: List[SpotifyTrack] = list(tracks) if tracks is not None else list(DEFAULT_MOCK_TRACKS)

    async def search_tracks(self, query: str) -> List[SpotifyTrack]:
        if not query.strip():
            return []
        term = query.lower()
        results = [
            track
            for track in self.tracks
            if term in track.name.lower()
            or any(term in artist.lower() for artist in track.artists)
            or term in track.album.lower()
        ]
        return results[:MOCK_SEARCH_LIMIT]


class SpotifyMusicService(_PlaybackMusicService):
    def __init__(self, api: SpotifyApiService, playback: PlaybackService):
        super().__init__(playback)
        self.api = api

    async def search_tracks(self, query: str) -> List[SpotifyTrack]:
        return await self.api.search_tracks(query)
