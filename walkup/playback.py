"""Playback control: Spotify Connect via the Web API, or an in-process mock."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from .auth import AuthService
from .errors import AuthError, HttpError
from .http_client import HttpService, is_retryable_http_error, raise_for_status
from .logging_config import get_logger
from .retry import RetryOptions, retry

logger = get_logger(__name__)

PLAYBACK_RETRY = RetryOptions(max_retries=2, initial_delay_ms=300, should_retry=is_retryable_http_error)


class PlaybackService(ABC):
    @abstractmethod
    async def play(self, uri: str, start_position_ms: Optional[int] = None) -> None: ...

    @abstractmethod
    async def pause(self) -> None: ...

    @abstractmethod
    def is_ready(self) -> bool: ...


class MockPlaybackService(PlaybackService):
    """Remembers what would be playing. Always ready."""

    def __init__(self) -> None:
        self.current_uri: Optional[str] = None
        self.position_ms: int = 0
        self.is_playing = False
        self.history: List[str] = []

    async def play(self, uri: str, start_position_ms: Optional[int] = None) -> None:
        self.current_uri = uri
        self.position_ms = start_position_ms or 0
        self.is_playing = True
        self.history.append(uri)
        logger.debug(f"Mock playback: playing {uri} from {self.position_ms}ms")

    async def pause(self) -> None:
        self.is_playing = False
        logger.debug("Mock playback: paused")

    def is_ready(self) -> bool:
        return True


class SpotifyPlaybackService(PlaybackService):
    """Controls the user's active Spotify device through /me/player."""

    PLAYER_URL = "https://api.spotify.com/v1/me/player"

    def __init__(self, auth: AuthService, http: HttpService, timeout_ms: Optional[int] = None):
        self.auth = auth
        self.http = http
        self.timeout_ms = timeout_ms
        self._ready = False

    async def _put(self, path: str, body: Optional[Dict[str, Any]], label: str) -> None:
        access_token = await self.auth.get_access_token()
        if not access_token:
            raise AuthError("No valid access token available for Spotify playback")

        url = f"{self.PLAYER_URL}/{path}"

        async def _send():
            response = await self.http.put_json(
                url,
                body,
                headers={"Authorization": f"Bearer {access_token}"},
                timeout_ms=self.timeout_ms,
            )
            return raise_for_status(response, url)

        try:
            await retry(_send, PLAYBACK_RETRY, label=label)
        except HttpError:
            self._ready = False
            raise
        self._ready = True

    async def play(self, uri: str, start_position_ms: Optional[int] = None) -> None:
        body: Dict[str, Any] = {"uris": [uri]}
        if start_position_ms:
            body["position_ms"] = start_position_ms
        await self._put("play", body, label=f"spotify play {uri}")

    async def pause(self) -> None:
        await self._put("pause", None, label="spotify pause")

    def is_ready(self) -> bool:
        return self._ready
