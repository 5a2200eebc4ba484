"""Lazy, memoized service construction with mock/real switching.

Each service role has one ServiceSupplier. The first ``supply()`` reads the
configuration, builds the mock or the real implementation (pulling upstream
services from their own suppliers), and caches it. Later calls return the
same object until ``reset_for_tests()`` empties the slot.
"""

from __future__ import annotations

import inspect
import json
import os
from enum import Enum
from pathlib import Path
from typing import Any, Awaitable, Callable, Generic, List, Optional, Sequence, TypeVar, Union

from .auth import AuthService, MockAuthService, SpotifyAuthService
from .config import ConfigHolder, config_holder
from .errors import ReentrantSupplyError
from .game import LineupService, PlayerService
from .http_client import HttpService, RequestsHttpService
from .logging_config import get_logger
from .models import SpotifyTrack
from .music import MockMusicService, MusicService, SpotifyApiService, SpotifyMusicService
from .playback import MockPlaybackService, PlaybackService, SpotifyPlaybackService
from .storage import JsonFileStore, KeyValueStorageService, StorageService

logger = get_logger(__name__)

T = TypeVar("T")
S = TypeVar("S")

# Points at a JSON list of tracks; wins over any injected seed in mock mode
TEST_MOCK_TRACKS_ENV = "WALKUP_TEST_MOCK_TRACKS"


class SupplierState(Enum):
    EMPTY = "empty"
    CONSTRUCTING = "constructing"
    CACHED = "cached"


class ServiceSupplier(Generic[T]):
    """Owns one singleton slot. Only ``supply``/``asupply`` write it."""

    def __init__(self, name: str, build: Callable[[], Union[T, Awaitable[T]]]):
        self.name = name
        self._build = build
        self._instance: Optional[T] = None
        self._state = SupplierState.EMPTY

    @property
    def state(self) -> SupplierState:
        return self._state

    def _begin(self) -> None:
        if self._state is SupplierState.CONSTRUCTING:
            raise ReentrantSupplyError(
                f"Supplier '{self.name}' was asked for its service while still constructing it. "
                "Check the service dependency graph for a cycle."
            )
        self._state = SupplierState.CONSTRUCTING

    def _install(self, instance: T) -> T:
        self._instance = instance
        self._state = SupplierState.CACHED
        logger.debug(f"Supplier '{self.name}' built {type(instance).__name__}")
        return instance

    def supply(self) -> T:
        if self._state is SupplierState.CACHED:
            return self._instance  # type: ignore[return-value]

        self._begin()
        try:
            instance = self._build()
            if inspect.isawaitable(instance):
                if inspect.iscoroutine(instance):
                    instance.close()
                raise TypeError(f"Supplier '{self.name}' builds asynchronously; await asupply() instead.")
        except BaseException:
            self._state = SupplierState.EMPTY
            raise
        return self._install(instance)

    async def asupply(self) -> T:
        """Like ``supply`` but awaits an asynchronous build before caching."""
        if self._state is SupplierState.CACHED:
            return self._instance  # type: ignore[return-value]

        self._begin()
        try:
            instance = self._build()
            if inspect.isawaitable(instance):
                instance = await instance
        except BaseException:
            self._state = SupplierState.EMPTY
            raise
        return self._install(instance)  # type: ignore[arg-type]

    def reset_for_tests(self) -> None:
        self._instance = None
        self._state = SupplierState.EMPTY


class SeededServiceSupplier(ServiceSupplier[T], Generic[T, S]):
    """Supplier whose build also receives an optional injected seed."""

    def __init__(self, name: str, build: Callable[[Optional[S]], Union[T, Awaitable[T]]]):
        super().__init__(name, lambda: build(self._seed))
        self._seed: Optional[S] = None

    @property
    def seed(self) -> Optional[S]:
        return self._seed

    def inject_seed(self, data: S) -> None:
        self._seed = data
        self.reset_for_tests()

    def clear_seed(self) -> None:
        self._seed = None
        self.reset_for_tests()


def load_test_mock_tracks() -> Optional[List[SpotifyTrack]]:
    """Read the tracks file named by WALKUP_TEST_MOCK_TRACKS, if set."""
    path = os.getenv(TEST_MOCK_TRACKS_ENV)
    if not path:
        return None
    with Path(path).open("r", encoding="utf-8") as file:
        loaded: Any = json.load(file)
    if not isinstance(loaded, list):
        raise ValueError(f"{path} should contain a list of track objects.")
    return [SpotifyTrack.model_validate(item) for item in loaded]


class SupplierRegistry:
    """One supplier per service role, all reading the same ConfigHolder.

    Dependency graph (resolved eagerly at construction time)::

        http, storage      -> (none)
        auth               -> storage (+ http when real)
        api                -> auth, http
        playback           -> (none) mock / auth, http real
        music              -> playback (+ api when real)
        players            -> storage, music
        lineup             -> players, music, storage
    """

    def __init__(self, config: ConfigHolder):
        self.config = config
        self.http: ServiceSupplier[HttpService] = ServiceSupplier("http", self._build_http)
        self.storage: ServiceSupplier[StorageService] = ServiceSupplier("storage", self._build_storage)
        self.auth: ServiceSupplier[AuthService] = ServiceSupplier("auth", self._build_auth)
        self.api: ServiceSupplier[SpotifyApiService] = ServiceSupplier("api", self._build_api)
        self.playback: ServiceSupplier[PlaybackService] = ServiceSupplier("playback", self._build_playback)
        self.music: SeededServiceSupplier[MusicService, Sequence[SpotifyTrack]] = SeededServiceSupplier(
            "music", self._build_music
        )
        self.players: ServiceSupplier[PlayerService] = ServiceSupplier("players", self._build_players)
        self.lineup: ServiceSupplier[LineupService] = ServiceSupplier("lineup", self._build_lineup)

    def all(self) -> List[ServiceSupplier[Any]]:
        return [
            self.http,
            self.storage,
            self.auth,
            self.api,
            self.playback,
            self.music,
            self.players,
            self.lineup,
        ]

    def reset_for_tests(self) -> None:
        for supplier in self.all():
            supplier.reset_for_tests()

    def _build_http(self) -> HttpService:
        return RequestsHttpService(default_timeout_ms=self.config.get().http_timeout_ms)

    def _build_storage(self) -> StorageService:
        config = self.config.get()
        if config.mock_auth or config.storage_path is None:
            return KeyValueStorageService({})
        return KeyValueStorageService(JsonFileStore(config.storage_path))

    def _build_auth(self) -> AuthService:
        config = self.config.get()
        if config.mock_auth:
            return MockAuthService(config, self.storage.supply())
        return SpotifyAuthService(config, self.http.supply(), self.storage.supply())

    def _build_api(self) -> SpotifyApiService:
        config = self.config.get()
        return SpotifyApiService(
            self.auth.supply(),
            self.http.supply(),
            enable_retry=config.enable_retry,
            timeout_ms=config.http_timeout_ms,
        )

    def _build_playback(self) -> PlaybackService:
        config = self.config.get()
        if config.mock_auth:
            return MockPlaybackService()
        return SpotifyPlaybackService(self.auth.supply(), self.http.supply(), timeout_ms=config.http_timeout_ms)

    def _build_music(self, seed: Optional[Sequence[SpotifyTrack]]) -> MusicService:
        config = self.config.get()
        playback = self.playback.supply()
        if config.mock_auth:
            test_tracks = load_test_mock_tracks()
            tracks = test_tracks if test_tracks is not None else seed
            return MockMusicService(playback, tracks)
        return SpotifyMusicService(self.api.supply(), playback)

    def _build_players(self) -> PlayerService:
        return PlayerService(self.storage.supply(), self.music.supply())

    def _build_lineup(self) -> LineupService:
        return LineupService(self.players.supply(), self.music.supply(), self.storage.supply())


# Process-wide default registry bound to the default config holder
registry = SupplierRegistry(config_holder)


def supply_auth_service() -> AuthService:
    return registry.auth.supply()


def supply_music_service() -> MusicService:
    return registry.music.supply()


def supply_lineup_service() -> LineupService:
    return registry.lineup.supply()


def inject_mock_tracks_for_tests(tracks: Sequence[SpotifyTrack]) -> None:
    registry.music.inject_seed(list(tracks))
