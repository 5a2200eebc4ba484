"""Tests for track search, playback control and preview handling."""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock
from urllib.parse import parse_qs, urlparse

import pytest

from walkup.errors import AuthError, HttpError, HttpErrorKind, OperationTimeoutError
from walkup.models import HttpResponse
from walkup.music import DEFAULT_MOCK_TRACKS, MockMusicService, SpotifyApiService
from walkup.playback import MockPlaybackService, SpotifyPlaybackService


def _item(track_id, name="Song", images=None):
    return {
        "id": track_id,
        "name": name,
        "artists": [{"name": "Band"}],
        "album": {"name": "Album", "images": images or []},
        "preview_url": None,
        "duration_ms": 180000,
        "uri": f"spotify:track:{track_id}",
    }


@pytest.fixture(autouse=True)
def no_sleep(monkeypatch):
    async def fake_sleep(delay_ms):
        return None

    monkeypatch.setattr("walkup.retry._sleep", fake_sleep)


@pytest.fixture()
def auth() -> AsyncMock:
    auth = AsyncMock()
    auth.get_access_token.return_value = "token-1"
    return auth


@pytest.fixture()
def http() -> AsyncMock:
    return AsyncMock()


class TestMockMusicService:
    @pytest.mark.asyncio
    async def test_search_matches_name_artist_album(self):
        music = MockMusicService(MockPlaybackService())
        assert [t.id for t in await music.search_tracks("tiger")] == ["track1"]
        assert [t.id for t in await music.search_tracks("QUEEN")] == ["track2"]
        assert [t.id for t in await music.search_tracks("escape")] == ["track7"]
        assert await music.search_tracks("   ") == []

    @pytest.mark.asyncio
    async def test_search_is_capped(self):
        music = MockMusicService(MockPlaybackService())
        assert len(await music.search_tracks("e")) == 8

    @pytest.mark.asyncio
    async def test_default_dataset_not_shared(self):
        music = MockMusicService(MockPlaybackService())
        music.tracks.clear()
        assert len(DEFAULT_MOCK_TRACKS) == 10

    @pytest.mark.asyncio
    async def test_play_and_pause(self):
        playback = MockPlaybackService()
        music = MockMusicService(playback)
        await music.play_track("spotify:track:x", 1500)
        assert playback.is_playing is True
        assert playback.position_ms == 1500
        await music.pause()
        assert playback.is_playing is False
        assert music.is_playback_ready() is True

    @pytest.mark.asyncio
    async def test_preview_auto_pauses_and_notifies(self):
        playback = MockPlaybackService()
        music = MockMusicService(playback)
        ended = asyncio.Event()

        await music.preview_track("spotify:track:x", duration_ms=10, on_track_end=ended.set)
        assert playback.is_playing is True

        await asyncio.wait_for(ended.wait(), timeout=1)
        assert playback.is_playing is False

    @pytest.mark.asyncio
    async def test_play_cancels_pending_preview(self):
        playback = MockPlaybackService()
        music = MockMusicService(playback)
        ended = []

        await music.preview_track("spotify:track:a", duration_ms=30, on_track_end=lambda: ended.append(1))
        await music.play_track("spotify:track:b")
        await asyncio.sleep(0.06)

        assert playback.current_uri == "spotify:track:b"
        assert playback.is_playing is True
        assert ended == []

    @pytest.mark.asyncio
    async def test_failing_callback_is_logged_not_raised(self, caplog):
        playback = MockPlaybackService()
        music = MockMusicService(playback)

        def explode():
            raise RuntimeError("listener blew up")

        with caplog.at_level("ERROR", logger="walkup.music"):
            await music.preview_track("spotify:track:x", duration_ms=10, on_track_end=explode)
            task = music._preview_task
            await asyncio.wait_for(asyncio.shield(task), timeout=1)

        assert task.done() and task.exception() is None
        assert playback.is_playing is False
        assert "listener blew up" in caplog.text

    @pytest.mark.asyncio
    async def test_failing_auto_pause_is_logged_not_raised(self, caplog):
        playback = MockPlaybackService()
        playback.pause = AsyncMock(side_effect=OperationTimeoutError("pause timed out", 5000))
        music = MockMusicService(playback)
        ended = []

        with caplog.at_level("ERROR", logger="walkup.music"):
            await music.preview_track("spotify:track:x", duration_ms=10, on_track_end=lambda: ended.append(1))
            task = music._preview_task
            await asyncio.wait_for(asyncio.shield(task), timeout=1)

        assert task.exception() is None
        assert ended == []
        assert "Failed to auto-pause preview" in caplog.text
        assert music._preview_task is None


class TestSpotifyApiService:
    def test_build_search_url_caps_limit(self, auth, http):
        api = SpotifyApiService(auth, http)
        query = parse_qs(urlparse(api.build_search_url("rock anthem", 200)).query)
        assert query == {"q": ["rock anthem"], "type": ["track"], "limit": ["50"], "market": ["US"]}

    @pytest.mark.asyncio
    async def test_search_maps_and_dedupes(self, auth, http):
        images = [
            {"url": "big", "height": 640},
            {"url": "medium", "height": 300},
            {"url": "small", "height": 64},
        ]
        http.get.return_value = HttpResponse(
            status=200,
            data={"tracks": {"items": [_item("a", images=images), _item("a"), _item("b")]}},
        )
        api = SpotifyApiService(auth, http)

        tracks = await api.search_tracks("anthem")

        assert [t.id for t in tracks] == ["a", "b"]
        assert tracks[0].album_art == "medium"
        assert tracks[0].artists == ["Band"]
        assert http.get.await_args.kwargs["headers"] == {"Authorization": "Bearer token-1"}

    @pytest.mark.asyncio
    async def test_empty_query_skips_network(self, auth, http):
        assert await SpotifyApiService(auth, http).search_tracks("  ") == []
        http.get.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_search_requires_token(self, auth, http):
        auth.get_access_token.return_value = None
        with pytest.raises(AuthError):
            await SpotifyApiService(auth, http).search_tracks("anthem")

    @pytest.mark.asyncio
    async def test_search_retries_unavailable(self, auth, http):
        http.get.side_effect = [
            HttpResponse(status=503),
            HttpResponse(status=200, data={"tracks": {"items": [_item("a")]}}),
        ]
        tracks = await SpotifyApiService(auth, http).search_tracks("anthem")
        assert [t.id for t in tracks] == ["a"]
        assert http.get.await_count == 2

    @pytest.mark.asyncio
    async def test_search_does_not_retry_forbidden(self, auth, http):
        http.get.return_value = HttpResponse(status=403)
        with pytest.raises(HttpError) as exc_info:
            await SpotifyApiService(auth, http).search_tracks("anthem")
        assert exc_info.value.status == 403
        assert "Premium" in str(exc_info.value)
        assert http.get.await_count == 1

    @pytest.mark.asyncio
    async def test_retry_can_be_disabled(self, auth, http):
        http.get.return_value = HttpResponse(status=503)
        with pytest.raises(HttpError):
            await SpotifyApiService(auth, http, enable_retry=False).search_tracks("anthem")
        assert http.get.await_count == 1

    @pytest.mark.asyncio
    async def test_malformed_body_is_upstream_error(self, auth, http):
        api = SpotifyApiService(auth, http)
        for data in ({"unexpected": 1}, {"tracks": {"items": "nope"}}, ["not", "an", "object"]):
            http.get.return_value = HttpResponse(status=200, data=data)
            with pytest.raises(HttpError, match="Invalid search response") as excinfo:
                await api.search_tracks("anthem")
            assert excinfo.value.status == 200

    @pytest.mark.asyncio
    async def test_malformed_items_are_skipped(self, auth, http, caplog):
        broken = _item("c")
        del broken["uri"]
        http.get.return_value = HttpResponse(
            status=200,
            data={"tracks": {"items": [_item("a"), None, {"id": "x"}, broken, _item("b")]}},
        )
        with caplog.at_level("WARNING", logger="walkup.music"):
            tracks = await SpotifyApiService(auth, http).search_tracks("anthem")
        assert [t.id for t in tracks] == ["a", "b"]
        assert "Skipping malformed track" in caplog.text


class TestSpotifyPlaybackService:
    @pytest.mark.asyncio
    async def test_play_sends_uri_and_position(self, auth, http):
        http.put_json.return_value = HttpResponse(status=204)
        playback = SpotifyPlaybackService(auth, http)
        assert playback.is_ready() is False

        await playback.play("spotify:track:a", 2000)

        url, body = http.put_json.await_args.args[:2]
        assert url == "https://api.spotify.com/v1/me/player/play"
        assert body == {"uris": ["spotify:track:a"], "position_ms": 2000}
        assert playback.is_ready() is True

    @pytest.mark.asyncio
    async def test_failure_marks_not_ready(self, auth, http):
        http.put_json.side_effect = [HttpResponse(status=204), HttpResponse(status=404, data=None)]
        playback = SpotifyPlaybackService(auth, http)
        await playback.play("spotify:track:a")
        with pytest.raises(HttpError) as exc_info:
            await playback.pause()
        assert exc_info.value.kind is HttpErrorKind.HTTP
        assert playback.is_ready() is False

    @pytest.mark.asyncio
    async def test_requires_token(self, auth, http):
        auth.get_access_token.return_value = None
        with pytest.raises(AuthError):
            await SpotifyPlaybackService(auth, http).pause()
        http.put_json.assert_not_awaited()
