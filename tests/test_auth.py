"""Tests for mock and Spotify auth services."""

from __future__ import annotations

import time
from unittest.mock import AsyncMock
from urllib.parse import parse_qs, urlparse

import pytest

from walkup.auth import MockAuthService, SpotifyAuthService
from walkup.errors import AuthError, HttpError, HttpErrorKind
from walkup.models import HttpResponse
from walkup.storage import KeyValueStorageService


@pytest.fixture(autouse=True)
def no_sleep(monkeypatch):
    async def fake_sleep(delay_ms):
        return None

    monkeypatch.setattr("walkup.retry._sleep", fake_sleep)


@pytest.fixture()
def storage() -> KeyValueStorageService:
    return KeyValueStorageService({})


@pytest.fixture()
def http() -> AsyncMock:
    return AsyncMock()


@pytest.fixture()
def spotify_auth(real_config, http, storage) -> SpotifyAuthService:
    return SpotifyAuthService(real_config, http, storage)


def _token_response(access="access-1", refresh="refresh-1", expires_in=3600) -> HttpResponse:
    return HttpResponse(
        status=200,
        data={"access_token": access, "refresh_token": refresh, "expires_in": expires_in, "scope": "streaming"},
    )


class TestMockAuthService:
    @pytest.mark.asyncio
    async def test_login_flow(self, mock_config, storage):
        auth = MockAuthService(mock_config, storage)
        assert await auth.is_authenticated() is False
        assert await auth.get_access_token() is None

        url = await auth.login()
        assert url == "http://127.0.0.1:8000/callback?code=mock-code&state=mock-state"
        assert await auth.is_authenticated() is True
        assert await auth.get_access_token() == "mock-access-token-12345"
        profile = await auth.get_user_profile()
        assert profile.id == "mock-user-123"
        assert profile.product == "premium"

        await auth.logout()
        assert await auth.is_authenticated() is False
        assert await auth.get_user_profile() is None

    @pytest.mark.asyncio
    async def test_session_survives_new_instance(self, mock_config, storage):
        await MockAuthService(mock_config, storage).handle_callback("mock-code", "mock-state")
        assert await MockAuthService(mock_config, storage).is_authenticated() is True

    @pytest.mark.asyncio
    async def test_session_expires_after_ttl(self, mock_config, storage, monkeypatch):
        config = mock_config.model_copy(update={"max_token_ttl_seconds": 60})
        auth = MockAuthService(config, storage)
        now = time.time()
        monkeypatch.setattr("walkup.auth.time.time", lambda: now)
        await auth.login()
        assert await auth.is_authenticated() is True

        monkeypatch.setattr("walkup.auth.time.time", lambda: now + 61)
        assert await auth.is_authenticated() is False
        assert await storage.load(MockAuthService.AUTH_STATE_KEY) is False


class TestSpotifyAuthService:
    @pytest.mark.asyncio
    async def test_login_builds_pkce_url(self, spotify_auth, storage):
        url = await spotify_auth.login()
        parsed = urlparse(url)
        params = parse_qs(parsed.query)

        assert f"{parsed.scheme}://{parsed.netloc}{parsed.path}" == SpotifyAuthService.AUTH_URL
        assert params["client_id"] == ["client-123"]
        assert params["code_challenge_method"] == ["S256"]
        assert params["state"] == [await storage.load(SpotifyAuthService.STATE_KEY)]
        assert await storage.load(SpotifyAuthService.CODE_VERIFIER_KEY)
        assert "user-modify-playback-state" in params["scope"][0].split(" ")

    @pytest.mark.asyncio
    async def test_callback_rejects_wrong_state(self, spotify_auth, http):
        await spotify_auth.login()
        with pytest.raises(AuthError, match="Invalid state"):
            await spotify_auth.handle_callback("code", "forged")
        http.post_form.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_callback_requires_code_verifier(self, spotify_auth, storage):
        await storage.save(SpotifyAuthService.STATE_KEY, "s1")
        with pytest.raises(AuthError, match="Code verifier not found"):
            await spotify_auth.handle_callback("code", "s1")

    @pytest.mark.asyncio
    async def test_callback_exchanges_code_and_stores_tokens(self, spotify_auth, http, storage):
        http.post_form.return_value = _token_response()
        await spotify_auth.login()
        state = await storage.load(SpotifyAuthService.STATE_KEY)

        await spotify_auth.handle_callback("auth-code", state)

        form = http.post_form.await_args.args[1]
        assert form["grant_type"] == "authorization_code"
        assert form["code"] == "auth-code"
        assert await storage.load(SpotifyAuthService.STATE_KEY) is None
        assert (await storage.load(SpotifyAuthService.TOKENS_KEY))["access_token"] == "access-1"
        assert await spotify_auth.is_authenticated() is True
        assert await spotify_auth.get_access_token() == "access-1"

    @pytest.mark.asyncio
    async def test_token_exchange_retries_server_errors(self, spotify_auth, http, storage):
        http.post_form.side_effect = [HttpResponse(status=503, data=None), _token_response()]
        await spotify_auth.login()
        await spotify_auth.handle_callback("auth-code", await storage.load(SpotifyAuthService.STATE_KEY))
        assert http.post_form.await_count == 2

    @pytest.mark.asyncio
    async def test_token_ttl_is_capped(self, real_config, http, storage):
        config = real_config.model_copy(update={"max_token_ttl_seconds": 30})
        auth = SpotifyAuthService(config, http, storage)
        http.post_form.return_value = _token_response(expires_in=3600)
        await auth.login()
        before = time.time()
        await auth.handle_callback("code", await storage.load(SpotifyAuthService.STATE_KEY))
        tokens = await storage.load(SpotifyAuthService.TOKENS_KEY)
        assert tokens["expires_at"] <= before + 31

    @pytest.mark.asyncio
    async def test_access_token_refreshes_inside_buffer(self, spotify_auth, http, storage):
        await storage.save(
            SpotifyAuthService.TOKENS_KEY,
            {"access_token": "old", "refresh_token": "r-old", "expires_at": time.time() + 60},
        )
        http.post_form.return_value = _token_response(access="new", refresh=None)

        assert await spotify_auth.get_access_token() == "new"
        form = http.post_form.await_args.args[1]
        assert form == {"grant_type": "refresh_token", "refresh_token": "r-old", "client_id": "client-123"}
        stored = await storage.load(SpotifyAuthService.TOKENS_KEY)
        assert stored["refresh_token"] == "r-old"

    @pytest.mark.asyncio
    async def test_failed_refresh_logs_out(self, spotify_auth, http, storage):
        await storage.save(
            SpotifyAuthService.TOKENS_KEY,
            {"access_token": "old", "refresh_token": "r-old", "expires_at": time.time() + 60},
        )
        http.post_form.return_value = HttpResponse(status=400, data={"error": "invalid_grant"})

        assert await spotify_auth.get_access_token() is None
        assert await storage.load(SpotifyAuthService.TOKENS_KEY) is None
        assert await spotify_auth.is_authenticated() is False

    @pytest.mark.asyncio
    async def test_network_failure_during_refresh_logs_out(self, spotify_auth, http, storage):
        await storage.save(
            SpotifyAuthService.TOKENS_KEY,
            {"access_token": "old", "refresh_token": "r-old", "expires_at": time.time() + 60},
        )
        http.post_form.side_effect = HttpError(HttpErrorKind.NETWORK, "Network error")
        assert await spotify_auth.get_access_token() is None
        assert http.post_form.await_count == 3

    @pytest.mark.asyncio
    async def test_missing_access_token_in_response(self, spotify_auth, http, storage):
        http.post_form.return_value = HttpResponse(status=200, data={"token_type": "Bearer"})
        await spotify_auth.login()
        with pytest.raises(AuthError, match="no access token"):
            await spotify_auth.handle_callback("code", await storage.load(SpotifyAuthService.STATE_KEY))

    @pytest.mark.asyncio
    async def test_user_profile(self, spotify_auth, http, storage):
        await storage.save(
            SpotifyAuthService.TOKENS_KEY,
            {"access_token": "valid", "refresh_token": "r", "expires_at": time.time() + 3600},
        )
        http.get.return_value = HttpResponse(
            status=200, data={"id": "u1", "email": "u1@example.com", "display_name": "U One", "product": "free"}
        )
        profile = await spotify_auth.get_user_profile()
        assert profile.id == "u1"
        assert http.get.await_args.kwargs["headers"] == {"Authorization": "Bearer valid"}
