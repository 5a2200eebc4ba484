"""Shared fixtures: fresh singletons and ready-made configurations."""

from __future__ import annotations

import pytest

from walkup.config import AppConfig
from walkup.container import reset_for_tests
from walkup.suppliers import TEST_MOCK_TRACKS_ENV, registry


@pytest.fixture(autouse=True)
def reset_singletons(monkeypatch):
    monkeypatch.delenv(TEST_MOCK_TRACKS_ENV, raising=False)
    reset_for_tests()
    registry.music.clear_seed()
    yield
    reset_for_tests()
    registry.music.clear_seed()


@pytest.fixture()
def mock_config() -> AppConfig:
    return AppConfig(
        spotify_client_id="abc",
        redirect_uri="http://127.0.0.1:8000/callback",
        mock_auth=True,
    )


@pytest.fixture()
def real_config() -> AppConfig:
    return AppConfig(
        spotify_client_id="client-123",
        redirect_uri="http://127.0.0.1:8000/callback",
        token_refresh_buffer_minutes=5,
        mock_auth=False,
    )
