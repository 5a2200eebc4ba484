"""Music provider authentication: the PKCE flow and its mock stand-in."""

from __future__ import annotations

import base64
import hashlib
import secrets
import time
from abc import ABC, abstractmethod
from typing import Optional
from urllib.parse import urlencode

from .config import AppConfig
from .errors import AuthError, HttpError
from .http_client import HttpService, is_retryable_http_error, raise_for_status
from .logging_config import get_logger
from .models import TokenSet, UserProfile
from .retry import RetryOptions, retry
from .storage import StorageService
from .utils import mask_token

logger = get_logger(__name__)

AUTH_RETRY = RetryOptions(max_retries=2, initial_delay_ms=300, should_retry=is_retryable_http_error)


class AuthService(ABC):
    @abstractmethod
    async def login(self) -> str:
        """Start a login and return the URL the user must visit."""

    @abstractmethod
    async def logout(self) -> None: ...

    @abstractmethod
    async def get_access_token(self) -> Optional[str]:
        """Return a usable access token, refreshing it when close to expiry."""

    @abstractmethod
    async def is_authenticated(self) -> bool: ...

    @abstractmethod
    async def refresh_token(self) -> None: ...

    @abstractmethod
    async def handle_callback(self, code: str, state: str) -> None:
        """Complete a login from the provider's redirect."""

    @abstractmethod
    async def get_user_profile(self) -> Optional[UserProfile]: ...


class MockAuthService(AuthService):
    """Bypasses the provider. Session state lives in storage so it survives restarts."""

    AUTH_STATE_KEY = "mock-auth-state"
    EXPIRES_AT_KEY = "mock-auth-expire-at"
    ACCESS_TOKEN = "mock-access-token-12345"

    def __init__(self, config: AppConfig, storage: StorageService):
        self.config = config
        self.storage = storage
        self.profile = UserProfile(
            id="mock-user-123",
            email="mock@example.com",
            display_name="Mock User",
            product="premium",
        )

    async def _start_session(self) -> None:
        await self.storage.save(self.AUTH_STATE_KEY, True)
        ttl = self.config.max_token_ttl_seconds
        if ttl:
            await self.storage.save(self.EXPIRES_AT_KEY, time.time() + ttl)
        else:
            await self.storage.delete(self.EXPIRES_AT_KEY)

    async def login(self) -> str:
        await self._start_session()
        logger.info("MockAuthService: User logged in")
        query = urlencode({"code": "mock-code", "state": "mock-state"})
        return f"{self.config.redirect_uri}?{query}"

    async def logout(self) -> None:
        await self.storage.save(self.AUTH_STATE_KEY, False)
        await self.storage.delete(self.EXPIRES_AT_KEY)
        logger.info("MockAuthService: User logged out")

    async def is_authenticated(self) -> bool:
        if await self.storage.load(self.AUTH_STATE_KEY) is not True:
            return False
        expires_at = await self.storage.load(self.EXPIRES_AT_KEY)
        if expires_at is not None and time.time() >= float(expires_at):
            logger.info("MockAuthService: Session expired")
            await self.logout()
            return False
        return True

    async def get_access_token(self) -> Optional[str]:
        if not await self.is_authenticated():
            return None
        return self.ACCESS_TOKEN

    async def refresh_token(self) -> None:
        return None

    async def handle_callback(self, code: str, state: str) -> None:
        await self._start_session()
        logger.info("MockAuthService: Handled callback, user authenticated")

    async def get_user_profile(self) -> Optional[UserProfile]:
        if not await self.is_authenticated():
            return None
        return self.profile.model_copy()


class SpotifyAuthService(AuthService):
    """Authorization code flow with PKCE against Spotify accounts."""

    AUTH_URL = "https://accounts.spotify.com/authorize"
    TOKEN_URL = "https://accounts.spotify.com/api/token"
    PROFILE_URL = "https://api.spotify.com/v1/me"
    REQUIRED_SCOPES = (
        "streaming",
        "user-read-email",
        "user-read-private",
        "user-modify-playback-state",
        "user-read-playback-state",
    )

    TOKENS_KEY = "spotify-tokens"
    CODE_VERIFIER_KEY = "spotify-code-verifier"
    STATE_KEY = "spotify-state"

    def __init__(self, config: AppConfig, http: HttpService, storage: StorageService):
        self.config = config
        self.http = http
        self.storage = storage
        self._tokens: Optional[TokenSet] = None
        self._loaded = False

    async def _load_tokens(self) -> Optional[TokenSet]:
        if not self._loaded:
            stored = await self.storage.load(self.TOKENS_KEY)
            self._tokens = TokenSet.model_validate(stored) if stored else None
            self._loaded = True
        return self._tokens

    async def _store_tokens(self, payload: dict, previous_refresh: Optional[str] = None) -> TokenSet:
        expires_in = int(payload.get("expires_in", 3600))
        if self.config.max_token_ttl_seconds:
            expires_in = min(expires_in, self.config.max_token_ttl_seconds)
        tokens = TokenSet(
            access_token=payload["access_token"],
            refresh_token=payload.get("refresh_token") or previous_refresh,
            expires_at=time.time() + expires_in,
            scope=payload.get("scope", ""),
        )
        self._tokens = tokens
        self._loaded = True
        await self.storage.save(self.TOKENS_KEY, tokens.model_dump())
        logger.info(f"Stored access token {mask_token(tokens.access_token)} (expires in {expires_in}s)")
        return tokens

    async def _request_token(self, form: dict, label: str) -> dict:
        async def _post():
            response = await self.http.post_form(self.TOKEN_URL, form, timeout_ms=self.config.http_timeout_ms)
            return raise_for_status(response, self.TOKEN_URL)

        response = await retry(_post, AUTH_RETRY, label=label)
        if not isinstance(response.data, dict) or "access_token" not in response.data:
            raise AuthError("Token endpoint returned no access token")
        return response.data

    async def login(self) -> str:
        code_verifier = secrets.token_urlsafe(64)
        digest = hashlib.sha256(code_verifier.encode("ascii")).digest()
        code_challenge = base64.urlsafe_b64encode(digest).rstrip(b"=").decode("ascii")
        state = secrets.token_urlsafe(16)

        await self.storage.save(self.CODE_VERIFIER_KEY, code_verifier)
        await self.storage.save(self.STATE_KEY, state)

        params = {
            "client_id": self.config.spotify_client_id,
            "response_type": "code",
            "redirect_uri": self.config.redirect_uri,
            "code_challenge_method": "S256",
            "code_challenge": code_challenge,
            "state": state,
            "scope": " ".join(self.REQUIRED_SCOPES),
        }
        return f"{self.AUTH_URL}?{urlencode(params)}"

    async def handle_callback(self, code: str, state: str) -> None:
        stored_state = await self.storage.load(self.STATE_KEY)
        if not stored_state or stored_state != state:
            raise AuthError("Invalid state parameter. Possible CSRF attack.")

        code_verifier = await self.storage.load(self.CODE_VERIFIER_KEY)
        if not code_verifier:
            raise AuthError("Code verifier not found. Please restart the login process.")

        await self.storage.delete(self.CODE_VERIFIER_KEY)
        await self.storage.delete(self.STATE_KEY)

        payload = await self._request_token(
            {
                "grant_type": "authorization_code",
                "code": code,
                "redirect_uri": self.config.redirect_uri,
                "client_id": self.config.spotify_client_id,
                "code_verifier": code_verifier,
            },
            label="spotify token exchange",
        )
        await self._store_tokens(payload)

    async def logout(self) -> None:
        self._tokens = None
        self._loaded = True
        for key in (self.TOKENS_KEY, self.CODE_VERIFIER_KEY, self.STATE_KEY):
            await self.storage.delete(key)
        logger.info("Logged out of Spotify")

    async def is_authenticated(self) -> bool:
        tokens = await self._load_tokens()
        return tokens is not None and time.time() < tokens.expires_at

    async def get_access_token(self) -> Optional[str]:
        tokens = await self._load_tokens()
        if tokens is None:
            return None

        buffer_seconds = self.config.token_refresh_buffer_minutes * 60
        if time.time() >= tokens.expires_at - buffer_seconds:
            try:
                await self.refresh_token()
            except (AuthError, HttpError) as exc:
                logger.info(f"Failed to refresh token: {exc}")
                await self.logout()
                return None

        return self._tokens.access_token if self._tokens else None

    async def refresh_token(self) -> None:
        tokens = await self._load_tokens()
        if tokens is None or not tokens.refresh_token:
            raise AuthError("No refresh token available")

        payload = await self._request_token(
            {
                "grant_type": "refresh_token",
                "refresh_token": tokens.refresh_token,
                "client_id": self.config.spotify_client_id,
            },
            label="spotify token refresh",
        )
        await self._store_tokens(payload, previous_refresh=tokens.refresh_token)

    async def get_user_profile(self) -> Optional[UserProfile]:
        access_token = await self.get_access_token()
        if not access_token:
            return None

        async def _fetch():
            response = await self.http.get(
                self.PROFILE_URL,
                headers={"Authorization": f"Bearer {access_token}"},
                timeout_ms=self.config.http_timeout_ms,
            )
            return raise_for_status(response, self.PROFILE_URL)

        response = await retry(_fetch, AUTH_RETRY, label="spotify profile")
        data = response.data or {}
        return UserProfile(
            id=data.get("id", ""),
            email=data.get("email"),
            display_name=data.get("display_name"),
            product=data.get("product"),
        )
