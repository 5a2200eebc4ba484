"""Asynchronous HTTP service used by the network-backed services."""

from __future__ import annotations

import asyncio
import json
from abc import ABC, abstractmethod
from typing import Any, Dict, Mapping, Optional

import requests

from .errors import HttpError, HttpErrorKind, OperationTimeoutError
from .logging_config import get_logger
from .models import HttpResponse
from .utils import create_requests_session

logger = get_logger(__name__)

RETRYABLE_STATUSES = {429, 500, 502, 503, 504}


class HttpService(ABC):
    """Minimal verb set the music provider clients need."""

    @abstractmethod
    async def get(
        self,
        url: str,
        headers: Optional[Mapping[str, str]] = None,
        timeout_ms: Optional[int] = None,
    ) -> HttpResponse:
        """GET ``url`` and return the decoded response."""

    @abstractmethod
    async def post_form(
        self,
        url: str,
        form: Mapping[str, str],
        headers: Optional[Mapping[str, str]] = None,
        timeout_ms: Optional[int] = None,
    ) -> HttpResponse:
        """POST ``form`` as application/x-www-form-urlencoded."""

    @abstractmethod
    async def put_json(
        self,
        url: str,
        body: Any = None,
        headers: Optional[Mapping[str, str]] = None,
        timeout_ms: Optional[int] = None,
    ) -> HttpResponse:
        """PUT ``body`` encoded as JSON (no body when None)."""


class RequestsHttpService(HttpService):
    """HttpService backed by a shared requests Session.

    Blocking calls run in a worker thread so the event loop keeps going.
    Non-2xx responses are returned as-is; transport failures raise HttpError.
    """

    def __init__(self, default_timeout_ms: Optional[int] = None, session: Optional[requests.Session] = None):
        self.default_timeout_ms = default_timeout_ms
        self.session = session or create_requests_session()

    async def get(self, url, headers=None, timeout_ms=None) -> HttpResponse:
        return await self._send("GET", url, headers=dict(headers or {}), timeout_ms=timeout_ms)

    async def post_form(self, url, form, headers=None, timeout_ms=None) -> HttpResponse:
        merged = dict(headers or {})
        merged["Content-Type"] = "application/x-www-form-urlencoded"
        return await self._send("POST", url, headers=merged, data=dict(form), timeout_ms=timeout_ms)

    async def put_json(self, url, body=None, headers=None, timeout_ms=None) -> HttpResponse:
        merged = {"Content-Type": "application/json"}
        merged.update(headers or {})
        data = None if body is None else json.dumps(body)
        return await self._send("PUT", url, headers=merged, data=data, timeout_ms=timeout_ms)

    async def _send(
        self,
        method: str,
        url: str,
        headers: Dict[str, str],
        data: Any = None,
        timeout_ms: Optional[int] = None,
    ) -> HttpResponse:
        timeout_ms = timeout_ms if timeout_ms is not None else self.default_timeout_ms
        timeout = timeout_ms / 1000 if timeout_ms and timeout_ms > 0 else None

        try:
            response = await asyncio.to_thread(
                self.session.request,
                method,
                url,
                headers=headers,
                data=data,
                timeout=timeout,
            )
        except requests.exceptions.Timeout as exc:
            logger.warning(f"{method} {url} timed out after {timeout_ms}ms")
            raise HttpError(HttpErrorKind.TIMEOUT, "Request timed out", url=url) from exc
        except requests.exceptions.RequestException as exc:
            logger.warning(f"{method} {url} failed: {exc}")
            raise HttpError(HttpErrorKind.NETWORK, "Network error", url=url) from exc

        return HttpResponse(
            data=_decode_body(response),
            status=response.status_code,
            headers=dict(response.headers),
        )


def _decode_body(response: requests.Response) -> Any:
    if not response.content:
        return None
    try:
        return response.json()
    except ValueError:
        return None


def raise_for_status(response: HttpResponse, url: Optional[str] = None) -> HttpResponse:
    """Turn a non-2xx HttpResponse into an HttpError(HTTP)."""
    if response.ok:
        return response
    message = "Unexpected HTTP status"
    if isinstance(response.data, dict):
        error = response.data.get("error")
        if isinstance(error, dict):
            message = error.get("message") or message
        elif isinstance(error, str):
            message = response.data.get("error_description") or error
    raise HttpError(HttpErrorKind.HTTP, message, status=response.status, url=url)


def is_retryable_http_error(error: BaseException, attempt: int) -> bool:
    """Retry predicate for :func:`walkup.retry.retry` around HTTP calls."""
    if isinstance(error, OperationTimeoutError):
        return True
    if not isinstance(error, HttpError):
        return False
    if error.kind in (HttpErrorKind.NETWORK, HttpErrorKind.TIMEOUT):
        return True
    return error.status in RETRYABLE_STATUSES
