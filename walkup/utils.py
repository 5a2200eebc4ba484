"""Utility functions used across modules."""

from __future__ import annotations

from typing import Optional

import requests
from requests import Session


def create_requests_session(max_retries: int = 0) -> Session:
    """Create a requests session with connection pooling for both schemes.

    Connection-level retries are off by default; callers retry whole
    requests through :func:`walkup.retry.retry` instead.
    """
    session = requests.Session()
    adapter = requests.adapters.HTTPAdapter(max_retries=max_retries)
    session.mount("http://", adapter)
    session.mount("https://", adapter)
    return session


def mask_token(token: Optional[str], visible_chars: int = 4) -> str:
    """Safely mask a token for logging, showing only last N characters"""
    if not token or len(token) <= visible_chars:
        return "***"
    return f"...{token[-visible_chars:]}"
