"""Exception types shared across the service core."""

from __future__ import annotations

from enum import Enum
from typing import Optional


class WalkupError(Exception):
    """Base class for every error raised by the walkup package."""


class NotInitializedError(WalkupError, RuntimeError):
    """Raised when a holder is read before its ``initialize`` step ran."""


class ReentrantSupplyError(WalkupError, RuntimeError):
    """Raised when a supplier is asked for its service while building it."""


class OperationTimeoutError(WalkupError, TimeoutError):
    """Raised when a single retry attempt exceeds its timeout."""

    def __init__(self, label: str, timeout_ms: float):
        super().__init__(f"Operation timed out: {label} did not settle within {timeout_ms}ms")
        self.label = label
        self.timeout_ms = timeout_ms


class HttpErrorKind(Enum):
    NETWORK = "network"
    TIMEOUT = "timeout"
    HTTP = "http"


class HttpError(WalkupError):
    """Failure of an outbound HTTP call."""

    def __init__(
        self,
        kind: HttpErrorKind,
        message: str,
        status: Optional[int] = None,
        url: Optional[str] = None,
    ):
        super().__init__(message)
        self.kind = kind
        self.status = status
        self.url = url

    def __str__(self) -> str:
        parts = [f"[{self.kind.value}]", self.args[0]]
        if self.status is not None:
            parts.append(f"(status {self.status})")
        if self.url:
            parts.append(f"url={self.url}")
        return " ".join(parts)


class AuthError(WalkupError):
    """Authentication flow failure (bad state, missing verifier or token)."""


class StorageError(WalkupError):
    """Invalid key or payload passed to a storage service."""


class GameError(WalkupError):
    """Invalid player or lineup operation."""


class PlayerNotFoundError(GameError):
    def __init__(self, player_id: str):
        super().__init__(f"Player with id {player_id} not found")
        self.player_id = player_id
