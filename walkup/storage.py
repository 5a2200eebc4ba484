"""Opaque key/value storage for settings and auth state."""

from __future__ import annotations

import json
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterator, MutableMapping, Optional

from .errors import StorageError
from .logging_config import get_logger

logger = get_logger(__name__)

KEY_PREFIX = "walk-up-music-"
EXPORT_VERSION = "1.0"


class StorageService(ABC):
    """Key/value persistence. Missing keys load as None."""

    @abstractmethod
    async def save(self, key: str, data: Any) -> None: ...

    @abstractmethod
    async def load(self, key: str) -> Optional[Any]: ...

    @abstractmethod
    async def delete(self, key: str) -> None: ...

    @abstractmethod
    async def clear(self) -> None: ...

    @abstractmethod
    async def export(self) -> str:
        """Dump every stored entry as a JSON document."""

    @abstractmethod
    async def import_data(self, payload: str) -> None:
        """Replace every stored entry with the contents of an export."""


class JsonFileStore(MutableMapping[str, str]):
    """A str -> str mapping persisted as one JSON object on disk."""

    def __init__(self, path: Path):
        self.path = Path(path)
        self._data: Dict[str, str] = {}
        if self.path.exists():
            try:
                with self.path.open("r", encoding="utf-8") as file:
                    loaded = json.load(file)
                if isinstance(loaded, dict):
                    self._data = {str(k): str(v) for k, v in loaded.items()}
                else:
                    logger.warning(f"{self.path} does not contain a JSON object, starting empty.")
            except (OSError, ValueError) as exc:
                logger.warning(f"Could not read {self.path}, starting empty: {exc}")

    def _flush(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        with tmp_path.open("w", encoding="utf-8") as file:
            json.dump(self._data, file, indent=2)
        tmp_path.replace(self.path)

    def __getitem__(self, key: str) -> str:
        return self._data[key]

    def __setitem__(self, key: str, value: str) -> None:
        self._data[key] = value
        self._flush()

    def __delitem__(self, key: str) -> None:
        del self._data[key]
        self._flush()

    def __iter__(self) -> Iterator[str]:
        return iter(self._data)

    def __len__(self) -> int:
        return len(self._data)


class KeyValueStorageService(StorageService):
    """Stores JSON-encoded values under a key prefix in any str mapping."""

    def __init__(self, backend: Optional[MutableMapping[str, str]] = None, key_prefix: str = KEY_PREFIX):
        self.backend: MutableMapping[str, str] = backend if backend is not None else {}
        self.key_prefix = key_prefix

    def _prefixed(self, key: str) -> str:
        if not key or not key.strip():
            raise StorageError("Key cannot be empty")
        return f"{self.key_prefix}{key}"

    async def save(self, key: str, data: Any) -> None:
        prefixed = self._prefixed(key)
        try:
            serialized = json.dumps(data)
        except (TypeError, ValueError) as exc:
            raise StorageError(f'Failed to save data for key "{key}": {exc}') from exc
        self.backend[prefixed] = serialized

    async def load(self, key: str) -> Optional[Any]:
        prefixed = self._prefixed(key)
        serialized = self.backend.get(prefixed)
        if serialized is None:
            return None
        try:
            return json.loads(serialized)
        except ValueError:
            logger.warning(f'Removing corrupted data for key "{key}"')
            await self.delete(key)
            return None

    async def delete(self, key: str) -> None:
        self.backend.pop(self._prefixed(key), None)

    async def clear(self) -> None:
        for full_key in [k for k in self.backend if k.startswith(self.key_prefix)]:
            del self.backend[full_key]

    async def export(self) -> str:
        data: Dict[str, Any] = {}
        for full_key, serialized in self.backend.items():
            if not full_key.startswith(self.key_prefix):
                continue
            app_key = full_key[len(self.key_prefix):]
            try:
                data[app_key] = json.loads(serialized)
            except ValueError:
                logger.warning(f"Skipping corrupted data for key: {app_key}")
        return json.dumps(
            {
                "version": EXPORT_VERSION,
                "timestamp": datetime.now(timezone.utc).isoformat(),
                "data": data,
            },
            indent=2,
        )

    async def import_data(self, payload: str) -> None:
        if not payload or not payload.strip():
            raise StorageError("Import data cannot be empty")
        try:
            imported = json.loads(payload)
        except ValueError as exc:
            raise StorageError("Invalid JSON format in import data") from exc
        if not isinstance(imported, dict) or not isinstance(imported.get("data"), dict):
            raise StorageError("Invalid import format: missing or invalid data section")

        await self.clear()
        for key, value in imported["data"].items():
            await self.save(key, value)
