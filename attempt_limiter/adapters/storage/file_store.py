"""Durable key-value store backed by a single JSON file.

The whole file is a JSON object mapping keys to string values. Writes go to
a temporary file which then atomically replaces the original, so a crash
mid-write leaves the previous contents intact.

Blocking file I/O runs in the default thread pool executor to keep the event
loop responsive.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import threading
from pathlib import Path
from typing import Callable, TypeVar

from attempt_limiter.adapters.storage.base import AbstractKeyValueStore
from attempt_limiter.core.errors import StorageAppError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class JsonFileKeyValueStore(AbstractKeyValueStore):
    """Key-value store persisted to a JSON file on local disk.

    Important:
        Safe for concurrent use within one process. Several processes writing
        the same file may lose each other's updates.
    """

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)
        self._lock = threading.RLock()

    @property
    def path(self) -> Path:
        return self._path

    async def get_item(self, key: str) -> str | None:
        return await self._run(self._get_sync, key)

    async def set_item(self, key: str, value: str) -> None:
        await self._run(self._set_sync, key, value)

    async def remove_item(self, key: str) -> None:
        await self._run(self._remove_sync, key)

    async def _run(self, func: Callable[..., T], *args: object) -> T:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, func, *args)

    def _get_sync(self, key: str) -> str | None:
        with self._lock:
            return self._read_all().get(key)

    def _set_sync(self, key: str, value: str) -> None:
        with self._lock:
            items = self._read_all()
            items[key] = value
            self._write_all(items)

    def _remove_sync(self, key: str) -> None:
        with self._lock:
            items = self._read_all()
            if items.pop(key, None) is None:
                return
            self._write_all(items)

    def _read_all(self) -> dict[str, str]:
        if not self._path.is_file():
            return {}

        try:
            raw = self._path.read_text(encoding="utf-8")
        except OSError as exc:
            raise StorageAppError(
                code="storage_read_failed",
                message=f"Could not read storage file: {exc}",
                details={"backend": "file"},
            ) from exc
        except UnicodeDecodeError as exc:
            raise StorageAppError(
                code="storage_corrupted",
                message="Storage file is not valid UTF-8",
                details={"backend": "file", "hint": f"Delete or repair {self._path}"},
            ) from exc

        if not raw.strip():
            return {}

        try:
            data = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise StorageAppError(
                code="storage_corrupted",
                message="Storage file is not valid JSON",
                details={"backend": "file", "hint": f"Delete or repair {self._path}"},
            ) from exc

        if not isinstance(data, dict):
            raise StorageAppError(
                code="storage_corrupted",
                message="Storage file must contain a JSON object",
                details={"backend": "file", "hint": f"Delete or repair {self._path}"},
            )

        return {str(k): v for k, v in data.items() if isinstance(v, str)}

    def _write_all(self, items: dict[str, str]) -> None:
        tmp_path = self._path.with_name(self._path.name + ".tmp")
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            with open(tmp_path, "w", encoding="utf-8") as f:
                json.dump(items, f, ensure_ascii=False)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, self._path)
        except OSError as exc:
            raise StorageAppError(
                code="storage_write_failed",
                message=f"Could not write storage file: {exc}",
                details={"backend": "file"},
            ) from exc

        logger.debug(
            "storage.file_written",
            extra={"entries": len(items)},
        )
