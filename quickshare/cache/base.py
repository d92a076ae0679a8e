"""
Share cache contract — per-path atomic record storage.

Reads (has/get/list) are served from an in-memory index loaded by init().
Writes take a per-path asyncio.Lock, persist through the backend, and only
then publish to the index, so a failed write leaves nothing half-applied.

Keys are normalized vault-relative POSIX paths (see normalize_path), so every
backend indexes and persists the same key for the same document.
"""

from __future__ import annotations

import asyncio
import logging
import os
import tempfile
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator, Callable
from contextlib import AsyncExitStack, asynccontextmanager
from pathlib import Path, PurePosixPath

from quickshare.cache.models import ShareRecord
from quickshare.errors import CacheWriteConflict, InvalidDocumentPath

logger = logging.getLogger(__name__)

Updater = Callable[[ShareRecord], ShareRecord]
Changes = dict[str, ShareRecord | None]


def normalize_path(path: str) -> str:
    """Canonical cache key: forward slashes, no ``.`` segments, no repeated slashes.

    Raises:
        InvalidDocumentPath: the path is empty, absolute, or climbs out with ``..``.
    """
    pure = PurePosixPath(path.replace("\\", "/"))
    if not pure.parts or pure.is_absolute() or ".." in pure.parts:
        raise InvalidDocumentPath(f"Document path must be relative to the vault: {path!r}")
    return pure.as_posix()


def atomic_write_text(path: Path, content: str) -> None:
    """Atomically replace a file's contents."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}-", suffix=".tmp")
    try:
        os.write(fd, content.encode("utf-8"))
        os.close(fd)
        os.replace(tmp, path)
    except Exception:
        try:
            os.close(fd)
        except OSError:
            pass
        if os.path.exists(tmp):
            os.unlink(tmp)
        raise


class ShareCache(ABC):
    """Abstract share cache. Subclasses implement loading and persistence."""

    def __init__(self) -> None:
        self._records: dict[str, ShareRecord] = {}
        self._locks: dict[str, asyncio.Lock] = {}
        self._lock_users: dict[str, int] = {}

    async def init(self) -> ShareCache:
        """Load persisted records. Returns self for chaining."""
        self._records = await asyncio.to_thread(self._load_all)
        logger.debug("Loaded %d share records from %s", len(self._records), self.name)
        return self

    @property
    @abstractmethod
    def name(self) -> str:
        """Human-readable backend name."""

    @abstractmethod
    def _load_all(self) -> dict[str, ShareRecord]:
        """Read every persisted record (runs in a worker thread)."""

    @abstractmethod
    async def _persist(self, changes: Changes) -> None:
        """Durably apply changes; None means remove the record."""

    async def _commit(self, changes: Changes) -> None:
        await self._persist(changes)
        for path, record in changes.items():
            if record is None:
                self._records.pop(path, None)
            else:
                self._records[path] = record

    @asynccontextmanager
    async def _locked(self, path: str) -> AsyncIterator[None]:
        """Hold the lock for one path. The lock is dropped once nobody holds or awaits it."""
        lock = self._locks.get(path)
        if lock is None:
            lock = self._locks[path] = asyncio.Lock()
        self._lock_users[path] = self._lock_users.get(path, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[path] -= 1
            if not self._lock_users[path]:
                del self._lock_users[path]
                del self._locks[path]

    # ── Reads ──

    def has(self, path: str) -> bool:
        return self.get(path) is not None

    def get(self, path: str) -> ShareRecord | None:
        try:
            return self._records.get(normalize_path(path))
        except InvalidDocumentPath:
            return None

    def list(self) -> list[tuple[str, ShareRecord]]:
        """All records as (path, record), sorted by path."""
        return sorted(self._records.items())

    # ── Writes ──

    async def set(self, path: str, record_or_updater: ShareRecord | Updater) -> ShareRecord:
        """Replace a record, or update it with a pure function old -> new.

        Raises:
            KeyError: updater given for a path with no record.
            CacheWriteConflict: updater changed note_id/secret_token, or the
                record was already deleted from the server.
            InvalidDocumentPath: path is not relative to the vault.
        """
        path = normalize_path(path)
        async with self._locked(path):
            if isinstance(record_or_updater, ShareRecord):
                record = record_or_updater
            else:
                current = self._records.get(path)
                if current is None:
                    raise KeyError(path)
                if current.deleted_from_server:
                    raise CacheWriteConflict(f"{path}: record is already deleted from server")
                record = record_or_updater(current)
                if (record.note_id, record.secret_token) != (current.note_id, current.secret_token):
                    raise CacheWriteConflict(f"{path}: note_id and secret_token are immutable")
            await self._commit({path: record})
            return record

    async def rename(self, old_path: str, new_path: str) -> None:
        """Move a record to a new path. No-op if old_path has no record."""
        old_path, new_path = normalize_path(old_path), normalize_path(new_path)
        if old_path == new_path:
            return
        async with AsyncExitStack() as stack:
            for path in sorted((old_path, new_path)):
                await stack.enter_async_context(self._locked(path))
            record = self._records.get(old_path)
            if record is None:
                return
            await self._commit({new_path: record, old_path: None})
        logger.info("Share record moved: %s -> %s", old_path, new_path)

    async def delete(self, path: str) -> None:
        """Hard-remove a record. Lifecycle events never call this."""
        path = normalize_path(path)
        async with self._locked(path):
            if path in self._records:
                await self._commit({path: None})

    # ── Lifecycle ──

    async def _mark(self, path: str, flag: str) -> ShareRecord | None:
        path = normalize_path(path)
        async with self._locked(path):
            current = self._records.get(path)
            if current is None or current.deleted_from_server:
                return current
            record = current.model_copy(update={flag: True})
            await self._commit({path: record})
            return record

    async def mark_deleted_from_vault(self, path: str) -> ShareRecord | None:
        """Flag a record whose source document was deleted locally.

        No-op for unknown paths and for records already deleted from the server.
        """
        return await self._mark(path, "deleted_from_vault")

    async def mark_deleted_from_server(self, path: str) -> ShareRecord | None:
        """Flag a record whose share was deleted on the server."""
        return await self._mark(path, "deleted_from_server")
