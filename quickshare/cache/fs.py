"""
Filesystem share cache — one JSON file per record.

The directory layout mirrors the vault: the record for ``notes/a.md`` lives
at ``<root>/notes/a.md.json``.
"""

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path, PurePosixPath

from pydantic import ValidationError

from quickshare.cache.base import Changes, ShareCache, atomic_write_text
from quickshare.cache.models import ShareRecord

logger = logging.getLogger(__name__)

RECORD_SUFFIX = ".json"


class FsCache(ShareCache):
    """Share cache backed by a directory tree of record files."""

    def __init__(self, root: Path) -> None:
        super().__init__()
        self.root = root

    @property
    def name(self) -> str:
        return str(self.root)

    def _record_file(self, doc_path: str) -> Path:
        parts = PurePosixPath(doc_path).parts
        return self.root.joinpath(*parts[:-1], parts[-1] + RECORD_SUFFIX)

    def _load_all(self) -> dict[str, ShareRecord]:
        if not self.root.exists():
            return {}
        records: dict[str, ShareRecord] = {}
        for record_file in self.root.rglob(f"*{RECORD_SUFFIX}"):
            doc_path = record_file.relative_to(self.root).as_posix()[: -len(RECORD_SUFFIX)]
            try:
                raw = json.loads(record_file.read_text(encoding="utf-8"))
                records[doc_path] = ShareRecord.model_validate(raw)
            except (OSError, json.JSONDecodeError, ValidationError) as e:
                logger.warning("Skipping unreadable share record %s: %s", record_file, e)
        return records

    def _write_changes(self, changes: Changes) -> None:
        # Writes first, removals second: a rename never loses the record.
        # If any step fails, files already written are restored.
        written: list[tuple[Path, str | None]] = []
        try:
            for doc_path, record in changes.items():
                if record is not None:
                    record_file = self._record_file(doc_path)
                    previous = record_file.read_text(encoding="utf-8") if record_file.exists() else None
                    atomic_write_text(record_file, json.dumps(record.model_dump(mode="json"), indent=2))
                    written.append((record_file, previous))
            for doc_path, record in changes.items():
                if record is None:
                    record_file = self._record_file(doc_path)
                    record_file.unlink(missing_ok=True)
                    self._prune(record_file.parent)
        except OSError:
            self._rollback(written)
            raise

    def _rollback(self, written: list[tuple[Path, str | None]]) -> None:
        for record_file, previous in reversed(written):
            try:
                if previous is None:
                    record_file.unlink(missing_ok=True)
                    self._prune(record_file.parent)
                else:
                    atomic_write_text(record_file, previous)
            except OSError as e:
                logger.error("Failed to roll back share record %s: %s", record_file, e)

    def _prune(self, directory: Path) -> None:
        """Remove empty directories up to (not including) the cache root."""
        while directory != self.root and self.root in directory.parents:
            try:
                directory.rmdir()
            except OSError:
                return
            directory = directory.parent

    async def _persist(self, changes: Changes) -> None:
        await asyncio.to_thread(self._write_changes, changes)
