"""
Key-value share cache — every record in a single JSON document.

With path=None the cache lives in process memory only.
"""

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path

from pydantic import ValidationError

from quickshare.cache.base import Changes, ShareCache, atomic_write_text, normalize_path
from quickshare.cache.models import ShareRecord
from quickshare.errors import InvalidDocumentPath

logger = logging.getLogger(__name__)

SCHEMA_VERSION = 1


class KeyValueCache(ShareCache):
    """Share cache backed by one JSON file (or nothing, when path is None)."""

    def __init__(self, path: Path | None = None) -> None:
        super().__init__()
        self.path = path
        self._file_lock = asyncio.Lock()

    @property
    def name(self) -> str:
        return str(self.path) if self.path else "memory"

    def _load_all(self) -> dict[str, ShareRecord]:
        if self.path is None or not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            logger.warning("Failed to read share cache %s: %s", self.path, e)
            return {}

        records: dict[str, ShareRecord] = {}
        for doc_path, raw in data.get("records", {}).items():
            try:
                records[normalize_path(doc_path)] = ShareRecord.model_validate(raw)
            except (InvalidDocumentPath, ValidationError) as e:
                logger.warning("Skipping invalid share record for %s: %s", doc_path, e)
        return records

    async def _commit(self, changes: Changes) -> None:
        # The snapshot must be built and published under one lock so that
        # concurrent writes to different paths never drop each other.
        async with self._file_lock:
            await super()._commit(changes)

    async def _persist(self, changes: Changes) -> None:
        if self.path is None:
            return
        snapshot = dict(self._records)
        for doc_path, record in changes.items():
            if record is None:
                snapshot.pop(doc_path, None)
            else:
                snapshot[doc_path] = record
        content = json.dumps(
            {
                "version": SCHEMA_VERSION,
                "records": {p: r.model_dump(mode="json") for p, r in sorted(snapshot.items())},
            },
            indent=2,
        )
        await asyncio.to_thread(atomic_write_text, self.path, content)
