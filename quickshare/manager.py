"""
Share manager — the interface hosts call into.

Combines the sharing client and the share cache: shares and unshares
documents, keeps the cache consistent with vault rename/delete events, and
propagates settings changes to the client.

The cache is written only after the server confirms, so a failed share or
unshare never leaves a partial record behind.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import PurePosixPath

from quickshare import __version__
from quickshare.cache import ShareCache, ShareRecord, normalize_path
from quickshare.client import NoteSharingClient, strip_fragment
from quickshare.config import Settings
from quickshare.envelope import Attachment

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ShareLink:
    """What a host gets back from a successful share."""

    url: str
    expires_at: datetime
    note_id: str
    secret_token: str


def basename(path: str) -> str:
    """Document name without directory or extension, e.g. notes/Idea.md -> Idea."""
    return PurePosixPath(path.replace("\\", "/")).stem


@dataclass(eq=False)
class _PendingShare:
    """A share whose upload has not finished yet; tracks vault events meanwhile."""

    path: str
    deleted_from_vault: bool = False


class ShareManager:
    """Entry point for hosts: share, unshare, and vault lifecycle events."""

    def __init__(
        self,
        settings: Settings,
        cache: ShareCache,
        client: NoteSharingClient | None = None,
    ) -> None:
        self.settings = settings
        self.cache = cache
        self.client = client or NoteSharingClient(
            settings.server_url, settings.user_id, __version__
        )
        self._pending: list[_PendingShare] = []

    def update_settings(self, settings: Settings) -> None:
        """Replace the settings and push the relevant fields to the client."""
        self.settings = settings
        self.client.server_url = settings.server_url
        self.client.user_id = settings.user_id

    async def close(self) -> None:
        await self.client.close()

    async def share_document(
        self,
        path: str,
        body: str,
        attachments: Iterable[Attachment] = (),
        title: str | None = None,
    ) -> ShareLink:
        """Encrypt and upload a document, then record the share under path.

        Vault renames and deletes that arrive while the upload is in flight
        follow the pending share: the record lands at the document's current
        path and carries the deleted_from_vault flag.
        """
        path = normalize_path(path)
        name = basename(path)
        if title is None and self.settings.share_filename_as_title:
            title = name

        pending = _PendingShare(path)
        self._pending.append(pending)
        try:
            result = await self.client.share_note(body, attachments, title=title)

            now = datetime.now(timezone.utc)
            previous = self.cache.get(pending.path)
            record = ShareRecord(
                note_id=result.note_id,
                secret_token=result.secret_token,
                view_url=result.view_url,
                shared_datetime=now,
                updated_datetime=now if previous is not None else None,
                expire_datetime=result.expire_time,
                basename=name,
                deleted_from_vault=pending.deleted_from_vault,
            )
            await self.cache.set(pending.path, record)
        finally:
            self._pending.remove(pending)
        logger.info("Shared %s: %s", pending.path, strip_fragment(result.view_url))

        return ShareLink(
            url=result.view_url,
            expires_at=result.expire_time,
            note_id=result.note_id,
            secret_token=result.secret_token,
        )

    async def unshare(self, note_id: str, secret_token: str) -> None:
        """Delete a share on the server without touching the cache."""
        await self.client.delete_note(note_id, secret_token)

    async def unshare_document(self, path: str) -> ShareRecord | None:
        """Delete the share of a document and mark its record deleted_from_server.

        Returns the updated record, or None if the path was never shared or
        is already unshared.
        """
        record = self.cache.get(path)
        if record is None or record.deleted_from_server:
            return None
        await self.unshare(record.note_id, record.secret_token)
        current_path = self._locate(path, record.note_id)
        updated = await self.cache.mark_deleted_from_server(current_path)
        logger.info("Unshared %s (note_id=%s)", current_path, record.note_id)
        return updated

    def _locate(self, path: str, note_id: str) -> str:
        """Find where a note's record lives now; it may have been renamed mid-request."""
        record = self.cache.get(path)
        if record is not None and record.note_id == note_id:
            return path
        for other_path, other in self.cache.list():
            if other.note_id == note_id:
                return other_path
        return path

    async def on_rename(self, old_path: str, new_path: str) -> None:
        """Vault rename event: move the record, and any in-flight share, to new_path."""
        old_path, new_path = normalize_path(old_path), normalize_path(new_path)
        for pending in self._pending:
            if pending.path == old_path:
                pending.path = new_path
        await self.cache.rename(old_path, new_path)

    async def on_delete(self, path: str) -> None:
        """Vault delete event: keep the record but flag it deleted_from_vault."""
        path = normalize_path(path)
        for pending in self._pending:
            if pending.path == path:
                pending.deleted_from_vault = True
        if await self.cache.mark_deleted_from_vault(path) is not None:
            logger.info("Shared document deleted from vault: %s", path)
