"""
QuickShare — end-to-end encrypted, link-shareable notes.

Public API:
    ShareManager.share_document(path, body, attachments, title)  → ShareLink
    ShareManager.unshare_document(path)                          → ShareRecord | None
    create_cache(settings)                                       → ShareCache
"""

from __future__ import annotations

__version__ = "0.1.0"

from quickshare.cache import ShareCache, ShareRecord, create_cache  # noqa: E402
from quickshare.client import NoteSharingClient, ShareResult  # noqa: E402
from quickshare.config import Settings, load_settings  # noqa: E402
from quickshare.envelope import Attachment  # noqa: E402
from quickshare.errors import (  # noqa: E402
    CacheWriteConflict,
    CryptoError,
    InvalidDocumentPath,
    QuickShareError,
    ShareFailed,
)
from quickshare.manager import ShareLink, ShareManager  # noqa: E402

__all__ = [
    "Attachment",
    "CacheWriteConflict",
    "CryptoError",
    "InvalidDocumentPath",
    "NoteSharingClient",
    "QuickShareError",
    "Settings",
    "ShareCache",
    "ShareFailed",
    "ShareLink",
    "ShareManager",
    "ShareRecord",
    "ShareResult",
    "__version__",
    "create_cache",
    "load_settings",
]
