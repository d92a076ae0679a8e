"""Exception taxonomy for QuickShare.

Cache misses are not errors: lookups return None.
"""

from __future__ import annotations


class QuickShareError(Exception):
    """Base class for all QuickShare errors."""


class CryptoError(QuickShareError):
    """A cryptographic primitive failed. Fatal, never retried."""


class ShareFailed(QuickShareError):
    """The note-sharing server rejected a request."""

    def __init__(self, status_code: int, body: str, action: str = "uploading encrypted note") -> None:
        self.status_code = status_code
        self.body = body
        super().__init__(f"Error {action} ({status_code}): {body}")


class CacheWriteConflict(QuickShareError):
    """A cache mutation would break a share record invariant."""


class InvalidDocumentPath(QuickShareError, ValueError):
    """A cache key is not a relative path inside the vault."""
