"""
QuickShare cache — local record of every share, keyed by document path.

Public API:
    cache = await create_cache(settings)
    cache.has(path) / cache.get(path) / cache.list()
    await cache.set(path, record)               # full replacement
    await cache.set(path, lambda r: r.model_copy(update={...}))
    await cache.rename(old_path, new_path)
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from quickshare.cache.base import ShareCache, normalize_path
from quickshare.cache.fs import FsCache
from quickshare.cache.kv import KeyValueCache
from quickshare.cache.models import ShareRecord

if TYPE_CHECKING:
    from quickshare.config import Settings

KV_FILENAME = "share-cache.json"
FS_DIRNAME = "records"


async def create_cache(settings: Settings) -> ShareCache:
    """Build and load the cache backend selected by settings.use_fs_cache."""
    cache: ShareCache
    if settings.use_fs_cache:
        cache = FsCache(settings.cache_dir / FS_DIRNAME)
    else:
        cache = KeyValueCache(settings.cache_dir / KV_FILENAME)
    return await cache.init()


__all__ = ["FsCache", "KeyValueCache", "ShareCache", "ShareRecord", "create_cache", "normalize_path"]
