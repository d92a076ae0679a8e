"""
QuickShare CLI — share markdown notes from a terminal.

Usage:
    quickshare share NOTE.md        # Encrypt, upload, print the share link
    quickshare unshare NOTE.md      # Delete the share from the server
    quickshare list                 # Show every shared note and its state
    quickshare status               # Show settings and cache summary
    quickshare version              # Show version

Notes are keyed by their path relative to --vault (default: current directory).
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from collections.abc import Coroutine
from pathlib import Path
from typing import Any

import httpx

from quickshare.config import Settings, ensure_settings
from quickshare.errors import QuickShareError


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        prog="quickshare",
        description="QuickShare — end-to-end encrypted sharing for markdown notes.",
    )
    parser.add_argument("--version", action="store_true", help="Show version and exit")
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")
    parser.add_argument("--settings", type=str, help="Settings file (default: ~/.config/quickshare/settings.yaml)")
    parser.add_argument("--vault", type=str, default=".", help="Vault root (default: current directory)")

    subparsers = parser.add_subparsers(dest="command")

    share_parser = subparsers.add_parser("share", help="Create a share link for a note")
    share_parser.add_argument("file", help="Markdown file to share")
    share_parser.add_argument("--title", type=str, help="Title shown to readers (default: file name)")

    unshare_parser = subparsers.add_parser("unshare", help="Delete a note's share from the server")
    unshare_parser.add_argument("file", help="Previously shared markdown file")

    subparsers.add_parser("list", help="List shared notes")
    subparsers.add_parser("status", help="Show settings and cache summary")
    subparsers.add_parser("version", help="Show version")

    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    if args.version or args.command == "version":
        from quickshare import __version__

        print(f"quickshare {__version__}")
        return 0

    if args.command is None:
        parser.print_help()
        return 0

    try:
        settings = ensure_settings(args.settings)
    except OSError as e:
        print(f"Error: cannot write settings: {e}", file=sys.stderr)
        return 1

    if args.command == "share":
        return _run(_cmd_share(args, settings))
    elif args.command == "unshare":
        return _run(_cmd_unshare(args, settings))
    elif args.command == "list":
        return _run(_cmd_list(settings))
    elif args.command == "status":
        return _run(_cmd_status(settings))
    parser.print_help()
    return 0


def _run(coro: Coroutine[Any, Any, int]) -> int:
    try:
        return asyncio.run(coro)
    except QuickShareError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except httpx.HTTPError as e:
        print(f"Error: could not reach the sharing server: {e}", file=sys.stderr)
        return 1
    except (OSError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def _vault_key(file: str, vault: str) -> tuple[Path, Path, str]:
    """Return (document path, vault root, cache key) for a file inside the vault."""
    vault_root = Path(vault).resolve()
    doc_path = Path(file).resolve()
    try:
        key = doc_path.relative_to(vault_root).as_posix()
    except ValueError:
        raise ValueError(f"{file} is not inside the vault {vault_root}") from None
    return doc_path, vault_root, key


async def _cmd_share(args: argparse.Namespace, settings: Settings) -> int:
    from quickshare.cache import create_cache
    from quickshare.documents import collect_attachments
    from quickshare.manager import ShareManager

    doc_path, vault_root, key = _vault_key(args.file, args.vault)
    body = doc_path.read_text(encoding="utf-8")
    attachments = collect_attachments(doc_path, vault_root, body)

    cache = await create_cache(settings)
    manager = ShareManager(settings, cache)
    try:
        link = await manager.share_document(key, body, attachments, title=args.title)
    finally:
        await manager.close()

    print(link.url)
    print(f"Expires: {link.expires_at.isoformat()}")
    return 0


async def _cmd_unshare(args: argparse.Namespace, settings: Settings) -> int:
    from quickshare.cache import create_cache
    from quickshare.manager import ShareManager

    _, _, key = _vault_key(args.file, args.vault)
    cache = await create_cache(settings)
    record = cache.get(key)
    if record is None or record.deleted_from_server:
        print(f"Not shared: {key}", file=sys.stderr)
        return 1

    manager = ShareManager(settings, cache)
    try:
        await manager.unshare_document(key)
    finally:
        await manager.close()

    print(f'Unshared note: "{record.basename}"')
    return 0


async def _cmd_list(settings: Settings) -> int:
    from quickshare.cache import create_cache

    cache = await create_cache(settings)
    records = cache.list()
    if not records:
        print("No shared notes.")
        return 0

    for path, record in records:
        expires = record.expire_datetime.isoformat() if record.expire_datetime else "N/A"
        print(f"{path}  [{record.state}]  expires {expires}")
        if record.state == "active":
            print(f"    {record.view_url}")
    return 0


async def _cmd_status(settings: Settings) -> int:
    from quickshare import __version__
    from quickshare.cache import create_cache

    cache = await create_cache(settings)
    records = [record for _, record in cache.list()]
    active = sum(1 for r in records if r.state == "active")

    print(f"QuickShare v{__version__}")
    print()
    print(f"  Server:    {settings.server_url}")
    print(f"  User ID:   {settings.user_id}")
    print(f"  Settings:  {settings.settings_file}")
    print(f"  Cache:     {cache.name} ({'filesystem' if settings.use_fs_cache else 'key-value'})")
    print(f"  Shares:    {active} active / {len(records)} total")
    return 0


if __name__ == "__main__":
    sys.exit(main())
