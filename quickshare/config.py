"""
Settings for QuickShare.

Settings are a frozen value: hosts build one with load_settings(), pass it
to ShareManager, and replace it through ShareManager.update_settings().

Precedence (lowest to highest): defaults, YAML settings file, environment.

Usage:
    from quickshare.config import load_settings, save_settings
    settings = load_settings()
    print(settings.server_url)   # "https://noteshare.space" or $QUICKSHARE_SERVER_URL
"""

from __future__ import annotations

import dataclasses
import logging
import os
import secrets
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

logger = logging.getLogger(__name__)

DEFAULT_SERVER_URL = "https://noteshare.space"
CONFIG_DIR = Path.home() / ".config" / "quickshare"


def _new_user_id() -> str:
    return secrets.token_hex(8)


def _env_bool(value: str) -> bool:
    return value.strip().lower() in {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class Settings:
    """Host-owned settings consumed by the sharing core."""

    server_url: str = DEFAULT_SERVER_URL
    user_id: str = field(default_factory=_new_user_id)  # anonymous, random per install
    share_filename_as_title: bool = True
    use_fs_cache: bool = False
    cache_dir: Path = field(default_factory=lambda: CONFIG_DIR / "cache")
    settings_file: Path = field(default_factory=lambda: CONFIG_DIR / "settings.yaml")

    def replace(self, **changes: Any) -> Settings:
        return dataclasses.replace(self, **changes)


_FILE_KEYS = {"server_url", "user_id", "share_filename_as_title", "use_fs_cache", "cache_dir"}


def _read_file(path: Path) -> dict[str, Any]:
    if not path.exists():
        return {}
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except (OSError, yaml.YAMLError) as e:
        logger.warning("Failed to load settings from %s: %s", path, e)
        return {}
    if not isinstance(data, dict):
        logger.warning("Ignoring settings file %s: expected a mapping", path)
        return {}

    values: dict[str, Any] = {}
    for key, value in data.items():
        if key not in _FILE_KEYS:
            logger.warning("Ignoring unknown setting %r in %s", key, path)
            continue
        values[key] = value
    if "cache_dir" in values:
        values["cache_dir"] = Path(values["cache_dir"]).expanduser()
    return values


def _read_env() -> dict[str, Any]:
    values: dict[str, Any] = {}
    if url := os.environ.get("QUICKSHARE_SERVER_URL"):
        values["server_url"] = url
    if user_id := os.environ.get("QUICKSHARE_USER_ID"):
        values["user_id"] = user_id
    if cache_dir := os.environ.get("QUICKSHARE_CACHE_DIR"):
        values["cache_dir"] = Path(cache_dir).expanduser()
    if (flag := os.environ.get("QUICKSHARE_USE_FS_CACHE")) is not None:
        values["use_fs_cache"] = _env_bool(flag)
    if (flag := os.environ.get("QUICKSHARE_SHARE_FILENAME_AS_TITLE")) is not None:
        values["share_filename_as_title"] = _env_bool(flag)
    return values


def load_settings(path: Path | str | None = None) -> Settings:
    """Load settings from defaults, the YAML file and the environment."""
    settings_file = Path(path or os.environ.get("QUICKSHARE_SETTINGS", CONFIG_DIR / "settings.yaml"))
    values = _read_file(settings_file)
    values.update(_read_env())
    return Settings(settings_file=settings_file, **values)


def save_settings(settings: Settings, path: Path | str | None = None) -> Path:
    """Write settings as YAML so the generated user id survives restarts."""
    settings_file = Path(path) if path else settings.settings_file
    settings_file.parent.mkdir(parents=True, exist_ok=True)
    data = {
        "server_url": settings.server_url,
        "user_id": settings.user_id,
        "share_filename_as_title": settings.share_filename_as_title,
        "use_fs_cache": settings.use_fs_cache,
        "cache_dir": str(settings.cache_dir),
    }
    settings_file.write_text(yaml.safe_dump(data, default_flow_style=False), encoding="utf-8")
    return settings_file


def ensure_settings(path: Path | str | None = None) -> Settings:
    """Load settings, writing the file on first run so the user id stays stable."""
    settings = load_settings(path)
    if not settings.settings_file.exists():
        save_settings(settings)
        logger.info("Created settings file %s", settings.settings_file)
    return settings
