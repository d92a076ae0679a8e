"""
Root-level shared test fixtures.

Inherited by the package-local suites (quickshare/cache/tests) and tests/.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import httpx
import pytest

from quickshare.config import Settings

EXPIRE_TIME = "2030-01-01T00:00:00Z"


class FakeNoteServer:
    """In-memory note-sharing server for httpx.MockTransport.

    Records every request; status codes can be overridden per endpoint.
    """

    def __init__(self, base_url: str = "https://share.test") -> None:
        self.base_url = base_url
        self.requests: list[httpx.Request] = []
        self.notes: dict[str, dict[str, Any]] = {}
        self.post_status = 200
        self.delete_status = 200
        self._next_id = 0

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path

        if request.method == "POST" and path == "/api/note":
            if self.post_status != 200:
                return httpx.Response(self.post_status, text="upload rejected")
            self._next_id += 1
            note_id = str(self._next_id)
            self.notes[note_id] = json.loads(request.content)
            return httpx.Response(
                200,
                json={
                    "view_url": f"{self.base_url}/note/{note_id}",
                    "expire_time": EXPIRE_TIME,
                    "secret_token": f"token-{note_id}",
                    "note_id": note_id,
                },
            )

        if request.method == "DELETE" and path.startswith("/api/note/"):
            if self.delete_status != 200:
                return httpx.Response(self.delete_status, text="invalid secret token")
            self.notes.pop(path.rsplit("/", 1)[1], None)
            return httpx.Response(200)

        return httpx.Response(404, text="not found")

    def http_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handle))

    def bodies(self) -> list[dict[str, Any]]:
        return [json.loads(r.content) for r in self.requests]


@pytest.fixture
def note_server() -> FakeNoteServer:
    return FakeNoteServer()


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    """Settings pointing at the fake server and a temp cache dir."""
    return Settings(
        server_url="https://share.test",
        user_id="test-user",
        cache_dir=tmp_path / "cache",
        settings_file=tmp_path / "settings.yaml",
    )


@pytest.fixture
def clean_env(monkeypatch):
    """Remove QuickShare env vars that leak between tests."""
    for key in [
        "QUICKSHARE_SETTINGS",
        "QUICKSHARE_SERVER_URL",
        "QUICKSHARE_USER_ID",
        "QUICKSHARE_CACHE_DIR",
        "QUICKSHARE_USE_FS_CACHE",
        "QUICKSHARE_SHARE_FILENAME_AS_TITLE",
    ]:
        monkeypatch.delenv(key, raising=False)
