"""Tests for quickshare.manager — share/unshare flows and vault lifecycle events."""

from __future__ import annotations

import base64
import json
import re
from datetime import datetime, timezone

import httpx
import pytest
import pytest_asyncio

from quickshare import __version__
from quickshare.cache import KeyValueCache
from quickshare.client import NoteSharingClient
from quickshare.crypto import SymmetricSecret, decode_key, decrypt
from quickshare.errors import ShareFailed
from quickshare.manager import ShareManager, basename


@pytest_asyncio.fixture
async def manager(settings, note_server):
    cache = await KeyValueCache(settings.cache_dir / "share-cache.json").init()
    client = NoteSharingClient(
        settings.server_url, settings.user_id, __version__, http_client=note_server.http_client()
    )
    return ShareManager(settings, cache, client)


class TestBasename:
    def test_strips_dirs_and_extension(self):
        assert basename("notes/2025/Idea.md") == "Idea"
        assert basename("Idea.md") == "Idea"
        assert basename("notes\\Idea.md") == "Idea"


class TestShareDocument:
    @pytest.mark.asyncio
    async def test_end_to_end(self, settings):
        """Frontmatter stripped, ciphertext posted, key in fragment, record cached."""
        posted = []

        def handler(request: httpx.Request) -> httpx.Response:
            posted.append(json.loads(request.content))
            return httpx.Response(
                200,
                json={
                    "view_url": "https://x/n/1",
                    "expire_time": "2030-01-01T00:00:00Z",
                    "secret_token": "tok",
                    "note_id": "1",
                },
            )

        client = NoteSharingClient(
            settings.server_url,
            settings.user_id,
            __version__,
            http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
        )
        cache = await KeyValueCache().init()
        manager = ShareManager(settings, cache, client)

        link = await manager.share_document("doc.md", "---\ntitle: x\n---\nHello")

        assert re.fullmatch(r"https://x/n/1#[A-Za-z0-9_-]{43}", link.url)
        assert link.note_id == "1"
        assert link.secret_token == "tok"
        assert link.expires_at == datetime(2030, 1, 1, tzinfo=timezone.utc)

        key_text = link.url.split("#", 1)[1]
        secret = SymmetricSecret(key=decode_key(key_text), iv=base64.urlsafe_b64decode(posted[0]["iv"]))
        envelope = json.loads(decrypt(posted[0]["ciphertext"], secret))
        assert envelope["body"] == "Hello"

        record = cache.get("doc.md")
        assert record is not None
        assert record.note_id == "1"
        assert record.secret_token == "tok"
        assert record.view_url == link.url
        assert record.deleted_from_server is False
        assert record.deleted_from_vault is False
        assert record.updated_datetime is None
        assert record.basename == "doc"

    @pytest.mark.asyncio
    async def test_filename_as_title(self, manager, note_server):
        link = await manager.share_document("notes/Idea.md", "Body")
        envelope = _envelope(note_server, link.url)
        assert envelope["title"] == "Idea"

    @pytest.mark.asyncio
    async def test_explicit_title_wins(self, manager, note_server):
        link = await manager.share_document("notes/Idea.md", "Body", title="Custom")
        assert _envelope(note_server, link.url)["title"] == "Custom"

    @pytest.mark.asyncio
    async def test_no_title_when_disabled(self, manager, note_server, settings):
        manager.update_settings(settings.replace(share_filename_as_title=False))
        link = await manager.share_document("notes/Idea.md", "Body")
        assert "title" not in _envelope(note_server, link.url)

    @pytest.mark.asyncio
    async def test_failed_share_writes_nothing(self, manager, note_server):
        note_server.post_status = 500
        with pytest.raises(ShareFailed):
            await manager.share_document("a.md", "Body")
        assert not manager.cache.has("a.md")

    @pytest.mark.asyncio
    async def test_reshare_creates_new_record(self, manager):
        first = await manager.share_document("a.md", "v1")
        second = await manager.share_document("a.md", "v2")

        record = manager.cache.get("a.md")
        assert first.note_id != second.note_id
        assert record.note_id == second.note_id
        assert record.secret_token == second.secret_token
        assert record.updated_datetime is not None

    @pytest.mark.asyncio
    async def test_reshare_after_unshare(self, manager):
        await manager.share_document("a.md", "v1")
        await manager.unshare_document("a.md")
        link = await manager.share_document("a.md", "v2")
        record = manager.cache.get("a.md")
        assert record.note_id == link.note_id
        assert record.deleted_from_server is False


class TestUnshareDocument:
    @pytest.mark.asyncio
    async def test_marks_deleted_from_server(self, manager, note_server):
        link = await manager.share_document("a.md", "Body")

        record = await manager.unshare_document("a.md")

        assert record.deleted_from_server is True
        assert record.note_id == link.note_id
        assert manager.cache.get("a.md").deleted_from_server is True
        delete = note_server.requests[-1]
        assert delete.method == "DELETE"
        assert delete.url.path == f"/api/note/{link.note_id}"
        assert json.loads(delete.content) == {"user_id": "test-user", "secret_token": link.secret_token}
        assert link.note_id not in note_server.notes

    @pytest.mark.asyncio
    async def test_not_shared(self, manager, note_server):
        assert await manager.unshare_document("never.md") is None
        assert note_server.requests == []

    @pytest.mark.asyncio
    async def test_already_unshared(self, manager, note_server):
        await manager.share_document("a.md", "Body")
        await manager.unshare_document("a.md")
        count = len(note_server.requests)
        assert await manager.unshare_document("a.md") is None
        assert len(note_server.requests) == count

    @pytest.mark.asyncio
    async def test_server_rejects(self, manager, note_server):
        await manager.share_document("a.md", "Body")
        note_server.delete_status = 403
        with pytest.raises(ShareFailed) as exc_info:
            await manager.unshare_document("a.md")
        assert exc_info.value.status_code == 403
        assert manager.cache.get("a.md").deleted_from_server is False

    @pytest.mark.asyncio
    async def test_unshare_deleted_document(self, manager):
        await manager.share_document("a.md", "Body")
        await manager.on_delete("a.md")
        record = await manager.unshare_document("a.md")
        assert record.deleted_from_vault is True
        assert record.deleted_from_server is True

    @pytest.mark.asyncio
    async def test_rename_during_unshare(self, settings):
        """A rename landing while DELETE is in flight must not drop the unshare."""
        manager: ShareManager | None = None

        async def handler(request: httpx.Request) -> httpx.Response:
            if request.method == "POST":
                return httpx.Response(
                    200,
                    json={
                        "view_url": "https://x/n/7",
                        "expire_time": "2030-01-01T00:00:00Z",
                        "secret_token": "tok",
                        "note_id": "7",
                    },
                )
            await manager.on_rename("a.md", "moved/a.md")
            return httpx.Response(200)

        client = NoteSharingClient(
            settings.server_url,
            settings.user_id,
            __version__,
            http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
        )
        manager = ShareManager(settings, await KeyValueCache().init(), client)
        await manager.share_document("a.md", "Body")

        record = await manager.unshare_document("a.md")

        assert not manager.cache.has("a.md")
        assert record.deleted_from_server is True
        assert manager.cache.get("moved/a.md").deleted_from_server is True

    @pytest.mark.asyncio
    async def test_raw_unshare(self, manager, note_server):
        link = await manager.share_document("a.md", "Body")
        await manager.unshare(link.note_id, link.secret_token)
        assert link.note_id not in note_server.notes
        assert manager.cache.get("a.md").deleted_from_server is False


class TestVaultEvents:
    @pytest.mark.asyncio
    async def test_rename(self, manager):
        await manager.share_document("a.md", "Body")
        record = manager.cache.get("a.md")
        await manager.on_rename("a.md", "b.md")
        assert not manager.cache.has("a.md")
        assert manager.cache.get("b.md") == record

    @pytest.mark.asyncio
    async def test_rename_unshared_path_ignored(self, manager):
        await manager.on_rename("x.md", "y.md")
        assert manager.cache.list() == []

    @pytest.mark.asyncio
    async def test_delete_marks_record(self, manager):
        link = await manager.share_document("a.md", "Body")
        await manager.on_delete("a.md")
        record = manager.cache.get("a.md")
        assert record.deleted_from_vault is True
        assert record.note_id == link.note_id
        assert record.secret_token == link.secret_token

    @pytest.mark.asyncio
    async def test_delete_unshared_path_ignored(self, manager):
        await manager.on_delete("x.md")
        assert not manager.cache.has("x.md")


class TestUpdateSettings:
    @pytest.mark.asyncio
    async def test_propagates_to_client(self, manager, settings, note_server):
        manager.update_settings(settings.replace(server_url="https://other.test//", user_id="u2"))
        assert manager.client.server_url == "https://other.test"
        assert manager.client.user_id == "u2"

        await manager.share_document("a.md", "Body")
        request = note_server.requests[-1]
        assert str(request.url) == "https://other.test/api/note"
        assert json.loads(request.content)["user_id"] == "u2"

    def test_default_client_from_settings(self, settings):
        manager = ShareManager(settings, KeyValueCache())
        assert manager.client.server_url == "https://share.test"
        assert manager.client.user_id == "test-user"
        assert manager.client.plugin_version == __version__


def _envelope(note_server, url: str) -> dict:
    body = note_server.bodies()[-1]
    secret = SymmetricSecret(key=decode_key(url.split("#", 1)[1]), iv=base64.urlsafe_b64decode(body["iv"]))
    return json.loads(decrypt(body["ciphertext"], secret))


def _manager_with_hook(settings, on_post) -> ShareManager:
    """Manager whose server runs on_post() while the share request is in flight."""
    note_ids = iter(range(1, 100))

    async def handler(request: httpx.Request) -> httpx.Response:
        if request.method == "POST":
            note_id = str(next(note_ids))
            await on_post()
            return httpx.Response(
                200,
                json={
                    "view_url": f"https://x/n/{note_id}",
                    "expire_time": "2030-01-01T00:00:00Z",
                    "secret_token": f"tok-{note_id}",
                    "note_id": note_id,
                },
            )
        return httpx.Response(200)

    client = NoteSharingClient(
        settings.server_url,
        settings.user_id,
        __version__,
        http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
    )
    return ShareManager(settings, KeyValueCache(), client)


class TestVaultEventsDuringShare:
    @pytest.mark.asyncio
    async def test_rename_during_first_share(self, settings):
        manager = _manager_with_hook(settings, lambda: manager.on_rename("a.md", "moved/a.md"))

        link = await manager.share_document("a.md", "Body")

        assert [path for path, _ in manager.cache.list()] == ["moved/a.md"]
        record = manager.cache.get("moved/a.md")
        assert record.note_id == link.note_id
        assert record.basename == "a"

        unshared = await manager.unshare_document("moved/a.md")
        assert unshared.deleted_from_server is True

    @pytest.mark.asyncio
    async def test_delete_during_first_share(self, settings):
        manager = _manager_with_hook(settings, lambda: manager.on_delete("a.md"))

        link = await manager.share_document("a.md", "Body")

        record = manager.cache.get("a.md")
        assert record.note_id == link.note_id
        assert record.deleted_from_vault is True

    @pytest.mark.asyncio
    async def test_rename_during_reshare(self, settings):
        events = []

        async def on_post():
            if events:
                await manager.on_rename(*events.pop())

        manager = _manager_with_hook(settings, on_post)
        await manager.share_document("a.md", "v1")
        events.append(("a.md", "moved/a.md"))

        link = await manager.share_document("a.md", "v2")

        assert [path for path, _ in manager.cache.list()] == ["moved/a.md"]
        record = manager.cache.get("moved/a.md")
        assert record.note_id == link.note_id
        assert record.updated_datetime is not None

    @pytest.mark.asyncio
    async def test_failed_share_forgets_pending(self, manager, note_server):
        note_server.post_status = 500
        with pytest.raises(ShareFailed):
            await manager.share_document("a.md", "Body")
        assert manager._pending == []
        await manager.on_rename("a.md", "b.md")
        assert manager.cache.list() == []

    @pytest.mark.asyncio
    async def test_unnormalized_path(self, manager):
        link = await manager.share_document("./notes//a.md", "Body")
        assert manager.cache.get("notes/a.md").note_id == link.note_id
