"""
HTTP client for the note-sharing server.

Wraps httpx.AsyncClient. Encrypts the note envelope locally and uploads only
ciphertext; the decryption key is appended to the returned view URL as a
fragment, which HTTP clients never send to the server.

Wire protocol (crypto_version "v3"):
    POST   {base}/api/note            {ciphertext, iv, user_id, plugin_version,
                                       crypto_version, embeded}
    DELETE {base}/api/note/{note_id}  {user_id, secret_token}

In v3 attachments travel inside the encrypted envelope and ``embeded`` is
always an empty list.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable
from datetime import datetime
from typing import Any

import httpx
from pydantic import BaseModel, ValidationError

from quickshare.crypto import encode_secret, encrypt, generate_key
from quickshare.envelope import Attachment, build_envelope
from quickshare.errors import ShareFailed

logger = logging.getLogger(__name__)

CRYPTO_VERSION = "v3"

_DUPLICATE_SLASHES = re.compile(r"([^:]/)/+")


class ShareResult(BaseModel):
    """Server response to a successful share, with the key fragment appended."""

    view_url: str
    expire_time: datetime
    secret_token: str
    note_id: str


def normalize_url(url: str) -> str:
    """Collapse duplicate slashes (except after the scheme) and drop one trailing slash."""
    url = _DUPLICATE_SLASHES.sub(r"\1", url)
    if url.endswith("/"):
        url = url[:-1]
    return url


def strip_fragment(url: str) -> str:
    """Return a share URL without its key fragment, safe for logs."""
    return url.split("#", 1)[0]


class NoteSharingClient:
    """Async client for the note-sharing server API.

    Holds no state beyond the server URL and user id; one instance can serve
    any number of share and delete calls.
    """

    def __init__(
        self,
        server_url: str,
        user_id: str,
        plugin_version: str,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self.server_url = server_url
        self.user_id = user_id
        self.plugin_version = plugin_version
        self._client = http_client
        self._owns_client = http_client is None

    @property
    def server_url(self) -> str:
        return self._url

    @server_url.setter
    def server_url(self, new_url: str) -> None:
        self._url = normalize_url(new_url)

    def _http(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=None)
        return self._client

    async def close(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> NoteSharingClient:
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.close()

    async def share_note(
        self,
        body: str,
        attachments: Iterable[Attachment] = (),
        title: str | None = None,
    ) -> ShareResult:
        """Encrypt and upload a note.

        Returns:
            ShareResult whose view_url ends in ``#<key>``.

        Raises:
            ShareFailed: the server answered with anything but 200 + JSON.
            CryptoError: key generation or encryption failed.
        """
        payload = build_envelope(body, title, attachments)
        secret = generate_key()
        encoded = encode_secret(secret)
        ciphertext = encrypt(payload, secret)

        result = await self._post_note(ciphertext, encoded.iv)
        result.view_url = f"{result.view_url}#{encoded.key}"
        logger.info("Note shared: %s (note_id=%s)", strip_fragment(result.view_url), result.note_id)
        return result

    async def delete_note(self, note_id: str, secret_token: str) -> None:
        """Delete a shared note from the server.

        Raises:
            ShareFailed: the server answered with anything but 200.
        """
        resp = await self._http().request(
            "DELETE",
            f"{self._url}/api/note/{note_id}",
            json={"user_id": self.user_id, "secret_token": secret_token},
        )
        if resp.status_code != 200:
            raise ShareFailed(resp.status_code, resp.text, action="deleting shared note")
        logger.info("Note deleted from server: note_id=%s", note_id)

    async def _post_note(self, ciphertext: str, iv: str) -> ShareResult:
        resp = await self._http().post(
            f"{self._url}/api/note",
            json={
                "ciphertext": ciphertext,
                "iv": iv,
                "user_id": self.user_id,
                "plugin_version": self.plugin_version,
                "crypto_version": CRYPTO_VERSION,
                "embeded": [],
            },
        )
        if resp.status_code != 200:
            raise ShareFailed(resp.status_code, resp.text)

        try:
            data: Any = resp.json()
            return ShareResult.model_validate(data)
        except (ValueError, ValidationError) as e:
            raise ShareFailed(resp.status_code, resp.text) from e
