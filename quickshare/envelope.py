"""
Payload codec — builds the JSON envelope that gets encrypted as one blob.

The envelope carries the note body (frontmatter removed), an optional title
and the image attachments, base64-encoded, in document order.
"""

from __future__ import annotations

import base64
import logging
import re
from collections.abc import Iterable
from dataclasses import dataclass
from pathlib import PurePosixPath

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

IMAGE_EXTENSIONS = frozenset({"png", "jpg", "jpeg", "svg", "bmp", "gif"})

_FRONTMATTER_RE = re.compile(r"\A---[ \t]*\r?\n(?:.*?\r?\n)??---[ \t]*(?:\r?\n|\Z)", re.DOTALL)


@dataclass(frozen=True)
class Attachment:
    """A binary file embedded in a document."""

    reference: str  # embed text as written in the document, e.g. ![[chart.png]]
    name: str
    data: bytes


class EnvelopeAttachment(BaseModel):
    reference: str
    data: str


class Envelope(BaseModel):
    """Plaintext structure of a shared note."""

    body: str
    title: str | None = None
    attachments: list[EnvelopeAttachment] = Field(default_factory=list)


def strip_frontmatter(text: str) -> str:
    """Remove leading frontmatter blocks and surrounding whitespace.

    Idempotent: the result never starts with a frontmatter block.
    """
    text = text.strip()
    while True:
        match = _FRONTMATTER_RE.match(text)
        if match is None:
            return text
        text = text[match.end():].strip()


def is_shareable(name: str) -> bool:
    """Whether a file is an image that can be embedded in a shared note."""
    suffix = PurePosixPath(name.replace("\\", "/")).suffix
    return suffix[1:].lower() in IMAGE_EXTENSIONS


def make_envelope(
    body: str,
    title: str | None = None,
    attachments: Iterable[Attachment] = (),
) -> Envelope:
    embedded = []
    for attachment in attachments:
        if not is_shareable(attachment.name):
            logger.debug("Skipping non-image attachment %s", attachment.name)
            continue
        embedded.append(
            EnvelopeAttachment(
                reference=attachment.reference,
                data=base64.b64encode(attachment.data).decode("ascii"),
            )
        )
    return Envelope(body=strip_frontmatter(body), title=title, attachments=embedded)


def build_envelope(
    body: str,
    title: str | None = None,
    attachments: Iterable[Attachment] = (),
) -> bytes:
    """Serialize a note and its image attachments into UTF-8 JSON bytes."""
    envelope = make_envelope(body, title, attachments)
    return envelope.model_dump_json(exclude_none=True).encode("utf-8")
