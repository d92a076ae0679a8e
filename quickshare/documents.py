"""
Document helpers — find embedded images in a markdown note and load them.

Supports wiki embeds (``![[chart.png]]``, ``![[chart.png|300]]``) and
markdown images (``![alt](img/chart.png)``). Remote images are left alone.
"""

from __future__ import annotations

import glob
import logging
import re
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from urllib.parse import unquote

from quickshare.envelope import Attachment, is_shareable

logger = logging.getLogger(__name__)

_EMBED_RE = re.compile(
    r"!\[\[(?P<wiki>[^\]|#]+)(?:#[^\]|]*)?(?:\|[^\]]*)?\]\]"
    r"|!\[[^\]]*\]\((?P<md><[^>]+>|[^)\s]+)(?:\s+\"[^\"]*\")?\)"
)
_REMOTE_PREFIXES = ("http://", "https://", "data:")


@dataclass(frozen=True)
class Embed:
    reference: str  # the full embed text
    target: str  # link target as written


def find_embeds(body: str) -> list[Embed]:
    """Embedded file links in document order."""
    embeds = []
    for match in _EMBED_RE.finditer(body):
        if match.group("wiki") is not None:
            target = match.group("wiki").strip()
        else:
            target = unquote(match.group("md").strip("<>"))
            if target.lower().startswith(_REMOTE_PREFIXES):
                continue
        embeds.append(Embed(reference=match.group(0), target=target))
    return embeds


def resolve_embed(target: str, doc_path: Path, vault_root: Path) -> Path | None:
    """Resolve a link target: next to the document, then vault root, then by file name."""
    relative = PurePosixPath(target)
    for base in (doc_path.parent, vault_root):
        candidate = base.joinpath(*relative.parts)
        if candidate.is_file():
            return candidate
    matches = sorted(p for p in vault_root.rglob(glob.escape(relative.name)) if p.is_file())
    return matches[0] if matches else None


def collect_attachments(doc_path: Path, vault_root: Path, body: str | None = None) -> list[Attachment]:
    """Load every image embedded in a document.

    Missing files and non-image embeds are skipped.
    """
    if body is None:
        body = doc_path.read_text(encoding="utf-8")

    attachments = []
    for embed in find_embeds(body):
        if not is_shareable(embed.target):
            logger.debug("Not an image, skipping embed %s", embed.reference)
            continue
        resolved = resolve_embed(embed.target, doc_path, vault_root)
        if resolved is None:
            logger.warning("Embedded file not found: %s", embed.target)
            continue
        attachments.append(
            Attachment(reference=embed.reference, name=resolved.name, data=resolved.read_bytes())
        )
    return attachments
