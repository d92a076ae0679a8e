"""Share cache data models."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict


class ShareRecord(BaseModel):
    """Lifecycle state of one shared document, keyed by its vault path.

    Records are immutable; updates produce a new record via model_copy().
    """

    model_config = ConfigDict(frozen=True)

    note_id: str
    secret_token: str
    view_url: str
    shared_datetime: datetime
    updated_datetime: datetime | None = None
    expire_datetime: datetime | None = None
    basename: str
    deleted_from_vault: bool = False
    deleted_from_server: bool = False

    @property
    def state(self) -> str:
        if self.deleted_from_server:
            return "unshared"
        if self.deleted_from_vault:
            return "deleted from vault"
        return "active"
