"""Artifact model — immutable once published."""

from __future__ import annotations

from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class Artifact(BaseModel):
    """An immutable, content-addressed unit of stored output.

    ``revision`` is the canonical digest of the fetched index, ``digest`` and
    ``checksum`` describe the stored file itself. Two artifacts with the same
    revision must carry the same checksum.
    """

    model_config = ConfigDict(
        frozen=True, alias_generator=to_camel, populate_by_name=True
    )

    path: str
    url: str = ""
    revision: str = ""
    digest: str = ""
    checksum: str = ""  # legacy sha256 hex of the stored file
    size: int | None = None
    last_update_time: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc)
    )
    metadata: dict[str, str] = {}

    def has_revision(self, revision: str) -> bool:
        return self.revision == revision

    def has_checksum(self, checksum: str) -> bool:
        return self.checksum == checksum
