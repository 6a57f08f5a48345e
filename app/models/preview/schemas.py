from __future__ import annotations

from pydantic import BaseModel

from app.models.preview.record import MetadataRecord


class PreviewData(BaseModel):
    """Success payload of ``GET /``: the normalised URL and its preview."""

    url: str
    data: MetadataRecord
