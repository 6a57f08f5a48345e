from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class MetadataRecord(BaseModel):
    """Open Graph preview of a single page.

    Every field is a plain string where ``""`` means the tag was absent.
    Instances are frozen: a record is the final result of one parse pass
    (or of one cache read) and is never edited afterwards.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    title: str = ""
    description: str = ""
    image: str = ""
    site_name: str = Field(default="", alias="siteName")
    icon: str = ""

    def is_empty(self) -> bool:
        """True when no field was populated."""
        return self == EMPTY_RECORD


EMPTY_RECORD = MetadataRecord()
