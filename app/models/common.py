from __future__ import annotations

import time
from typing import Any

from pydantic import BaseModel, Field


class Envelope(BaseModel):
    """Response wrapper shared by every route.

    Failures are reported with ``status=False`` and a human-readable
    ``message``; the HTTP status code stays 200.
    """

    data: Any = None
    status: bool
    message: str = ""
    current_time: int = Field(default_factory=lambda: int(time.time()))


def envelope(data: Any, message: str, status: bool) -> dict[str, Any]:
    """Build a JSON-ready envelope, serialising models by alias."""
    return Envelope(data=data, status=status, message=message).model_dump(
        mode="json", by_alias=True
    )
