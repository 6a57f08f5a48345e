from enum import StrEnum


class CollectionNames(StrEnum):
    """Names of every MongoDB collection used by the service."""

    URL_PREVIEW = "url_preview"
