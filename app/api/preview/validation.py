from __future__ import annotations

from urllib.parse import urlsplit

from pydantic import HttpUrl, ValidationError

MISSING_URL = "You missed to set url query param."
BAD_SCHEME = "URL schema must be http or https."


class URLValidationError(ValueError):
    """The ``url`` query parameter cannot be previewed."""


def normalize_url(raw: str) -> str:
    """Validate *raw* and return the URL string used for fetching and caching.

    A bare host such as ``example.com`` gets an ``http://`` prefix.  The
    returned string is otherwise left exactly as given, so it doubles as the
    cache key.
    """
    if not raw:
        raise URLValidationError(MISSING_URL)
    try:
        scheme = urlsplit(raw).scheme
    except ValueError as exc:
        raise URLValidationError(str(exc)) from exc

    if not scheme:
        raw = f"http://{raw}"
    elif not scheme.startswith("http"):
        raise URLValidationError(BAD_SCHEME)

    try:
        HttpUrl(raw)
    except ValidationError as exc:
        raise URLValidationError(f"Invalid URL: {raw}") from exc
    return raw
