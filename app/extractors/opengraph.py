"""Streaming Open Graph extractor.

Pulls ``<meta property="og:*">`` and ``<link rel="shortcut icon">`` values
out of an HTML document in one forward pass.  The document is fed to an
incremental tokenizer chunk by chunk, so no DOM is ever built and the body
of a large page never has to be held in memory at once.

Usage::

    record = extract(b"<meta property='og:title' content='Hello'>")
    record = await extract_async(response.aiter_text())
"""

from __future__ import annotations

import codecs
import logging
from collections import deque
from collections.abc import AsyncIterable, AsyncIterator, Container, Iterable, Iterator
from html.parser import HTMLParser
from typing import IO, NamedTuple, Union

from app.models.preview.record import MetadataRecord

logger = logging.getLogger(__name__)

Chunk = Union[str, bytes]
Source = Union[Chunk, IO[str], IO[bytes], Iterable[Chunk]]

_READ_SIZE = 64 * 1024

# og:* property -> MetadataRecord field
_META_PROPERTIES: dict[str, str] = {
    "og:title": "title",
    "og:description": "description",
    "og:image": "image",
    "og:site_name": "site_name",
}
_ICON_REL = "shortcut icon"
_RAW_TEXT_TAGS = frozenset({"title", "textarea"})


class Tag(NamedTuple):
    """A start or self-closing tag; names are lowercased by the tokenizer."""

    name: str
    attrs: list[tuple[str, str | None]]


class _TagTokenizer(HTMLParser):
    """Collects start tags as the tokenizer emits them.

    ``<title>`` and ``<textarea>`` hold text only: markup inside them is not
    reported as tags, whatever the running Python's parser makes of it.
    """

    def __init__(self) -> None:
        super().__init__(convert_charrefs=True)
        self._pending: deque[Tag] = deque()
        self._raw_text: str | None = None

    def handle_starttag(self, tag: str, attrs: list[tuple[str, str | None]]) -> None:
        if self._raw_text is not None:
            return
        self._pending.append(Tag(tag, attrs))
        if tag in _RAW_TEXT_TAGS:
            self._raw_text = tag

    def handle_startendtag(self, tag: str, attrs: list[tuple[str, str | None]]) -> None:
        if self._raw_text is None:
            self._pending.append(Tag(tag, attrs))

    def handle_endtag(self, tag: str) -> None:
        if tag == self._raw_text:
            self._raw_text = None

    def drain(self) -> Iterator[Tag]:
        while self._pending:
            yield self._pending.popleft()


class _Decoder:
    """Turns a mix of ``str`` and ``bytes`` chunks into text.

    Multi-byte sequences split across chunk boundaries are reassembled.
    """

    def __init__(self) -> None:
        self._utf8 = codecs.getincrementaldecoder("utf-8")(errors="replace")

    def decode(self, chunk: Chunk) -> str:
        if isinstance(chunk, bytes):
            return self._utf8.decode(chunk)
        return chunk

    def flush(self) -> str:
        return self._utf8.decode(b"", final=True)


def _iter_chunks(source: Source) -> Iterator[Chunk]:
    if isinstance(source, (str, bytes)):
        yield source
    elif hasattr(source, "read"):
        while chunk := source.read(_READ_SIZE):
            yield chunk
    else:
        yield from source


def _feed(tokenizer: _TagTokenizer, text: str) -> bool:
    """Feed *text*; return False once the tokenizer has given up."""
    try:
        tokenizer.feed(text)
    except (AssertionError, ValueError) as exc:
        logger.debug("HTML tokenizer stopped early: %s", exc)
        return False
    return True


def _close(tokenizer: _TagTokenizer) -> None:
    try:
        tokenizer.close()
    except (AssertionError, ValueError) as exc:
        logger.debug("HTML tokenizer stopped early: %s", exc)


def tokenize(source: Source) -> Iterator[Tag]:
    """Lazily yield every start/self-closing tag in *source*.

    Single pass, not restartable.  A tokenizer error ends the sequence with
    whatever tags were produced before it.
    """
    tokenizer = _TagTokenizer()
    decoder = _Decoder()
    for chunk in _iter_chunks(source):
        ok = _feed(tokenizer, decoder.decode(chunk))
        yield from tokenizer.drain()
        if not ok:
            return
    if _feed(tokenizer, decoder.flush()):
        _close(tokenizer)
    yield from tokenizer.drain()


async def atokenize(chunks: AsyncIterable[Chunk]) -> AsyncIterator[Tag]:
    """Async counterpart of :func:`tokenize` for streamed response bodies."""
    tokenizer = _TagTokenizer()
    decoder = _Decoder()
    async for chunk in chunks:
        ok = _feed(tokenizer, decoder.decode(chunk))
        for tag in tokenizer.drain():
            yield tag
        if not ok:
            return
    if _feed(tokenizer, decoder.flush()):
        _close(tokenizer)
    for tag in tokenizer.drain():
        yield tag


def _scan(
    attrs: list[tuple[str, str | None]], key: str, accepted: Container[str], value_key: str
) -> tuple[str | None, str | None]:
    """Single pass over *attrs*.

    Returns ``(matched, value)``: the last *key* value found in *accepted*
    and the last *value_key* value, each ``None`` when absent.
    """
    matched: str | None = None
    value: str | None = None
    for name, val in attrs:
        if name == key and val in accepted:
            matched = val
        elif name == value_key:
            value = val or ""
    return matched, value


class _Collector:
    """Applies tags to the running set of fields, last tag wins."""

    def __init__(self) -> None:
        self.fields: dict[str, str] = {}

    def apply(self, tag: Tag) -> None:
        if tag.name == "meta":
            prop, content = _scan(tag.attrs, "property", _META_PROPERTIES, "content")
            if prop is not None and content is not None:
                self.fields[_META_PROPERTIES[prop]] = content
        elif tag.name == "link":
            rel, href = _scan(tag.attrs, "rel", (_ICON_REL,), "href")
            if rel is not None and href is not None:
                self.fields["icon"] = href

    def record(self) -> MetadataRecord:
        return MetadataRecord(**self.fields)


def extract(source: Source) -> MetadataRecord:
    """Extract the Open Graph preview from an HTML document.

    *source* may be a ``str``, ``bytes``, a readable file object or any
    iterable of ``str``/``bytes`` chunks.  Malformed markup is tolerated;
    a document with no matching tags yields an empty record.
    """
    collector = _Collector()
    for tag in tokenize(source):
        collector.apply(tag)
    return collector.record()


async def extract_async(chunks: AsyncIterable[Chunk]) -> MetadataRecord:
    """Extract the Open Graph preview from an async stream of chunks."""
    collector = _Collector()
    async for tag in atokenize(chunks):
        collector.apply(tag)
    return collector.record()
