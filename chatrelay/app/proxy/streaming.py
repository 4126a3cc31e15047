from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from typing import Optional

from .citations import SearchResults, substitute_citations

logger = logging.getLogger(__name__)

URL_PATTERN = re.compile(r"(?<![\w(\[<])https?://[^\s<>()\[\]\"'`\\]+")
_URL_TRAILING_PUNCTUATION = ".,;:!?"
_STREAM_UNSAFE_CHARS = re.compile(r"[\"\\\x00-\x1f]")


@dataclass
class SSEEvent:
    data: str
    event: Optional[str] = None
    id: Optional[str] = None
    retry: Optional[int] = None


def encode_sse_event(event: SSEEvent) -> bytes:
    lines = []
    if event.event is not None:
        lines.append(f"event: {event.event}")
    if event.id is not None:
        lines.append(f"id: {event.id}")
    if event.retry is not None:
        lines.append(f"retry: {event.retry}")
    for line in (event.data or "").split("\n"):
        lines.append(f"data: {line}")
    return ("\n".join(lines) + "\n\n").encode("utf-8")


def encode_sse_error(message: str) -> bytes:
    payload = {"error": True, "message": message}
    return encode_sse_event(SSEEvent(data=json.dumps(payload, ensure_ascii=False)))


def linkify_urls(text: str) -> str:
    """Rewrite bare URLs to ``[url](url)``.

    A URL that runs up to the end of ``text`` may continue in the next chunk
    and is left as it is.
    """

    def _replace(match: "re.Match[str]") -> str:
        if match.end() == len(text):
            return match.group(0)
        url = match.group(0)
        trailing = ""
        while url and url[-1] in _URL_TRAILING_PUNCTUATION:
            trailing = url[-1] + trailing
            url = url[:-1]
        if "://" not in url or url.endswith("://"):
            return match.group(0)
        return f"[{url}]({url}){trailing}"

    return URL_PATTERN.sub(_replace, text)


def _stream_safe_link(title: str, url: str) -> str:
    # Stream chunks are usually JSON string fragments; keep the link free of
    # characters that would need escaping there.
    label = _STREAM_UNSAFE_CHARS.sub("", title).replace("[", "(").replace("]", ")")
    target = _STREAM_UNSAFE_CHARS.sub("", url)
    return f"[{label}]({target})"


class ChunkRewriter:
    """Text substitutions applied to each decoded stream chunk on its own.

    Nothing is carried between chunks: a match cut by a chunk boundary is
    forwarded untouched.
    """

    def __init__(self, link_urls: bool = True, search_results: Optional[SearchResults] = None):
        self._link_urls = link_urls
        self._search_results = list(search_results or [])

    @property
    def active(self) -> bool:
        return self._link_urls or bool(self._search_results)

    def rewrite(self, text: str) -> str:
        if self._search_results:
            text = substitute_citations(text, self._search_results, formatter=_stream_safe_link)
        if self._link_urls:
            text = linkify_urls(text)
        return text
