from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Awaitable, Dict, List, Mapping, Optional, Set, Tuple, TypeVar

import httpx

from ..config import DEFAULT_PROXY_TIMEOUT_SECS
from ..errors import UpstreamTimeoutError, UpstreamUnavailableError

logger = logging.getLogger(__name__)

T = TypeVar("T")

_HOP_BY_HOP_HEADERS = {
    "connection",
    "keep-alive",
    "te",
    "trailer",
    "transfer-encoding",
    "upgrade",
}

# aiter_bytes() yields decoded content, so the upstream encoding and length
# no longer describe what the caller receives.
_RESPONSE_DROP_HEADERS = {"content-length", "content-encoding", "www-authenticate"}


@dataclass
class OutboundRequest:
    method: str
    url: str
    headers: Dict[str, str]
    content: Optional[bytes] = None
    params: Optional[Dict[str, str]] = None
    search_tool_injected: bool = False
    search_results: List[Dict[str, str]] = field(default_factory=list)


class Deadline:
    """Absolute per-call deadline shared by every upstream suspension point.

    Each ``run`` call arms a timer for the remaining budget and releases it as
    soon as the awaited operation finishes, whichever way it finishes.
    """

    def __init__(self, timeout_secs: float):
        self.timeout_secs = timeout_secs
        self._expires_at = asyncio.get_running_loop().time() + timeout_secs

    def remaining(self) -> float:
        return max(0.0, self._expires_at - asyncio.get_running_loop().time())

    @property
    def expired(self) -> bool:
        return self.remaining() <= 0

    async def run(self, awaitable: Awaitable[T]) -> T:
        try:
            return await asyncio.wait_for(awaitable, timeout=self.remaining())
        except asyncio.TimeoutError:
            raise UpstreamTimeoutError(
                f"upstream did not respond within {self.timeout_secs:g}s"
            ) from None


def strip_hop_by_hop_headers(headers: Mapping[str, str]) -> Dict[str, str]:
    connection_tokens = _connection_tokens(headers.items())

    filtered: Dict[str, str] = {}
    for name, value in headers.items():
        header_name = str(name)
        lower_name = header_name.lower()
        if _is_hop_by_hop(lower_name, connection_tokens):
            continue
        if lower_name == "content-length":
            continue
        filtered[header_name] = str(value)
    return filtered


def sanitize_upstream_response_headers(headers: Any) -> List[Tuple[str, str]]:
    """Copy upstream response headers for the caller, keeping duplicates in order."""
    items = list(headers.multi_items()) if hasattr(headers, "multi_items") else list(headers.items())
    connection_tokens = _connection_tokens(items)

    sanitized: List[Tuple[str, str]] = []
    for name, value in items:
        lower_name = str(name).lower()
        if _is_hop_by_hop(lower_name, connection_tokens):
            continue
        if lower_name in _RESPONSE_DROP_HEADERS or lower_name == "x-accel-buffering":
            continue
        sanitized.append((str(name), str(value)))
    sanitized.append(("X-Accel-Buffering", "no"))
    return sanitized


def _connection_tokens(items: Any) -> Set[str]:
    tokens: Set[str] = set()
    for name, value in items:
        if str(name).lower() != "connection":
            continue
        for token in str(value).split(","):
            normalized = token.strip().lower()
            if normalized:
                tokens.add(normalized)
    return tokens


def _is_hop_by_hop(lower_name: str, connection_tokens: Set[str]) -> bool:
    if lower_name in _HOP_BY_HOP_HEADERS or lower_name in connection_tokens:
        return True
    return lower_name.startswith("proxy-") or lower_name == "host"


def is_sse_response(headers: Mapping[str, str]) -> bool:
    content_type = ""
    for key, value in headers.items():
        if str(key).lower() == "content-type":
            content_type = str(value).lower()
            break
    return "text/event-stream" in content_type


class ProxyTransport:
    def __init__(
        self,
        timeout_secs: float = DEFAULT_PROXY_TIMEOUT_SECS,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._timeout_secs = timeout_secs
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def timeout_secs(self) -> float:
        return self._timeout_secs

    async def __aenter__(self) -> "ProxyTransport":
        return self

    async def __aexit__(self, exc_type: Any, exc: Any, tb: Any) -> None:
        await self.aclose()

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                transport=self._transport,
                timeout=self._timeout_secs,
                follow_redirects=False,
            )
        return self._client

    async def dispatch(self, outbound: OutboundRequest, deadline: Deadline) -> httpx.Response:
        client = await self._get_client()
        request = client.build_request(
            method=outbound.method.upper(),
            url=outbound.url,
            headers=strip_hop_by_hop_headers(outbound.headers),
            params=outbound.params,
            content=outbound.content,
        )
        try:
            return await deadline.run(client.send(request, stream=True))
        except httpx.TimeoutException:
            logger.warning("upstream timeout: url=%s", _loggable_url(request.url))
            raise UpstreamTimeoutError("upstream request timed out") from None
        except UpstreamTimeoutError:
            logger.warning("upstream deadline exceeded: url=%s", _loggable_url(request.url))
            raise
        except httpx.HTTPError as exc:
            logger.warning(
                "upstream request failed: url=%s error=%s",
                _loggable_url(request.url),
                type(exc).__name__,
            )
            raise UpstreamUnavailableError("upstream request failed") from exc

    async def aclose(self) -> None:
        if self._client is None:
            return
        await self._client.aclose()
        self._client = None


def _loggable_url(url: httpx.URL) -> str:
    return str(url.copy_with(query=None))


async def iter_response_bytes(
    response: httpx.Response,
    deadline: Deadline,
    chunk_size: Optional[int] = None,
) -> AsyncIterator[bytes]:
    """Yield upstream body chunks, each read bounded by the call deadline."""
    iterator = response.aiter_bytes(chunk_size).__aiter__()
    while True:
        chunk = await deadline.run(_next_chunk(iterator))
        if chunk is None:
            return
        if chunk:
            yield chunk


async def _next_chunk(iterator: AsyncIterator[bytes]) -> Optional[bytes]:
    try:
        return await iterator.__anext__()
    except StopAsyncIteration:
        return None
