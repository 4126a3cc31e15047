"""Turn an upstream response into the response the caller receives.

A call is either buffered (read fully, optionally transformed as JSON) or
streamed (forwarded chunk by chunk through ``ChunkRewriter``). The mode is
picked once, before the first body byte is read.
"""

from __future__ import annotations

import codecs
import json
import logging
from typing import AsyncIterator, List, Optional, Tuple

import httpx
from starlette.responses import Response, StreamingResponse

from ..config import GatewayConfig
from ..errors import GatewayError
from .context import RequestContext
from .models import filter_model_list
from .rewriter import BaseRewriter
from .router import ProviderKind, ProviderRoute
from .streaming import ChunkRewriter, encode_sse_error
from .transport import (
    Deadline,
    OutboundRequest,
    is_sse_response,
    iter_response_bytes,
    sanitize_upstream_response_headers,
)

logger = logging.getLogger(__name__)

_NO_BODY_STATUSES = {204, 304}
_TEXT_CONTENT_MARKERS = ("text/", "json", "event-stream")
# Undecodable upstream bytes survive the text stage unchanged.
_STREAM_ERRORS = "surrogateescape"


def _is_success(status_code: int) -> bool:
    return 200 <= status_code < 300


def _is_text_content(headers: httpx.Headers) -> bool:
    content_type = headers.get("content-type", "").lower()
    return any(marker in content_type for marker in _TEXT_CONTENT_MARKERS)


def _with_headers(response: Response, headers: List[Tuple[str, str]]) -> Response:
    for name, value in headers:
        response.headers.append(name, value)
    return response


class ResponsePipeline:
    def __init__(self, config: GatewayConfig):
        self._config = config

    def is_streaming(
        self,
        context: RequestContext,
        route: ProviderRoute,
        upstream: httpx.Response,
    ) -> bool:
        if route.is_model_list or route.provider == ProviderKind.SEARCH:
            return False
        return context.wants_event_stream or is_sse_response(upstream.headers)

    async def respond(
        self,
        context: RequestContext,
        route: ProviderRoute,
        outbound: OutboundRequest,
        rewriter: BaseRewriter,
        upstream: httpx.Response,
        deadline: Deadline,
    ) -> Response:
        headers = sanitize_upstream_response_headers(upstream.headers)

        if upstream.status_code in _NO_BODY_STATUSES:
            await upstream.aclose()
            return _with_headers(Response(status_code=upstream.status_code), headers)

        if self.is_streaming(context, route, upstream):
            chunk_rewriter = ChunkRewriter(
                link_urls=self._config.enable_stream_links,
                search_results=outbound.search_results,
            )
            if not _is_success(upstream.status_code) or not _is_text_content(upstream.headers):
                chunk_rewriter = None
            body = self.iter_stream(
                upstream,
                deadline,
                chunk_rewriter=chunk_rewriter,
                event_stream=is_sse_response(upstream.headers) or context.wants_event_stream,
                route=route,
            )
            return _with_headers(
                StreamingResponse(body, status_code=upstream.status_code),
                headers,
            )

        try:
            content = await deadline.run(upstream.aread())
        finally:
            await upstream.aclose()

        if _is_success(upstream.status_code) and content:
            content = self.transform_body(content, route, outbound, rewriter)
        return _with_headers(
            Response(content=content, status_code=upstream.status_code),
            headers,
        )

    def transform_body(
        self,
        content: bytes,
        route: ProviderRoute,
        outbound: OutboundRequest,
        rewriter: BaseRewriter,
    ) -> bytes:
        filter_models = (
            self._config.disable_restricted_models
            and route.provider == ProviderKind.OPENAI
            and route.is_model_list
        )
        embed_citations = outbound.search_tool_injected or bool(outbound.search_results)
        if not (filter_models or embed_citations):
            return content

        try:
            payload = json.loads(content.decode("utf-8"))
        except (UnicodeDecodeError, ValueError):
            logger.warning(
                "response body is not JSON, passing through: provider=%s subpath=%s",
                route.provider.value,
                route.subpath,
            )
            return content
        if not isinstance(payload, dict):
            return content

        changed = False
        try:
            if filter_models and filter_model_list(payload):
                changed = True
            if embed_citations and rewriter.embed_citations(payload, outbound.search_results):
                changed = True
        except Exception:
            logger.exception(
                "response transform failed, passing through: provider=%s subpath=%s",
                route.provider.value,
                route.subpath,
            )
            return content

        if not changed:
            return content
        return json.dumps(payload, ensure_ascii=False).encode("utf-8")

    async def iter_stream(
        self,
        upstream: httpx.Response,
        deadline: Deadline,
        *,
        chunk_rewriter: Optional[ChunkRewriter],
        event_stream: bool,
        route: ProviderRoute,
    ) -> AsyncIterator[bytes]:
        if chunk_rewriter is not None and not chunk_rewriter.active:
            chunk_rewriter = None
        decoder = codecs.getincrementaldecoder("utf-8")(_STREAM_ERRORS)
        try:
            async for chunk in iter_response_bytes(upstream, deadline):
                if chunk_rewriter is None:
                    yield chunk
                    continue
                text = decoder.decode(chunk)
                if not text:
                    continue
                yield self._rewrite_chunk(chunk_rewriter, text, route).encode("utf-8", _STREAM_ERRORS)
            if chunk_rewriter is not None:
                tail = decoder.decode(b"", final=True)
                if tail:
                    yield tail.encode("utf-8", _STREAM_ERRORS)
        except GatewayError as exc:
            logger.warning(
                "proxy stream ended early: provider=%s subpath=%s reason=%s",
                route.provider.value,
                route.subpath,
                exc.message,
            )
            if event_stream:
                yield encode_sse_error(exc.message)
        except httpx.HTTPError as exc:
            logger.warning(
                "proxy stream read failed: provider=%s subpath=%s error=%s",
                route.provider.value,
                route.subpath,
                type(exc).__name__,
            )
            if event_stream:
                yield encode_sse_error("upstream stream failed")
        except Exception:
            logger.exception(
                "proxy stream failed: provider=%s subpath=%s",
                route.provider.value,
                route.subpath,
            )
            if event_stream:
                yield encode_sse_error("stream processing failed")
        finally:
            await upstream.aclose()

    @staticmethod
    def _rewrite_chunk(chunk_rewriter: ChunkRewriter, text: str, route: ProviderRoute) -> str:
        try:
            return chunk_rewriter.rewrite(text)
        except Exception:
            logger.exception(
                "stream chunk transform failed, forwarding as is: provider=%s subpath=%s",
                route.provider.value,
                route.subpath,
            )
            return text
