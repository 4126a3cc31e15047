"""Request forwarding and response transform building blocks."""

from .context import RequestContext
from .pipeline import ResponsePipeline
from .rewriter import BaseRewriter, GeminiRewriter, OpenAIRewriter, SearchRewriter, rewriter_for
from .router import ProviderKind, ProviderRoute, ProviderRouter, normalize_base_url
from .streaming import ChunkRewriter, SSEEvent, encode_sse_event, linkify_urls
from .transport import Deadline, OutboundRequest, ProxyTransport

__all__ = [
    "RequestContext",
    "ResponsePipeline",
    "BaseRewriter",
    "GeminiRewriter",
    "OpenAIRewriter",
    "SearchRewriter",
    "rewriter_for",
    "ProviderKind",
    "ProviderRoute",
    "ProviderRouter",
    "normalize_base_url",
    "ChunkRewriter",
    "SSEEvent",
    "encode_sse_event",
    "linkify_urls",
    "Deadline",
    "OutboundRequest",
    "ProxyTransport",
]
