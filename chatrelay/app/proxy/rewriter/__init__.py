from __future__ import annotations

from typing import Dict, Type

from ...config import GatewayConfig
from ..router import ProviderKind
from .base import BaseRewriter
from .gemini import GeminiRewriter
from .openai import OpenAIRewriter
from .search import SearchRewriter

_REWRITER_BY_PROVIDER: Dict[ProviderKind, Type[BaseRewriter]] = {
    ProviderKind.OPENAI: OpenAIRewriter,
    ProviderKind.GEMINI: GeminiRewriter,
    ProviderKind.SEARCH: SearchRewriter,
}


def rewriter_for(provider: ProviderKind, config: GatewayConfig) -> BaseRewriter:
    return _REWRITER_BY_PROVIDER[provider](config)


__all__ = [
    "BaseRewriter",
    "OpenAIRewriter",
    "GeminiRewriter",
    "SearchRewriter",
    "rewriter_for",
]
