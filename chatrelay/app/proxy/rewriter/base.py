from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from copy import deepcopy
from typing import Any, Dict, Optional

from ...config import GatewayConfig
from ..citations import CITATION_INSTRUCTION, SearchResults, normalize_search_results
from ..context import RequestContext
from ..router import ProviderRoute
from ..transport import OutboundRequest

logger = logging.getLogger(__name__)

_BODYLESS_METHODS = {"GET", "HEAD", "OPTIONS"}


class BaseRewriter(ABC):
    """Builds the outbound request for one provider.

    Subclasses supply the provider's auth header and know where tools and the
    system instruction live in its request schema.
    """

    def __init__(self, config: GatewayConfig):
        self._config = config

    @abstractmethod
    def auth_headers(self, api_key: str) -> Dict[str, str]:
        raise NotImplementedError

    @abstractmethod
    def inject_search_tool(self, body: Dict[str, Any]) -> bool:
        """Add the default search tool when ``body`` declares no tools."""
        raise NotImplementedError

    @abstractmethod
    def inject_citation_prompt(self, body: Dict[str, Any], instruction: str) -> None:
        raise NotImplementedError

    def embed_citations(self, body: Dict[str, Any], fallback_results: SearchResults) -> bool:
        """Substitute citation placeholders in a buffered response body in place."""
        return False

    def build_params(self, context: RequestContext) -> Optional[Dict[str, str]]:
        return None

    def build_headers(self, context: RequestContext, api_key: str) -> Dict[str, str]:
        content_type = context.content_type
        if context.has_json_content_type:
            content_type = "application/json"
        headers = {
            "Content-Type": content_type,
            "Cache-Control": "no-store",
        }
        headers.update(self.auth_headers(api_key))
        return headers

    def rewrite(
        self,
        context: RequestContext,
        route: ProviderRoute,
        api_key: str,
    ) -> OutboundRequest:
        outbound = OutboundRequest(
            method=context.method,
            url=route.upstream_url,
            headers=self.build_headers(context, api_key),
            params=self.build_params(context),
        )
        if context.method in _BODYLESS_METHODS:
            return outbound

        outbound.content = context.body
        if not context.body and context.has_json_content_type:
            outbound.content = b"{}"

        if route.is_chat and context.has_json_content_type:
            self._rewrite_body(context, route, outbound)
        return outbound

    def _rewrite_body(
        self,
        context: RequestContext,
        route: ProviderRoute,
        outbound: OutboundRequest,
    ) -> None:
        if context.body:
            parsed = context.json_body()
        else:
            parsed = {}

        if not isinstance(parsed, dict):
            logger.info(
                "request body left unmodified, not a JSON object: provider=%s subpath=%s",
                route.provider.value,
                route.subpath,
            )
            return

        body = self.clone_body(parsed)
        changed = False

        if "search_results" in body:
            outbound.search_results = normalize_search_results(body.pop("search_results"))
            changed = True

        if self._config.enable_search_tool and self.inject_search_tool(body):
            outbound.search_tool_injected = True
            changed = True

        if self._config.enable_citation_prompt:
            self.inject_citation_prompt(body, CITATION_INSTRUCTION)
            changed = True

        if changed:
            outbound.content = json.dumps(body, ensure_ascii=False).encode("utf-8")

    @staticmethod
    def clone_body(body: Dict[str, Any]) -> Dict[str, Any]:
        return deepcopy(body)

    @staticmethod
    def _has_tools(body: Dict[str, Any]) -> bool:
        tools = body.get("tools")
        return isinstance(tools, list) and len(tools) > 0
