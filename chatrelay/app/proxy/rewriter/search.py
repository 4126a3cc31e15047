from __future__ import annotations

from typing import Any, Dict, Optional

from ...errors import BadRequestError, UpstreamNotConfiguredError
from ..context import RequestContext
from ..router import ProviderRoute
from ..transport import OutboundRequest
from .base import BaseRewriter

_PASSTHROUGH_PARAMS = ("num", "start", "lr", "safe")


class SearchRewriter(BaseRewriter):
    """Google Custom Search: a plain GET with ``cx`` and ``q``."""

    def auth_headers(self, api_key: str) -> Dict[str, str]:
        return {"x-goog-api-key": api_key}

    def rewrite(
        self,
        context: RequestContext,
        route: ProviderRoute,
        api_key: str,
    ) -> OutboundRequest:
        # Custom Search is GET only.
        outbound = super().rewrite(context, route, api_key)
        outbound.method = "GET"
        outbound.content = None
        return outbound

    def build_params(self, context: RequestContext) -> Optional[Dict[str, str]]:
        query = (context.query.get("q") or "").strip()
        if not query:
            raise BadRequestError("Missing search query 'q' parameter")

        engine_id = self._config.google_search_engine_id
        if not engine_id:
            raise UpstreamNotConfiguredError(
                "Missing Google Search Engine ID (cx) in server config"
            )

        params = {"cx": engine_id, "q": query}
        for name in _PASSTHROUGH_PARAMS:
            value = context.query.get(name)
            if value:
                params[name] = value
        return params

    def inject_search_tool(self, body: Dict[str, Any]) -> bool:
        return False

    def inject_citation_prompt(self, body: Dict[str, Any], instruction: str) -> None:
        return None
