from __future__ import annotations

from typing import Any, Dict, Optional

from ..citations import SearchResults, extract_gemini_results, substitute_citations
from ..context import RequestContext
from .base import BaseRewriter

GOOGLE_SEARCH_TOOL: Dict[str, Any] = {"google_search": {}}

API_CLIENT_HEADER = "x-goog-api-client"
DEFAULT_API_CLIENT = "genai-js/0.21.0"
_SYSTEM_INSTRUCTION_KEYS = ("systemInstruction", "system_instruction")


class GeminiRewriter(BaseRewriter):
    def auth_headers(self, api_key: str) -> Dict[str, str]:
        return {"x-goog-api-key": api_key}

    def build_headers(self, context: RequestContext, api_key: str) -> Dict[str, str]:
        headers = super().build_headers(context, api_key)
        headers[API_CLIENT_HEADER] = context.headers.get(API_CLIENT_HEADER) or DEFAULT_API_CLIENT
        return headers

    def build_params(self, context: RequestContext) -> Optional[Dict[str, str]]:
        if context.query.get("alt") == "sse":
            return {"alt": "sse"}
        return None

    def inject_search_tool(self, body: Dict[str, Any]) -> bool:
        if self._has_tools(body):
            return False
        body["tools"] = [self.clone_body(GOOGLE_SEARCH_TOOL)]
        return True

    def inject_citation_prompt(self, body: Dict[str, Any], instruction: str) -> None:
        for key in _SYSTEM_INSTRUCTION_KEYS:
            system_instruction = body.get(key)
            if not isinstance(system_instruction, dict):
                continue
            parts = system_instruction.get("parts")
            if isinstance(parts, list):
                parts.insert(0, {"text": instruction})
            else:
                system_instruction["parts"] = [{"text": instruction}]
            return

        body["systemInstruction"] = {"parts": [{"text": instruction}]}

    def embed_citations(self, body: Dict[str, Any], fallback_results: SearchResults) -> bool:
        candidates = body.get("candidates")
        if not isinstance(candidates, list):
            return False

        changed = False
        for candidate in candidates:
            if not isinstance(candidate, dict):
                continue
            content = candidate.get("content")
            if not isinstance(content, dict):
                continue
            parts = content.get("parts")
            if not isinstance(parts, list):
                continue

            results = extract_gemini_results(candidate) or fallback_results
            for part in parts:
                if not isinstance(part, dict):
                    continue
                text_value = part.get("text")
                if isinstance(text_value, str):
                    rewritten = substitute_citations(text_value, results)
                    changed = changed or rewritten != text_value
                    part["text"] = rewritten

        return changed
