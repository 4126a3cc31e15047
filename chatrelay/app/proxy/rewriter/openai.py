from __future__ import annotations

from typing import Any, Dict, List

from ..citations import SearchResults, extract_openai_results, substitute_citations
from .base import BaseRewriter

_SYSTEM_ROLES = ("system", "developer")

WEB_SEARCH_TOOL: Dict[str, Any] = {
    "type": "function",
    "function": {
        "name": "web_search",
        "description": (
            "Search the web for current information. Refer to each result you "
            "use as [citation:N], where N is the 0-based index of the result."
        ),
        "parameters": {
            "type": "object",
            "properties": {
                "query": {"type": "string", "description": "The search query."},
            },
            "required": ["query"],
        },
    },
}


class OpenAIRewriter(BaseRewriter):
    def auth_headers(self, api_key: str) -> Dict[str, str]:
        return {"Authorization": f"Bearer {api_key}"}

    def inject_search_tool(self, body: Dict[str, Any]) -> bool:
        if self._has_tools(body):
            return False
        body["tools"] = [self.clone_body(WEB_SEARCH_TOOL)]
        return True

    def inject_citation_prompt(self, body: Dict[str, Any], instruction: str) -> None:
        messages = body.get("messages")
        if not isinstance(messages, list):
            messages = []
            body["messages"] = messages

        for message in messages:
            if not isinstance(message, dict) or message.get("role") not in _SYSTEM_ROLES:
                continue
            content = message.get("content")
            if isinstance(content, list):
                self._prepend_part(content, instruction)
            elif isinstance(content, str) and content:
                message["content"] = f"{instruction}\n\n{content}"
            else:
                message["content"] = instruction
            return

        messages.insert(0, {"role": "system", "content": instruction})

    @staticmethod
    def _prepend_part(parts: List[Any], instruction: str) -> None:
        parts.insert(0, {"type": "text", "text": instruction})

    def embed_citations(self, body: Dict[str, Any], fallback_results: SearchResults) -> bool:
        choices = body.get("choices")
        if not isinstance(choices, list):
            return False

        results = extract_openai_results(body) or fallback_results
        changed = False
        for choice in choices:
            if not isinstance(choice, dict):
                continue

            # chat completions: choices[].message.content
            message = choice.get("message")
            if isinstance(message, dict):
                content = message.get("content")
                if isinstance(content, str):
                    rewritten = substitute_citations(content, results)
                    changed = changed or rewritten != content
                    message["content"] = rewritten
                elif isinstance(content, list):
                    changed = self._embed_parts(content, results) or changed

            # legacy completions: choices[].text
            text = choice.get("text")
            if isinstance(text, str):
                rewritten = substitute_citations(text, results)
                changed = changed or rewritten != text
                choice["text"] = rewritten

        return changed

    @staticmethod
    def _embed_parts(parts: List[Any], results: SearchResults) -> bool:
        changed = False
        for part in parts:
            if not isinstance(part, dict):
                continue
            text_value = part.get("text")
            if isinstance(text_value, str):
                rewritten = substitute_citations(text_value, results)
                changed = changed or rewritten != text_value
                part["text"] = rewritten
        return changed
