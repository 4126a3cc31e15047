"""Search-result citations.

Generated text refers to search results with ``[citation:N]`` placeholders,
``N`` being the 0-based index into the result list. Substitution turns each
placeholder into a markdown link ``[title](url)``.
"""

from __future__ import annotations

import logging
import re
from typing import Any, Callable, Dict, List

logger = logging.getLogger(__name__)

CITATION_PATTERN = re.compile(r"\[citation:(\d+)\]")

CITATION_INSTRUCTION = (
    "When your answer uses information from a source, cite it inline as a "
    "markdown link in the form [title](url)."
)

SearchResults = List[Dict[str, str]]


def normalize_search_results(value: Any) -> SearchResults:
    """Coerce ``[{title, url}]`` or ``[url]`` lists into ``[{title, url}]``."""
    if not isinstance(value, list):
        return []

    results: SearchResults = []
    for item in value:
        if isinstance(item, str) and item:
            results.append({"title": item, "url": item})
            continue
        if not isinstance(item, dict):
            continue
        url = item.get("url") or item.get("uri") or item.get("link")
        if not isinstance(url, str) or not url:
            continue
        title = item.get("title")
        if not isinstance(title, str) or not title:
            title = url
        results.append({"title": title, "url": url})
    return results


def format_link(title: str, url: str) -> str:
    label = title.replace("[", "(").replace("]", ")")
    return f"[{label}]({url})"


def substitute_citations(
    text: str,
    results: SearchResults,
    formatter: Callable[[str, str], str] = format_link,
) -> str:
    """Replace every resolvable placeholder; unresolvable ones stay verbatim."""

    def _replace(match: "re.Match[str]") -> str:
        index = int(match.group(1))
        if index >= len(results):
            logger.warning(
                "citation placeholder out of range: index=%d results=%d",
                index,
                len(results),
            )
            return match.group(0)
        result = results[index]
        return formatter(result["title"], result["url"])

    return CITATION_PATTERN.sub(_replace, text)


def extract_openai_results(body: Dict[str, Any]) -> SearchResults:
    results = normalize_search_results(body.get("search_results"))
    if results:
        return results
    return normalize_search_results(body.get("citations"))


def extract_gemini_results(candidate: Dict[str, Any]) -> SearchResults:
    metadata = candidate.get("groundingMetadata")
    if not isinstance(metadata, dict):
        return []
    chunks = metadata.get("groundingChunks")
    if not isinstance(chunks, list):
        return []

    return normalize_search_results(
        [chunk.get("web") for chunk in chunks if isinstance(chunk, dict)]
    )
