from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional

OPENAI_API_KEY_ENV = "OPENAI_API_KEY"
OPENAI_BASE_URL_ENV = "BASE_URL"
GOOGLE_API_KEY_ENV = "GOOGLE_API_KEY"
GOOGLE_BASE_URL_ENV = "GOOGLE_URL"
GOOGLE_SEARCH_ENGINE_ID_ENV = "GOOGLE_SEARCH_ENGINE_ID"
GOOGLE_SEARCH_URL_ENV = "GOOGLE_SEARCH_URL"
DISABLE_RESTRICTED_MODELS_ENV = "DISABLE_RESTRICTED_MODELS"
DISABLE_GPT4_ENV = "DISABLE_GPT4"
ENABLE_SEARCH_TOOL_ENV = "CHATRELAY_ENABLE_SEARCH_TOOL"
ENABLE_CITATION_PROMPT_ENV = "CHATRELAY_ENABLE_CITATION_PROMPT"
ENABLE_STREAM_LINKS_ENV = "CHATRELAY_ENABLE_STREAM_LINKS"
PROXY_TIMEOUT_SECS_ENV = "CHATRELAY_PROXY_TIMEOUT_SECS"
LOG_LEVEL_ENV = "CHATRELAY_LOG_LEVEL"
HOST_ENV = "CHATRELAY_HOST"
PORT_ENV = "CHATRELAY_PORT"

OPENAI_BASE_URL = "https://api.openai.com"
GEMINI_BASE_URL = "https://generativelanguage.googleapis.com"
GOOGLE_SEARCH_URL = "https://www.googleapis.com/customsearch/v1"
DEFAULT_PROXY_TIMEOUT_SECS = 600.0
DEFAULT_PORT = 8000

_TRUE_VALUES = {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class GatewayConfig:
    """Read-only settings snapshot shared by every request."""

    openai_api_key: str = ""
    openai_url: str = OPENAI_BASE_URL
    google_api_key: str = ""
    google_url: str = GEMINI_BASE_URL
    google_search_engine_id: str = ""
    google_search_url: str = GOOGLE_SEARCH_URL
    disable_restricted_models: bool = False
    enable_search_tool: bool = False
    enable_citation_prompt: bool = False
    enable_stream_links: bool = True
    proxy_timeout_secs: float = DEFAULT_PROXY_TIMEOUT_SECS
    log_level: str = "INFO"
    host: str = "0.0.0.0"
    port: int = DEFAULT_PORT

    def as_public_dict(self) -> Dict[str, Any]:
        return {
            "openaiApiKey": bool(self.openai_api_key),
            "googleApiKey": bool(self.google_api_key),
            "googleUrl": self.google_url,
            "googleSearchEngineId": self.google_search_engine_id,
            "disableRestrictedModels": self.disable_restricted_models,
        }


def _get_str(source: Mapping[str, str], name: str, default: str = "") -> str:
    value = source.get(name)
    if value is None:
        return default
    value = str(value).strip()
    return value or default


def _get_bool(source: Mapping[str, str], name: str, default: bool = False) -> bool:
    raw = source.get(name)
    if raw is None or not str(raw).strip():
        return default
    return str(raw).strip().lower() in _TRUE_VALUES


def _get_port(source: Mapping[str, str]) -> int:
    try:
        value = int(_get_str(source, PORT_ENV, str(DEFAULT_PORT)))
    except ValueError:
        return DEFAULT_PORT
    return value if 0 < value < 65536 else DEFAULT_PORT


def get_proxy_timeout_secs(environ: Optional[Mapping[str, str]] = None) -> float:
    source = environ if environ is not None else os.environ
    raw = source.get(PROXY_TIMEOUT_SECS_ENV, str(int(DEFAULT_PROXY_TIMEOUT_SECS)))
    try:
        value = float(raw)
        if value <= 0:
            return DEFAULT_PROXY_TIMEOUT_SECS
        return value
    except (TypeError, ValueError):
        return DEFAULT_PROXY_TIMEOUT_SECS


def load_config(environ: Optional[Mapping[str, str]] = None) -> GatewayConfig:
    source = environ if environ is not None else os.environ
    return GatewayConfig(
        openai_api_key=_get_str(source, OPENAI_API_KEY_ENV),
        openai_url=_get_str(source, OPENAI_BASE_URL_ENV, OPENAI_BASE_URL),
        google_api_key=_get_str(source, GOOGLE_API_KEY_ENV),
        google_url=_get_str(source, GOOGLE_BASE_URL_ENV, GEMINI_BASE_URL),
        google_search_engine_id=_get_str(source, GOOGLE_SEARCH_ENGINE_ID_ENV),
        google_search_url=_get_str(source, GOOGLE_SEARCH_URL_ENV, GOOGLE_SEARCH_URL),
        disable_restricted_models=(
            _get_bool(source, DISABLE_RESTRICTED_MODELS_ENV)
            or _get_bool(source, DISABLE_GPT4_ENV)
        ),
        enable_search_tool=_get_bool(source, ENABLE_SEARCH_TOOL_ENV),
        enable_citation_prompt=_get_bool(source, ENABLE_CITATION_PROMPT_ENV),
        enable_stream_links=_get_bool(source, ENABLE_STREAM_LINKS_ENV, default=True),
        proxy_timeout_secs=get_proxy_timeout_secs(source),
        log_level=_get_str(source, LOG_LEVEL_ENV, "INFO").upper(),
        host=_get_str(source, HOST_ENV, "0.0.0.0"),
        port=_get_port(source),
    )
