from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple

from ..config import GatewayConfig
from ..errors import ForbiddenPathError, RouteNotFoundError

OPENAI_PREFIX = "/api/openai/"
GOOGLE_PREFIX = "/api/google/"
SEARCH_PATH = "/api/google/search"


class ProviderKind(str, Enum):
    OPENAI = "openai"
    GEMINI = "google"
    SEARCH = "search"


OPENAI_CHAT_PATH = "v1/chat/completions"
OPENAI_LIST_MODEL_PATH = "v1/models"

_OPENAI_ALLOWED_PATHS = {
    OPENAI_CHAT_PATH,
    "v1/audio/speech",
    "v1/images/generations",
    OPENAI_LIST_MODEL_PATH,
    "dashboard/billing/usage",
    "dashboard/billing/subscription",
}

_DOT_SEGMENTS = {".", ".."}

_GEMINI_MODEL_ID = r"[A-Za-z0-9._\-]+"
_GEMINI_ALLOWED_PATTERNS = (
    re.compile(r"^v1(beta)?/models$"),
    re.compile(rf"^v1(beta)?/models/{_GEMINI_MODEL_ID}$"),
    re.compile(
        rf"^v1(beta)?/models/{_GEMINI_MODEL_ID}"
        r":(generateContent|streamGenerateContent|countTokens)$"
    ),
)
_GEMINI_CHAT_PATTERN = re.compile(r":(generateContent|streamGenerateContent)$")
_GEMINI_LIST_MODEL_PATTERN = re.compile(r"^v1(beta)?/models$")


@dataclass(frozen=True)
class ProviderRoute:
    provider: ProviderKind
    base_url: str
    subpath: str
    upstream_url: str

    @property
    def is_chat(self) -> bool:
        if self.provider == ProviderKind.OPENAI:
            return self.subpath == OPENAI_CHAT_PATH
        if self.provider == ProviderKind.GEMINI:
            return _GEMINI_CHAT_PATTERN.search(self.subpath) is not None
        return False

    @property
    def is_model_list(self) -> bool:
        if self.provider == ProviderKind.OPENAI:
            return self.subpath == OPENAI_LIST_MODEL_PATH
        if self.provider == ProviderKind.GEMINI:
            return _GEMINI_LIST_MODEL_PATTERN.match(self.subpath) is not None
        return False


class ProviderRouter:
    def __init__(
        self,
        config: GatewayConfig,
        logger: Optional[logging.Logger] = None,
    ):
        self._config = config
        self._logger = logger if logger is not None else logging.getLogger(__name__)

    def provider_for(self, path: str) -> ProviderKind:
        provider, _ = self._split(path)
        return provider

    def resolve(self, path: str) -> ProviderRoute:
        provider, subpath = self._split(path)

        if not self._is_allowed(provider, subpath):
            self._logger.info("forbidden proxy path: provider=%s subpath=%s", provider.value, subpath)
            raise ForbiddenPathError(subpath)

        if provider == ProviderKind.SEARCH:
            base_url = normalize_base_url(self._config.google_search_url)
            return ProviderRoute(
                provider=provider,
                base_url=base_url,
                subpath=subpath,
                upstream_url=base_url,
            )

        base_url = normalize_base_url(self._get_base_url(provider))
        return ProviderRoute(
            provider=provider,
            base_url=base_url,
            subpath=subpath,
            upstream_url=f"{base_url}/{subpath}",
        )

    def _get_base_url(self, provider: ProviderKind) -> str:
        if provider == ProviderKind.GEMINI:
            return self._config.google_url
        return self._config.openai_url

    @staticmethod
    def _is_allowed(provider: ProviderKind, subpath: str) -> bool:
        if any(segment in _DOT_SEGMENTS for segment in subpath.split("/")):
            return False
        if provider == ProviderKind.OPENAI:
            return subpath in _OPENAI_ALLOWED_PATHS
        if provider == ProviderKind.GEMINI:
            return any(pattern.match(subpath) for pattern in _GEMINI_ALLOWED_PATTERNS)
        return subpath == "search"

    @classmethod
    def _split(cls, path: str) -> Tuple[ProviderKind, str]:
        normalized_path = cls._normalize_path(path)

        if normalized_path == SEARCH_PATH:
            return ProviderKind.SEARCH, "search"
        if normalized_path.startswith(GOOGLE_PREFIX):
            return ProviderKind.GEMINI, normalized_path[len(GOOGLE_PREFIX):]
        if normalized_path.startswith(OPENAI_PREFIX):
            return ProviderKind.OPENAI, normalized_path[len(OPENAI_PREFIX):]

        raise RouteNotFoundError(normalized_path)

    @staticmethod
    def _normalize_path(path: str) -> str:
        raw = (path or "").split("?", 1)[0]
        if not raw.startswith("/"):
            raw = f"/{raw}"

        if len(raw) > 1:
            raw = raw.rstrip("/")
            if not raw:
                raw = "/"
        return raw


def normalize_base_url(base_url: str) -> str:
    url = (base_url or "").strip()
    if not url.startswith("http"):
        url = f"https://{url}"
    return url.rstrip("/")
