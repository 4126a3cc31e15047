"""Inbound credential checks.

The gate decides which upstream key a call will use: the caller's own token
when one is supplied, otherwise the server-side key for the provider.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import Mapping, Optional

from .config import GatewayConfig
from .proxy.router import ProviderKind

GOOGLE_KEY_HEADER = "x-goog-api-key"

_BEARER_PREFIX = re.compile(r"^(?:bearer(?:\s+|$))+", re.IGNORECASE)


class DenyReason(str, Enum):
    MISSING_CREDENTIAL = "MissingCredential"


@dataclass(frozen=True)
class AuthResult:
    allowed: bool
    api_key: str = ""
    reason: Optional[DenyReason] = None

    @classmethod
    def allow(cls, api_key: str) -> "AuthResult":
        return cls(allowed=True, api_key=api_key)

    @classmethod
    def deny(cls, reason: DenyReason) -> "AuthResult":
        return cls(allowed=False, reason=reason)

    @property
    def message(self) -> str:
        if self.allowed:
            return ""
        return "missing API key: no credential supplied and no server-side key configured"


def parse_auth_header(auth: Optional[str]) -> str:
    if not auth:
        return ""
    return _BEARER_PREFIX.sub("", auth.strip(), count=1).strip()


def mask_auth_for_log(auth: Optional[str]) -> str:
    """Mask authorization header for safe logging."""
    if not auth:
        return "***"
    s = auth.strip()
    if s.lower().startswith("bearer "):
        return "Bearer ***"
    return "***"


def _get_header(headers: Mapping[str, str], name: str) -> Optional[str]:
    value = headers.get(name)
    if value is not None:
        return value
    lower_name = name.lower()
    for key, candidate in headers.items():
        if str(key).lower() == lower_name:
            return candidate
    return None


def _server_key(provider: ProviderKind, config: GatewayConfig) -> str:
    if provider == ProviderKind.OPENAI:
        return config.openai_api_key
    return config.google_api_key


def authenticate(
    headers: Mapping[str, str],
    provider: ProviderKind,
    config: GatewayConfig,
) -> AuthResult:
    candidates = []
    if provider in (ProviderKind.GEMINI, ProviderKind.SEARCH):
        candidates.append(_get_header(headers, GOOGLE_KEY_HEADER))
    candidates.append(_get_header(headers, "Authorization"))

    for raw in candidates:
        token = parse_auth_header(raw)
        if token:
            return AuthResult.allow(token)

    server_key = _server_key(provider, config).strip()
    if server_key:
        return AuthResult.allow(server_key)
    return AuthResult.deny(DenyReason.MISSING_CREDENTIAL)
