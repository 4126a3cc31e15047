from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Optional

from starlette.datastructures import Headers, QueryParams
from starlette.requests import Request

_UNSET = object()


@dataclass
class RequestContext:
    method: str
    path: str
    headers: Headers
    query: QueryParams
    body: bytes = b""
    _json: Any = field(default=_UNSET, repr=False, compare=False)

    @classmethod
    async def from_request(cls, request: Request) -> "RequestContext":
        return cls(
            method=request.method.upper(),
            path=request.url.path,
            headers=request.headers,
            query=request.query_params,
            body=await request.body(),
        )

    @property
    def content_type(self) -> str:
        return self.headers.get("content-type", "")

    @property
    def has_json_content_type(self) -> bool:
        content_type = self.content_type
        return not content_type or "json" in content_type.lower()

    def json_body(self) -> Optional[Any]:
        """Parsed JSON body, or None when the body is absent or not JSON."""
        if self._json is _UNSET:
            self._json = None
            if self.body and self.has_json_content_type:
                try:
                    self._json = json.loads(self.body.decode("utf-8"))
                except (UnicodeDecodeError, ValueError):
                    self._json = None
        return self._json

    @property
    def wants_event_stream(self) -> bool:
        if self.query.get("alt") == "sse":
            return True
        body = self.json_body()
        return isinstance(body, dict) and body.get("stream") is True
