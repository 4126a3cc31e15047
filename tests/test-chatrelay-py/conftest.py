import asyncio
from dataclasses import replace
from typing import Any, AsyncIterator, Callable, Dict, Iterable, Iterator, List, Optional

import httpx
import pytest
from fastapi.testclient import TestClient
from httpx import ASGITransport

from chatrelay.app.config import GatewayConfig
from chatrelay.app.main import create_app
from chatrelay.app.proxy import ProxyTransport
from chatrelay.fake_llm import echo_server

FAKE_UPSTREAM_URL = "http://fake-upstream"


class RecordingASGITransport(httpx.AsyncBaseTransport):
    """ASGI transport that records all requests for inspection."""

    def __init__(self, app: Any):
        self._transport = ASGITransport(app=app)
        self.requests: List[Dict[str, Any]] = []

    async def handle_async_request(self, request: httpx.Request) -> httpx.Response:
        body = await request.aread()
        self.requests.append({
            "method": request.method,
            "url": str(request.url),
            "path": request.url.path,
            "params": dict(request.url.params),
            "headers": dict(request.headers),
            "body": body,
        })
        forwarded_request = httpx.Request(
            method=request.method,
            url=request.url,
            headers=request.headers,
            content=body,
        )
        return await self._transport.handle_async_request(forwarded_request)

    async def aclose(self) -> None:
        await self._transport.aclose()


class ChunkedStream(httpx.AsyncByteStream):
    """Upstream body that yields the given chunks one by one.

    With ``stall_after`` set, the stream blocks before that chunk index until
    ``gate`` is set (forever when no gate is given).
    """

    def __init__(
        self,
        chunks: Iterable[bytes],
        stall_after: Optional[int] = None,
        gate: Optional[asyncio.Event] = None,
    ):
        self._chunks = list(chunks)
        self._stall_after = stall_after
        self._gate = gate
        self.yielded = 0
        self.closed = False

    async def __aiter__(self) -> AsyncIterator[bytes]:
        for index, chunk in enumerate(self._chunks):
            if index == self._stall_after:
                if self._gate is None:
                    await asyncio.sleep(3600)
                else:
                    await self._gate.wait()
            self.yielded += 1
            yield chunk

    async def aclose(self) -> None:
        self.closed = True


@pytest.fixture
def gateway_config() -> GatewayConfig:
    return GatewayConfig(
        openai_api_key="sk-server",
        openai_url=FAKE_UPSTREAM_URL,
        google_api_key="g-server",
        google_url=FAKE_UPSTREAM_URL,
        google_search_engine_id="cx-test",
        google_search_url=f"{FAKE_UPSTREAM_URL}/customsearch/v1",
        proxy_timeout_secs=5.0,
    )


@pytest.fixture
def upstream_recorder() -> RecordingASGITransport:
    return RecordingASGITransport(echo_server.app)


@pytest.fixture
def make_client(
    upstream_recorder: RecordingASGITransport,
    gateway_config: GatewayConfig,
) -> Iterator[Callable[..., TestClient]]:
    clients: List[TestClient] = []

    def _make(config: Optional[GatewayConfig] = None, **overrides: Any) -> TestClient:
        effective = config if config is not None else gateway_config
        if overrides:
            effective = replace(effective, **overrides)
        transport = ProxyTransport(
            timeout_secs=effective.proxy_timeout_secs,
            transport=upstream_recorder,
        )
        client = TestClient(create_app(config=effective, transport=transport))
        client.__enter__()
        clients.append(client)
        return client

    try:
        yield _make
    finally:
        for client in clients:
            client.__exit__(None, None, None)


@pytest.fixture
def proxy_client(make_client: Callable[..., TestClient]) -> TestClient:
    return make_client()
