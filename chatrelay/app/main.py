from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

import logging

from fastapi import FastAPI, Request
from fastapi.responses import Response

from .config import GatewayConfig, load_config
from .errors import GatewayError, gateway_error_response, internal_error_response
from .gateway import ProxyGateway
from .proxy import ProxyTransport, RequestContext

logger = logging.getLogger(__name__)

_PROXY_METHODS = ["GET", "POST", "OPTIONS"]


def _log_level(name: str) -> int:
    level = logging.getLevelName(name)
    return level if isinstance(level, int) else logging.INFO


def configure_logging(name: str) -> None:
    logging.getLogger("chatrelay").setLevel(_log_level(name))


async def _proxy_route_request(request: Request, gateway: ProxyGateway) -> Response:
    try:
        context = await RequestContext.from_request(request)
        return await gateway.handle(context)
    except GatewayError as exc:
        return gateway_error_response(exc)
    except Exception:
        logger.exception("proxy request failed: method=%s path=%s", request.method, request.url.path)
        return internal_error_response()


def create_app(
    config: Optional[GatewayConfig] = None,
    transport: Optional[ProxyTransport] = None,
) -> FastAPI:
    config = config if config is not None else load_config()
    configure_logging(config.log_level)
    gateway = ProxyGateway(config, transport=transport)

    @asynccontextmanager
    async def lifespan(_: FastAPI) -> AsyncIterator[None]:
        try:
            yield
        finally:
            await gateway.transport.aclose()

    app = FastAPI(title="chatrelay", version="0.1.0", lifespan=lifespan)
    app.state.config = config
    app.state.gateway = gateway

    @app.get("/api/health")
    async def health():
        return {"status": "ok"}

    # /api/<provider>/<subpath>; the router decides what is forwarded.
    @app.api_route("/api/{path:path}", methods=_PROXY_METHODS)
    async def proxy_api(request: Request, path: str = ""):
        return await _proxy_route_request(request, gateway)

    return app


app = create_app()


def serve() -> None:
    import uvicorn

    config: GatewayConfig = app.state.config
    logging.basicConfig(level=_log_level(config.log_level))
    uvicorn.run(app, host=config.host, port=config.port)
