from __future__ import annotations

import logging
from typing import Optional

from fastapi.responses import JSONResponse
from starlette.responses import Response

from .auth import authenticate, mask_auth_for_log
from .config import GatewayConfig
from .errors import MissingCredentialError
from .proxy import (
    Deadline,
    ProviderRouter,
    ProxyTransport,
    RequestContext,
    ResponsePipeline,
    rewriter_for,
)

logger = logging.getLogger(__name__)


class ProxyGateway:
    """Runs one inbound call through gate, router, rewriter, dispatcher and pipeline.

    Every stage either hands its result to the next one or raises a
    ``GatewayError``; turning those into HTTP responses is left to the caller.
    """

    def __init__(self, config: GatewayConfig, transport: Optional[ProxyTransport] = None):
        self._config = config
        self._router = ProviderRouter(config, logger=logger)
        self._transport = (
            transport
            if transport is not None
            else ProxyTransport(timeout_secs=config.proxy_timeout_secs)
        )
        self._pipeline = ResponsePipeline(config)

    @property
    def transport(self) -> ProxyTransport:
        return self._transport

    async def handle(self, context: RequestContext) -> Response:
        if context.method == "OPTIONS":
            return JSONResponse({"body": "OK"}, status_code=200)

        provider = self._router.provider_for(context.path)
        auth_result = authenticate(context.headers, provider, self._config)
        if not auth_result.allowed:
            logger.info(
                "credential rejected: provider=%s reason=%s auth=%s",
                provider.value,
                auth_result.reason.value if auth_result.reason else None,
                mask_auth_for_log(context.headers.get("authorization")),
            )
            raise MissingCredentialError(auth_result.message)

        route = self._router.resolve(context.path)
        rewriter = rewriter_for(route.provider, self._config)
        outbound = rewriter.rewrite(context, route, auth_result.api_key)

        deadline = Deadline(self._transport.timeout_secs)
        upstream = await self._transport.dispatch(outbound, deadline)
        logger.info(
            "proxy upstream responded: provider=%s subpath=%s status=%d",
            route.provider.value,
            route.subpath,
            upstream.status_code,
        )
        try:
            return await self._pipeline.respond(
                context, route, outbound, rewriter, upstream, deadline
            )
        except Exception:
            await upstream.aclose()
            raise
