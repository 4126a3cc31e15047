from __future__ import annotations

from fastapi.responses import JSONResponse
from pydantic import BaseModel


class ErrorEnvelope(BaseModel):
    error: bool = True
    message: str


class GatewayError(RuntimeError):
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class MissingCredentialError(GatewayError):
    status_code = 401


class BadRequestError(GatewayError):
    status_code = 400


class ForbiddenPathError(GatewayError):
    status_code = 403

    def __init__(self, subpath: str):
        super().__init__(f"you are not allowed to request {subpath}")
        self.subpath = subpath


class RouteNotFoundError(GatewayError):
    status_code = 404

    def __init__(self, path: str):
        super().__init__(f"no provider route for path: {path}")
        self.path = path


class UpstreamNotConfiguredError(GatewayError):
    status_code = 500


class UpstreamUnavailableError(GatewayError):
    status_code = 502


class UpstreamTimeoutError(GatewayError):
    status_code = 504


def error_response(message: str, status_code: int) -> JSONResponse:
    envelope = ErrorEnvelope(message=message)
    return JSONResponse(content=envelope.model_dump(), status_code=status_code)


def gateway_error_response(exc: GatewayError) -> JSONResponse:
    return error_response(exc.message, exc.status_code)


def internal_error_response() -> JSONResponse:
    return error_response("Internal server error", 500)
