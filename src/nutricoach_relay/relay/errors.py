"""Client-facing error shapes.

Every failure the relay can report is a ``RelayError``. Local problems keep
their own status (400/401/405/500); anything that went wrong upstream is
reported as 502 with the provider's status and message kept in the payload.
"""
from __future__ import annotations
import logging

from fastapi import Request, status
from fastapi.responses import JSONResponse

from nutricoach_relay.common.schema import ErrorBody, UpstreamFailure

LOGGER = logging.getLogger("nutricoach.relay.errors")

# Synthetic upstream status for failures that never produced an HTTP response.
TRANSPORT_FAILURE_STATUS = 503

class RelayError(Exception):
    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str, headers: dict[str, str] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.headers = headers

    def to_body(self) -> ErrorBody:
        return ErrorBody(error=self.message)

class MethodNotAllowed(RelayError):
    status_code = status.HTTP_405_METHOD_NOT_ALLOWED

    def __init__(self) -> None:
        super().__init__("Method Not Allowed", headers={"Allow": "POST"})

class ValidationError(RelayError):
    status_code = status.HTTP_400_BAD_REQUEST

class AuthError(RelayError):
    status_code = status.HTTP_401_UNAUTHORIZED

    def __init__(self) -> None:
        super().__init__("Unauthorized")

class ConfigurationError(RelayError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

class UpstreamError(RelayError):
    """Provider failure after any eligible fallback was tried."""
    status_code = status.HTTP_502_BAD_GATEWAY

    def __init__(self, upstream_status: int, detail: str, model: str | None = None) -> None:
        super().__init__("Upstream error")
        self.upstream_status = upstream_status
        self.detail = detail
        self.model = model

    @classmethod
    def from_failure(cls, failure: UpstreamFailure) -> "UpstreamError":
        return cls(failure.status, failure.message, failure.model)

    def to_body(self) -> ErrorBody:
        return ErrorBody(
            error=self.message,
            status=self.upstream_status,
            detail=self.detail,
            hint=hint_for_status(self.upstream_status),
        )

def hint_for_status(upstream_status: int) -> str:
    if upstream_status in (401, 403):
        return "The upstream provider rejected the server's credentials. Check OPENAI_API_KEY."
    if upstream_status == 404:
        return "The requested model is unavailable to this account. Try another model."
    return "The upstream provider returned an error. Try again shortly."

def error_response(exc: RelayError) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content=exc.to_body().model_dump(exclude_none=True),
        headers=exc.headers,
    )

async def relay_error_handler(request: Request, exc: RelayError) -> JSONResponse:
    if isinstance(exc, UpstreamError):
        LOGGER.warning(
            "Upstream failure for model=%s status=%s: %s", exc.model, exc.upstream_status, exc.detail
        )
    elif exc.status_code >= 500:
        LOGGER.error("%s: %s", type(exc).__name__, exc.message)
    return error_response(exc)

async def unexpected_error_handler(request: Request, exc: Exception) -> JSONResponse:
    LOGGER.exception("Unhandled error while relaying %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=ErrorBody(error="Server error").model_dump(exclude_none=True),
    )
