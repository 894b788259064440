"""Translate transport failures into OutboundResult values."""

from __future__ import annotations

from typing import Any

import httpx

from src.models import ErrorKind, OutboundResult

# Failures that happen after the request left the client.
_NO_RESPONSE_ERRORS = (
    httpx.TimeoutException,
    httpx.NetworkError,
    httpx.RemoteProtocolError,
)


def _response_body(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return None


def format_error(exc: Exception) -> OutboundResult:
    """Classify an exception raised while talking to the gateway.

    Non-2xx replies (``httpx.HTTPStatusError``) keep their status code and body;
    timeouts and dropped connections report status 0 as no-response; anything
    else failed before a request could be issued.
    """
    if isinstance(exc, httpx.HTTPStatusError):
        response = exc.response
        body = _response_body(response)
        message = body.get("message") if isinstance(body, dict) else None
        return OutboundResult(
            succeeded=False,
            message=str(message) if message else "API error",
            error=body if body is not None else response.reason_phrase,
            status_code=response.status_code,
            error_kind=ErrorKind.SERVER,
        )

    if isinstance(exc, _NO_RESPONSE_ERRORS):
        return OutboundResult(
            succeeded=False,
            message="No response from server",
            error=str(exc) or type(exc).__name__,
            status_code=0,
            error_kind=ErrorKind.NO_RESPONSE,
        )

    return OutboundResult(
        succeeded=False,
        message=str(exc) or "Unknown error",
        error=type(exc).__name__,
        status_code=0,
        error_kind=ErrorKind.SETUP,
    )


def validation_failure(message: str) -> OutboundResult:
    """Result for a request rejected before any network call."""
    return OutboundResult(
        succeeded=False,
        message=message,
        error_kind=ErrorKind.VALIDATION,
    )
