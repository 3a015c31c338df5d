"""Provider-specific error classification.

Turns whatever a provider SDK raised into one of the gateway's classified
errors. Anthropic exceptions carry ``status_code`` and an ``httpx.Response``;
Google exceptions carry an integer ``code``; plain ``httpx`` errors are
handled for both.
"""

import asyncio

import anthropic
import httpx

from specpipe.errors import (
    AuthRejectedError,
    ModelGatewayError,
    ProviderRequestError,
    ProviderUnavailableError,
    RateLimitedError,
    TransportError,
)
from specpipe.utils.parsing import extract_retry_hint, parse_retry_after

AUTH_STATUSES = {401, 403}
RATE_LIMIT_STATUSES = {429}
# Anthropic reports an overloaded API as 529
OVERLOAD_STATUSES = {"anthropic": {529}, "google": set()}

_RATE_LIMIT_PHRASES = ("rate limit", "rate_limit", "too many requests", "overloaded", "resource_exhausted")
_AUTH_PHRASES = ("invalid x-api-key", "api key not valid", "permission_denied", "unauthenticated")


def _status_of(exc: BaseException) -> int | None:
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code
    status = getattr(exc, "status_code", None)
    if isinstance(status, int):
        return status
    code = getattr(exc, "code", None)
    if isinstance(code, int):
        return int(code)
    return None


def _headers_of(exc: BaseException) -> httpx.Headers | None:
    response = getattr(exc, "response", None)
    if isinstance(response, httpx.Response):
        return response.headers
    return None


def _message_of(exc: BaseException) -> str:
    message = getattr(exc, "message", None)
    return message if isinstance(message, str) and message else str(exc)


def _is_transport(exc: BaseException) -> bool:
    return isinstance(
        exc,
        (
            httpx.TransportError,
            anthropic.APIConnectionError,
            ConnectionError,
            TimeoutError,
            asyncio.TimeoutError,
        ),
    )


def _retry_after(exc: BaseException, message: str) -> float | None:
    headers = _headers_of(exc)
    if headers is not None:
        hinted = parse_retry_after(headers.get("retry-after"))
        if hinted is not None:
            return hinted
    return extract_retry_hint(message)


def classify_error(exc: BaseException, provider: str) -> ModelGatewayError:
    """Map a raw provider exception onto the gateway error taxonomy."""
    if isinstance(exc, ModelGatewayError):
        return exc

    status = _status_of(exc)
    message = _message_of(exc)
    lowered = message.lower()
    label = f"{provider} API error"

    if status in AUTH_STATUSES or (status is None and any(p in lowered for p in _AUTH_PHRASES)):
        return AuthRejectedError(f"{label}: {status or 'auth'} - {message}", provider, status)

    rate_limited = (
        status in RATE_LIMIT_STATUSES
        or status in OVERLOAD_STATUSES.get(provider, set())
        or any(p in lowered for p in _RATE_LIMIT_PHRASES)
    )
    if rate_limited:
        return RateLimitedError(
            f"{provider} rate limit: {message}",
            provider,
            status,
            retry_after=_retry_after(exc, message),
        )

    if status is not None and status >= 500:
        return ProviderUnavailableError(f"{label}: {status} - {message}", provider, status)

    if _is_transport(exc):
        return TransportError(f"{provider} transport error: {message}", provider)

    return ProviderRequestError(f"{label}: {status if status is not None else type(exc).__name__} - {message}",
                                provider, status)
