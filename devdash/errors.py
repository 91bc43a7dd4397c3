"""
Failure taxonomy for source fetches.

Collectors raise a FetchError subclass; the pipeline turns it into an
``error: <detail>`` source status. ``detail`` is the human-readable part.
"""

from collections.abc import Mapping
from enum import Enum


class ErrorKind(str, Enum):
    RATE_LIMITED = "rate_limited"
    AUTHENTICATION_FAILED = "authentication_failed"
    INVALID_REQUEST = "invalid_request"
    NOT_FOUND = "not_found"
    NETWORK_ERROR = "network_error"
    SERVER_ERROR = "server_error"
    UNKNOWN = "unknown"
    UNSUPPORTED = "unsupported"


class FetchError(Exception):
    kind = ErrorKind.UNKNOWN

    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail


class RateLimited(FetchError):
    kind = ErrorKind.RATE_LIMITED


class AuthenticationFailed(FetchError):
    kind = ErrorKind.AUTHENTICATION_FAILED


class InvalidRequest(FetchError):
    kind = ErrorKind.INVALID_REQUEST


class NotFound(FetchError):
    kind = ErrorKind.NOT_FOUND


class NetworkError(FetchError):
    kind = ErrorKind.NETWORK_ERROR


class ServerError(FetchError):
    kind = ErrorKind.SERVER_ERROR


class UnknownError(FetchError):
    kind = ErrorKind.UNKNOWN


DEFAULT_RATE_LIMIT_HINT = "Try again later."

_RATE_LIMIT_MARKERS = ("rate limit", "rate-limit", "ratelimit", "too many requests")


def _is_rate_limited(status_code: int, body: str, headers: Mapping[str, str] | None) -> bool:
    if status_code == 429:
        return True
    if status_code != 403:
        return False
    if headers is not None and headers.get("x-ratelimit-remaining") == "0":
        return True
    text = body.lower() if isinstance(body, str) else ""
    return any(marker in text for marker in _RATE_LIMIT_MARKERS)


def error_for_response(
    status_code: int,
    body: str = "",
    headers: Mapping[str, str] | None = None,
    rate_limit_hint: str = DEFAULT_RATE_LIMIT_HINT,
) -> FetchError:
    """Map a non-200 HTTP response to the matching FetchError."""
    prefix = f"HTTP {status_code}"

    if _is_rate_limited(status_code, body, headers):
        return RateLimited(f"{prefix} - Rate limit exceeded. {rate_limit_hint}".rstrip())
    if status_code in (401, 403):
        return AuthenticationFailed(f"{prefix} - Authentication required or access denied")
    if status_code in (400, 422):
        return InvalidRequest(f"{prefix} - Invalid request parameters")
    if status_code == 404:
        return NotFound(f"{prefix} - Not found")
    if 500 <= status_code < 600:
        return ServerError(f"{prefix} - Server error")
    return UnknownError(prefix)
