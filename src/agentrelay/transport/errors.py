"""Normalized errors for the transport layer.

This module hides the many shapes a failure can take on the wire
(error envelopes, bare HTML error pages, dropped connections, timeouts)
behind a single exception type and a tagged request outcome.

Every response and every transport exception is converted here, exactly
once, so code above the transport never re-inspects raw payloads.
"""

import json
from dataclasses import dataclass
from enum import Enum
from typing import Any, Generic, TypeVar

import httpx
from pydantic import ValidationError

from .models import ErrorEnvelope

T = TypeVar("T")


class ErrorCode(str, Enum):
    """Error codes produced by the client itself.

    Server-supplied codes are propagated verbatim and are not members
    of this enum.
    """

    NETWORK_ERROR = "NETWORK_ERROR"          # No response was received
    TIMEOUT_ERROR = "TIMEOUT_ERROR"          # Request or send timed out
    RESPONSE_PARSE_ERROR = "RESPONSE_PARSE_ERROR"  # Malformed success body
    STREAM_ERROR = "STREAM_ERROR"            # Error frame pushed over SSE
    UNKNOWN_ERROR = "UNKNOWN_ERROR"          # Unparseable error body


class ProxyError(Exception):
    """The single error type raised across the transport boundary.

    Attributes:
        status: HTTP status code, or 0 when no response was received
        code: Client error code or the server's own code
        message: Human-readable description
        details: Optional structured details from the server
    """

    def __init__(
        self,
        status: int,
        code: str,
        message: str,
        details: dict[str, Any] | None = None
    ):
        super().__init__(message)
        self.status = status
        self.code = code.value if isinstance(code, ErrorCode) else code
        self.message = message
        self.details = details

    def to_dict(self) -> dict[str, Any]:
        """Serialize the error for logging or display."""
        return {
            "status": self.status,
            "code": self.code,
            "message": self.message,
            "details": self.details,
        }

    def __repr__(self) -> str:
        return f"ProxyError(status={self.status}, code={self.code!r}, message={self.message!r})"


@dataclass(frozen=True)
class Ok(Generic[T]):
    """Successful request outcome carrying the decoded payload."""

    value: T


@dataclass(frozen=True)
class Err:
    """Failed request outcome carrying the normalized error."""

    error: ProxyError


RequestOutcome = Ok[Any] | Err

# Exceptions raised by httpx or the socket layer before a usable response exists.
# InvalidURL and StreamError do not derive from httpx.HTTPError.
TRANSPORT_EXCEPTIONS: tuple[type[Exception], ...] = (
    httpx.HTTPError,
    httpx.InvalidURL,
    httpx.StreamError,
    OSError,
)


def _error_from_body(response: httpx.Response) -> ProxyError:
    """Build a ProxyError from a non-2xx response."""
    try:
        body = response.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        return ProxyError(
            response.status_code,
            ErrorCode.UNKNOWN_ERROR,
            f"HTTP {response.status_code}: {response.reason_phrase}",
        )

    # JSON without an error envelope carries no usable reason
    try:
        envelope = ErrorEnvelope.model_validate(body).error
    except ValidationError:
        return ProxyError(response.status_code, ErrorCode.UNKNOWN_ERROR, f"HTTP {response.status_code}")

    return ProxyError(
        response.status_code,
        str(envelope.code or ErrorCode.UNKNOWN_ERROR.value),
        str(envelope.message or f"HTTP {response.status_code}"),
        envelope.details if isinstance(envelope.details, dict) else None,
    )


def normalize_response(response: httpx.Response) -> RequestOutcome:
    """Convert an HTTP response into a request outcome.

    Args:
        response: A fully read httpx response

    Returns:
        Ok with the decoded JSON body (None for an empty body), or Err
        with the normalized error
    """
    if not response.is_success:
        return Err(_error_from_body(response))

    if not response.content:
        return Ok(None)

    try:
        return Ok(response.json())
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        return Err(ProxyError(
            response.status_code,
            ErrorCode.RESPONSE_PARSE_ERROR,
            f"Failed to parse response body: {e}",
        ))


def normalize_exception(exc: Exception) -> Err:
    """Convert a transport exception into a failed outcome.

    Args:
        exc: Exception raised while sending a request

    Returns:
        Err with TIMEOUT_ERROR for timeouts and NETWORK_ERROR otherwise
    """
    if isinstance(exc, ProxyError):
        return Err(exc)
    if isinstance(exc, httpx.TimeoutException):
        return Err(ProxyError(0, ErrorCode.TIMEOUT_ERROR, str(exc) or "Request timeout"))
    return Err(ProxyError(0, ErrorCode.NETWORK_ERROR, str(exc) or "Unknown network error"))


def unwrap(outcome: RequestOutcome) -> Any:
    """Return the payload of an Ok outcome or raise the Err's error."""
    if isinstance(outcome, Err):
        raise outcome.error
    return outcome.value
