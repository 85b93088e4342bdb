# gamedeals/models/errors.py

"""Typed failure taxonomy shared by the client, coordinator and UI."""

from enum import Enum


class ErrorKind(Enum):
    """User-facing category of a failed deals query."""

    MALFORMED_RESPONSE = "malformed_response"
    UNREACHABLE = "unreachable"
    RATE_LIMITED = "rate_limited"
    API_ERROR = "api_error"

    @property
    def retriable(self) -> bool:
        """Whether re-issuing the same query can reasonably succeed."""
        return self is not ErrorKind.MALFORMED_RESPONSE

    @property
    def label(self) -> str:
        """Short human label used by the status line."""
        return _LABELS[self]


_LABELS: dict[ErrorKind, str] = {
    ErrorKind.MALFORMED_RESPONSE: "Unexpected response from the deals service",
    ErrorKind.UNREACHABLE: "Deals service unreachable",
    ErrorKind.RATE_LIMITED: "Slow down: request budget exhausted",
    ErrorKind.API_ERROR: "Deals service rejected the request",
}


class DealsError(Exception):
    """Base class for every failure a deals query can resolve to."""

    kind: ErrorKind = ErrorKind.API_ERROR

    @property
    def retriable(self) -> bool:
        return self.kind.retriable


class MalformedResponse(DealsError):
    """Payload is not valid JSON or violates the domain invariants."""

    kind = ErrorKind.MALFORMED_RESPONSE


class Unreachable(DealsError):
    """Transport failure: refused connection, DNS, TLS or timeout."""

    kind = ErrorKind.UNREACHABLE


class RateLimited(DealsError):
    """Local request budget exhausted or upstream answered 429."""

    kind = ErrorKind.RATE_LIMITED

    def __init__(
        self,
        message: str,
        retry_after: float | None = None,
        upstream: bool = False,
    ) -> None:
        super().__init__(message)
        self.retry_after = retry_after
        self.upstream = upstream


class ApiError(DealsError):
    """Upstream rejected the request with a 4xx/5xx status."""

    kind = ErrorKind.API_ERROR

    def __init__(self, status: int, message: str = "") -> None:
        text = f"HTTP {status}: {message}" if message else f"HTTP {status}"
        super().__init__(text)
        self.status = status
        self.message = message
