"""
Uniform outcome type for every network-backed operation.

``HttpResult`` is tri-state: success with a payload, failure with a status and an
optional error detail, or a 2xx "no content" success. Results are built with the
factory functions at the bottom of this module so the error shape is the same
everywhere in the client.
"""

from dataclasses import dataclass
from http import HTTPStatus
from typing import Callable, Generic, Optional, TypeVar

from pydantic import BaseModel

from social.graze.atsession.atproto.errors import (
    AUTHENTICATION_ERROR_CODES,
    NETWORK_ERROR_CODES,
    RESOLUTION_ERROR_CODES,
    SESSION_EXPIRED_ERROR_CODES,
    AtProtoException,
    AuthenticationError,
    ErrorCode,
    FormatError,
    HttpResultError,
    ResolutionError,
    SessionExpiredError,
    TransientNetworkError,
)

T = TypeVar("T")
U = TypeVar("U")


class AtErrorDetail(BaseModel):
    """The ``{"error": ..., "message": ...}`` body XRPC servers return on failure."""

    error: Optional[str] = None
    message: Optional[str] = None


@dataclass(frozen=True)
class HttpResult(Generic[T]):
    """
    Outcome of a network-backed operation.

    Attributes:
        status: HTTP status of the response, or None when no response was received
        result: The decoded payload, if any
        error_detail: Structured error returned by the server or synthesized by the client
    """

    status: Optional[int]
    result: Optional[T] = None
    error_detail: Optional[AtErrorDetail] = None

    @property
    def status_succeeded(self) -> bool:
        return self.status is not None and 200 <= self.status < 300

    @property
    def failed(self) -> bool:
        """True unless the status is success-class and no error is attached."""
        return not self.status_succeeded or self.error_detail is not None

    @property
    def succeeded(self) -> bool:
        """
        True iff the status is success-class, a payload is present and no error is
        attached. Never true together with ``failed``.
        """
        return not self.failed and self.result is not None

    @property
    def error(self) -> Optional[str]:
        if self.error_detail is None:
            return None
        return self.error_detail.error

    @property
    def is_transient(self) -> bool:
        if self.error in NETWORK_ERROR_CODES:
            return True
        return self.status is not None and self.status >= 500

    def map(self, func: Callable[[T], U]) -> "HttpResult[U]":
        """Transform the payload of a successful result, passing failures through."""
        if not self.succeeded:
            return self.cast()
        return HttpResult(status=self.status, result=func(self.result))  # type: ignore[arg-type]

    def cast(self) -> "HttpResult[U]":
        """Re-type a failed or empty result without touching its payload."""
        return HttpResult(status=self.status, result=None, error_detail=self.error_detail)

    def ensure_success(self) -> Optional[T]:
        """
        Return the payload, raising if the status is not success-class or the
        result carries an error.

        A "no content" success returns None rather than raising.

        Raises:
            AtProtoException: The subclass matching the error code or status
        """
        if not self.failed:
            return self.result
        raise exception_for(self)


def exception_for(result: HttpResult) -> AtProtoException:
    """Map a failed result onto the error taxonomy."""
    message = _describe(result)
    error = result.error

    if error == ErrorCode.INVALID_IDENTIFIER:
        return FormatError(message, result=result)
    if error in RESOLUTION_ERROR_CODES:
        return ResolutionError(message, result)
    if error in SESSION_EXPIRED_ERROR_CODES:
        return SessionExpiredError(message, result)
    if error in AUTHENTICATION_ERROR_CODES or result.status == HTTPStatus.UNAUTHORIZED:
        return AuthenticationError(message, result)
    if result.is_transient:
        return TransientNetworkError(message, result)
    return HttpResultError(message, result)


def _describe(result: HttpResult) -> str:
    status = "no response" if result.status is None else str(result.status)
    if result.error_detail is None:
        return f"error-result-1000 request failed ({status})"
    return "error-result-1001 request failed ({status}): {error} {message}".format(
        status=status,
        error=result.error_detail.error or "",
        message=result.error_detail.message or "",
    ).rstrip()


def success(result: T, status: int = HTTPStatus.OK) -> HttpResult[T]:
    return HttpResult(status=int(status), result=result)


def no_content(status: int = HTTPStatus.NO_CONTENT) -> HttpResult:
    return HttpResult(status=int(status))


def failure(
    status: Optional[int],
    error: Optional[str] = None,
    message: Optional[str] = None,
) -> HttpResult:
    detail = None
    if error is not None or message is not None:
        detail = AtErrorDetail(error=error, message=message)
    return HttpResult(
        status=None if status is None else int(status), error_detail=detail
    )


def network_failure(error: str, message: Optional[str] = None) -> HttpResult:
    """A failure where no HTTP response was received at all."""
    return failure(None, error, message)
