"""
Error taxonomy for identity resolution and session management.

Expected failures never raise inside the client: they travel back to the caller as
an ``HttpResult`` carrying an error code. The exceptions in this module are what
``HttpResult.ensure_success()`` raises for callers that prefer fail-fast behavior,
plus ``FormatError`` which identifier constructors raise directly.

Every message follows the ``error-<area>-<number> <text>`` convention so that log
lines and Sentry events can be grouped by failure.
"""

from enum import IntEnum
from typing import Any, Optional


class ErrorCode:
    """XRPC-style error codes carried in ``AtErrorDetail.error``."""

    INVALID_IDENTIFIER = "InvalidIdentifier"

    HANDLE_RESOLUTION_FAILED = "HandleResolutionFailed"
    DID_RESOLUTION_FAILED = "DidResolutionFailed"
    DID_DOCUMENT_INVALID = "DidDocumentInvalid"
    NO_SERVICE_ENDPOINT = "NoServiceEndpoint"

    AUTHENTICATION_REQUIRED = "AuthenticationRequired"
    AUTH_FACTOR_TOKEN_REQUIRED = "AuthFactorTokenRequired"

    SESSION_EXPIRED = "SessionExpired"
    EXPIRED_TOKEN = "ExpiredToken"
    INVALID_TOKEN = "InvalidToken"

    NETWORK_ERROR = "NetworkError"
    TIMEOUT = "Timeout"
    INVALID_RESPONSE = "InvalidResponse"
    REFRESH_CANCELLED = "RefreshCancelled"


RESOLUTION_ERROR_CODES = frozenset(
    {
        ErrorCode.HANDLE_RESOLUTION_FAILED,
        ErrorCode.DID_RESOLUTION_FAILED,
        ErrorCode.DID_DOCUMENT_INVALID,
        ErrorCode.NO_SERVICE_ENDPOINT,
    }
)

AUTHENTICATION_ERROR_CODES = frozenset(
    {
        ErrorCode.AUTHENTICATION_REQUIRED,
        ErrorCode.AUTH_FACTOR_TOKEN_REQUIRED,
    }
)

SESSION_EXPIRED_ERROR_CODES = frozenset(
    {
        ErrorCode.SESSION_EXPIRED,
        ErrorCode.EXPIRED_TOKEN,
        ErrorCode.INVALID_TOKEN,
    }
)

NETWORK_ERROR_CODES = frozenset(
    {
        ErrorCode.NETWORK_ERROR,
        ErrorCode.TIMEOUT,
    }
)


class IdentifierKind(IntEnum):
    """The identifier grammars the validator knows about."""

    did = 1
    handle = 2
    nsid = 3


class FormatRule(IntEnum):
    """The individual grammar rules an identifier can violate."""

    empty = 1
    too_long = 2
    invalid_character = 3
    too_few_labels = 4
    empty_label = 5
    label_too_long = 6
    hyphen_boundary = 7
    leading_digit = 8
    non_letter_name = 9
    missing_prefix = 10
    invalid_method = 11
    invalid_method_specific_id = 12


class AtProtoException(Exception):
    """Base class for every error raised by this package."""

    def __init__(self, message: str, result: Optional[Any] = None) -> None:
        super().__init__(message)
        self.result = result


class FormatError(AtProtoException, ValueError):
    """
    An identifier failed its grammar check.

    Always terminal: the input has to be corrected, retrying cannot help. ``rule`` names
    the specific rule that was violated so that failures are diagnosable.
    """

    def __init__(
        self,
        message: str,
        kind: Optional[IdentifierKind] = None,
        rule: Optional[FormatRule] = None,
        result: Optional[Any] = None,
    ) -> None:
        super().__init__(message, result)
        self.kind = kind
        self.rule = rule

    @staticmethod
    def empty(kind: IdentifierKind) -> "FormatError":
        return FormatError(
            f"error-format-1000 {kind.name} may not be empty", kind, FormatRule.empty
        )

    @staticmethod
    def too_long(kind: IdentifierKind, length: int, limit: int) -> "FormatError":
        return FormatError(
            f"error-format-1001 {kind.name} is too long ({length} > {limit})",
            kind,
            FormatRule.too_long,
        )

    @staticmethod
    def invalid_character(kind: IdentifierKind, value: str) -> "FormatError":
        return FormatError(
            f"error-format-1002 {kind.name} contains disallowed characters: {value}",
            kind,
            FormatRule.invalid_character,
        )

    @staticmethod
    def too_few_labels(kind: IdentifierKind, value: str, minimum: int) -> "FormatError":
        return FormatError(
            f"error-format-1003 {kind.name} needs at least {minimum} parts: {value}",
            kind,
            FormatRule.too_few_labels,
        )

    @staticmethod
    def empty_label(kind: IdentifierKind, value: str) -> "FormatError":
        return FormatError(
            f"error-format-1004 {kind.name} parts can not be empty: {value}",
            kind,
            FormatRule.empty_label,
        )

    @staticmethod
    def label_too_long(kind: IdentifierKind, label: str) -> "FormatError":
        return FormatError(
            f"error-format-1005 {kind.name} part too long (max 63 chars): {label}",
            kind,
            FormatRule.label_too_long,
        )

    @staticmethod
    def hyphen_boundary(kind: IdentifierKind, label: str) -> "FormatError":
        return FormatError(
            f"error-format-1006 {kind.name} parts can not start or end with hyphen: {label}",
            kind,
            FormatRule.hyphen_boundary,
        )

    @staticmethod
    def leading_digit(kind: IdentifierKind, label: str) -> "FormatError":
        return FormatError(
            f"error-format-1007 {kind.name} part may not start with a digit: {label}",
            kind,
            FormatRule.leading_digit,
        )

    @staticmethod
    def non_letter_name(kind: IdentifierKind, label: str) -> "FormatError":
        return FormatError(
            f"error-format-1008 {kind.name} name part must be only letters: {label}",
            kind,
            FormatRule.non_letter_name,
        )

    @staticmethod
    def missing_prefix(value: str) -> "FormatError":
        return FormatError(
            f"error-format-1009 did must start with 'did:': {value}",
            IdentifierKind.did,
            FormatRule.missing_prefix,
        )

    @staticmethod
    def invalid_method(method: str) -> "FormatError":
        return FormatError(
            f"error-format-1010 did method must be lowercase letters: {method}",
            IdentifierKind.did,
            FormatRule.invalid_method,
        )

    @staticmethod
    def invalid_method_specific_id(value: str) -> "FormatError":
        return FormatError(
            f"error-format-1011 did method specific identifier is malformed: {value}",
            IdentifierKind.did,
            FormatRule.invalid_method_specific_id,
        )


class ResolutionError(AtProtoException):
    """Handle, DID or document lookup failed. Retryable by the caller after backoff."""


class AuthenticationError(AtProtoException):
    """Bad credentials, no session, or a second factor is required."""


class SessionExpiredError(AtProtoException):
    """The refresh credential was rejected. A new login is required."""


class TransientNetworkError(AtProtoException):
    """Timeout, connection failure or server error. Safe to retry."""


class HttpResultError(AtProtoException):
    """A non-success result that doesn't belong to any other category."""
