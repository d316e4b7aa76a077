"""AT Protocol identifier syntax.

Grammar checks for DIDs, handles and NSIDs. Checks are pure and run in bounded
time: the overall length limit is enforced before any pattern is matched, so an
adversarially long input is rejected without ever reaching the regex engine.
"""

from dataclasses import dataclass
import re
from typing import List, Optional

from pydantic import BaseModel

from social.graze.atsession.atproto.errors import FormatError, IdentifierKind

DID_MAX_LENGTH = 2048
HANDLE_MAX_LENGTH = 253
LABEL_MAX_LENGTH = 63
NSID_MAX_LENGTH = 253 + 1 + 63

_domain_characters = re.compile(r"^[a-zA-Z0-9.-]*$")
_did_method = re.compile(r"^[a-z]+$")
_did_method_specific_id = re.compile(r"^[a-zA-Z0-9._:%-]*$")
_did_percent_encoding = re.compile(r"%(?![0-9A-Fa-f]{2})")


class ParsedIdentifier(BaseModel):
    """A validated identifier and the grammar it was validated against."""

    kind: IdentifierKind
    value: str


@dataclass(frozen=True)
class Validation:
    """Outcome of ``validate``: exactly one of ``parsed`` and ``error`` is set."""

    parsed: Optional[ParsedIdentifier] = None
    error: Optional[FormatError] = None

    @property
    def is_valid(self) -> bool:
        return self.error is None


def _require_str(value: object) -> None:
    if not isinstance(value, str):
        raise TypeError(f"identifier must be a str, not {type(value).__name__}")


def _check_labels(
    kind: IdentifierKind, value: str, labels: List[str]
) -> Optional[FormatError]:
    for label in labels:
        if len(label) == 0:
            return FormatError.empty_label(kind, value)
        if len(label) > LABEL_MAX_LENGTH:
            return FormatError.label_too_long(kind, label)
        if label.startswith("-") or label.endswith("-"):
            return FormatError.hyphen_boundary(kind, label)
    return None


def check_nsid(value: str) -> Optional[FormatError]:
    """Return the first NSID rule ``value`` violates, or None if it is valid."""
    _require_str(value)
    kind = IdentifierKind.nsid

    if len(value) == 0:
        return FormatError.empty(kind)
    if len(value) > NSID_MAX_LENGTH:
        return FormatError.too_long(kind, len(value), NSID_MAX_LENGTH)
    if not _domain_characters.match(value):
        return FormatError.invalid_character(kind, value)

    labels = value.split(".")
    if len(labels) < 3:
        return FormatError.too_few_labels(kind, value, 3)

    error = _check_labels(kind, value, labels)
    if error is not None:
        return error

    if labels[0][0].isdigit():
        return FormatError.leading_digit(kind, labels[0])

    name = labels[-1]
    if not (name.isascii() and name.isalpha()):
        return FormatError.non_letter_name(kind, name)

    return None


def check_handle(value: str) -> Optional[FormatError]:
    """Return the first handle rule ``value`` violates, or None if it is valid."""
    _require_str(value)
    kind = IdentifierKind.handle

    if len(value) == 0:
        return FormatError.empty(kind)
    if len(value) > HANDLE_MAX_LENGTH:
        return FormatError.too_long(kind, len(value), HANDLE_MAX_LENGTH)
    if not _domain_characters.match(value):
        return FormatError.invalid_character(kind, value)

    labels = value.split(".")
    if len(labels) < 2:
        return FormatError.too_few_labels(kind, value, 2)

    error = _check_labels(kind, value, labels)
    if error is not None:
        return error

    # The top level domain can't be numeric, otherwise IPv4 addresses would parse.
    if labels[-1][0].isdigit():
        return FormatError.leading_digit(kind, labels[-1])

    return None


def check_did(value: str) -> Optional[FormatError]:
    """Return the first DID rule ``value`` violates, or None if it is valid."""
    _require_str(value)
    kind = IdentifierKind.did

    if len(value) == 0:
        return FormatError.empty(kind)
    if len(value) > DID_MAX_LENGTH:
        return FormatError.too_long(kind, len(value), DID_MAX_LENGTH)
    if not value.startswith("did:"):
        return FormatError.missing_prefix(value)

    parts = value.split(":", 2)
    if len(parts) != 3:
        return FormatError.invalid_method_specific_id(value)

    _, method, method_specific_id = parts
    if not _did_method.match(method):
        return FormatError.invalid_method(method)
    if not _did_method_specific_id.match(method_specific_id):
        return FormatError.invalid_character(kind, value)
    if _did_percent_encoding.search(method_specific_id):
        return FormatError.invalid_character(kind, value)
    if len(method_specific_id) == 0 or method_specific_id[-1] in ":%":
        return FormatError.invalid_method_specific_id(value)

    return None


_checks = {
    IdentifierKind.did: check_did,
    IdentifierKind.handle: check_handle,
    IdentifierKind.nsid: check_nsid,
}


def validate(kind: IdentifierKind, raw: str) -> Validation:
    """Check ``raw`` against the grammar for ``kind`` without raising."""
    error = _checks[kind](raw)
    if error is not None:
        return Validation(error=error)
    value = raw.lower() if kind == IdentifierKind.handle else raw
    return Validation(parsed=ParsedIdentifier(kind=kind, value=value))


class _Identifier:
    kind: IdentifierKind

    __slots__ = ("_value",)

    def __init__(self, value: str) -> None:
        error = _checks[self.kind](value)
        if error is not None:
            raise error
        self._value = value

    @classmethod
    def try_parse(cls, value: str):
        if not isinstance(value, str) or _checks[cls.kind](value) is not None:
            return None
        return cls(value)

    def __str__(self) -> str:
        return self._value

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self._value!r})"

    def __eq__(self, other: object) -> bool:
        if isinstance(other, type(self)):
            return self._value == other._value
        return NotImplemented

    def __hash__(self) -> int:
        return hash((self.kind, self._value))


class Did(_Identifier):
    """A decentralized identifier, e.g. ``did:plc:abc123``."""

    kind = IdentifierKind.did

    __slots__ = ()

    @property
    def method(self) -> str:
        return self._value.split(":", 2)[1]


class Handle(_Identifier):
    """A domain-shaped alias for a DID. Stored lower case."""

    kind = IdentifierKind.handle

    __slots__ = ()

    def __init__(self, value: str) -> None:
        super().__init__(value)
        self._value = value.lower()


class Nsid(_Identifier):
    """
    A namespace identifier, e.g. ``app.bsky.feed.post``.

    ``authority`` is the reversed domain portion and ``name`` the final label:
    ``Nsid("com.example.thing")`` has authority ``example.com`` and name ``thing``.
    """

    kind = IdentifierKind.nsid

    __slots__ = ()

    @property
    def authority(self) -> str:
        return ".".join(reversed(self._value.split(".")[:-1]))

    @property
    def name(self) -> str:
        return self._value.split(".")[-1]
