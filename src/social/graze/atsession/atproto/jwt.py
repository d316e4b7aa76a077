"""
JWT helpers for AT Protocol session tokens.

The PDS issues access and refresh credentials as JWTs. The client is not the
audience of those tokens and cannot verify their signatures, but it reads the
``iat`` and ``exp`` claims to schedule renewal before the server starts rejecting
them.
"""

from datetime import datetime, timedelta, timezone
import logging
from typing import Any, Dict, Optional, Tuple

from jwcrypto.common import JWException, base64url_decode, json_decode

logger = logging.getLogger(__name__)


def decode_token_claims(token: str) -> Optional[Dict[str, Any]]:
    """Decode the claims segment of a compact JWS without verifying it.

    Args:
        token: Serialized JWT in compact form

    Returns:
        The claims dictionary, or None if the token is not a decodable JWT
    """
    parts = token.split(".")
    if len(parts) != 3:
        return None
    try:
        claims = json_decode(base64url_decode(parts[1]))
    except (JWException, ValueError, UnicodeDecodeError):
        return None
    if not isinstance(claims, dict):
        return None
    return claims


def _claim_instant(claims: Dict[str, Any], name: str) -> Optional[datetime]:
    value = claims.get(name, None)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    try:
        return datetime.fromtimestamp(value, timezone.utc)
    except (OverflowError, OSError, ValueError):
        return None


def token_lifetime(
    token: str, now: datetime, fallback_expiry: int
) -> Tuple[datetime, datetime]:
    """Determine when a token was issued and when it expires.

    Tokens without usable claims are assumed to have been issued ``now`` and to
    live for ``fallback_expiry`` seconds.

    Args:
        token: Serialized JWT
        now: Current time, used for missing claims
        fallback_expiry: Lifetime in seconds to assume when ``exp`` is missing

    Returns:
        Tuple of (issued_at, expires_at)
    """
    claims = decode_token_claims(token) or {}

    issued_at = _claim_instant(claims, "iat") or now
    expires_at = _claim_instant(claims, "exp")
    if expires_at is None:
        logger.debug("token has no exp claim, assuming %d seconds", fallback_expiry)
        expires_at = issued_at + timedelta(0, fallback_expiry)

    return issued_at, expires_at
