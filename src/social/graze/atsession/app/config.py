"""
Configuration Module for the AT Protocol session runtime

This module defines the configuration for identity resolution and session management,
using Pydantic settings for validation. Values are loaded from environment variables
with defaults suitable for talking to the public AT Protocol network.

Key configuration areas include:
- Identity resolution (PLC directory, timeouts)
- Token renewal policy (threshold ratio, retry backoff)
- Monitoring and error reporting
"""

import logging
from typing import Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings


logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """
    Runtime settings for identity resolution and session management.

    Environment variables are automatically mapped to settings fields, for example
    ``PLC_HOSTNAME`` or ``BACKGROUND_REFRESH=false``.
    """

    # Environment and debugging settings
    debug: bool = False
    """
    Enable debug mode for verbose logging.
    Set with DEBUG=true environment variable.
    """

    plc_hostname: str = "plc.directory"
    """
    Hostname for the PLC directory service for DID resolution.
    Set with PLC_HOSTNAME environment variable.
    """

    # Monitoring and error reporting
    sentry_dsn: Optional[str] = None
    """
    Sentry DSN for error reporting. Optional, no error reporting if not set.
    Set with SENTRY_DSN environment variable.
    """

    # Network settings
    resolution_timeout: float = 10.0
    """
    Upper bound in seconds for each handle, DID and document lookup.
    Set with RESOLUTION_TIMEOUT environment variable.
    """

    request_timeout: float = 30.0
    """
    Upper bound in seconds for each XRPC call to the PDS.
    Set with REQUEST_TIMEOUT environment variable.
    """

    # Token renewal settings
    background_refresh: bool = True
    """
    Renew the access token proactively from a background task. When disabled,
    tokens are renewed lazily when a credential is requested.
    Set with BACKGROUND_REFRESH environment variable.
    """

    token_refresh_before_expiry_ratio: float = 0.8
    """
    Ratio of token lifetime to wait before refreshing.
    For example, 0.8 means tokens are refreshed after 80% of their lifetime.
    Set with TOKEN_REFRESH_BEFORE_EXPIRY_RATIO environment variable.
    Default: 0.8
    """

    access_token_expiry: int = 720  # 12 minutes
    """
    Assumed lifetime in seconds of an access token that carries no exp claim.
    Set with ACCESS_TOKEN_EXPIRY environment variable.
    Default: 720 (12 minutes)
    """

    refresh_token_expiry: int = 7776000  # 90 days
    """
    Assumed lifetime in seconds of a refresh token that carries no exp claim.
    Set with REFRESH_TOKEN_EXPIRY environment variable.
    Default: 7776000 (90 days)
    """

    refresh_max_retries: int = 3
    """
    Number of times the retry delay doubles after consecutive transient refresh
    failures in the background task.
    Set with REFRESH_MAX_RETRIES environment variable.
    Default: 3
    """

    refresh_retry_base_delay: int = 30
    """
    Base delay in seconds between background refresh attempts (exponential backoff).
    Actual delay = base_delay * (2 ^ min(retry_attempt - 1, max_retries))
    Also the least time between two successful background refreshes.
    Set with REFRESH_RETRY_BASE_DELAY environment variable.
    Default: 30
    """

    @field_validator("token_refresh_before_expiry_ratio")
    @classmethod
    def check_refresh_ratio(cls, v: float) -> float:
        """
        Validate the token_refresh_before_expiry_ratio setting.

        Raises:
            ValueError: If the ratio is not strictly between 0 and 1
        """
        if not 0 < v < 1:
            raise ValueError(
                "token_refresh_before_expiry_ratio must be between 0 and 1"
            )
        return v

    @field_validator("resolution_timeout", "request_timeout")
    @classmethod
    def check_timeout(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("timeouts must be positive")
        return v

    @field_validator("refresh_retry_base_delay")
    @classmethod
    def check_retry_base_delay(cls, v: int) -> int:
        if v < 1:
            raise ValueError("refresh_retry_base_delay must be at least 1 second")
        return v
