"""Webhook authentication."""

from __future__ import annotations

import hmac
import logging

logger = logging.getLogger(__name__)


def validate_authorization(authorization: str, expected_token: str) -> bool:
    """Compare the raw ``Authorization`` header with the stored token.

    The scheduler sends the token verbatim (no ``Bearer`` prefix), so the
    comparison is byte-for-byte and constant-time.
    """
    if not expected_token:
        logger.warning("Auth failed: no token configured")
        return False
    valid = hmac.compare_digest(
        authorization.encode("utf-8", "surrogateescape"),
        expected_token.encode("utf-8", "surrogateescape"),
    )
    if not valid:
        logger.warning("Auth failed: invalid token")
    return valid
