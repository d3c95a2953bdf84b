"""
Access token inspection.

The client never holds the signing key, so tokens are decoded without
signature verification and only the expiry claim is trusted for scheduling
decisions. The backend remains the authority on validity.
"""

import time
from typing import Dict, Optional

import jwt
from loguru import logger


# Treat tokens this close to expiry as already expired
EXPIRY_LEEWAY_SECONDS = 5


def decode_without_verification(token: str) -> Optional[Dict]:
    """
    Decode token without verifying (for inspection only).

    Args:
        token: JWT token string

    Returns:
        Decoded payload dict, or None on error
    """
    try:
        return jwt.decode(token, options={"verify_signature": False})
    except jwt.InvalidTokenError as e:
        logger.debug(f"Failed to decode token: {e}")
        return None


def token_expiry(token: str) -> Optional[float]:
    """Return the exp claim as a UNIX timestamp, or None if absent/unreadable."""
    payload = decode_without_verification(token)
    if not payload:
        return None
    exp = payload.get("exp")
    if isinstance(exp, (int, float)):
        return float(exp)
    return None


def is_token_expired(token: str, now: Optional[float] = None) -> bool:
    """
    Check whether an access token is expired.

    Unreadable tokens and tokens without an exp claim count as expired.
    """
    exp = token_expiry(token)
    if exp is None:
        return True
    current = time.time() if now is None else now
    return exp <= current + EXPIRY_LEEWAY_SECONDS
