"""
Read-only view of access tokens.

Claims are decoded without verifying the signature. The backend is the
authorization boundary; these claims only drive expiry checks and the
user id fallback.
"""

import logging
import time
from typing import Optional

import jwt
from pydantic import ValidationError as PydanticValidationError

from .models import TokenClaims

logger = logging.getLogger(__name__)


def decode_claims(token: Optional[str]) -> Optional[TokenClaims]:
    """Return the token's claims, or None when the token is missing or malformed."""
    if not token:
        return None
    try:
        payload = jwt.decode(token, options={"verify_signature": False})
    except jwt.PyJWTError as e:
        logger.warning("Could not decode access token claims: %s", e)
        return None
    try:
        return TokenClaims.model_validate(payload)
    except PydanticValidationError as e:
        logger.warning("Access token claims have unexpected shape: %s", e)
        return None


def is_token_expired(claims: Optional[TokenClaims], now: Optional[float] = None) -> bool:
    if claims is None:
        return True
    return claims.is_expired(time.time() if now is None else now)
