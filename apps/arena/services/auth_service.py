"""
Verification of identity provider tokens.

Users sign in with the external identity provider, which issues signed JWTs.
The API only verifies them and reads the user id; it never mints tokens
outside of tests and tooling.
"""

import os
import logging
from datetime import timedelta
from typing import Dict, Optional
from jose import JWTError, jwt
from dotenv import load_dotenv

from arena.utils.datetime_utils import utcnow

load_dotenv()

logger = logging.getLogger(__name__)

JWT_SECRET_KEY = os.getenv("IDENTITY_JWT_SECRET", "")
JWT_ALGORITHM = os.getenv("IDENTITY_JWT_ALGORITHM", "HS256")


def verify_token(token: str) -> Optional[Dict]:
    """
    Verify a bearer token and return its claims.

    Args:
        token: Encoded JWT

    Returns:
        Claims dict with ``user_id`` set, or None if the token is invalid
    """
    if not JWT_SECRET_KEY:
        logger.error("IDENTITY_JWT_SECRET is not set; rejecting all tokens")
        return None
    try:
        payload = jwt.decode(token, JWT_SECRET_KEY, algorithms=[JWT_ALGORITHM])
    except JWTError as e:
        logger.info(f"Rejected token: {e}")
        return None

    user_id = payload.get("user_id") or payload.get("sub")
    if not user_id:
        return None
    payload["user_id"] = str(user_id)
    return payload


def create_token(user_id: str, expires_minutes: int = 60, **claims) -> str:
    """Sign a token the way the identity provider does (tests and local tooling)."""
    payload = {"sub": user_id, "exp": utcnow() + timedelta(minutes=expires_minutes), **claims}
    return jwt.encode(payload, JWT_SECRET_KEY, algorithm=JWT_ALGORITHM)
