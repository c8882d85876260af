"""
Verification of access tokens issued by the hosted auth service.

Tokens are HS256 JWTs signed with the project's JWT secret; the subject claim
is the auth user id that `user_roles`, `profiles` and `policy_documents` key on.
"""
import logging
from typing import Any, Dict, Optional

import jwt
from pydantic import BaseModel

from app.core.config import settings

logger = logging.getLogger(__name__)

ALGORITHM = "HS256"
AUDIENCE = "authenticated"


class TokenClaims(BaseModel):
    sub: str
    email: Optional[str] = None
    role: str = "authenticated"
    exp: int
    session_id: Optional[str] = None
    user_metadata: Optional[Dict[str, Any]] = None


class InvalidToken(Exception):
    pass


def decode_access_token(token: str, secret: Optional[str] = None) -> TokenClaims:
    """Verify signature, audience and expiry and return the token claims."""
    secret = secret if secret is not None else settings.SUPABASE_JWT_SECRET
    if not secret:
        raise InvalidToken("SUPABASE_JWT_SECRET is not configured")
    try:
        payload = jwt.decode(
            token,
            secret,
            algorithms=[ALGORITHM],
            audience=AUDIENCE,
            options={"require": ["sub", "exp"]},
        )
    except jwt.ExpiredSignatureError as e:
        logger.warning(f"Token expired: {e}")
        raise InvalidToken("Token has expired") from e
    except jwt.InvalidTokenError as e:
        logger.warning(f"Invalid token: {e}")
        raise InvalidToken("Invalid authentication token") from e
    return TokenClaims(**payload)
