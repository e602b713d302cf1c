import hashlib
import hmac
import logging
from typing import Optional

from jose import jwt, JWTError
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from app.core.config import settings
from app.core.errors import ConfigurationMissing

logger = logging.getLogger(__name__)

# Bearer token extractor (auto_error=False allows optional auth)
security = HTTPBearer(auto_error=False)

AUTH_TOKEN_LENGTH = 32
PASS_AUTH_SCHEMES = ("applepass", "bearer")


# ============================================
# Pass authentication tokens
# ============================================


def _auth_secret(secret: str | None = None) -> bytes:
    secret = secret if secret is not None else settings.pass_auth_secret
    if not secret:
        raise ConfigurationMissing("PASS_AUTH_SECRET is not configured")
    return secret.encode("utf-8")


def generate_auth_token(serial_number: str, secret: str | None = None) -> str:
    """Derive the authentication token embedded in a pass.

    The token is an HMAC of the serial number, so it can be recomputed on
    every request instead of being stored per pass.
    """
    digest = hmac.new(_auth_secret(secret), serial_number.encode("utf-8"), hashlib.sha256)
    return digest.hexdigest()[:AUTH_TOKEN_LENGTH]


def validate_auth_token(token: str | None, serial_number: str, secret: str | None = None) -> bool:
    """Check a presented token against the one derived for this serial number."""
    if not token:
        return False
    expected = generate_auth_token(serial_number, secret)
    return hmac.compare_digest(token.encode("utf-8"), expected.encode("utf-8"))


def verify_auth_token(authorization: str | None) -> str | None:
    """Extract auth token from Authorization header (Apple Wallet passes).

    Accepts ``ApplePass <token>`` and ``Bearer <token>``.
    """
    if not authorization:
        return None
    scheme, _, token = authorization.strip().partition(" ")
    if scheme.lower() not in PASS_AUTH_SCHEMES:
        return None
    token = token.strip()
    return token or None


# ============================================
# Employee access tokens (Supabase JWT)
# ============================================


def verify_jwt(token: str) -> dict:
    """Verify a Supabase access token and return the payload."""
    if not settings.supabase_jwt_secret:
        raise ConfigurationMissing("SUPABASE_JWT_SECRET is not configured")

    try:
        return jwt.decode(
            token,
            settings.supabase_jwt_secret,
            algorithms=["HS256"],
            audience="authenticated",
            options={"verify_aud": True},
        )
    except JWTError as e:
        logger.warning(f"JWT verification failed: {e}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token",
        )


def require_auth(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security)
) -> dict:
    """Require authentication - raises 401 if not authenticated."""
    if not credentials:
        logger.warning("Auth required but no Bearer token provided")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return verify_jwt(credentials.credentials)
