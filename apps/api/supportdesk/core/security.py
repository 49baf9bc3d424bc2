"""Security utilities for JWT session tokens and service-to-service secrets."""

import hmac
from datetime import datetime, timedelta, timezone
from uuid import UUID

import jwt

from supportdesk.core.config import settings


# =============================================================================
# Session Token (JWT in cookie or websocket query param)
# =============================================================================

def create_session_token(user_id: UUID, role: str) -> str:
    """
    Create signed session JWT.

    Always signs with current secret (JWT_SECRET).
    """
    payload = {
        "sub": str(user_id),
        "role": role,
        "iat": datetime.now(timezone.utc),
        "exp": datetime.now(timezone.utc) + timedelta(hours=settings.JWT_EXPIRES_HOURS),
    }
    return jwt.encode(payload, settings.JWT_SECRET, algorithm="HS256")


def decode_session_token(token: str) -> dict:
    """
    Decode and verify session JWT.

    Tries current secret first, then previous (for rotation support).

    Raises:
        jwt.InvalidTokenError: If token invalid with all secrets
    """
    last_error = None
    for secret in settings.jwt_secrets:
        try:
            return jwt.decode(token, secret, algorithms=["HS256"])
        except jwt.InvalidTokenError as e:
            last_error = e
            continue
    raise last_error  # type: ignore


# =============================================================================
# Service secret (classification service)
# =============================================================================

def verify_service_secret(provided: str | None) -> bool:
    """Constant-time check of the X-Service-Secret header. Open when unset."""
    expected = settings.AI_SERVICE_SECRET
    if not expected:
        return True
    if not provided:
        return False
    return hmac.compare_digest(provided.encode(), expected.encode())
