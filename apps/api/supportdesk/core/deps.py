"""FastAPI dependencies for authentication, authorization, and database access."""

from typing import Generator
from uuid import UUID

from fastapi import Depends, Request
from sqlalchemy.orm import Session

from supportdesk.core.errors import AuthError
from supportdesk.core.security import decode_session_token
from supportdesk.db.session import SessionLocal


# Cookie and header names
COOKIE_NAME = "supportdesk_session"
SERVICE_SECRET_HEADER = "X-Service-Secret"


def get_db() -> Generator[Session, None, None]:
    """
    Database session dependency.

    Yields a database session and ensures it's closed after the request.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def session_from_token(db: Session, token: str | None):
    """
    Resolve a session token to a UserSession.

    Shared by HTTP dependencies and the websocket router.

    Raises:
        AuthError: token missing, invalid, or profile gone
    """
    # Import here to avoid circular imports
    from supportdesk.db.enums import Role
    from supportdesk.db.models import Profile
    from supportdesk.schemas.auth import UserSession

    if not token:
        raise AuthError("Not authenticated")

    try:
        payload = decode_session_token(token)
        profile_id = UUID(payload["sub"])
    except Exception:
        raise AuthError("Invalid session")

    profile = db.get(Profile, profile_id)
    if not profile:
        raise AuthError("User not found")

    return UserSession(user_id=profile.id, role=Role(profile.role), email=profile.email)


def get_current_session(request: Request, db: Session = Depends(get_db)):
    """
    Session context for the request (cookie or Bearer token).

    Raises:
        AuthError: Not authenticated (401)
    """
    token = request.cookies.get(COOKIE_NAME)
    if not token:
        header = request.headers.get("Authorization", "")
        if header.lower().startswith("bearer "):
            token = header[7:].strip()
    return session_from_token(db, token)


def require_admin_session(session=Depends(get_current_session)):
    """Dependency for agent-only endpoints (403 for customers)."""
    from supportdesk.services.ticket_service import require_admin

    return require_admin(session)
