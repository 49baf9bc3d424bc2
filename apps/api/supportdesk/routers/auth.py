"""Session bootstrap for existing profiles.

Real sign-in lives with the identity provider; this endpoint only mints the
session cookie the rest of the API (and the websocket) reads.
"""

from fastapi import APIRouter, Depends, Request, Response
from sqlalchemy.orm import Session

from supportdesk.core.config import settings
from supportdesk.core.deps import COOKIE_NAME, get_current_session, get_db
from supportdesk.core.errors import AuthError
from supportdesk.core.rate_limit import limiter
from supportdesk.core.security import create_session_token
from supportdesk.schemas.auth import SessionCreateRequest, SessionResponse, UserSession
from supportdesk.services import profile_service

router = APIRouter()


@router.post("/session", response_model=SessionResponse)
@limiter.limit("10/minute")
def create_session(
    request: Request,
    body: SessionCreateRequest,
    response: Response,
    db: Session = Depends(get_db),
) -> SessionResponse:
    profile = profile_service.get_by_email(db, email=body.email)
    if not profile:
        raise AuthError("Unknown profile")

    token = create_session_token(profile.id, profile.role.value)
    response.set_cookie(
        key=COOKIE_NAME,
        value=token,
        max_age=settings.JWT_EXPIRES_HOURS * 3600,
        httponly=True,
        samesite="lax",
        secure=settings.cookie_secure,
        path="/",
    )
    return SessionResponse(user_id=profile.id, role=profile.role, token=token)


@router.get("/me", response_model=UserSession)
def me(session: UserSession = Depends(get_current_session)) -> UserSession:
    return session


@router.post("/logout", status_code=204)
def logout(response: Response) -> Response:
    response.delete_cookie(COOKIE_NAME, path="/")
    response.status_code = 204
    return response
