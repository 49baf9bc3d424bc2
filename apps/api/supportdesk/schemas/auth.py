"""Authentication-related Pydantic schemas."""

from uuid import UUID

from pydantic import BaseModel

from supportdesk.db.enums import Role


class TokenPayload(BaseModel):
    """Decoded JWT payload structure."""
    sub: UUID  # profile id
    role: str


class UserSession(BaseModel):
    """
    Session context for authenticated requests.

    Returned by the get_current_session dependency.
    """
    user_id: UUID
    role: Role
    email: str | None = None

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN


class SessionCreateRequest(BaseModel):
    """Dev/test session bootstrap for an existing profile."""
    email: str


class SessionResponse(BaseModel):
    user_id: UUID
    role: Role
    token: str
