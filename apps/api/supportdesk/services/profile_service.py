"""Profile lookups. Profiles are owned by the identity provider; writes here exist for seeding."""

from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from supportdesk.core.errors import NotFoundError, ValidationError
from supportdesk.db.enums import Role
from supportdesk.db.models import Profile


def get_profile(db: Session, *, profile_id: UUID) -> Profile:
    profile = db.get(Profile, profile_id)
    if not profile:
        raise NotFoundError("Profile not found")
    return profile


def get_by_email(db: Session, *, email: str) -> Profile | None:
    normalized = (email or "").strip().lower()
    if not normalized:
        return None
    return db.execute(
        select(Profile).where(func.lower(Profile.email) == normalized)
    ).scalar_one_or_none()


def create_profile(db: Session, *, email: str, role: Role = Role.CUSTOMER) -> Profile:
    """Insert a profile (seed scripts and tests)."""
    normalized = (email or "").strip().lower()
    if not normalized:
        raise ValidationError("email cannot be empty")
    profile = Profile(email=normalized, role=role)
    db.add(profile)
    db.commit()
    db.refresh(profile)
    return profile
