"""Dashboard router - aggregate ticket stats for agents."""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from supportdesk.core.deps import get_db, require_admin_session
from supportdesk.schemas.auth import UserSession
from supportdesk.schemas.ticketing import DashboardStats
from supportdesk.services import dashboard_service

router = APIRouter(prefix="/dashboard", tags=["Dashboard"])


@router.get("/stats", response_model=DashboardStats)
def get_stats(
    db: Session = Depends(get_db),
    session: UserSession = Depends(require_admin_session),
) -> DashboardStats:
    return dashboard_service.get_dashboard_stats(db)
