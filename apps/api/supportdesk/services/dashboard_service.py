"""Dashboard service - aggregate counts for the agent dashboard."""

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from supportdesk.db.enums import TicketPriority, TicketStatus
from supportdesk.db.models import Ticket
from supportdesk.schemas.ticketing import DashboardStats, PriorityCounts, StatusCounts


def get_dashboard_stats(db: Session) -> DashboardStats:
    """Ticket totals, per-status and per-priority counts, distinct ticket owners."""
    total = db.execute(select(func.count(Ticket.id))).scalar_one()
    active_users = db.execute(
        select(func.count(func.distinct(Ticket.customer_id)))
    ).scalar_one()

    status_rows = db.execute(
        select(Ticket.status, func.count(Ticket.id)).group_by(Ticket.status)
    ).all()
    priority_rows = db.execute(
        select(Ticket.priority, func.count(Ticket.id)).group_by(Ticket.priority)
    ).all()

    by_status = {TicketStatus(status).value: count for status, count in status_rows}
    by_priority = {TicketPriority(priority).value: count for priority, count in priority_rows}

    return DashboardStats(
        total_tickets=total,
        active_users=active_users,
        status_counts=StatusCounts(**{s.value: by_status.get(s.value, 0) for s in TicketStatus}),
        priority_counts=PriorityCounts(
            **{p.value: by_priority.get(p.value, 0) for p in TicketPriority}
        ),
    )
