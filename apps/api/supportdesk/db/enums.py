"""Enum definitions for ticket, message and profile values."""

from enum import Enum


class _ValueEnum(str, Enum):
    @classmethod
    def has_value(cls, value: str) -> bool:
        """Check if value is a valid member value."""
        return value in cls._value2member_map_


class Role(_ValueEnum):
    """Profile roles. Admins are support agents."""

    CUSTOMER = "customer"
    ADMIN = "admin"


class TicketStatus(_ValueEnum):
    """Ticket lifecycle status."""

    OPEN = "open"
    RESOLVED = "resolved"
    CLOSED = "closed"


class TicketPriority(_ValueEnum):
    """Ticket priority level."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class TicketSentiment(_ValueEnum):
    """Customer sentiment assigned by triage."""

    POSITIVE = "positive"
    NEUTRAL = "neutral"
    NEGATIVE = "negative"


DEFAULT_TICKET_STATUS = TicketStatus.OPEN
DEFAULT_TICKET_PRIORITY = TicketPriority.MEDIUM
