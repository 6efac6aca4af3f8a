"""Ticket lifecycle enums."""

from enum import Enum


class TicketCategory(str, Enum):
    """Closed set of complaint subject areas."""

    MAINTENANCE = "maintenance"
    CLEANING = "cleaning"
    MEDICAL = "medical"
    WIFI = "wifi"
    ELECTRICITY = "electricity"
    WATER = "water"
    SECURITY = "security"
    OTHER = "other"


class TicketPriority(str, Enum):
    """Ticket urgency level."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class TicketStatus(str, Enum):
    """Ticket lifecycle status."""

    OPEN = "open"
    IN_PROGRESS = "in_progress"
    RESOLVED = "resolved"
    CLOSED = "closed"
    CANCELLED = "cancelled"


class ClassificationSource(str, Enum):
    """Where a ticket's category/priority came from."""

    AI = "ai"
    DEFAULT = "default"  # Classifier fell back to the neutral default
    MANUAL = "manual"  # Human-provided or staff override
