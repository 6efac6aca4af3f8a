"""Notification-related enums."""

from enum import Enum


class NotificationType(str, Enum):
    """Types of in-app notifications."""

    TICKET_CREATED = "ticket_created"
    TICKET_UPDATED = "ticket_updated"
    TICKET_ASSIGNED = "ticket_assigned"
    TICKET_RESOLVED = "ticket_resolved"
    ESCALATION = "escalation"
    SYSTEM = "system"


class DeliveryChannel(str, Enum):
    """Out-of-band delivery channels."""

    PUSH = "push"
    SMS = "sms"
    EMAIL = "email"


class DeliveryStatus(str, Enum):
    """Outcome of a single channel attempt."""

    SENT = "sent"
    FAILED = "failed"
