"""Enum definitions for application constants."""

from hostelpal.db.enums.auth import Role
from hostelpal.db.enums.notifications import DeliveryChannel, DeliveryStatus, NotificationType
from hostelpal.db.enums.permissions import (
    ROLES_CAN_CREATE_TICKETS,
    ROLES_CAN_TRIAGE,
    ROLES_CAN_VIEW_REPORTS,
)
from hostelpal.db.enums.tickets import (
    ClassificationSource,
    TicketCategory,
    TicketPriority,
    TicketStatus,
)

__all__ = [
    "ClassificationSource",
    "DeliveryChannel",
    "DeliveryStatus",
    "NotificationType",
    "Role",
    "ROLES_CAN_CREATE_TICKETS",
    "ROLES_CAN_TRIAGE",
    "ROLES_CAN_VIEW_REPORTS",
    "TicketCategory",
    "TicketPriority",
    "TicketStatus",
]
