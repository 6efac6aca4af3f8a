"""SQLAlchemy ORM models."""

from hostelpal.db.models.notifications import Notification, NotificationDelivery
from hostelpal.db.models.tickets import Ticket, TicketComment
from hostelpal.db.models.users import User

__all__ = [
    "Notification",
    "NotificationDelivery",
    "Ticket",
    "TicketComment",
    "User",
]
