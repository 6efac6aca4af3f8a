"""Live-update events facade.

Centralizes websocket pushes so domain services don't depend on the
connection manager directly. Every push is best-effort.
"""

from __future__ import annotations

import logging
from uuid import UUID

from hostelpal.core.websocket import manager
from hostelpal.db.enums import ROLES_CAN_TRIAGE

logger = logging.getLogger(__name__)

TRIAGE_ROLES = [role.value for role in ROLES_CAN_TRIAGE]


async def _guarded(coro, what: str) -> None:
    try:
        await coro
    except Exception:
        logger.warning("Live %s push failed", what, exc_info=True)


async def push_new_ticket(ticket: dict) -> None:
    """Tell connected staff/admin about a new ticket."""
    await _guarded(
        manager.broadcast_to_role(TRIAGE_ROLES, {"type": "new_ticket", "ticket": ticket}),
        "new_ticket",
    )


async def push_ticket_update(student_id: UUID, ticket: dict) -> None:
    """Tell the submitter and connected staff/admin about a ticket change."""
    event = {"type": "ticket_update", "ticket": ticket}
    await _guarded(manager.send_to_user(student_id, event), "ticket_update")
    await _guarded(manager.broadcast_to_role(TRIAGE_ROLES, event), "ticket_update")


async def push_notification(user_id: UUID, notification: dict) -> None:
    """Push a persisted notification to its recipient."""
    await _guarded(
        manager.send_to_user(user_id, {"type": "notification", "notification": notification}),
        "notification",
    )
