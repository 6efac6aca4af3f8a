"""
Internal endpoints for scheduled/cron operations.

Protected by X-Internal-Secret header.
Call from an external cron.
"""

from fastapi import APIRouter, Depends, Header, HTTPException
from pydantic import BaseModel
from sqlalchemy.orm import Session

from hostelpal.core.config import settings
from hostelpal.core.deps import get_db
from hostelpal.services import ticket_service


router = APIRouter(prefix="/internal/scheduled", tags=["internal"])


def verify_internal_secret(x_internal_secret: str = Header(...)):
    """Verify the internal secret header."""
    expected = settings.INTERNAL_SECRET
    if not expected:
        raise HTTPException(status_code=501, detail="INTERNAL_SECRET not configured")
    if x_internal_secret != expected:
        raise HTTPException(status_code=403, detail="Invalid internal secret")


class EscalationSweepResponse(BaseModel):
    escalated: int


@router.post(
    "/escalations",
    response_model=EscalationSweepResponse,
    dependencies=[Depends(verify_internal_secret)],
)
async def escalate_overdue(db: Session = Depends(get_db)):
    """
    Sweep for overdue open/in-progress tickets.

    Each overdue ticket has its escalation level advanced and staff/admin
    notified, at most once per threshold window.
    """
    escalated = await ticket_service.escalate_overdue_tickets(db)
    return EscalationSweepResponse(escalated=escalated)
