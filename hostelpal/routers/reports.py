"""Admin report endpoints (aggregate counts)."""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from hostelpal.core.deps import get_db, require_roles
from hostelpal.db.enums import ROLES_CAN_VIEW_REPORTS
from hostelpal.schemas.report import TicketReport, UserReport
from hostelpal.services import report_service

router = APIRouter(
    prefix="/reports",
    tags=["reports"],
    dependencies=[Depends(require_roles(ROLES_CAN_VIEW_REPORTS))],
)


@router.get("/daily", response_model=TicketReport)
def daily_report(db: Session = Depends(get_db)):
    return report_service.ticket_report(db, "daily")


@router.get("/weekly", response_model=TicketReport)
def weekly_report(db: Session = Depends(get_db)):
    return report_service.ticket_report(db, "weekly")


@router.get("/monthly", response_model=TicketReport)
def monthly_report(db: Session = Depends(get_db)):
    return report_service.ticket_report(db, "monthly")


@router.get("/users", response_model=UserReport)
def users_report(db: Session = Depends(get_db)):
    return report_service.user_report(db)
