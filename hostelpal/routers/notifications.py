"""
Notifications Router - /notifications endpoints.

Provides notification listing, unread counts and read status.
"""

from datetime import datetime
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from sqlalchemy.orm import Session

from hostelpal.core.deps import get_current_user, get_db
from hostelpal.db.models import User
from hostelpal.services import notification_service


router = APIRouter(prefix="/notifications", tags=["notifications"])


# =============================================================================
# Schemas
# =============================================================================


class NotificationRead(BaseModel):
    """Notification response."""
    id: UUID
    ticket_id: UUID | None
    type: str
    priority: str
    title: str
    message: str
    is_read: bool
    read_at: datetime | None
    sent_via: list[str]
    created_at: datetime

    model_config = {"from_attributes": True}


class NotificationListResponse(BaseModel):
    """Paginated notification list."""
    notifications: list[NotificationRead]
    total_pages: int
    current_page: int
    total: int
    unread_count: int


class UnreadCountResponse(BaseModel):
    """Unread count only (for polling)."""
    count: int


class MarkAllReadResponse(BaseModel):
    message: str
    updated: int


# =============================================================================
# Endpoints
# =============================================================================


@router.get("", response_model=NotificationListResponse)
def list_notifications(
    unread_only: bool = False,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Get the caller's notifications, newest first."""
    items, total, total_pages = notification_service.list_notifications(
        db, user, unread_only=unread_only, page=page, limit=limit
    )
    return NotificationListResponse(
        notifications=[NotificationRead.model_validate(n) for n in items],
        total_pages=total_pages,
        current_page=page,
        total=total,
        unread_count=notification_service.get_unread_count(db, user),
    )


@router.get("/count", response_model=UnreadCountResponse)
def get_unread_count(
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return UnreadCountResponse(count=notification_service.get_unread_count(db, user))


@router.patch("/{notification_id}/read", response_model=NotificationRead)
def mark_read(
    notification_id: UUID,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Mark a notification as read. Only the recipient may do this."""
    notification = notification_service.mark_read(db, notification_id, user)
    return NotificationRead.model_validate(notification)


@router.post("/read-all", response_model=MarkAllReadResponse)
def mark_all_read(
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    count = notification_service.mark_all_read(db, user)
    return MarkAllReadResponse(message="All notifications marked as read", updated=count)
