"""Tickets router - filing, triage, comments and status changes."""

import json
from uuid import UUID

from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, Request, UploadFile
from pydantic import ValidationError
from sqlalchemy.orm import Session

from hostelpal.core.deps import get_current_user, get_db, require_roles
from hostelpal.db.enums import (
    ROLES_CAN_TRIAGE,
    TicketCategory,
    TicketPriority,
    TicketStatus,
)
from hostelpal.db.models import User
from hostelpal.schemas.ticket import (
    ClassificationOverride,
    CommentCreate,
    MessageResponse,
    TicketCreateResponse,
    TicketListResponse,
    TicketLocation,
    TicketRead,
    TicketStatusResponse,
    TicketStatusUpdate,
)
from hostelpal.services import storage_service, ticket_service
from hostelpal.utils.file_upload import content_length_exceeds_limit, get_upload_file_size

router = APIRouter(prefix="/tickets", tags=["tickets"])


def _parse_location(raw: str | None) -> TicketLocation | None:
    if not raw:
        return None
    try:
        return TicketLocation.model_validate(json.loads(raw))
    except (ValueError, ValidationError):
        raise HTTPException(
            status_code=400,
            detail=[{"field": "location", "message": "Location must be a JSON object"}],
        )


async def _collect_uploads(
    request: Request, images: list[UploadFile]
) -> list[storage_service.ImageUpload]:
    """Wrap the spooled uploads without reading them; sizes come from seeking."""
    if content_length_exceeds_limit(
        request.headers.get("content-length"),
        max_size_bytes=storage_service.MAX_IMAGES_PER_TICKET
        * storage_service.MAX_IMAGE_SIZE_BYTES,
    ):
        raise HTTPException(
            status_code=400,
            detail=[{"field": "images", "message": "Upload exceeds the allowed total size"}],
        )

    uploads = []
    for image in images:
        uploads.append(
            storage_service.ImageUpload(
                filename=image.filename or "image",
                content_type=image.content_type or "",
                size=await get_upload_file_size(image),
                file=image.file,
            )
        )
    return uploads


def _list_response(tickets, total: int, total_pages: int, page: int) -> TicketListResponse:
    return TicketListResponse(
        tickets=[ticket_service.to_read(t) for t in tickets],
        total_pages=total_pages,
        current_page=page,
        total=total,
    )


@router.post("", response_model=TicketCreateResponse, status_code=201)
async def create_ticket(
    request: Request,
    title: str = Form(""),
    description: str = Form(""),
    category: TicketCategory | None = Form(None),
    location: str | None = Form(None),
    images: list[UploadFile] | None = File(None),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """File a new ticket (students only). Category and priority are derived."""
    ticket = await ticket_service.create_ticket(
        db,
        user,
        title=title,
        description=description,
        location=_parse_location(location),
        images=await _collect_uploads(request, images or []),
        category=category,
    )
    return TicketCreateResponse(
        message="Ticket created successfully",
        ticket=ticket_service.to_read(ticket),
    )


@router.get("/my-tickets", response_model=TicketListResponse)
def my_tickets(
    status: TicketStatus | None = None,
    category: TicketCategory | None = None,
    priority: TicketPriority | None = None,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """List the caller's own tickets."""
    tickets, total, total_pages = ticket_service.list_tickets(
        db,
        status=status,
        category=category,
        priority=priority,
        student_id=user.id,
        page=page,
        limit=limit,
    )
    return _list_response(tickets, total, total_pages, page)


@router.get("", response_model=TicketListResponse)
def list_tickets(
    status: TicketStatus | None = None,
    category: TicketCategory | None = None,
    priority: TicketPriority | None = None,
    assigned_to: UUID | None = None,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    user: User = Depends(require_roles(ROLES_CAN_TRIAGE)),
    db: Session = Depends(get_db),
):
    """List all tickets (staff/admin)."""
    tickets, total, total_pages = ticket_service.list_tickets(
        db,
        status=status,
        category=category,
        priority=priority,
        assigned_to=assigned_to,
        page=page,
        limit=limit,
    )
    return _list_response(tickets, total, total_pages, page)


@router.get("/{ticket_id}", response_model=TicketRead)
def get_ticket(
    ticket_id: UUID,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return ticket_service.to_read(ticket_service.get_ticket(db, ticket_id, user))


@router.post("/{ticket_id}/comments", response_model=MessageResponse)
async def add_comment(
    ticket_id: UUID,
    data: CommentCreate,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    await ticket_service.add_comment(db, ticket_id, user, data.message)
    return MessageResponse(message="Comment added successfully")


@router.put("/{ticket_id}/status", response_model=TicketStatusResponse)
async def update_status(
    ticket_id: UUID,
    data: TicketStatusUpdate,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Change a ticket's status (staff/admin). Optional `version` guards stale writes."""
    ticket = await ticket_service.update_status(
        db,
        ticket_id,
        data.status,
        user,
        assigned_to=data.assigned_to,
        resolution_description=data.resolution_description,
        expected_version=data.version,
    )
    return TicketStatusResponse(
        message="Ticket status updated successfully",
        ticket=ticket_service.to_read(ticket),
    )


@router.patch("/{ticket_id}/classification", response_model=TicketRead)
async def override_classification(
    ticket_id: UUID,
    data: ClassificationOverride,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Override the derived category/priority (staff/admin)."""
    ticket = await ticket_service.override_classification(
        db,
        ticket_id,
        user,
        category=data.category,
        priority=data.priority,
        expected_version=data.version,
    )
    return ticket_service.to_read(ticket)
