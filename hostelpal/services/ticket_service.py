"""
Ticket Service - ticket lifecycle state machine.

Order of checks on every mutating call: role, input values, lookup,
ownership/transition, then the write. Nothing is written before all
checks pass. Notifications and live pushes run after the write commits
and never undo it.
"""

from __future__ import annotations

import logging
import math
from datetime import datetime, timedelta, timezone
from typing import Awaitable
from uuid import UUID

from fastapi import HTTPException
from sqlalchemy import case
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from hostelpal.core.structured_logging import build_log_context
from hostelpal.db.enums import (
    ClassificationSource,
    ROLES_CAN_CREATE_TICKETS,
    ROLES_CAN_TRIAGE,
    Role,
    TicketCategory,
    TicketPriority,
    TicketStatus,
)
from hostelpal.db.models import Ticket, TicketComment, User
from hostelpal.schemas.ticket import (
    AIAnalysisRead,
    CommentRead,
    ResolutionRead,
    TicketImage,
    TicketLocation,
    TicketRead,
    UserBrief,
)
from hostelpal.services import (
    classifier_service,
    notification_service,
    storage_service,
    ticket_events,
)
from hostelpal.services.classifier_service import CategoryOutcome

logger = logging.getLogger(__name__)


# =============================================================================
# Rules
# =============================================================================

TITLE_MIN_LENGTH = 5
TITLE_MAX_LENGTH = 100
DESCRIPTION_MIN_LENGTH = 10
DESCRIPTION_MAX_LENGTH = 1000
COMMENT_MAX_LENGTH = 500

# Reopening a resolved ticket is not supported
ALLOWED_TRANSITIONS: dict[TicketStatus, frozenset[TicketStatus]] = {
    TicketStatus.OPEN: frozenset(
        {
            TicketStatus.IN_PROGRESS,
            TicketStatus.RESOLVED,
            TicketStatus.CLOSED,
            TicketStatus.CANCELLED,
        }
    ),
    TicketStatus.IN_PROGRESS: frozenset(
        {TicketStatus.RESOLVED, TicketStatus.CLOSED, TicketStatus.CANCELLED}
    ),
    TicketStatus.RESOLVED: frozenset({TicketStatus.CLOSED, TicketStatus.CANCELLED}),
    TicketStatus.CLOSED: frozenset(),
    TicketStatus.CANCELLED: frozenset(),
}

SETTLED_STATUSES = frozenset(
    {TicketStatus.RESOLVED, TicketStatus.CLOSED, TicketStatus.CANCELLED}
)

RESOLUTION_VISIBLE_STATUSES = frozenset({TicketStatus.RESOLVED, TicketStatus.CLOSED})

OVERDUE_THRESHOLD_HOURS: dict[TicketPriority, int] = {
    TicketPriority.URGENT: 2,
    TicketPriority.HIGH: 24,
    TicketPriority.MEDIUM: 72,
    TicketPriority.LOW: 168,
}

ESCALATING_PRIORITIES = frozenset({TicketPriority.HIGH, TicketPriority.URGENT})

TRIAGE_ROLE_VALUES = frozenset(r.value for r in ROLES_CAN_TRIAGE)


def can_transition(current: TicketStatus, new: TicketStatus) -> bool:
    return new in ALLOWED_TRANSITIONS.get(TicketStatus(current), frozenset())


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def is_overdue(ticket: Ticket, now: datetime | None = None) -> bool:
    """True when an unsettled ticket has waited past its priority threshold."""
    if TicketStatus(ticket.status) in SETTLED_STATUSES:
        return False
    now = now or _now()
    threshold = timedelta(hours=OVERDUE_THRESHOLD_HOURS[TicketPriority(ticket.priority)])
    return now - _as_utc(ticket.created_at) > threshold


# =============================================================================
# Errors
# =============================================================================


def _field_error(field: str, message: str) -> dict:
    return {"field": field, "message": message}


def _validation_error(errors: list[dict]) -> HTTPException:
    return HTTPException(status_code=400, detail=errors)


def _access_denied() -> HTTPException:
    return HTTPException(status_code=403, detail="Access denied")


def _not_found() -> HTTPException:
    return HTTPException(status_code=404, detail="Ticket not found")


def _check_version(ticket: Ticket, expected_version: int | None) -> None:
    if expected_version is not None and expected_version != ticket.version:
        raise HTTPException(status_code=409, detail="Ticket was modified concurrently")


def validate_ticket_input(
    title: str | None,
    description: str | None,
    images: list[storage_service.ImageUpload],
) -> tuple[str, str]:
    """Return trimmed (title, description) or raise 400 with every field error."""
    title = (title or "").strip()
    description = (description or "").strip()
    errors: list[dict] = []

    if not TITLE_MIN_LENGTH <= len(title) <= TITLE_MAX_LENGTH:
        errors.append(
            _field_error(
                "title",
                f"Title must be between {TITLE_MIN_LENGTH} and {TITLE_MAX_LENGTH} characters",
            )
        )
    if not DESCRIPTION_MIN_LENGTH <= len(description) <= DESCRIPTION_MAX_LENGTH:
        errors.append(
            _field_error(
                "description",
                f"Description must be between {DESCRIPTION_MIN_LENGTH} and "
                f"{DESCRIPTION_MAX_LENGTH} characters",
            )
        )
    if len(images) > storage_service.MAX_IMAGES_PER_TICKET:
        errors.append(
            _field_error(
                "images",
                f"At most {storage_service.MAX_IMAGES_PER_TICKET} images are allowed",
            )
        )
    for upload in images:
        problem = storage_service.validate_image(upload)
        if problem:
            errors.append(_field_error("images", problem))

    if errors:
        raise _validation_error(errors)
    return title, description


# =============================================================================
# Serialization
# =============================================================================


def to_read(ticket: Ticket, now: datetime | None = None) -> TicketRead:
    resolution = None
    # A cancelled ticket keeps its history but no longer presents a resolution
    if (
        TicketStatus(ticket.status) in RESOLUTION_VISIBLE_STATUSES
        and ticket.resolved_at is not None
        and ticket.resolution_description
    ):
        resolution = ResolutionRead(
            description=ticket.resolution_description,
            resolved_by=UserBrief.model_validate(ticket.resolved_by) if ticket.resolved_by else None,
            resolved_at=ticket.resolved_at,
            resolution_seconds=ticket.resolution_seconds,
        )

    return TicketRead(
        id=ticket.id,
        title=ticket.title,
        description=ticket.description,
        category=ticket.category,
        priority=ticket.priority,
        status=ticket.status,
        student=UserBrief.model_validate(ticket.student),
        assigned_to=UserBrief.model_validate(ticket.assigned_to) if ticket.assigned_to else None,
        location=TicketLocation(
            room_number=ticket.room_number,
            block=ticket.block,
            specific_location=ticket.specific_location,
        ),
        images=[TicketImage(**image) for image in ticket.images or []],
        comments=[CommentRead.model_validate(c) for c in ticket.comments],
        resolution=resolution,
        ai_analysis=AIAnalysisRead(
            category_confidence=ticket.category_confidence,
            priority_confidence=ticket.priority_confidence,
            category_source=ClassificationSource(ticket.category_source).value,
            priority_source=ClassificationSource(ticket.priority_source).value,
            keywords=ticket.keywords or [],
            suggested_actions=ticket.suggested_actions or [],
            reasoning=ticket.ai_reasoning,
        ),
        escalation_level=ticket.escalation_level,
        last_escalated_at=ticket.last_escalated_at,
        is_overdue=is_overdue(ticket, now),
        version=ticket.version,
        created_at=ticket.created_at,
        updated_at=ticket.updated_at,
    )


def _event_payload(ticket: Ticket) -> dict:
    return to_read(ticket).model_dump(mode="json")


async def _after_write(db: Session, step: Awaitable, what: str, ticket_id: UUID) -> None:
    """Run a post-commit side effect; a failure is logged, the write stands."""
    try:
        await step
    except SQLAlchemyError:
        db.rollback()
        logger.exception(
            "Post-write %s failed", what, extra=build_log_context(ticket_id=str(ticket_id))
        )


# =============================================================================
# Queries
# =============================================================================


def _load(db: Session, ticket_id: UUID) -> Ticket | None:
    return db.query(Ticket).filter(Ticket.id == ticket_id).first()


def get_ticket(db: Session, ticket_id: UUID, viewer: User) -> Ticket:
    """Fetch a ticket; students only see their own."""
    ticket = _load(db, ticket_id)
    if not ticket:
        raise _not_found()
    if viewer.role == Role.STUDENT.value and ticket.student_id != viewer.id:
        raise _access_denied()
    return ticket


def list_tickets(
    db: Session,
    *,
    status: TicketStatus | None = None,
    category: TicketCategory | None = None,
    priority: TicketPriority | None = None,
    assigned_to: UUID | None = None,
    student_id: UUID | None = None,
    page: int = 1,
    limit: int = 10,
) -> tuple[list[Ticket], int, int]:
    """Return (tickets, total, total_pages), most urgent first, then newest."""
    query = db.query(Ticket)
    if student_id:
        query = query.filter(Ticket.student_id == student_id)
    if status:
        query = query.filter(Ticket.status == status)
    if category:
        query = query.filter(Ticket.category == category)
    if priority:
        query = query.filter(Ticket.priority == priority)
    if assigned_to:
        query = query.filter(Ticket.assigned_to_id == assigned_to)

    total = query.count()

    priority_rank = case(
        (Ticket.priority == TicketPriority.URGENT, 0),
        (Ticket.priority == TicketPriority.HIGH, 1),
        (Ticket.priority == TicketPriority.MEDIUM, 2),
        else_=3,
    )
    tickets = (
        query.order_by(priority_rank, Ticket.created_at.desc(), Ticket.id)
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return tickets, total, math.ceil(total / limit) if total else 0


# =============================================================================
# Lifecycle operations
# =============================================================================


async def create_ticket(
    db: Session,
    submitter: User,
    *,
    title: str,
    description: str,
    location: TicketLocation | None = None,
    images: list[storage_service.ImageUpload] | None = None,
    category: TicketCategory | None = None,
) -> Ticket:
    """
    File a new ticket.

    Category (unless given) and priority are derived before the first
    insert. High/urgent tickets escalate to staff; the submitter is always
    notified.
    """
    if submitter.role not in {r.value for r in ROLES_CAN_CREATE_TICKETS}:
        raise _access_denied()

    images = images or []
    title, description = validate_ticket_input(title, description, images)

    if category is not None:
        category_outcome = CategoryOutcome(
            category=category,
            confidence=1.0,
            keywords=[],
            source=ClassificationSource.MANUAL,
        )
    else:
        category_outcome = await classifier_service.classify(title, description)
    priority_outcome = await classifier_service.predict_priority(
        title, description, category_outcome.category
    )

    stored_images = [storage_service.store_image(upload) for upload in images]
    location = location or TicketLocation()

    ticket = Ticket(
        title=title,
        description=description,
        category=category_outcome.category,
        priority=priority_outcome.priority,
        category_confidence=category_outcome.confidence,
        priority_confidence=priority_outcome.confidence,
        category_source=category_outcome.source,
        priority_source=priority_outcome.source,
        keywords=list(category_outcome.keywords),
        suggested_actions=[],
        ai_reasoning=priority_outcome.reasoning or None,
        status=TicketStatus.OPEN,
        student_id=submitter.id,
        room_number=location.room_number or submitter.room_number,
        block=location.block or submitter.hostel_block,
        specific_location=location.specific_location,
        images=stored_images,
    )
    db.add(ticket)
    db.commit()
    db.refresh(ticket)

    logger.info(
        "Ticket created (%s/%s, classifier %s/%s)",
        ticket.category.value,
        ticket.priority.value,
        category_outcome.source.value,
        priority_outcome.source.value,
        extra=build_log_context(user_id=str(submitter.id), ticket_id=str(ticket.id)),
    )

    if ticket.priority in ESCALATING_PRIORITIES:
        await _after_write(db, notification_service.escalate(db, ticket), "escalation", ticket.id)
    await _after_write(
        db, notification_service.notify_ticket_created(db, ticket), "notification", ticket.id
    )
    await ticket_events.push_new_ticket(_event_payload(ticket))
    return ticket


async def add_comment(
    db: Session, ticket_id: UUID, author: User, message: str
) -> TicketComment:
    """Append a comment. Students may only comment on their own tickets."""
    message = (message or "").strip()
    if not 1 <= len(message) <= COMMENT_MAX_LENGTH:
        raise _validation_error(
            [
                _field_error(
                    "message", f"Comment must be between 1 and {COMMENT_MAX_LENGTH} characters"
                )
            ]
        )

    ticket = _load(db, ticket_id)
    if not ticket:
        raise _not_found()
    if author.role == Role.STUDENT.value and ticket.student_id != author.id:
        raise _access_denied()

    comment = TicketComment(ticket_id=ticket.id, author_id=author.id, message=message)
    db.add(comment)
    db.commit()
    db.refresh(ticket)

    logger.info(
        "Comment added",
        extra=build_log_context(user_id=str(author.id), ticket_id=str(ticket.id)),
    )

    await _after_write(
        db, notification_service.notify_comment_added(db, ticket, author), "notification", ticket.id
    )
    await ticket_events.push_ticket_update(ticket.student_id, _event_payload(ticket))
    return comment


async def update_status(
    db: Session,
    ticket_id: UUID,
    new_status: str,
    actor: User,
    *,
    assigned_to: UUID | None = None,
    resolution_description: str | None = None,
    expected_version: int | None = None,
) -> Ticket:
    """
    Move a ticket through the state machine.

    Students are rejected before the status value or the transition table
    is looked at, so the denial is the same for every request they send.
    """
    if actor.role not in TRIAGE_ROLE_VALUES:
        raise _access_denied()

    try:
        target = TicketStatus(new_status)
    except ValueError:
        raise _validation_error([_field_error("status", "Invalid status")])

    ticket = _load(db, ticket_id)
    if not ticket:
        raise _not_found()

    if not can_transition(ticket.status, target):
        raise HTTPException(status_code=400, detail="Invalid status transition")
    _check_version(ticket, expected_version)

    assignee = None
    if assigned_to is not None:
        assignee = db.query(User).filter(User.id == assigned_to).first()
        if not assignee or not assignee.is_active or assignee.role not in TRIAGE_ROLE_VALUES:
            raise _validation_error(
                [_field_error("assigned_to", "Assignee must be an active staff or admin user")]
            )

    previous_assignee_id = ticket.assigned_to_id
    ticket.status = target
    if assignee is not None:
        ticket.assigned_to_id = assignee.id

    resolution_description = (resolution_description or "").strip()
    if target == TicketStatus.RESOLVED and resolution_description:
        now = _now()
        ticket.resolution_description = resolution_description
        ticket.resolved_by_id = actor.id
        ticket.resolved_at = now
        ticket.resolution_seconds = int((now - _as_utc(ticket.created_at)).total_seconds())

    db.commit()
    db.refresh(ticket)

    logger.info(
        "Ticket status changed to %s",
        target.value,
        extra=build_log_context(user_id=str(actor.id), ticket_id=str(ticket.id)),
    )

    await _after_write(
        db, notification_service.notify_status_changed(db, ticket), "notification", ticket.id
    )
    if assignee is not None and assignee.id != previous_assignee_id and assignee.id != actor.id:
        await _after_write(
            db,
            notification_service.notify_ticket_assigned(db, ticket, assignee),
            "notification",
            ticket.id,
        )
    await ticket_events.push_ticket_update(ticket.student_id, _event_payload(ticket))
    return ticket


async def override_classification(
    db: Session,
    ticket_id: UUID,
    actor: User,
    *,
    category: TicketCategory | None = None,
    priority: TicketPriority | None = None,
    expected_version: int | None = None,
) -> Ticket:
    """Replace the derived category and/or priority with a staff decision."""
    if actor.role not in TRIAGE_ROLE_VALUES:
        raise _access_denied()
    if category is None and priority is None:
        raise _validation_error(
            [_field_error("classification", "Provide a category or a priority")]
        )

    ticket = _load(db, ticket_id)
    if not ticket:
        raise _not_found()
    _check_version(ticket, expected_version)

    if category is not None:
        ticket.category = category
        ticket.category_confidence = 1.0
        ticket.category_source = ClassificationSource.MANUAL
    if priority is not None:
        ticket.priority = priority
        ticket.priority_confidence = 1.0
        ticket.priority_source = ClassificationSource.MANUAL

    db.commit()
    db.refresh(ticket)

    logger.info(
        "Ticket classification overridden",
        extra=build_log_context(user_id=str(actor.id), ticket_id=str(ticket.id)),
    )

    await ticket_events.push_ticket_update(ticket.student_id, _event_payload(ticket))
    return ticket


# =============================================================================
# Scheduled escalation
# =============================================================================


async def escalate_overdue_tickets(db: Session, now: datetime | None = None) -> int:
    """
    Escalate overdue tickets. Returns the number escalated.

    A ticket escalated less than one threshold window ago is skipped, so
    repeated runs within the window do nothing.
    """
    now = now or _now()
    candidates = (
        db.query(Ticket)
        .filter(Ticket.status.in_([TicketStatus.OPEN, TicketStatus.IN_PROGRESS]))
        .order_by(Ticket.created_at)
        .all()
    )

    escalated = 0
    for ticket in candidates:
        if not is_overdue(ticket, now):
            continue
        window = timedelta(hours=OVERDUE_THRESHOLD_HOURS[TicketPriority(ticket.priority)])
        if ticket.last_escalated_at and now - _as_utc(ticket.last_escalated_at) < window:
            continue

        ticket.escalation_level += 1
        ticket.last_escalated_at = now
        try:
            db.commit()
        except StaleDataError:
            db.rollback()
            logger.info(
                "Skipping escalation of concurrently modified ticket",
                extra=build_log_context(ticket_id=str(ticket.id)),
            )
            continue

        escalated += 1
        await _after_write(db, notification_service.escalate(db, ticket), "escalation", ticket.id)

    if escalated:
        logger.info("Escalated %s overdue tickets", escalated)
    return escalated
