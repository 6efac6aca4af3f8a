"""Pydantic schemas for tickets."""

from datetime import datetime
from uuid import UUID

from pydantic import AliasChoices, BaseModel, Field

from hostelpal.db.enums import TicketCategory, TicketPriority, TicketStatus


class TicketLocation(BaseModel):
    """Where the problem is. Missing parts default to the submitter's room."""
    room_number: str | None = Field(
        None, max_length=50, validation_alias=AliasChoices("room_number", "roomNumber")
    )
    block: str | None = Field(None, max_length=50)
    specific_location: str | None = Field(
        None,
        max_length=255,
        validation_alias=AliasChoices("specific_location", "specificLocation"),
    )


class TicketImage(BaseModel):
    url: str
    storage_id: str


class UserBrief(BaseModel):
    id: UUID
    name: str
    email: str
    role: str
    room_number: str | None = None
    hostel_block: str | None = None

    model_config = {"from_attributes": True}


class CommentRead(BaseModel):
    id: UUID
    author: UserBrief
    message: str
    created_at: datetime

    model_config = {"from_attributes": True}


class ResolutionRead(BaseModel):
    description: str
    resolved_by: UserBrief | None
    resolved_at: datetime
    resolution_seconds: int | None = None


class AIAnalysisRead(BaseModel):
    category_confidence: float
    priority_confidence: float
    category_source: str
    priority_source: str
    keywords: list[str]
    suggested_actions: list[str]
    reasoning: str | None


class TicketRead(BaseModel):
    """Full ticket response."""
    id: UUID
    title: str
    description: str
    category: TicketCategory
    priority: TicketPriority
    status: TicketStatus

    student: UserBrief
    assigned_to: UserBrief | None
    location: TicketLocation
    images: list[TicketImage]
    comments: list[CommentRead]
    resolution: ResolutionRead | None
    ai_analysis: AIAnalysisRead

    escalation_level: int
    last_escalated_at: datetime | None
    is_overdue: bool
    version: int

    created_at: datetime
    updated_at: datetime


class TicketListResponse(BaseModel):
    """Paginated ticket list."""
    tickets: list[TicketRead]
    total_pages: int
    current_page: int
    total: int


class TicketCreateResponse(BaseModel):
    message: str
    ticket: TicketRead


class TicketStatusResponse(BaseModel):
    message: str
    ticket: TicketRead


class CommentCreate(BaseModel):
    message: str


class TicketStatusUpdate(BaseModel):
    """Status change request. The status value is checked after the role check."""
    status: str
    assigned_to: UUID | None = Field(
        None, validation_alias=AliasChoices("assigned_to", "assignedTo")
    )
    resolution_description: str | None = Field(
        None,
        max_length=1000,
        validation_alias=AliasChoices("resolution_description", "resolutionDescription"),
    )
    version: int | None = None


class ClassificationOverride(BaseModel):
    category: TicketCategory | None = None
    priority: TicketPriority | None = None
    version: int | None = None


class MessageResponse(BaseModel):
    message: str
