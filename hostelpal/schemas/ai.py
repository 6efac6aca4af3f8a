"""Pydantic schemas for the complaint analysis endpoint."""

from pydantic import BaseModel, Field

from hostelpal.db.enums import TicketCategory, TicketPriority


class AnalyzeRequest(BaseModel):
    title: str | None = Field(None, max_length=100)
    description: str = Field(..., min_length=1, max_length=1000)
    category: TicketCategory | None = None


class AnalyzeResponse(BaseModel):
    category: TicketCategory
    category_confidence: float
    priority: TicketPriority
    priority_confidence: float
    keywords: list[str]
    suggestions: list[str]
    reasoning: str
    category_source: str
    priority_source: str
