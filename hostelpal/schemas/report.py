"""Pydantic schemas for admin reports."""

from datetime import datetime

from pydantic import BaseModel


class TicketReport(BaseModel):
    period: str
    start: datetime
    end: datetime
    total: int
    by_category: dict[str, int]
    by_status: dict[str, int]
    by_priority: dict[str, int]
    overdue: int
    resolved: int
    avg_resolution_hours: float | None


class UserReport(BaseModel):
    total: int
    active: int
    by_role: dict[str, int]
