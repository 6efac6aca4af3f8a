"""Pydantic schemas for classifier responses."""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from hostelpal.db.enums import TicketCategory, TicketPriority


class CategoryOutput(BaseModel):
    model_config = ConfigDict(extra="ignore")

    category: TicketCategory
    confidence: Any = None
    keywords: list[str] = Field(default_factory=list)

    @field_validator("category", mode="before")
    @classmethod
    def _normalize_category(cls, value: Any) -> Any:
        return value.strip().lower() if isinstance(value, str) else value

    @field_validator("keywords", mode="before")
    @classmethod
    def _drop_bad_keywords(cls, value: Any) -> Any:
        if not isinstance(value, list):
            return []
        return [str(k).strip() for k in value if isinstance(k, (str, int)) and str(k).strip()]


class PriorityOutput(BaseModel):
    model_config = ConfigDict(extra="ignore")

    priority: TicketPriority
    confidence: Any = None
    reasoning: str = ""

    @field_validator("priority", mode="before")
    @classmethod
    def _normalize_priority(cls, value: Any) -> Any:
        return value.strip().lower() if isinstance(value, str) else value

    @field_validator("reasoning", mode="before")
    @classmethod
    def _coerce_reasoning(cls, value: Any) -> Any:
        return "" if value is None else str(value)
