"""Structured logging helpers (PII-safe)."""

from typing import Any


def build_log_context(
    *,
    user_id: str | None = None,
    ticket_id: str | None = None,
    notification_id: str | None = None,
) -> dict[str, Any]:
    """Return a log ``extra`` dict of identifiers only, never ticket text or contact details."""
    context = {
        "user_id": user_id,
        "ticket_id": ticket_id,
        "notification_id": notification_id,
    }
    return {key: value for key, value in context.items() if value}
