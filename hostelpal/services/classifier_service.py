"""Complaint classifier: category and priority derivation via an external LLM.

Every call resolves to a tagged outcome. ``source == ai`` means the model
answered with usable fields; ``source == default`` carries the neutral
default plus a ``reason``. Upstream failures are never raised to callers.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field

import httpx

from hostelpal.core.config import settings
from hostelpal.db.enums import ClassificationSource, TicketCategory, TicketPriority
from hostelpal.services.ai_prompt_schemas import CategoryOutput, PriorityOutput
from hostelpal.services.ai_provider import (
    AIProvider,
    AIProviderError,
    ChatMessage,
    RetryPolicy,
    get_provider,
)
from hostelpal.services.ai_response_validation import (
    coerce_confidence,
    parse_json_object,
    validate_model,
)

logger = logging.getLogger(__name__)

MIN_DESCRIPTION_LENGTH = 10
DEFAULT_CONFIDENCE = 0.5
DEFAULT_CATEGORY = TicketCategory.OTHER
DEFAULT_PRIORITY = TicketPriority.MEDIUM
DEFAULT_REASONING = "Unable to analyze priority"
RAW_LOG_LIMIT = 500

# Default reasons
REASON_SHORT_DESCRIPTION = "short_description"
REASON_NOT_CONFIGURED = "not_configured"
REASON_UPSTREAM_ERROR = "upstream_error"
REASON_UNPARSEABLE = "unparseable"
REASON_INVALID_FIELDS = "invalid_fields"


CATEGORY_PROMPT = """You are a JSON API that categorizes hostel complaints.
Categories: maintenance, cleaning, medical, wifi, electricity, water, security, other

Input:
Title: "{title}"
Description: "{description}"

Return a single raw JSON object and nothing else, no markdown or code blocks:
{{"category": "medical", "confidence": 0.9, "keywords": ["fever", "room"]}}"""

PRIORITY_PROMPT = """You determine the urgency of hostel service requests.
Return a single JSON object only, in exactly this format:
{{"priority": "<urgent|high|medium|low>", "confidence": <0-1>, "reasoning": "brief explanation"}}

Guidance:
- Medical emergencies (ambulance, severe injury, difficulty breathing) -> urgent
- Safety or security threats -> urgent
- Any other health-related complaint -> at least high
- Major outages (no water, electricity or wifi for many residents) -> high
- Minor repairs or cleaning requests -> low or medium depending on impact

Title: "{title}"
Description: "{description}"
Category: "{category}"
"""


# =============================================================================
# Outcomes
# =============================================================================


@dataclass(frozen=True)
class CategoryOutcome:
    category: TicketCategory
    confidence: float
    keywords: list[str] = field(default_factory=list)
    source: ClassificationSource = ClassificationSource.AI
    reason: str | None = None

    @property
    def ok(self) -> bool:
        return self.source == ClassificationSource.AI


@dataclass(frozen=True)
class PriorityOutcome:
    priority: TicketPriority
    confidence: float
    reasoning: str = ""
    source: ClassificationSource = ClassificationSource.AI
    reason: str | None = None

    @property
    def ok(self) -> bool:
        return self.source == ClassificationSource.AI


def default_category(reason: str) -> CategoryOutcome:
    return CategoryOutcome(
        category=DEFAULT_CATEGORY,
        confidence=DEFAULT_CONFIDENCE,
        keywords=[],
        source=ClassificationSource.DEFAULT,
        reason=reason,
    )


def default_priority(reason: str) -> PriorityOutcome:
    return PriorityOutcome(
        priority=DEFAULT_PRIORITY,
        confidence=DEFAULT_CONFIDENCE,
        reasoning=DEFAULT_REASONING,
        source=ClassificationSource.DEFAULT,
        reason=reason,
    )


def is_too_short(description: str | None) -> bool:
    return len((description or "").strip()) < MIN_DESCRIPTION_LENGTH


# =============================================================================
# Model calls
# =============================================================================


def _get_provider() -> AIProvider | None:
    """Build the configured provider, or None when no API key is set."""
    if not settings.AI_API_KEY:
        return None
    return get_provider(
        settings.AI_PROVIDER,
        settings.AI_API_KEY,
        settings.AI_MODEL or None,
        retry=RetryPolicy(
            max_attempts=settings.AI_MAX_ATTEMPTS,
            delay_seconds=settings.AI_RETRY_DELAY_SECONDS,
            timeout_seconds=settings.AI_TIMEOUT_SECONDS,
        ),
    )


async def _ask(prompt: str, purpose: str) -> tuple[str | None, str | None]:
    """
    Send a prompt and return ``(content, None)`` or ``(None, reason)``.

    The whole exchange, retries included, is bounded by AI_TIMEOUT_SECONDS.
    """
    provider = _get_provider()
    if provider is None:
        return None, REASON_NOT_CONFIGURED

    try:
        response = await asyncio.wait_for(
            provider.chat([ChatMessage(role="user", content=prompt)]),
            timeout=settings.AI_TIMEOUT_SECONDS,
        )
    except asyncio.TimeoutError:
        logger.warning("Classifier %s call timed out", purpose)
        return None, REASON_UPSTREAM_ERROR
    except AIProviderError as exc:
        logger.warning(
            "Classifier %s call failed with status %s: %s",
            purpose,
            exc.status_code,
            str(exc)[:RAW_LOG_LIMIT],
        )
        return None, REASON_UPSTREAM_ERROR
    except (httpx.HTTPError, ValueError) as exc:
        logger.warning("Classifier %s call failed: %s", purpose, exc)
        return None, REASON_UPSTREAM_ERROR

    return response.content, None


# =============================================================================
# Public API
# =============================================================================


async def classify(title: str, description: str) -> CategoryOutcome:
    """Derive the ticket category."""
    if is_too_short(description):
        return default_category(REASON_SHORT_DESCRIPTION)

    content, failure = await _ask(
        CATEGORY_PROMPT.format(title=title or "", description=description), "category"
    )
    if failure:
        return default_category(failure)

    data = parse_json_object(content)
    if data is None:
        logger.warning("Unparseable category response: %r", (content or "")[:RAW_LOG_LIMIT])
        return default_category(REASON_UNPARSEABLE)

    parsed = validate_model(CategoryOutput, data)
    if parsed is None:
        logger.warning("Invalid category response: %r", (content or "")[:RAW_LOG_LIMIT])
        return default_category(REASON_INVALID_FIELDS)

    return CategoryOutcome(
        category=parsed.category,
        confidence=coerce_confidence(parsed.confidence, DEFAULT_CONFIDENCE),
        keywords=parsed.keywords,
    )


async def predict_priority(
    title: str, description: str, category: TicketCategory | str
) -> PriorityOutcome:
    """Derive the ticket priority given its category."""
    if is_too_short(description):
        return default_priority(REASON_SHORT_DESCRIPTION)

    category_value = category.value if isinstance(category, TicketCategory) else category
    content, failure = await _ask(
        PRIORITY_PROMPT.format(
            title=title or "", description=description, category=category_value
        ),
        "priority",
    )
    if failure:
        return default_priority(failure)

    data = parse_json_object(content)
    if data is None:
        logger.warning("Unparseable priority response: %r", (content or "")[:RAW_LOG_LIMIT])
        return default_priority(REASON_UNPARSEABLE)

    parsed = validate_model(PriorityOutput, data)
    if parsed is None:
        logger.warning("Invalid priority response: %r", (content or "")[:RAW_LOG_LIMIT])
        return default_priority(REASON_INVALID_FIELDS)

    return PriorityOutcome(
        priority=parsed.priority,
        confidence=coerce_confidence(parsed.confidence, DEFAULT_CONFIDENCE),
        reasoning=parsed.reasoning,
    )


async def analyze(
    title: str | None, description: str, category: TicketCategory | None = None
) -> dict:
    """
    Run category and priority derivation for the analyze endpoint.

    A given category skips category classification and is reported with
    full confidence.
    """
    if category is not None:
        category_outcome = CategoryOutcome(
            category=category,
            confidence=1.0,
            keywords=[],
            source=ClassificationSource.MANUAL,
        )
    else:
        category_outcome = await classify(title or "", description)

    priority_outcome = await predict_priority(
        title or "", description, category_outcome.category
    )

    return {
        "category": category_outcome.category.value,
        "category_confidence": category_outcome.confidence,
        "priority": priority_outcome.priority.value,
        "priority_confidence": priority_outcome.confidence,
        "keywords": category_outcome.keywords,
        "suggestions": [],
        "reasoning": priority_outcome.reasoning,
        "category_source": category_outcome.source.value,
        "priority_source": priority_outcome.source.value,
    }
