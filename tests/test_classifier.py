"""Tests for the complaint classifier."""

import asyncio

import httpx
import pytest

from hostelpal.core.config import settings
from hostelpal.db.enums import ClassificationSource, TicketCategory, TicketPriority
from hostelpal.services import ai_provider, classifier_service
from hostelpal.services.ai_provider import (
    AIProviderError,
    ChatMessage,
    ChatResponse,
    GeminiProvider,
    RetryPolicy,
)


class FakeProvider:
    def __init__(self, content: str | None = None, error: Exception | None = None, delay: float = 0):
        self.content = content
        self.error = error
        self.delay = delay
        self.calls: list[list[ChatMessage]] = []

    async def chat(self, messages, model=None, temperature=0.1, max_tokens=1000):
        self.calls.append(messages)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error:
            raise self.error
        return ChatResponse(
            content=self.content or "",
            prompt_tokens=1,
            completion_tokens=1,
            total_tokens=2,
            model="fake",
        )


@pytest.fixture
def use_provider(monkeypatch):
    def install(provider):
        monkeypatch.setattr(classifier_service, "_get_provider", lambda: provider)
        return provider

    return install


# =============================================================================
# Short input and configuration
# =============================================================================

@pytest.mark.asyncio
async def test_short_description_returns_default_without_model_call(use_provider):
    provider = use_provider(FakeProvider('{"category": "wifi", "confidence": 0.9}'))

    category = await classifier_service.classify("WiFi", "  no wifi ")
    priority = await classifier_service.predict_priority("WiFi", "no wifi", TicketCategory.WIFI)

    assert category.category == TicketCategory.OTHER
    assert category.confidence == 0.5
    assert category.source == ClassificationSource.DEFAULT
    assert category.reason == classifier_service.REASON_SHORT_DESCRIPTION
    assert priority.priority == TicketPriority.MEDIUM
    assert priority.confidence == 0.5
    assert priority.reason == classifier_service.REASON_SHORT_DESCRIPTION
    assert provider.calls == []


@pytest.mark.asyncio
async def test_missing_api_key_falls_back_to_default(monkeypatch):
    monkeypatch.setattr(settings, "AI_API_KEY", "")

    outcome = await classifier_service.classify("Leaking tap", "The tap in my bathroom is leaking")

    assert outcome.ok is False
    assert outcome.reason == classifier_service.REASON_NOT_CONFIGURED
    assert outcome.category == TicketCategory.OTHER


# =============================================================================
# Parsing model output
# =============================================================================

@pytest.mark.asyncio
async def test_classify_parses_fenced_json(use_provider):
    use_provider(
        FakeProvider('```json\n{"category": "wifi", "confidence": 0.8, "keywords": ["router"]}\n```')
    )

    outcome = await classifier_service.classify("WiFi down", "No WiFi in the whole block")

    assert outcome.ok
    assert outcome.category == TicketCategory.WIFI
    assert outcome.confidence == 0.8
    assert outcome.keywords == ["router"]


@pytest.mark.asyncio
async def test_confidence_is_clamped_and_non_numeric_defaults(use_provider):
    use_provider(FakeProvider('{"priority": "urgent", "confidence": 4.2, "reasoning": "fire"}'))
    clamped = await classifier_service.predict_priority(
        "Smoke", "There is smoke in the corridor", TicketCategory.SECURITY
    )

    use_provider(FakeProvider('{"priority": "low", "confidence": "quite", "reasoning": "minor"}'))
    defaulted = await classifier_service.predict_priority(
        "Bulb", "A bulb in the hallway flickers", TicketCategory.ELECTRICITY
    )

    assert clamped.priority == TicketPriority.URGENT
    assert clamped.confidence == 1.0
    assert defaulted.priority == TicketPriority.LOW
    assert defaulted.confidence == 0.5
    assert defaulted.ok


@pytest.mark.asyncio
async def test_unknown_category_counts_as_invalid_fields(use_provider):
    use_provider(FakeProvider('{"category": "plumbing", "confidence": 0.9}'))

    outcome = await classifier_service.classify("Pipe", "The pipe under the sink burst")

    assert outcome.source == ClassificationSource.DEFAULT
    assert outcome.reason == classifier_service.REASON_INVALID_FIELDS
    assert outcome.category == TicketCategory.OTHER


@pytest.mark.asyncio
async def test_garbage_response_is_unparseable_and_logged(use_provider, caplog):
    use_provider(FakeProvider("I am not able to help with that."))

    with caplog.at_level("WARNING"):
        outcome = await classifier_service.predict_priority(
            "Noise", "Loud music every night after midnight", TicketCategory.OTHER
        )

    assert outcome.reason == classifier_service.REASON_UNPARSEABLE
    assert outcome.priority == TicketPriority.MEDIUM
    assert "I am not able to help" in caplog.text


# =============================================================================
# Upstream failures
# =============================================================================

@pytest.mark.asyncio
async def test_provider_error_falls_back_to_default(use_provider):
    use_provider(FakeProvider(error=AIProviderError(401, "bad key")))

    outcome = await classifier_service.classify("Water", "No water supply since morning")

    assert outcome.reason == classifier_service.REASON_UPSTREAM_ERROR
    assert outcome.category == TicketCategory.OTHER


@pytest.mark.asyncio
async def test_network_error_falls_back_to_default(use_provider):
    use_provider(FakeProvider(error=httpx.ConnectError("unreachable")))

    outcome = await classifier_service.predict_priority(
        "Water", "No water supply since morning", TicketCategory.WATER
    )

    assert outcome.reason == classifier_service.REASON_UPSTREAM_ERROR


@pytest.mark.asyncio
async def test_slow_model_times_out_to_default(use_provider, monkeypatch):
    monkeypatch.setattr(settings, "AI_TIMEOUT_SECONDS", 0.01)
    use_provider(FakeProvider('{"category": "wifi"}', delay=1))

    outcome = await classifier_service.classify("WiFi", "The WiFi keeps dropping out")

    assert outcome.reason == classifier_service.REASON_UPSTREAM_ERROR


@pytest.mark.asyncio
async def test_analyze_skips_category_model_when_category_given(use_provider):
    provider = use_provider(
        FakeProvider('{"priority": "high", "confidence": 0.7, "reasoning": "outage"}')
    )

    result = await classifier_service.analyze(
        "WiFi", "No WiFi in the whole block for two days", TicketCategory.WIFI
    )

    assert len(provider.calls) == 1
    assert result["category"] == "wifi"
    assert result["category_confidence"] == 1.0
    assert result["priority"] == "high"
    assert result["priority_confidence"] == 0.7
    assert result["suggestions"] == []
    assert result["reasoning"] == "outage"


# =============================================================================
# Provider retry policy
# =============================================================================

def _gemini_reply(text: str) -> dict:
    return {"candidates": [{"content": {"parts": [{"text": text}]}}], "usageMetadata": {}}


@pytest.fixture
def mock_transport(monkeypatch):
    real_client = httpx.AsyncClient
    calls: list[httpx.Request] = []

    def install(statuses: list[int], text: str = '{"category": "water"}'):
        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            status = statuses.pop(0) if statuses else 200
            if status == 200:
                return httpx.Response(200, json=_gemini_reply(text))
            return httpx.Response(status, json={"error": {"code": status}})

        monkeypatch.setattr(
            ai_provider.httpx,
            "AsyncClient",
            lambda **kwargs: real_client(transport=httpx.MockTransport(handler), **kwargs),
        )
        return calls

    return install


def _provider() -> GeminiProvider:
    return GeminiProvider("test-key", retry=RetryPolicy(max_attempts=3, delay_seconds=0))


@pytest.mark.asyncio
async def test_service_unavailable_is_retried_until_success(mock_transport):
    calls = mock_transport([503, 503, 200])

    response = await _provider().chat([ChatMessage(role="user", content="hi")])

    assert len(calls) == 3
    assert response.content == '{"category": "water"}'


@pytest.mark.asyncio
async def test_service_unavailable_gives_up_after_three_attempts(mock_transport):
    calls = mock_transport([503, 503, 503, 200])

    with pytest.raises(AIProviderError) as exc_info:
        await _provider().chat([ChatMessage(role="user", content="hi")])

    assert exc_info.value.status_code == 503
    assert len(calls) == 3


@pytest.mark.asyncio
@pytest.mark.parametrize("status", [400, 401, 403, 429])
async def test_non_retryable_status_fails_immediately(mock_transport, status):
    calls = mock_transport([status, 200])

    with pytest.raises(AIProviderError) as exc_info:
        await _provider().chat([ChatMessage(role="user", content="hi")])

    assert exc_info.value.status_code == status
    assert len(calls) == 1


@pytest.fixture
def gemini_serving(monkeypatch):
    """Route the configured Gemini provider to a fixed 200 response body."""
    real_client = httpx.AsyncClient
    monkeypatch.setattr(settings, "AI_API_KEY", "test-key")
    monkeypatch.setattr(settings, "AI_PROVIDER", "gemini")
    monkeypatch.setattr(settings, "AI_RETRY_DELAY_SECONDS", 0)

    def install(body):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json=body)

        monkeypatch.setattr(
            ai_provider.httpx,
            "AsyncClient",
            lambda **kwargs: real_client(transport=httpx.MockTransport(handler), **kwargs),
        )

    return install


@pytest.mark.asyncio
async def test_non_object_response_body_falls_back_to_default(gemini_serving):
    gemini_serving([])

    outcome = await classifier_service.classify(
        "WiFi down", "No WiFi in the whole block for two days"
    )

    assert outcome.source == ClassificationSource.DEFAULT
    assert outcome.reason == classifier_service.REASON_UPSTREAM_ERROR
    assert outcome.category == TicketCategory.OTHER


@pytest.mark.asyncio
async def test_null_usage_metadata_is_tolerated(gemini_serving):
    reply = _gemini_reply('{"category": "wifi", "confidence": 0.9}')
    reply["usageMetadata"] = None
    gemini_serving(reply)

    outcome = await classifier_service.classify(
        "WiFi down", "No WiFi in the whole block for two days"
    )

    assert outcome.ok
    assert outcome.category == TicketCategory.WIFI


@pytest.mark.asyncio
async def test_non_object_body_fails_ticket_creation_softly(
    gemini_serving, client, db, student, headers_for
):
    gemini_serving([])

    response = await client.post(
        "/tickets",
        data={"title": "WiFi down", "description": "No WiFi in the whole block for two days"},
        headers=headers_for(student),
    )

    assert response.status_code == 201
    ticket = response.json()["ticket"]
    assert ticket["category"] == "other"
    assert ticket["priority"] == "medium"
    assert ticket["ai_analysis"]["category_source"] == "default"
