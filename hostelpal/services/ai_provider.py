"""AI Provider abstraction layer.

Supports Google Gemini and OpenAI with a unified interface.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any

import httpx

from hostelpal.services.http_service import request_with_retries

logger = logging.getLogger(__name__)

# Only "service unavailable" is transient; 400/401/403/429 fail immediately
RETRYABLE_STATUSES = {503}


@dataclass
class ChatMessage:
    """A single message in a conversation."""

    role: str  # 'system', 'user', 'assistant'
    content: str


@dataclass
class ChatResponse:
    """Response from an AI provider."""

    content: str
    prompt_tokens: int
    completion_tokens: int
    total_tokens: int
    model: str


class AIProviderError(Exception):
    """Upstream model call failed with a non-success status."""

    def __init__(self, status_code: int, message: str = ""):
        super().__init__(message or f"AI provider returned {status_code}")
        self.status_code = status_code


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 3
    delay_seconds: float = 1.0
    timeout_seconds: float = 60.0


class AIProvider(ABC):
    """Abstract base class for AI providers."""

    def __init__(self, retry: RetryPolicy | None = None):
        self.retry = retry or RetryPolicy()

    @abstractmethod
    async def chat(
        self,
        messages: list[ChatMessage],
        model: str | None = None,
        temperature: float = 0.1,
        max_tokens: int = 1000,
    ) -> ChatResponse:
        """Send a chat completion request."""
        pass

    async def _post(self, url: str, **kwargs: Any) -> dict:
        async with httpx.AsyncClient(timeout=self.retry.timeout_seconds) as client:
            response = await request_with_retries(
                lambda: client.post(url, **kwargs),
                max_attempts=self.retry.max_attempts,
                base_delay=self.retry.delay_seconds,
                retry_statuses=RETRYABLE_STATUSES,
                backoff="fixed",
            )
        if response.status_code >= 400:
            raise AIProviderError(response.status_code, response.text[:500])
        data = response.json()
        if not isinstance(data, dict):
            raise AIProviderError(
                response.status_code, f"Unexpected response body: {response.text[:500]}"
            )
        return data


class GeminiProvider(AIProvider):
    """Google Gemini API provider."""

    def __init__(
        self,
        api_key: str,
        default_model: str = "gemini-2.0-flash",
        retry: RetryPolicy | None = None,
    ):
        super().__init__(retry)
        self.api_key = api_key
        self.default_model = default_model
        self.base_url = "https://generativelanguage.googleapis.com/v1beta"

    async def chat(
        self,
        messages: list[ChatMessage],
        model: str | None = None,
        temperature: float = 0.1,
        max_tokens: int = 1000,
    ) -> ChatResponse:
        model = model or self.default_model

        # Gemini uses 'user' and 'model' roles, system goes in systemInstruction
        system_instruction = None
        contents = []

        for msg in messages:
            if msg.role == "system":
                system_instruction = msg.content
            else:
                role = "model" if msg.role == "assistant" else "user"
                contents.append({"role": role, "parts": [{"text": msg.content}]})

        request_body: dict[str, Any] = {
            "contents": contents,
            "generationConfig": {
                "temperature": temperature,
                "maxOutputTokens": max_tokens,
                "topK": 1,
                "topP": 0.8,
            },
        }

        if system_instruction:
            request_body["systemInstruction"] = {
                "parts": [{"text": system_instruction}]
            }

        data = await self._post(
            f"{self.base_url}/models/{model}:generateContent",
            params={"key": self.api_key},
            headers={"Content-Type": "application/json"},
            json=request_body,
        )

        try:
            content = data["candidates"][0]["content"]["parts"][0]["text"]
        except (KeyError, IndexError, TypeError):
            logger.warning("Invalid Gemini response shape: %s", str(data)[:500])
            content = ""

        usage = data.get("usageMetadata") or {}
        prompt_tokens = usage.get("promptTokenCount", 0)
        completion_tokens = usage.get("candidatesTokenCount", 0)

        return ChatResponse(
            content=content,
            prompt_tokens=prompt_tokens,
            completion_tokens=completion_tokens,
            total_tokens=prompt_tokens + completion_tokens,
            model=model,
        )


class OpenAIProvider(AIProvider):
    """OpenAI API provider."""

    def __init__(
        self,
        api_key: str,
        default_model: str = "gpt-4o-mini",
        retry: RetryPolicy | None = None,
    ):
        super().__init__(retry)
        self.api_key = api_key
        self.default_model = default_model
        self.base_url = "https://api.openai.com/v1"

    async def chat(
        self,
        messages: list[ChatMessage],
        model: str | None = None,
        temperature: float = 0.1,
        max_tokens: int = 1000,
    ) -> ChatResponse:
        model = model or self.default_model

        data = await self._post(
            f"{self.base_url}/chat/completions",
            headers={
                "Authorization": f"Bearer {self.api_key}",
                "Content-Type": "application/json",
            },
            json={
                "model": model,
                "messages": [{"role": m.role, "content": m.content} for m in messages],
                "temperature": temperature,
                "max_tokens": max_tokens,
                "response_format": {"type": "json_object"},
            },
        )

        try:
            content = data["choices"][0]["message"]["content"] or ""
        except (KeyError, IndexError, TypeError):
            logger.warning("Invalid OpenAI response shape: %s", str(data)[:500])
            content = ""

        usage = data.get("usage") or {}
        return ChatResponse(
            content=content,
            prompt_tokens=usage.get("prompt_tokens", 0),
            completion_tokens=usage.get("completion_tokens", 0),
            total_tokens=usage.get("total_tokens", 0),
            model=model,
        )


def get_provider(
    provider_name: str,
    api_key: str,
    model: str | None = None,
    retry: RetryPolicy | None = None,
) -> AIProvider:
    """Factory function to get the appropriate AI provider."""
    if provider_name == "gemini":
        return GeminiProvider(api_key, default_model=model or "gemini-2.0-flash", retry=retry)
    elif provider_name == "openai":
        return OpenAIProvider(api_key, default_model=model or "gpt-4o-mini", retry=retry)
    else:
        raise ValueError(f"Unknown provider: {provider_name}")
