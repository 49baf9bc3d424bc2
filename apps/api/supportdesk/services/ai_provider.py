"""AI Provider abstraction layer.

Chat completions over OpenAI-compatible endpoints (Groq, OpenAI).
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any

import httpx

from supportdesk.core.config import settings

logger = logging.getLogger(__name__)

PROVIDER_BASE_URLS = {
    "groq": "https://api.groq.com/openai/v1",
    "openai": "https://api.openai.com/v1",
}
PROVIDER_DEFAULT_MODELS = {
    "groq": "llama-3.1-8b-instant",
    "openai": "gpt-4o-mini",
}


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


class AIProvider(ABC):
    """Abstract base class for AI providers."""

    @abstractmethod
    async def chat(
        self,
        messages: list[ChatMessage],
        model: str | None = None,
        temperature: float = 0.7,
        max_tokens: int = 1000,
        json_mode: bool = False,
    ) -> ChatResponse:
        """Send a chat completion request."""
        pass


class OpenAICompatibleProvider(AIProvider):
    """Chat completions against an OpenAI-compatible API."""

    def __init__(
        self,
        api_key: str,
        *,
        base_url: str,
        default_model: str,
        timeout: float = 30.0,
    ):
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.default_model = default_model
        self.timeout = timeout

    async def chat(
        self,
        messages: list[ChatMessage],
        model: str | None = None,
        temperature: float = 0.7,
        max_tokens: int = 1000,
        json_mode: bool = False,
    ) -> ChatResponse:
        model = model or self.default_model

        body: dict[str, Any] = {
            "model": model,
            "messages": [{"role": m.role, "content": m.content} for m in messages],
            "temperature": temperature,
            "max_tokens": max_tokens,
        }
        if json_mode:
            body["response_format"] = {"type": "json_object"}

        async with httpx.AsyncClient(timeout=self.timeout) as client:
            response = await client.post(
                f"{self.base_url}/chat/completions",
                headers={
                    "Authorization": f"Bearer {self.api_key}",
                    "Content-Type": "application/json",
                },
                json=body,
            )
            response.raise_for_status()
            data = response.json()

        if data.get("error"):
            raise RuntimeError(data["error"].get("message", "provider error"))

        usage = data.get("usage", {})
        return ChatResponse(
            content=data["choices"][0]["message"]["content"],
            prompt_tokens=usage.get("prompt_tokens", 0),
            completion_tokens=usage.get("completion_tokens", 0),
            total_tokens=usage.get("total_tokens", 0),
            model=model,
        )


def get_provider(
    provider_name: str, api_key: str, model: str | None = None, base_url: str | None = None
) -> AIProvider:
    """Factory function to get the appropriate AI provider."""
    if provider_name not in PROVIDER_BASE_URLS:
        raise ValueError(f"Unknown provider: {provider_name}")
    return OpenAICompatibleProvider(
        api_key,
        base_url=base_url or PROVIDER_BASE_URLS[provider_name],
        default_model=model or PROVIDER_DEFAULT_MODELS[provider_name],
        timeout=settings.AI_TIMEOUT_SECONDS,
    )


def get_configured_provider() -> AIProvider:
    """Provider from settings (used by the /ai-* endpoints)."""
    if not settings.AI_API_KEY:
        raise ValueError("AI_API_KEY is not configured")
    return get_provider(
        settings.AI_PROVIDER,
        settings.AI_API_KEY,
        model=settings.AI_MODEL or None,
        base_url=settings.AI_BASE_URL or None,
    )
