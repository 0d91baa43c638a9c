# =============================================================================
# Multi-Provider LLM Abstraction — Model Invoker for Agents and Critics
# =============================================================================
#
# Every model call in the profiler (agent generation, rubric critique) goes
# through the `LLMProvider` protocol. Agents receive a provider instance in
# their constructor; nothing reaches for a global client directly.
#
# DESIGN DECISION: Protocol (structural typing) over ABC.
# Tests pass a plain `AsyncMock` or a tiny fake class with a `complete()`
# coroutine, no inheritance required.
#
# DESIGN DECISION: Native SDKs over wrapper frameworks.
# The anthropic and openai SDKs own connection pooling and retry/backoff.
# This module only normalises responses and translates SDK exceptions into
# `ModelInvocationError(status, retryable)` so callers can report failures
# without importing provider-specific exception types.
#
# ARCHITECTURE:
#   LLMProvider (Protocol)
#   ├── AnthropicProvider        — Claude via native Anthropic SDK
#   ├── OpenAICompatibleProvider — OpenAI / DeepSeek / Qwen / ...
#   ├── get_llm_provider()       — lazy singleton from settings
#   ├── create_provider_from_id()— fresh instance, e.g. a separate critic
#   └── parse_json_content()     — tolerant JSON extraction from replies
# =============================================================================

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from typing import Any, Protocol

from profiler.config import settings
from profiler.errors import ModelInvocationError

logger = logging.getLogger(__name__)

# HTTP statuses worth retrying at a higher level (rate limits, overload)
_RETRYABLE_STATUSES = {408, 409, 429}


# ---------------------------------------------------------------------------
# Data Structures
# ---------------------------------------------------------------------------


@dataclass
class LLMResponse:
    """Standardised response from any LLM provider."""

    content: str           # The generated text
    model: str             # Model identifier
    input_tokens: int      # Tokens consumed by the prompt
    output_tokens: int     # Tokens generated in the response

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens


# ---------------------------------------------------------------------------
# Protocol Definition
# ---------------------------------------------------------------------------


class LLMProvider(Protocol):
    """
    Protocol defining the model invoker interface.

    Implementations raise `ModelInvocationError` on any provider failure.
    """

    async def complete(
        self,
        messages: list[dict[str, str]],
        system: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> LLMResponse:
        """
        Generate a completion from the LLM.

        Args:
            messages: Conversation messages as dicts with "role" and "content".
            system: System prompt (top-level kwarg for Anthropic, first
                message for OpenAI-compatible APIs).
            temperature: Override sampling temperature.
            max_tokens: Override max output tokens.
        """
        ...


def _status_is_retryable(status: int) -> bool:
    return status in _RETRYABLE_STATUSES or status >= 500


# ---------------------------------------------------------------------------
# Implementation 1: Anthropic (Claude)
# ---------------------------------------------------------------------------


class AnthropicProvider:
    """
    Anthropic Claude provider using the native async SDK.

    KEY API DIFFERENCE: Anthropic takes system prompts as a top-level
    `system=` kwarg, NOT as a message with role "system".
    """

    def __init__(
        self,
        api_key: str | None = None,
        model: str | None = None,
    ) -> None:
        from anthropic import AsyncAnthropic

        resolved_key = api_key or settings.llm_api_key or settings.anthropic_api_key
        if not resolved_key:
            raise ValueError(
                "No Anthropic API key configured. Set LLM_API_KEY or "
                "ANTHROPIC_API_KEY in .env"
            )

        self._client = AsyncAnthropic(api_key=resolved_key)
        self._model = model or settings.llm_model
        self._temperature = settings.llm_temperature
        self._max_tokens = settings.llm_max_tokens

        logger.info("Initialized AnthropicProvider (model=%s)", self._model)

    async def complete(
        self,
        messages: list[dict[str, str]],
        system: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> LLMResponse:
        """Generate a completion using Claude."""
        import anthropic

        kwargs: dict = {
            "model": self._model,
            "messages": messages,
            "max_tokens": max_tokens or self._max_tokens,
            "temperature": self._temperature if temperature is None else temperature,
        }
        if system:
            kwargs["system"] = system

        try:
            response = await self._client.messages.create(**kwargs)
        except anthropic.APIStatusError as exc:
            raise ModelInvocationError(
                f"Anthropic API error: {exc.message}",
                status=exc.status_code,
                retryable=_status_is_retryable(exc.status_code),
            ) from exc
        except anthropic.APIConnectionError as exc:
            raise ModelInvocationError(
                f"Anthropic connection error: {exc}", status=0, retryable=True,
            ) from exc

        content = ""
        for block in response.content:
            if block.type == "text":
                content = block.text
                break

        return LLMResponse(
            content=content,
            model=response.model,
            input_tokens=response.usage.input_tokens,
            output_tokens=response.usage.output_tokens,
        )


# ---------------------------------------------------------------------------
# Implementation 2: OpenAI-Compatible
# ---------------------------------------------------------------------------


class OpenAICompatibleProvider:
    """
    Provider for any API that follows the OpenAI chat completions schema.

    Switching providers is a config change:
        LLM_PROVIDER=openai_compatible
        LLM_BASE_URL=https://api.deepseek.com/v1
        LLM_MODEL=deepseek-chat
    """

    def __init__(
        self,
        api_key: str | None = None,
        model: str | None = None,
        base_url: str | None = None,
    ) -> None:
        from openai import AsyncOpenAI

        resolved_key = api_key or settings.llm_api_key or settings.openai_api_key
        if not resolved_key:
            raise ValueError(
                "No API key configured for OpenAI-compatible provider. "
                "Set LLM_API_KEY in .env"
            )

        client_kwargs: dict = {"api_key": resolved_key}
        resolved_base_url = base_url or settings.llm_base_url
        if resolved_base_url:
            client_kwargs["base_url"] = resolved_base_url

        self._client = AsyncOpenAI(**client_kwargs)
        self._model = model or settings.llm_model
        self._temperature = settings.llm_temperature
        self._max_tokens = settings.llm_max_tokens

        logger.info(
            "Initialized OpenAICompatibleProvider (model=%s, base_url=%s)",
            self._model,
            resolved_base_url or "https://api.openai.com/v1",
        )

    async def complete(
        self,
        messages: list[dict[str, str]],
        system: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> LLMResponse:
        """Generate a completion using an OpenAI-compatible API."""
        import openai

        all_messages: list[dict[str, str]] = []
        if system:
            all_messages.append({"role": "system", "content": system})
        all_messages.extend(messages)

        try:
            response = await self._client.chat.completions.create(
                model=self._model,
                messages=all_messages,
                max_tokens=max_tokens or self._max_tokens,
                temperature=self._temperature if temperature is None else temperature,
            )
        except openai.APIStatusError as exc:
            raise ModelInvocationError(
                f"OpenAI-compatible API error: {exc.message}",
                status=exc.status_code,
                retryable=_status_is_retryable(exc.status_code),
            ) from exc
        except openai.APIConnectionError as exc:
            raise ModelInvocationError(
                f"OpenAI-compatible connection error: {exc}",
                status=0,
                retryable=True,
            ) from exc

        if not response.choices:
            raise ModelInvocationError(
                "OpenAI-compatible API returned no choices", status=200,
            )
        content = response.choices[0].message.content or ""

        usage = response.usage
        return LLMResponse(
            content=content,
            model=response.model or self._model,
            input_tokens=usage.prompt_tokens if usage else 0,
            output_tokens=usage.completion_tokens if usage else 0,
        )


# ---------------------------------------------------------------------------
# Factory Functions
# ---------------------------------------------------------------------------

_provider: AnthropicProvider | OpenAICompatibleProvider | None = None


def get_llm_provider() -> AnthropicProvider | OpenAICompatibleProvider:
    """
    Return the configured provider (lazy singleton).

    The SDK clients keep their own connection pools, so one instance per
    process is enough.
    """
    global _provider
    if _provider is None:
        if settings.llm_provider == "openai_compatible":
            _provider = OpenAICompatibleProvider()
        else:
            _provider = AnthropicProvider()
    return _provider


_KNOWN_PROVIDER_TYPES = {"anthropic", "openai_compatible"}


def _parse_provider_id(
    provider_id: str,
) -> tuple[str, str, str | None]:
    """
    Parse "provider_type/model[@base_url]" into its parts.

        "anthropic/claude-haiku-4-5"
            → ("anthropic", "claude-haiku-4-5", None)
        "openai_compatible/deepseek-chat@https://api.deepseek.com/v1"
            → ("openai_compatible", "deepseek-chat", "https://api.deepseek.com/v1")

    Raises:
        ValueError: If the format is unrecognisable or provider type unknown.
    """
    if "/" not in provider_id:
        raise ValueError(
            f"Invalid provider_id '{provider_id}'. "
            "Expected format: 'provider_type/model' or "
            "'provider_type/model@base_url'"
        )

    provider_type, rest = provider_id.split("/", 1)

    base_url: str | None = None
    if "@" in rest:
        model, base_url = rest.split("@", 1)
    else:
        model = rest

    if provider_type not in _KNOWN_PROVIDER_TYPES:
        raise ValueError(
            f"Unknown provider type '{provider_type}'. "
            f"Supported types: {sorted(_KNOWN_PROVIDER_TYPES)}"
        )

    return provider_type, model, base_url


def create_provider_from_id(
    provider_id: str,
    api_key: str | None = None,
) -> AnthropicProvider | OpenAICompatibleProvider:
    """
    Create a fresh, non-singleton provider from a provider ID string.

    Used to give the critique agent its own (usually cheaper) model,
    configured through `CRITIQUE_PROVIDER_ID`.
    """
    provider_type, model, base_url = _parse_provider_id(provider_id)

    if provider_type == "anthropic":
        return AnthropicProvider(api_key=api_key, model=model)

    return OpenAICompatibleProvider(
        api_key=api_key, model=model, base_url=base_url,
    )


def get_critique_provider() -> LLMProvider:
    """Provider for rubric critiques; falls back to the main provider."""
    if settings.critique_provider_id:
        return create_provider_from_id(settings.critique_provider_id)
    return get_llm_provider()


# ---------------------------------------------------------------------------
# Response Parsing
# ---------------------------------------------------------------------------

_FENCE_RE = re.compile(r"^```(?:json)?\s*|\s*```$", re.IGNORECASE)


def parse_json_content(content: str) -> dict[str, Any]:
    """
    Extract a JSON object from a model reply.

    Models occasionally wrap JSON in markdown fences or add a sentence
    before it. Strips fences, then falls back to the outermost `{...}` span.

    Raises:
        json.JSONDecodeError: If no JSON object can be recovered.
        ValueError: If the JSON is valid but not an object.
    """
    text = _FENCE_RE.sub("", content.strip())
    try:
        parsed = json.loads(text)
    except json.JSONDecodeError:
        start, end = text.find("{"), text.rfind("}")
        if start == -1 or end <= start:
            raise
        parsed = json.loads(text[start:end + 1])

    if not isinstance(parsed, dict):
        raise ValueError(f"Expected a JSON object, got {type(parsed).__name__}")
    return parsed
