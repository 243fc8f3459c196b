"""
PlantCare — LLM Provider Abstraction.

Single public function `complete()` that routes to the configured provider.
Provider is selected at first use via the LLM_PROVIDER env var.
Supports: openai (default), anthropic. An optional JPEG image is sent inline
as base64 alongside the user prompt.

Provider SDK errors are translated into the LLMError family so callers never
depend on a specific SDK.
"""

from __future__ import annotations

import base64
import logging
from typing import Awaitable, Callable

logger = logging.getLogger(__name__)


class LLMError(Exception):
    """Base class for LLM client failures, surfaced to the requesting screen."""


class LLMConfigError(LLMError):
    """No API key (or an unknown provider) is configured."""


class HttpError(LLMError):
    def __init__(self, status_code: int) -> None:
        super().__init__(f"HTTP error: {status_code}")
        self.status_code = status_code


class UpstreamError(LLMError):
    def __init__(self, message: str) -> None:
        super().__init__(f"LLM API error: {message}")
        self.message = message


class InvalidResponse(LLMError):
    """The provider answered, but not with something we can use."""


# Type alias for provider implementations:
# (api_key, model, system, user_message, image, max_tokens, temperature) -> text
_ProviderFn = Callable[[str, str, str, str, "bytes | None", int, float], Awaitable[str]]


def _error_message(body: object) -> str | None:
    """Pull a human message out of an SDK error body, if there is one."""
    if not isinstance(body, dict):
        return None
    if isinstance(body.get("message"), str):
        return body["message"]
    inner = body.get("error")
    if isinstance(inner, dict) and isinstance(inner.get("message"), str):
        return inner["message"]
    return None


# ---------------------------------------------------------------------------
# Provider implementations
# ---------------------------------------------------------------------------


async def _complete_openai(
    api_key: str, model: str, system: str, user_message: str,
    image: bytes | None, max_tokens: int, temperature: float,
) -> str:
    import openai
    from openai import AsyncOpenAI

    if image is not None:
        image_url = "data:image/jpeg;base64," + base64.b64encode(image).decode("ascii")
        user_content: str | list[dict] = [
            {"type": "text", "text": user_message},
            {"type": "image_url", "image_url": {"url": image_url}},
        ]
    else:
        user_content = user_message

    client = AsyncOpenAI(api_key=api_key)
    try:
        response = await client.chat.completions.create(
            model=model,
            max_tokens=max_tokens,
            temperature=temperature,
            messages=[
                {"role": "system", "content": system},
                {"role": "user", "content": user_content},
            ],
        )
    except openai.APIStatusError as exc:
        message = _error_message(exc.body)
        if message:
            raise UpstreamError(message) from exc
        raise HttpError(exc.status_code) from exc
    except openai.APIError as exc:
        raise UpstreamError(str(exc)) from exc

    if not response.choices or response.choices[0].message.content is None:
        raise InvalidResponse("No response content")
    return response.choices[0].message.content


async def _complete_anthropic(
    api_key: str, model: str, system: str, user_message: str,
    image: bytes | None, max_tokens: int, temperature: float,
) -> str:
    import anthropic

    content: list[dict] = []
    if image is not None:
        content.append({
            "type": "image",
            "source": {
                "type": "base64",
                "media_type": "image/jpeg",
                "data": base64.b64encode(image).decode("ascii"),
            },
        })
    content.append({"type": "text", "text": user_message})

    client = anthropic.AsyncAnthropic(api_key=api_key)
    try:
        response = await client.messages.create(
            model=model,
            max_tokens=max_tokens,
            temperature=temperature,
            system=system,
            messages=[{"role": "user", "content": content}],
        )
    except anthropic.APIStatusError as exc:
        message = _error_message(exc.body)
        if message:
            raise UpstreamError(message) from exc
        raise HttpError(exc.status_code) from exc
    except anthropic.APIError as exc:
        raise UpstreamError(str(exc)) from exc

    texts = [block.text for block in response.content if getattr(block, "type", "") == "text"]
    if not texts:
        raise InvalidResponse("No response content")
    return "".join(texts)


# ---------------------------------------------------------------------------
# Provider selection (runs once at first call)
# ---------------------------------------------------------------------------

_PROVIDERS: dict[str, tuple[_ProviderFn, str]] = {
    "openai":    (_complete_openai,    "gpt-4o-mini"),
    "anthropic": (_complete_anthropic, "claude-haiku-4-5-20251001"),
}


def _select_provider() -> tuple[_ProviderFn, str, str]:
    """Read settings and return (provider_fn, model, api_key)."""
    from plantcare.config import settings

    provider_name = settings.LLM_PROVIDER.lower()
    if provider_name not in _PROVIDERS:
        raise LLMConfigError(
            f"Unknown LLM_PROVIDER={provider_name!r}. "
            f"Supported: {', '.join(_PROVIDERS)}"
        )
    if not settings.LLM_API_KEY:
        raise LLMConfigError("LLM_API_KEY is not set; AI features are unavailable")

    fn, default_model = _PROVIDERS[provider_name]
    model = settings.LLM_MODEL or default_model

    logger.info("LLM provider: %s, model: %s", provider_name, model)
    return fn, model, settings.LLM_API_KEY


# Lazy singleton — populated on first call to complete()
_provider_fn: _ProviderFn | None = None
_model: str = ""
_api_key: str = ""


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


async def complete(
    system: str,
    user_message: str,
    image: bytes | None = None,
    max_tokens: int = 1024,
    temperature: float = 0.7,
) -> str:
    """Send a system+user prompt pair to the configured provider.

    Raises LLMError subclasses on failure — callers should handle them. No
    retries: the user retries from the screen that asked.
    """
    global _provider_fn, _model, _api_key

    if _provider_fn is None:
        _provider_fn, _model, _api_key = _select_provider()

    return await _provider_fn(
        _api_key, _model, system, user_message, image, max_tokens, temperature,
    )
