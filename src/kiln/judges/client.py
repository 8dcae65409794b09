"""LiteLLM-backed judge capability: prompt in, free text out."""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from typing import Any, Protocol

from litellm import completion

logger = logging.getLogger(__name__)

JUDGE_SYSTEM_PROMPT = """
You are a strict but fair quality reviewer for small generated tools.
Answer ONLY with the JSON requested by the user message. No prose outside the JSON.
""".strip()

_DEFAULT_NVIDIA_API_BASE = "https://integrate.api.nvidia.com/v1"
_SUPPORTED_PROVIDERS = {"openai", "anthropic", "nvidia", "custom"}
_DEFAULT_JUDGE_TIMEOUT_S = 120.0


class JudgeUnavailableError(RuntimeError):
    """The judge service could not be reached or rejected the request."""


class JudgeResponseError(ValueError):
    """The judge answered, but not with the structure that was asked for."""


class JudgeClient(Protocol):
    """Any text-completion capability. Tests substitute deterministic stubs."""

    def complete(self, prompt: str, *, max_tokens: int | None = None) -> str:
        ...


def _read_mapping_value(obj: object, key: str) -> object:
    if isinstance(obj, Mapping):
        return obj.get(key)
    return getattr(obj, key, None)


def _extract_content(response: object) -> str:
    choices = _read_mapping_value(response, "choices")
    if not isinstance(choices, list) or not choices:
        return ""

    message = _read_mapping_value(choices[0], "message")
    content = _read_mapping_value(message, "content")
    return content if isinstance(content, str) else ""


class LiteLLMJudgeClient:
    """Sends judge prompts through LiteLLM ``completion``."""

    def __init__(
        self,
        model_name: str = "gpt-4o",
        provider: str = "openai",
        api_base: str | None = None,
        api_key: str | None = None,
        request_timeout_s: float = _DEFAULT_JUDGE_TIMEOUT_S,
        temperature: float | None = 0.0,
        **kwargs: Any,
    ) -> None:
        self.model_name = model_name
        self.provider = provider.strip().lower()
        if self.provider not in _SUPPORTED_PROVIDERS:
            raise ValueError(
                f"Unsupported judge provider '{provider}'. "
                f"Supported providers: {sorted(_SUPPORTED_PROVIDERS)}"
            )
        self.api_base = api_base
        self.api_key = api_key
        self.request_timeout_s = request_timeout_s
        self.temperature = temperature
        self.kwargs = kwargs

    def complete(self, prompt: str, *, max_tokens: int | None = None) -> str:
        completion_kwargs: dict[str, Any] = {
            "model": self.model_name,
            "messages": [
                {"role": "system", "content": JUDGE_SYSTEM_PROMPT},
                {"role": "user", "content": prompt.strip()},
            ],
            "timeout": self.request_timeout_s,
        }
        completion_kwargs.update(self.kwargs)
        if max_tokens is not None:
            completion_kwargs["max_tokens"] = max_tokens
        if self.temperature is not None:
            completion_kwargs["temperature"] = self.temperature

        try:
            completion_kwargs.update(self._provider_kwargs())
            response = completion(**completion_kwargs)
        except Exception as err:
            raise JudgeUnavailableError(f"Judge request failed: {err}") from err

        content = _extract_content(response)
        if not content.strip():
            raise JudgeResponseError("Judge returned an empty response.")
        return content

    def _provider_kwargs(self) -> dict[str, Any]:
        provider_kwargs: dict[str, Any] = {}

        if self.provider == "nvidia":
            api_key = self.api_key or os.getenv("NVIDIA_API_KEY")
            if not api_key:
                raise RuntimeError("NVIDIA_API_KEY is required when judge provider is 'nvidia'.")
            provider_kwargs["api_base"] = (
                self.api_base or os.getenv("NVIDIA_API_BASE") or _DEFAULT_NVIDIA_API_BASE
            )
            provider_kwargs["api_key"] = api_key
            return provider_kwargs

        if self.api_base:
            provider_kwargs["api_base"] = self.api_base
        if self.api_key:
            provider_kwargs["api_key"] = self.api_key
        return provider_kwargs
