from __future__ import annotations

import json
import os
import socket
from abc import ABC, abstractmethod
from typing import Any, Mapping
from urllib import error, request

from autoheal.config.schema import RerankConfig
from autoheal.core.exceptions import RerankBackendFailure


class LLMProvider(ABC):
    """Provider-neutral interface for one chat-style completion."""

    provider_name = "unknown"

    @abstractmethod
    def complete(self, system: str, user: str, timeout: float) -> str:
        raise NotImplementedError


class OpenAIProvider(LLMProvider):
    provider_name = "openai"
    endpoint = "https://api.openai.com/v1/chat/completions"
    default_model = "gpt-4o-mini"

    def __init__(self, api_key: str, model: str | None = None) -> None:
        self.api_key = api_key
        self.model = model or os.getenv("OPENAI_MODEL", self.default_model)

    def complete(self, system: str, user: str, timeout: float) -> str:
        body = {
            "model": self.model,
            "temperature": 0,
            "response_format": {"type": "json_object"},
            "messages": [
                {"role": "system", "content": system},
                {"role": "user", "content": user},
            ],
        }
        response = _post_json(
            self.endpoint,
            body,
            headers={
                "Authorization": f"Bearer {self.api_key}",
                "Content-Type": "application/json",
            },
            timeout=timeout,
        )
        try:
            return response["choices"][0]["message"]["content"] or ""
        except (KeyError, IndexError, TypeError) as exc:
            raise RerankBackendFailure("OpenAI response has no message content") from exc


class AnthropicProvider(LLMProvider):
    provider_name = "anthropic"
    endpoint = "https://api.anthropic.com/v1/messages"
    default_model = "claude-3-5-sonnet-latest"

    def __init__(self, api_key: str, model: str | None = None) -> None:
        self.api_key = api_key
        self.model = model or os.getenv("ANTHROPIC_MODEL", self.default_model)

    def complete(self, system: str, user: str, timeout: float) -> str:
        body = {
            "model": self.model,
            "max_tokens": 1000,
            "temperature": 0,
            "system": system,
            "messages": [
                {"role": "user", "content": user},
            ],
        }
        response = _post_json(
            self.endpoint,
            body,
            headers={
                "x-api-key": self.api_key,
                "anthropic-version": "2023-06-01",
                "Content-Type": "application/json",
            },
            timeout=timeout,
        )
        blocks = response.get("content") or []
        content = "".join(block.get("text", "") for block in blocks if isinstance(block, dict))
        if not content.strip():
            raise RerankBackendFailure("Anthropic returned an empty response")
        return content


class GeminiProvider(LLMProvider):
    provider_name = "gemini"
    endpoint_template = "https://generativelanguage.googleapis.com/v1beta/models/{model}:generateContent"
    default_model = "gemini-2.5-flash"

    def __init__(self, api_key: str, model: str | None = None) -> None:
        self.api_key = api_key
        self.model = model or os.getenv("GEMINI_MODEL", self.default_model)

    def complete(self, system: str, user: str, timeout: float) -> str:
        body = {
            "system_instruction": {
                "parts": [
                    {"text": system},
                ]
            },
            "contents": [
                {
                    "role": "user",
                    "parts": [
                        {"text": user},
                    ],
                }
            ],
            "generationConfig": {
                "temperature": 0,
                "responseMimeType": "application/json",
            },
        }
        response = _post_json(
            self.endpoint_template.format(model=self.model),
            body,
            headers={
                "x-goog-api-key": self.api_key,
                "x-goog-api-client": "autoheal-selector-recovery/0.1.0",
                "Content-Type": "application/json",
            },
            timeout=timeout,
        )
        candidates = response.get("candidates", [])
        if not candidates:
            raise RerankBackendFailure("Gemini returned no candidates")
        parts = candidates[0].get("content", {}).get("parts", [])
        text_parts = [part.get("text", "") for part in parts if isinstance(part, dict)]
        content = "".join(text_parts).strip()
        if not content:
            raise RerankBackendFailure("Gemini returned an empty response")
        return content


PROVIDERS: dict[str, tuple[type[LLMProvider], str]] = {
    "openai": (OpenAIProvider, "OPENAI_API_KEY"),
    "anthropic": (AnthropicProvider, "ANTHROPIC_API_KEY"),
    "gemini": (GeminiProvider, "GEMINI_API_KEY"),
}


def create_llm_provider(config: RerankConfig, environ: Mapping[str, str] | None = None) -> LLMProvider:
    env = os.environ if environ is None else environ
    provider = config.provider.lower()
    if provider not in PROVIDERS:
        raise RerankBackendFailure(f"Unsupported LLM provider: {provider}")
    provider_class, key_name = PROVIDERS[provider]
    api_key = env.get(key_name)
    if not api_key:
        raise RerankBackendFailure(f"{key_name} is required when LLM_PROVIDER={provider}")
    return provider_class(api_key, model=config.model)


def _post_json(url: str, payload: dict[str, Any], headers: dict[str, str], timeout: float = 30) -> dict[str, Any]:
    encoded = json.dumps(payload).encode("utf-8")
    req = request.Request(url, data=encoded, headers=headers, method="POST")
    try:
        with request.urlopen(req, timeout=timeout) as response:
            raw = response.read().decode("utf-8")
    except error.HTTPError as exc:
        detail = exc.read().decode("utf-8", errors="replace")
        raise RerankBackendFailure(f"LLM request failed with status {exc.code}: {detail}") from exc
    except error.URLError as exc:
        raise RerankBackendFailure(f"LLM request could not be completed: {exc.reason}") from exc
    except (TimeoutError, socket.timeout) as exc:
        raise RerankBackendFailure(f"LLM request timed out after {timeout}s") from exc
    try:
        return json.loads(raw)
    except json.JSONDecodeError as exc:
        raise RerankBackendFailure("LLM response body is not JSON") from exc
