from __future__ import annotations

import asyncio
import json
import os
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any
from urllib import error, request

DEFAULT_MAX_OUTPUT_TOKENS = 2048


@dataclass(slots=True)
class CompletionOptions:
    system: str | None = None
    max_output_tokens: int | None = None


class CompletionClient(ABC):
    """Provider-neutral text completion interface."""

    provider_name = "unknown"

    @abstractmethod
    async def complete(self, prompt: str, options: CompletionOptions | None = None) -> str:
        raise NotImplementedError


class OpenAICompletionClient(CompletionClient):
    provider_name = "openai"
    endpoint = "https://api.openai.com/v1/chat/completions"

    def __init__(self, api_key: str, model: str | None = None) -> None:
        self.api_key = api_key
        self.model = model or os.getenv("OPENAI_MODEL", "gpt-4o-mini")

    async def complete(self, prompt: str, options: CompletionOptions | None = None) -> str:
        options = options or CompletionOptions()
        messages = []
        if options.system:
            messages.append({"role": "system", "content": options.system})
        messages.append({"role": "user", "content": prompt})
        body = {
            "model": self.model,
            "temperature": 0,
            "max_tokens": options.max_output_tokens or DEFAULT_MAX_OUTPUT_TOKENS,
            "messages": messages,
        }
        response = await asyncio.to_thread(
            _post_json,
            self.endpoint,
            body,
            {
                "Authorization": f"Bearer {self.api_key}",
                "Content-Type": "application/json",
            },
        )
        return response["choices"][0]["message"]["content"]


class AnthropicCompletionClient(CompletionClient):
    provider_name = "anthropic"
    endpoint = "https://api.anthropic.com/v1/messages"

    def __init__(self, api_key: str, model: str | None = None) -> None:
        self.api_key = api_key
        self.model = model or os.getenv("ANTHROPIC_MODEL", "claude-3-5-sonnet-latest")

    async def complete(self, prompt: str, options: CompletionOptions | None = None) -> str:
        options = options or CompletionOptions()
        body: dict[str, Any] = {
            "model": self.model,
            "max_tokens": options.max_output_tokens or DEFAULT_MAX_OUTPUT_TOKENS,
            "temperature": 0,
            "messages": [
                {"role": "user", "content": prompt},
            ],
        }
        if options.system:
            body["system"] = options.system
        response = await asyncio.to_thread(
            _post_json,
            self.endpoint,
            body,
            {
                "x-api-key": self.api_key,
                "anthropic-version": "2023-06-01",
                "Content-Type": "application/json",
            },
        )
        return "".join(part.get("text", "") for part in response.get("content", []) if isinstance(part, dict))


class GeminiCompletionClient(CompletionClient):
    provider_name = "gemini"
    endpoint_template = "https://generativelanguage.googleapis.com/v1beta/models/{model}:generateContent"

    def __init__(self, api_key: str, model: str | None = None) -> None:
        self.api_key = api_key
        self.model = model or os.getenv("GEMINI_MODEL", "gemini-2.5-flash")

    async def complete(self, prompt: str, options: CompletionOptions | None = None) -> str:
        options = options or CompletionOptions()
        body: dict[str, Any] = {
            "contents": [
                {
                    "role": "user",
                    "parts": [
                        {"text": prompt},
                    ],
                }
            ],
            "generationConfig": {
                "temperature": 0,
                "maxOutputTokens": options.max_output_tokens or DEFAULT_MAX_OUTPUT_TOKENS,
            },
        }
        if options.system:
            body["system_instruction"] = {"parts": [{"text": options.system}]}
        response = await asyncio.to_thread(
            _post_json,
            self.endpoint_template.format(model=self.model),
            body,
            {
                "x-goog-api-key": self.api_key,
                "x-goog-api-client": "resilient-selector-engine/0.1.0",
                "Content-Type": "application/json",
            },
        )
        candidates = response.get("candidates", [])
        if not candidates:
            raise RuntimeError("Gemini returned no candidates")
        parts = candidates[0].get("content", {}).get("parts", [])
        text_parts = [part.get("text", "") for part in parts if isinstance(part, dict)]
        content = "".join(text_parts).strip()
        if not content:
            raise RuntimeError("Gemini returned an empty response")
        return content


def create_completion_client(provider: str | None = None, model: str | None = None) -> CompletionClient:
    provider = (provider or os.getenv("LLM_PROVIDER", "openai")).lower()
    if provider == "openai":
        api_key = os.getenv("OPENAI_API_KEY")
        if not api_key:
            raise RuntimeError("OPENAI_API_KEY is required when LLM_PROVIDER=openai")
        return OpenAICompletionClient(api_key, model)
    if provider == "anthropic":
        api_key = os.getenv("ANTHROPIC_API_KEY")
        if not api_key:
            raise RuntimeError("ANTHROPIC_API_KEY is required when LLM_PROVIDER=anthropic")
        return AnthropicCompletionClient(api_key, model)
    if provider == "gemini":
        api_key = os.getenv("GEMINI_API_KEY") or os.getenv("GOOGLE_API_KEY")
        if not api_key:
            raise RuntimeError("GEMINI_API_KEY is required when LLM_PROVIDER=gemini")
        return GeminiCompletionClient(api_key, model)
    raise RuntimeError(f"Unsupported LLM provider: {provider}")


def _post_json(url: str, payload: dict[str, Any], headers: dict[str, str]) -> dict[str, Any]:
    encoded = json.dumps(payload).encode("utf-8")
    req = request.Request(url, data=encoded, headers=headers, method="POST")
    try:
        with request.urlopen(req, timeout=30) as response:
            raw = response.read().decode("utf-8")
    except error.HTTPError as exc:
        detail = exc.read().decode("utf-8", errors="replace")
        raise RuntimeError(f"LLM request failed with status {exc.code}: {detail}") from exc
    except error.URLError as exc:
        raise RuntimeError(f"LLM request could not be completed: {exc.reason}") from exc
    return json.loads(raw)
