"""Chat-completion client for OpenAI-compatible backends with retry on 429."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

import httpx

from chat_agent.config import LlmSettings

logger = logging.getLogger(__name__)

DEFAULT_USER_AGENT = "chat-agent/0.1"


class LlmError(Exception):
    """Chat backend call failed."""


@dataclass(slots=True)
class ChatMessage:
    """One chat turn."""

    role: str
    content: str

    def to_dict(self) -> dict[str, str]:
        return {"role": self.role, "content": self.content}


@dataclass(slots=True)
class ChatResponse:
    """Assistant reply with basic usage metadata."""

    content: str
    model: str
    prompt_tokens: int | None = None
    completion_tokens: int | None = None


class LlmClient:
    """HTTP client wrapper with bearer auth, timeout, and rate-limit retries."""

    def __init__(
        self,
        settings: LlmSettings,
        *,
        transport: httpx.BaseTransport | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.settings = settings
        self._sleep = sleep
        headers = {"User-Agent": DEFAULT_USER_AGENT}
        if settings.api_key:
            headers["Authorization"] = f"Bearer {settings.api_key}"
        self._client = httpx.Client(
            base_url=settings.base_url,
            timeout=httpx.Timeout(settings.timeout_seconds, connect=10.0),
            headers=headers,
            transport=transport,
        )

    def chat(self, messages: list[ChatMessage], *, model: str | None = None) -> ChatResponse:
        """Send messages and return the first choice."""

        model = model or self.settings.model
        if self.settings.demo_mode:
            return _demo_reply(messages, model=model)

        payload = {"model": model, "messages": [message.to_dict() for message in messages]}
        response = self._post_with_retry("/chat/completions", payload)
        try:
            body = response.json()
            content = body["choices"][0]["message"]["content"]
        except (ValueError, KeyError, IndexError, TypeError) as error:
            raise LlmError(f"Unexpected chat response format: {error}") from error

        usage = body.get("usage") or {}
        return ChatResponse(
            content=content or "",
            model=body.get("model", model),
            prompt_tokens=usage.get("prompt_tokens"),
            completion_tokens=usage.get("completion_tokens"),
        )

    def ask(self, prompt: str, *, system_prompt: str | None = None) -> str:
        """Single-turn helper returning only the reply text."""

        messages = []
        if system_prompt:
            messages.append(ChatMessage(role="system", content=system_prompt))
        messages.append(ChatMessage(role="user", content=prompt))
        return self.chat(messages).content

    def _post_with_retry(self, path: str, payload: dict[str, Any]) -> httpx.Response:
        attempt = 0
        while True:
            try:
                response = self._client.post(path, json=payload)
            except httpx.TimeoutException as error:
                raise LlmError("Chat request timed out") from error
            except httpx.HTTPError as error:
                raise LlmError(f"Chat request failed: {error}") from error

            if response.status_code == httpx.codes.TOO_MANY_REQUESTS:
                if attempt >= self.settings.max_retries:
                    raise LlmError(
                        f"Rate limited after {attempt + 1} attempts (HTTP 429)",
                    )
                delay = _retry_after_seconds(response)
                if delay is None:
                    delay = self.settings.retry_backoff_seconds * (2**attempt)
                logger.warning("Rate limited by %s, retrying in %.2fs", path, delay)
                self._sleep(delay)
                attempt += 1
                continue

            if not response.is_success:
                raise LlmError(f"HTTP {response.status_code}: {response.text[:200]}")
            return response

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> LlmClient:
        return self

    def __exit__(self, *_: object) -> None:
        self.close()


def _retry_after_seconds(response: httpx.Response) -> float | None:
    value = response.headers.get("retry-after")
    if value is None:
        return None
    try:
        return max(float(value), 0.0)
    except ValueError:
        return None


def _demo_reply(messages: list[ChatMessage], *, model: str) -> ChatResponse:
    last_user = next(
        (message.content for message in reversed(messages) if message.role == "user"),
        "",
    )
    return ChatResponse(content=f"[demo] {last_user}".strip(), model=model)
