"""Runtime configuration for the chat client and agent engine."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from urllib.parse import urlparse

DEFAULT_BASE_URL = "https://api.openai.com/v1"
DEFAULT_MODEL = "gpt-4o-mini"
DEFAULT_SYSTEM_PROMPT = "You are a helpful assistant."


@dataclass(slots=True)
class LlmSettings:
    """Remote chat-completion backend settings."""

    base_url: str = DEFAULT_BASE_URL
    api_key: str | None = None
    model: str = DEFAULT_MODEL
    timeout_seconds: float = 60.0
    max_retries: int = 3
    retry_backoff_seconds: float = 1.0
    demo_mode: bool = False


@dataclass(slots=True)
class SchedulerSettings:
    """Task queue retry policy."""

    max_retries: int = 3
    retry_base_seconds: float = 1.0
    retry_max_seconds: float = 60.0


@dataclass(slots=True)
class AgentSettings:
    """Execution engine behaviour."""

    strict_conditions: bool = False
    system_prompt: str = DEFAULT_SYSTEM_PROMPT


@dataclass(slots=True)
class Settings:
    """Application settings grouped by concern."""

    llm: LlmSettings = field(default_factory=LlmSettings)
    scheduler: SchedulerSettings = field(default_factory=SchedulerSettings)
    agent: AgentSettings = field(default_factory=AgentSettings)

    @classmethod
    def from_env(cls) -> Settings:
        """Load settings from environment with defaults for local use."""

        return cls(
            llm=LlmSettings(
                base_url=os.getenv("CHAT_AGENT_LLM_BASE_URL", DEFAULT_BASE_URL).rstrip("/"),
                api_key=os.getenv("CHAT_AGENT_LLM_API_KEY") or None,
                model=os.getenv("CHAT_AGENT_LLM_MODEL", DEFAULT_MODEL),
                timeout_seconds=float(os.getenv("CHAT_AGENT_LLM_TIMEOUT_SECONDS", "60")),
                max_retries=int(os.getenv("CHAT_AGENT_LLM_MAX_RETRIES", "3")),
                retry_backoff_seconds=float(
                    os.getenv("CHAT_AGENT_LLM_RETRY_BACKOFF_SECONDS", "1.0"),
                ),
                demo_mode=_env_bool("CHAT_AGENT_LLM_DEMO_MODE", default=False),
            ),
            scheduler=SchedulerSettings(
                max_retries=int(os.getenv("CHAT_AGENT_MAX_RETRIES", "3")),
                retry_base_seconds=float(os.getenv("CHAT_AGENT_RETRY_BASE_SECONDS", "1.0")),
                retry_max_seconds=float(os.getenv("CHAT_AGENT_RETRY_MAX_SECONDS", "60")),
            ),
            agent=AgentSettings(
                strict_conditions=_env_bool("CHAT_AGENT_STRICT_CONDITIONS", default=False),
                system_prompt=os.getenv("CHAT_AGENT_SYSTEM_PROMPT", DEFAULT_SYSTEM_PROMPT),
            ),
        )

    def validate(self) -> None:
        """Raise configuration error for values the engine cannot work with."""

        if self.scheduler.max_retries < 1:
            raise ValueError("CHAT_AGENT_MAX_RETRIES must be >= 1.")
        if self.scheduler.retry_base_seconds < 0:
            raise ValueError("CHAT_AGENT_RETRY_BASE_SECONDS must be >= 0.")
        if self.scheduler.retry_max_seconds < self.scheduler.retry_base_seconds:
            raise ValueError(
                "CHAT_AGENT_RETRY_MAX_SECONDS must be >= CHAT_AGENT_RETRY_BASE_SECONDS.",
            )
        if self.llm.max_retries < 0:
            raise ValueError("CHAT_AGENT_LLM_MAX_RETRIES must be >= 0.")
        if self.llm.timeout_seconds <= 0:
            raise ValueError("CHAT_AGENT_LLM_TIMEOUT_SECONDS must be > 0.")
        _validate_base_url(self.llm.base_url)

    def validate_for_chat(self) -> None:
        """Raise configuration error when a live chat backend is not usable."""

        self.validate()
        if not self.llm.demo_mode and not self.llm.api_key:
            raise ValueError(
                "An API key is required. Set CHAT_AGENT_LLM_API_KEY "
                "or enable CHAT_AGENT_LLM_DEMO_MODE.",
            )


def _validate_base_url(value: str) -> None:
    parsed = urlparse(value)
    if parsed.scheme not in {"http", "https"} or not parsed.netloc:
        raise ValueError(
            "Invalid LLM base URL: "
            f"{value!r}. Expected an absolute URL with http:// or https:// scheme.",
        )


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "on"}:
        return True
    if normalized in {"0", "false", "no", "off"}:
        return False
    raise ValueError(f"Invalid boolean value for {name}: {value!r}")
