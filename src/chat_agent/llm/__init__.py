"""LLM backend client."""

from chat_agent.llm.client import ChatMessage, ChatResponse, LlmClient, LlmError

__all__ = [
    "ChatMessage",
    "ChatResponse",
    "LlmClient",
    "LlmError",
]
