"""LLM client implementations for closewatch narratives."""

from closewatch.clients.openai_client import (
    LLMConfigurationError,
    OpenAIClient,
    OpenAIResponse,
)

__all__ = ["LLMConfigurationError", "OpenAIClient", "OpenAIResponse"]
