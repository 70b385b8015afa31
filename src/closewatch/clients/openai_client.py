"""OpenAI chat client used for close narratives."""

from dataclasses import dataclass
from typing import Any

import openai
import structlog

from closewatch.config import get_settings

logger = structlog.get_logger(__name__)


class LLMConfigurationError(RuntimeError):
    """No API key is available for the narrative model."""


@dataclass
class OpenAIResponse:
    """Response from OpenAI API."""

    content: str
    stop_reason: str
    usage: dict[str, int]


class OpenAIClient:
    """Client for OpenAI's chat completions API.

    Also supports OpenAI-compatible APIs like LM Studio via custom base_url.
    """

    def __init__(
        self,
        api_key: str | None = None,
        base_url: str | None = None,
        model: str | None = None,
        max_tokens: int | None = None,
        temperature: float | None = None,
    ):
        settings = get_settings()
        configured_key = settings.openai_api_key
        self._api_key = api_key or (
            configured_key.get_secret_value() if configured_key else None
        )
        if not self._api_key:
            raise LLMConfigurationError("OPENAI_API_KEY is not configured")
        self._base_url = base_url  # None means use OpenAI's default
        self._model = model or settings.gpt_model
        self._max_tokens = max_tokens or settings.llm_max_tokens
        self._temperature = (
            temperature if temperature is not None else settings.llm_temperature
        )

        client_kwargs: dict[str, Any] = {"api_key": self._api_key}
        if self._base_url:
            client_kwargs["base_url"] = self._base_url

        self._client = openai.AsyncOpenAI(**client_kwargs)
        client_name = "lm_studio" if self._base_url else "openai"
        self._logger = logger.bind(client=client_name, model=self._model)

    def _parse_response(self, response: openai.types.chat.ChatCompletion) -> OpenAIResponse:
        """Parse OpenAI response into our format."""
        choice = response.choices[0]
        stop_reason_map = {
            "stop": "end_turn",
            "length": "max_tokens",
            "content_filter": "content_filter",
        }
        return OpenAIResponse(
            content=choice.message.content or "",
            stop_reason=stop_reason_map.get(choice.finish_reason or "stop", "end_turn"),
            usage={
                "input_tokens": response.usage.prompt_tokens if response.usage else 0,
                "output_tokens": response.usage.completion_tokens if response.usage else 0,
            },
        )

    async def generate(self, system_prompt: str, prompt: str) -> OpenAIResponse:
        """Generate a single reply for ``prompt``.

        Args:
            system_prompt: Instructions constraining the assistant.
            prompt: The user message with the deterministic figures.

        Returns:
            OpenAIResponse with content and usage info.
        """
        self._logger.debug("generating_response", prompt_chars=len(prompt))

        kwargs: dict[str, Any] = {
            "model": self._model,
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": prompt},
            ],
            "temperature": self._temperature,
            "max_tokens": self._max_tokens,
        }

        try:
            response = await self._client.chat.completions.create(**kwargs)
        except openai.APIError as e:
            self._logger.error("api_error", error=str(e))
            raise

        parsed = self._parse_response(response)
        self._logger.info(
            "response_generated",
            stop_reason=parsed.stop_reason,
            input_tokens=parsed.usage["input_tokens"],
            output_tokens=parsed.usage["output_tokens"],
        )
        return parsed
