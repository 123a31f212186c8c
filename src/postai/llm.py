"""Text-completion collaborator — litellm wrapper behind a narrow protocol."""

from __future__ import annotations

from typing import Protocol

from litellm import acompletion

from postai.config import PostAIConfig
from postai.utils.logging import get_logger

logger = get_logger(__name__)

DEFAULT_MODEL = "claude-sonnet-4-20250514"


class TextCompletion(Protocol):
    """Anything that turns an ordered message list into reply text."""

    async def invoke(self, messages: list[dict[str, str]]) -> str: ...


class LlmClient:
    """Wrapper for LLM API calls via litellm."""

    def __init__(self, model: str | None = None, api_key: str | None = None, temperature: float = 0.0) -> None:
        self.model = model or DEFAULT_MODEL
        self._api_key = api_key or None
        self._temperature = temperature

    @classmethod
    def from_config(cls, config: PostAIConfig) -> LlmClient:
        return cls(model=config.llm_model, api_key=config.llm_api_key, temperature=config.llm_temperature)

    async def invoke(self, messages: list[dict[str, str]]) -> str:
        """Send messages to the model and return the reply text.

        Args:
            messages: Ordered {role, content} dicts.

        Returns:
            Reply content, empty string when the model returns nothing.
        """
        logger.debug("llm_invoke", model=self.model, messages=len(messages))
        response = await acompletion(
            model=self.model,
            messages=messages,
            temperature=self._temperature,
            api_key=self._api_key,
        )
        return response.choices[0].message.content or ""
