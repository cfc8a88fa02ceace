"""OpenAI backend."""

import logging
from typing import Any

from openai import APIConnectionError, AsyncOpenAI

from .base import ErrorCode, Provider, ProviderError, ProviderType, classify_status_error

logger = logging.getLogger(__name__)


class OpenAIProvider(Provider):
    """Provider for OpenAI chat models."""

    def get_type(self) -> ProviderType:
        return ProviderType.OPENAI

    def _create_client(self, api_key: str) -> AsyncOpenAI:
        # base_url None means the SDK default endpoint
        return AsyncOpenAI(api_key=api_key, base_url=self.config.base_url)

    async def _complete(
        self,
        messages: list[dict[str, str]],
        model: str,
        max_tokens: int,
        temperature: float,
    ) -> Any:
        return await self._client.chat.completions.create(
            model=model,
            messages=messages,
            max_tokens=max_tokens,
            temperature=temperature,
        )

    def handle_error(self, error: Exception) -> ProviderError:
        if isinstance(error, APIConnectionError):
            return ProviderError(code=ErrorCode.NETWORK_ERROR, message=f"OpenAI connection failed: {error}")

        status = getattr(error, "status_code", None)
        if status in (402, 403):
            logger.error("OpenAI quota exceeded or billing issue")
            return ProviderError(
                code=ErrorCode.AUTH_FAILED,
                message="OpenAI quota exceeded or billing issue",
                status_code=status,
            )

        return classify_status_error("OpenAI", error)
