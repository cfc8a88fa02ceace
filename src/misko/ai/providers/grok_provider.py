"""xAI Grok backend, reached through its OpenAI-compatible API."""

from typing import Any

from openai import APIConnectionError, AsyncOpenAI

from .base import ErrorCode, Provider, ProviderError, ProviderType, classify_status_error

GROK_BASE_URL = "https://api.x.ai/v1"


class GrokProvider(Provider):
    """Provider for xAI Grok models."""

    def get_type(self) -> ProviderType:
        return ProviderType.GROK

    def _create_client(self, api_key: str) -> AsyncOpenAI:
        return AsyncOpenAI(api_key=api_key, base_url=self.config.base_url or GROK_BASE_URL)

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
            return ProviderError(code=ErrorCode.NETWORK_ERROR, message=f"Grok connection failed: {error}")
        return classify_status_error("Grok", error)
