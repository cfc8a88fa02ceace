"""Groq backend."""

from typing import Any

from groq import APIConnectionError, AsyncGroq

from .base import ErrorCode, Provider, ProviderError, ProviderType, classify_status_error

DEFAULT_GROQ_MODEL = "llama-3.1-70b-versatile"


class GroqProvider(Provider):
    """Provider wrapping AsyncGroq."""

    def get_type(self) -> ProviderType:
        return ProviderType.GROQ

    def _create_client(self, api_key: str) -> AsyncGroq:
        return AsyncGroq(api_key=api_key, base_url=self.config.base_url)

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
            return ProviderError(code=ErrorCode.NETWORK_ERROR, message=f"Groq connection failed: {error}")
        return classify_status_error("Groq", error)
