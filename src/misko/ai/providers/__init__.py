"""LLM backends behind a common Provider interface."""

from .base import (
    ErrorCode,
    Provider,
    ProviderConfig,
    ProviderError,
    ProviderResponse,
    ProviderStatus,
    ProviderType,
    classify_status_error,
)
from .grok_provider import GrokProvider
from .groq_provider import GroqProvider
from .openai_provider import OpenAIProvider

PROVIDER_CLASSES: dict[ProviderType, type[Provider]] = {
    ProviderType.GROK: GrokProvider,
    ProviderType.OPENAI: OpenAIProvider,
    ProviderType.GROQ: GroqProvider,
}


def create_provider(config: ProviderConfig) -> Provider:
    """Instantiate the provider class registered for `config.type`."""
    return PROVIDER_CLASSES[config.type](config)


__all__ = [
    "ErrorCode",
    "GrokProvider",
    "GroqProvider",
    "OpenAIProvider",
    "PROVIDER_CLASSES",
    "Provider",
    "ProviderConfig",
    "ProviderError",
    "ProviderResponse",
    "ProviderStatus",
    "ProviderType",
    "classify_status_error",
    "create_provider",
]
