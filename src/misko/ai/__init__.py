"""AI provider chain and response service."""

from .chain import ChainResult, ProviderChain
from .config_loader import ProviderConfigLoader
from .manager import ChainManager
from .providers import (
    ErrorCode,
    Provider,
    ProviderConfig,
    ProviderError,
    ProviderResponse,
    ProviderStatus,
    ProviderType,
)
from .service import RATE_LIMIT_MESSAGE, AIService
from .settings import ChatAISettings, SettingsStore

__all__ = [
    "AIService",
    "ChainManager",
    "ChainResult",
    "ChatAISettings",
    "ErrorCode",
    "Provider",
    "ProviderChain",
    "ProviderConfig",
    "ProviderConfigLoader",
    "ProviderError",
    "ProviderResponse",
    "ProviderStatus",
    "ProviderType",
    "RATE_LIMIT_MESSAGE",
    "SettingsStore",
]
