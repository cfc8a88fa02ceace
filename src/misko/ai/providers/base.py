"""Provider interface and the value types shared by every LLM backend."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any

logger = logging.getLogger(__name__)


class ProviderType(str, Enum):
    """Stable identifiers of the supported backends."""

    GROK = "grok"
    OPENAI = "openai"
    GROQ = "groq"

    @classmethod
    def parse(cls, value: str) -> ProviderType | None:
        """Return the member for `value`, or None if it is unknown."""
        try:
            return cls(value.strip().lower())
        except ValueError:
            return None


class ProviderStatus(Enum):
    """Readiness of a provider."""

    READY = "ready"
    NOT_CONFIGURED = "not_configured"
    ERROR = "error"


class ErrorCode(str, Enum):
    """Classified failure kinds at the provider boundary."""

    AUTH_FAILED = "AUTH_FAILED"
    RATE_LIMIT = "RATE_LIMIT"
    API_ERROR = "API_ERROR"
    NO_API_KEY = "NO_API_KEY"
    NETWORK_ERROR = "NETWORK_ERROR"


@dataclass
class ProviderConfig:
    """Settings for one backend.

    Attributes:
        type: Which backend this config belongs to.
        enabled: Disabled providers are skipped by the chain.
        priority: Lower runs first.
        api_key: Credential; None means not configured.
        model: Model identifier sent with each request.
        max_tokens: Maximum output tokens.
        temperature: Sampling temperature.
        base_url: Endpoint override.
        message_history_limit: Stored messages included as context.
    """

    type: ProviderType
    enabled: bool = True
    priority: int = 1
    api_key: str | None = None
    model: str = ""
    max_tokens: int = 500
    temperature: float = 0.9
    base_url: str | None = None
    message_history_limit: int = 25


@dataclass(frozen=True)
class ProviderError:
    """A classified provider failure.

    `retryable` means the next provider may be tried; False asks the
    chain to stop altogether.
    """

    code: ErrorCode
    message: str
    status_code: int | None = None
    retryable: bool = True


@dataclass
class ProviderResponse:
    """Outcome of one generation call.

    Success implies `content`; failure implies `error`.
    """

    success: bool
    provider: str
    model: str
    content: str | None = None
    error: ProviderError | None = None
    tokens_used: int | None = None


class Provider(ABC):
    """Base interface for all LLM backends."""

    def __init__(self, config: ProviderConfig) -> None:
        self.config = config
        self._client: Any | None = None
        self._current_api_key: str | None = None

    @abstractmethod
    def get_type(self) -> ProviderType:
        """Stable provider identifier."""
        ...

    @abstractmethod
    def _create_client(self, api_key: str) -> Any:
        """Construct the SDK client for `api_key`."""
        ...

    @abstractmethod
    async def _complete(
        self,
        messages: list[dict[str, str]],
        model: str,
        max_tokens: int,
        temperature: float,
    ) -> Any:
        """Issue one chat completion and return the raw SDK response."""
        ...

    @abstractmethod
    def handle_error(self, error: Exception) -> ProviderError:
        """Convert an SDK exception into a ProviderError."""
        ...

    @property
    def name(self) -> str:
        return self.get_type().value

    def get_config(self) -> ProviderConfig:
        """Return a copy of the provider configuration."""
        return replace(self.config)

    def update_config(self, **updates: Any) -> None:
        """Update configuration fields in place."""
        self.config = replace(self.config, **updates)

    def initialize(self) -> bool:
        """Create the SDK client for the configured credential.

        Returns:
            False if no credential is set, True otherwise.
        """
        api_key = self.config.api_key
        if not api_key:
            logger.warning(f"{self.name} API key not set")
            return False

        if self._current_api_key and self._current_api_key != api_key:
            self.reset()

        if self._client is None:
            self._client = self._create_client(api_key)
            self._current_api_key = api_key
            logger.info(f"{self.name} provider initialized")

        return True

    def is_ready(self) -> ProviderStatus:
        """Report readiness, initializing the client on demand."""
        if not self.config.enabled or not self.config.api_key:
            return ProviderStatus.NOT_CONFIGURED

        if self._client is None or self._current_api_key != self.config.api_key:
            if not self.initialize():
                return ProviderStatus.ERROR

        return ProviderStatus.READY

    def reset(self) -> None:
        """Discard the client; the next readiness check re-initializes."""
        self._client = None
        self._current_api_key = None
        logger.info(f"{self.name} provider reset")

    def _failure(self, error: ProviderError) -> ProviderResponse:
        return ProviderResponse(
            success=False,
            provider=self.name,
            model=self.config.model,
            error=error,
        )

    async def generate_response(
        self,
        messages: list[dict[str, str]],
        *,
        model: str | None = None,
        max_tokens: int | None = None,
        temperature: float | None = None,
    ) -> ProviderResponse:
        """Generate a completion for `messages`.

        Args:
            messages: Chat messages with `role` and `content`.
            model: Override of the configured model.
            max_tokens: Override of the configured output limit.
            temperature: Override of the configured temperature.

        Returns:
            A successful response with non-empty content, or a classified failure.
        """
        if self.is_ready() != ProviderStatus.READY:
            return self._failure(
                ProviderError(
                    code=ErrorCode.NO_API_KEY,
                    message=f"{self.name} provider not ready",
                )
            )

        try:
            completion = await self._complete(
                messages,
                model=model or self.config.model,
                max_tokens=max_tokens if max_tokens is not None else self.config.max_tokens,
                temperature=temperature if temperature is not None else self.config.temperature,
            )
        except Exception as e:
            return self._failure(self.handle_error(e))

        content = completion.choices[0].message.content if completion.choices else None
        if not content or not content.strip():
            return self._failure(
                ProviderError(
                    code=ErrorCode.API_ERROR,
                    message=f"{self.name} returned empty response",
                )
            )

        usage = getattr(completion, "usage", None)
        return ProviderResponse(
            success=True,
            provider=self.name,
            model=model or self.config.model,
            content=content.strip(),
            tokens_used=getattr(usage, "total_tokens", None),
        )


def classify_status_error(provider: str, error: Exception) -> ProviderError:
    """Map an SDK exception to a ProviderError by its HTTP status.

    429 is a rate limit, 401 an authentication failure, 5xx a server
    error. Anything else keeps its original message. Every mapping is
    retryable, so the chain moves on to the next provider.
    """
    status = getattr(error, "status_code", None)

    if status == 429:
        logger.warning(f"{provider} API rate limit hit")
        return ProviderError(
            code=ErrorCode.RATE_LIMIT,
            message=f"{provider} API rate limit exceeded",
            status_code=429,
        )

    if status == 401:
        logger.error(f"{provider} API authentication failed")
        return ProviderError(
            code=ErrorCode.AUTH_FAILED,
            message=f"{provider} API authentication failed",
            status_code=401,
        )

    if status is not None and status >= 500:
        logger.error(f"{provider} API server error ({status})")
        return ProviderError(
            code=ErrorCode.API_ERROR,
            message=f"{provider} API server error",
            status_code=status,
        )

    logger.error(f"{provider} provider error: {error}")
    return ProviderError(
        code=ErrorCode.API_ERROR,
        message=str(error) or "Unknown error",
        status_code=status,
    )
