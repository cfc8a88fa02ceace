"""Priority-ordered fallback across LLM providers."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field

from ..logging import JSONLLogger, get_logger
from .providers import (
    ErrorCode,
    Provider,
    ProviderError,
    ProviderResponse,
    ProviderStatus,
    ProviderType,
)

logger = logging.getLogger(__name__)

NO_PROVIDERS_ERROR = ProviderError(
    code=ErrorCode.API_ERROR,
    message="No AI providers configured",
    retryable=False,
)

ALL_FAILED_ERROR = ProviderError(
    code=ErrorCode.API_ERROR,
    message="All AI providers failed",
    retryable=False,
)


@dataclass
class ChainResult(ProviderResponse):
    """A provider response plus the attempts it took to get it."""

    attempted_providers: list[str] = field(default_factory=list)
    total_attempts: int = 0


class ProviderChain:
    """Tries providers in ascending priority until one succeeds.

    Disabled or not-ready providers are skipped without counting as an
    attempt. A failure with `retryable=False` stops the chain.
    """

    def __init__(self, event_logger: JSONLLogger | None = None) -> None:
        self._providers: list[Provider] = []
        self._events = event_logger

    @property
    def events(self) -> JSONLLogger:
        if self._events is None:
            self._events = get_logger()
        return self._events

    def add_provider(self, provider: Provider) -> None:
        """Add a provider and keep the list sorted by priority."""
        self._providers.append(provider)
        # sort() is stable, so equal priorities keep insertion order
        self._providers.sort(key=lambda p: p.config.priority)

    def remove_provider(self, provider_type: ProviderType | str) -> None:
        """Remove every provider of the given type."""
        name = provider_type.value if isinstance(provider_type, ProviderType) else provider_type
        self._providers = [p for p in self._providers if p.name != name]

    def get_providers(self) -> list[Provider]:
        """Return the providers in execution order."""
        return list(self._providers)

    def clear(self) -> None:
        """Remove all providers."""
        self._providers = []

    def __len__(self) -> int:
        return len(self._providers)

    async def execute(self, messages: list[dict[str, str]]) -> ChainResult:
        """Run the chain for `messages`.

        Args:
            messages: Chat messages with `role` and `content`.

        Returns:
            The first successful response, or the last recorded failure,
            annotated with the providers that were attempted.
        """
        if not self._providers:
            return ChainResult(
                success=False,
                provider="none",
                model="none",
                error=NO_PROVIDERS_ERROR,
            )

        attempted: list[str] = []
        last_error: ProviderError | None = None

        for provider in self._providers:
            name = provider.name

            if not provider.config.enabled:
                logger.debug(f"Skipping disabled provider: {name}")
                continue

            try:
                status = provider.is_ready()
            except Exception as e:
                logger.exception(f"Failed to initialize provider {name}")
                last_error = ProviderError(code=ErrorCode.API_ERROR, message=str(e))
                continue

            if status != ProviderStatus.READY:
                logger.debug(f"Skipping not-ready provider: {name} ({status.value})")
                continue

            attempted.append(name)
            self.events.log_provider_attempt(name, len(attempted))
            start_time = time.time()

            try:
                response = await provider.generate_response(messages)
            except Exception as e:
                logger.exception(f"Unexpected error in provider {name}")
                last_error = ProviderError(code=ErrorCode.API_ERROR, message=str(e))
                self.events.log_provider_result(name, False, error=str(e))
                continue

            duration_ms = (time.time() - start_time) * 1000
            self.events.log_provider_result(
                name,
                response.success,
                duration_ms=duration_ms,
                error=response.error.message if response.error else None,
                code=response.error.code.value if response.error else None,
            )

            if response.success:
                logger.info(f"Provider succeeded: {name}")
                return ChainResult(
                    success=True,
                    provider=response.provider,
                    model=response.model,
                    content=response.content,
                    tokens_used=response.tokens_used,
                    attempted_providers=attempted,
                    total_attempts=len(attempted),
                )

            last_error = response.error
            logger.warning(f"Provider failed: {name} - {last_error.message if last_error else 'unknown'}")

            if last_error is not None and not last_error.retryable:
                logger.warning("Non-retryable error, stopping chain")
                break

        return ChainResult(
            success=False,
            provider="none",
            model="none",
            error=last_error or ALL_FAILED_ERROR,
            attempted_providers=attempted,
            total_attempts=len(attempted),
        )
