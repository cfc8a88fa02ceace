"""Tests for ProviderChain."""

import json
from typing import Any

import pytest

from misko.ai.chain import ProviderChain
from misko.ai.providers import (
    ErrorCode,
    Provider,
    ProviderConfig,
    ProviderError,
    ProviderResponse,
    ProviderStatus,
    ProviderType,
)
from misko.logging import JSONLLogger

RATE_LIMITED = ProviderError(code=ErrorCode.RATE_LIMIT, message="rate limited", status_code=429)
FATAL = ProviderError(code=ErrorCode.API_ERROR, message="fatal", retryable=False)


class StubProvider(Provider):
    """Provider with scripted readiness and outcome."""

    def __init__(
        self,
        provider_type: ProviderType,
        priority: int = 1,
        *,
        status: ProviderStatus = ProviderStatus.READY,
        error: ProviderError | None = None,
        raises: Exception | None = None,
        enabled: bool = True,
    ) -> None:
        super().__init__(
            ProviderConfig(
                type=provider_type,
                priority=priority,
                enabled=enabled,
                api_key="test-key",
                model=f"{provider_type.value}-model",
            )
        )
        self._type = provider_type
        self._status = status
        self._error = error
        self._raises = raises
        self.calls = 0

    def get_type(self) -> ProviderType:
        return self._type

    def _create_client(self, api_key: str) -> Any:
        return object()

    async def _complete(self, messages, model, max_tokens, temperature) -> Any:
        raise NotImplementedError

    def handle_error(self, error: Exception) -> ProviderError:
        return ProviderError(code=ErrorCode.API_ERROR, message=str(error))

    def is_ready(self) -> ProviderStatus:
        return self._status

    async def generate_response(self, messages, **kwargs) -> ProviderResponse:
        self.calls += 1
        if self._raises is not None:
            raise self._raises
        if self._error is not None:
            return self._failure(self._error)
        return ProviderResponse(
            success=True,
            provider=self.name,
            model=self.config.model,
            content=f"reply from {self.name}",
            tokens_used=7,
        )


class BrokenClientProvider(StubProvider):
    """Uses the real readiness check with an SDK client that cannot be built."""

    def _create_client(self, api_key: str) -> Any:
        raise ValueError("invalid base_url")

    def is_ready(self) -> ProviderStatus:
        return Provider.is_ready(self)


MESSAGES = [{"role": "user", "content": "hi"}]


@pytest.fixture
def chain(event_log: JSONLLogger) -> ProviderChain:
    return ProviderChain(event_logger=event_log)


class TestProviderOrdering:
    def test_sorted_by_priority(self, chain: ProviderChain):
        chain.add_provider(StubProvider(ProviderType.GROQ, priority=3))
        chain.add_provider(StubProvider(ProviderType.GROK, priority=1))
        chain.add_provider(StubProvider(ProviderType.OPENAI, priority=2))

        assert [p.name for p in chain.get_providers()] == ["grok", "openai", "groq"]

    def test_equal_priority_keeps_insertion_order(self, chain: ProviderChain):
        chain.add_provider(StubProvider(ProviderType.OPENAI, priority=1))
        chain.add_provider(StubProvider(ProviderType.GROK, priority=1))

        assert [p.name for p in chain.get_providers()] == ["openai", "grok"]

    def test_remove_provider(self, chain: ProviderChain):
        chain.add_provider(StubProvider(ProviderType.GROK, priority=1))
        chain.add_provider(StubProvider(ProviderType.OPENAI, priority=2))

        chain.remove_provider(ProviderType.GROK)
        assert [p.name for p in chain.get_providers()] == ["openai"]

        chain.remove_provider("openai")
        assert len(chain) == 0

    def test_clear(self, chain: ProviderChain):
        chain.add_provider(StubProvider(ProviderType.GROK))
        chain.clear()
        assert chain.get_providers() == []


class TestExecute:
    @pytest.mark.asyncio
    async def test_empty_chain(self, chain: ProviderChain):
        """No providers means no attempts and no backend call."""
        result = await chain.execute(MESSAGES)

        assert result.success is False
        assert result.total_attempts == 0
        assert result.attempted_providers == []
        assert "No AI providers" in result.error.message

    @pytest.mark.asyncio
    async def test_not_configured_provider_skipped(self, chain: ProviderChain):
        skipped = StubProvider(ProviderType.GROK, 1, status=ProviderStatus.NOT_CONFIGURED)
        ready = StubProvider(ProviderType.OPENAI, 2)
        chain.add_provider(skipped)
        chain.add_provider(ready)

        result = await chain.execute(MESSAGES)

        assert result.success is True
        assert result.provider == "openai"
        assert result.attempted_providers == ["openai"]
        assert result.total_attempts == 1
        assert skipped.calls == 0

    @pytest.mark.asyncio
    async def test_disabled_provider_skipped(self, chain: ProviderChain):
        disabled = StubProvider(ProviderType.GROK, 1, enabled=False)
        chain.add_provider(disabled)
        chain.add_provider(StubProvider(ProviderType.OPENAI, 2))

        result = await chain.execute(MESSAGES)

        assert result.attempted_providers == ["openai"]
        assert disabled.calls == 0

    @pytest.mark.asyncio
    async def test_falls_back_after_rate_limit(self, chain: ProviderChain):
        chain.add_provider(StubProvider(ProviderType.GROK, 1, error=RATE_LIMITED))
        chain.add_provider(StubProvider(ProviderType.OPENAI, 2))

        result = await chain.execute(MESSAGES)

        assert result.success is True
        assert result.content == "reply from openai"
        assert result.tokens_used == 7
        assert result.attempted_providers == ["grok", "openai"]
        assert result.total_attempts == 2

    @pytest.mark.asyncio
    async def test_stops_at_first_success(self, chain: ProviderChain):
        first = StubProvider(ProviderType.GROK, 1)
        second = StubProvider(ProviderType.OPENAI, 2)
        chain.add_provider(first)
        chain.add_provider(second)

        result = await chain.execute(MESSAGES)

        assert result.provider == "grok"
        assert second.calls == 0

    @pytest.mark.asyncio
    async def test_non_retryable_stops_chain(self, chain: ProviderChain):
        second = StubProvider(ProviderType.OPENAI, 2)
        chain.add_provider(StubProvider(ProviderType.GROK, 1, error=FATAL))
        chain.add_provider(second)

        result = await chain.execute(MESSAGES)

        assert result.success is False
        assert result.error == FATAL
        assert result.total_attempts == 1
        assert second.calls == 0

    @pytest.mark.asyncio
    async def test_all_failed_returns_last_error(self, chain: ProviderChain):
        auth = ProviderError(code=ErrorCode.AUTH_FAILED, message="bad key", status_code=401)
        chain.add_provider(StubProvider(ProviderType.GROK, 1, error=RATE_LIMITED))
        chain.add_provider(StubProvider(ProviderType.OPENAI, 2, error=auth))

        result = await chain.execute(MESSAGES)

        assert result.success is False
        assert result.error == auth
        assert result.total_attempts == 2

    @pytest.mark.asyncio
    async def test_all_not_ready(self, chain: ProviderChain):
        chain.add_provider(StubProvider(ProviderType.GROK, 1, status=ProviderStatus.ERROR))

        result = await chain.execute(MESSAGES)

        assert result.success is False
        assert result.total_attempts == 0
        assert result.error.message == "All AI providers failed"

    @pytest.mark.asyncio
    async def test_unexpected_exception_moves_on(self, chain: ProviderChain):
        chain.add_provider(StubProvider(ProviderType.GROK, 1, raises=RuntimeError("kaboom")))
        chain.add_provider(StubProvider(ProviderType.OPENAI, 2))

        result = await chain.execute(MESSAGES)

        assert result.success is True
        assert result.attempted_providers == ["grok", "openai"]

    @pytest.mark.asyncio
    async def test_client_construction_failure_moves_on(self, chain: ProviderChain):
        """A client constructor that raises skips the provider without an attempt."""
        broken = BrokenClientProvider(ProviderType.GROK, 1)
        chain.add_provider(broken)
        chain.add_provider(StubProvider(ProviderType.OPENAI, 2))

        result = await chain.execute(MESSAGES)

        assert result.success is True
        assert result.attempted_providers == ["openai"]
        assert broken.calls == 0

    @pytest.mark.asyncio
    async def test_client_construction_failure_reported(self, chain: ProviderChain):
        chain.add_provider(BrokenClientProvider(ProviderType.GROK, 1))

        result = await chain.execute(MESSAGES)

        assert result.success is False
        assert result.total_attempts == 0
        assert result.error.message == "invalid base_url"

    @pytest.mark.asyncio
    async def test_logs_attempts(self, chain: ProviderChain, event_log: JSONLLogger):
        chain.add_provider(StubProvider(ProviderType.GROK, 1, error=RATE_LIMITED))
        chain.add_provider(StubProvider(ProviderType.OPENAI, 2))

        await chain.execute(MESSAGES)

        with open(event_log.log_path, encoding="utf-8") as f:
            events = [json.loads(line) for line in f]
        assert [e["event"] for e in events] == [
            "provider_attempt",
            "provider_result",
            "provider_attempt",
            "provider_result",
        ]
        assert events[1]["extra"]["code"] == "RATE_LIMIT"
