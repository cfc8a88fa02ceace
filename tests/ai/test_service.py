"""Tests for AIService."""

from pathlib import Path
from unittest.mock import AsyncMock, Mock

import pytest

from misko.ai import (
    RATE_LIMIT_MESSAGE,
    AIService,
    ChainManager,
    ChainResult,
    ErrorCode,
    ProviderConfigLoader,
    ProviderError,
    ProviderStatus,
    ProviderType,
    SettingsStore,
)
from misko.ai.providers import GrokProvider
from misko.ai.service import FALLBACK_PROMPT, load_system_prompt
from misko.config import AIConfig
from misko.memory import ChatMessage, FactExtractor, FactManager, FactType, MemoryStore, UserFact

CHAT_ID = -100123


def success(content: str = "gg wp", provider: str = "grok") -> ChainResult:
    return ChainResult(
        success=True,
        provider=provider,
        model=f"{provider}-model",
        content=content,
        tokens_used=12,
        attempted_providers=[provider],
        total_attempts=1,
    )


def failure(code: ErrorCode, attempts: int) -> ChainResult:
    return ChainResult(
        success=False,
        provider="none",
        model="none",
        error=ProviderError(code=code, message=code.value),
        attempted_providers=["grok"] * attempts,
        total_attempts=attempts,
    )


@pytest.fixture
def chains(settings_store: SettingsStore) -> ChainManager:
    return ChainManager(ProviderConfigLoader(settings_store))


@pytest.fixture
def facts(memory_store: MemoryStore) -> FactManager:
    return FactManager(memory_store, Mock(spec=FactExtractor))


@pytest.fixture
def service(
    settings_store: SettingsStore,
    memory_store: MemoryStore,
    facts: FactManager,
    chains: ChainManager,
) -> AIService:
    return AIService(settings_store, memory_store, facts, chains)


@pytest.fixture
def fake_chain(chains: ChainManager) -> Mock:
    """Replace the managed chain with a mock whose execute is scripted per test."""
    chain = Mock()
    chain.execute = AsyncMock(return_value=success())
    chains.get_chain = Mock(return_value=chain)
    return chain


class TestSystemPrompt:
    def test_named_prompt(self, tmp_path: Path):
        (tmp_path / "spicy.txt").write_text("Be spicy.\n", encoding="utf-8")
        assert load_system_prompt(tmp_path, "spicy") == "Be spicy."

    def test_falls_back_to_default(self, tmp_path: Path):
        (tmp_path / "default.txt").write_text("Default prompt", encoding="utf-8")
        assert load_system_prompt(tmp_path, "missing") == "Default prompt"

    def test_builtin_fallback(self, tmp_path: Path):
        assert load_system_prompt(tmp_path, "missing") == FALLBACK_PROMPT

    def test_packaged_default_loaded(self, service: AIService):
        assert service.system_prompt
        assert service.system_prompt != FALLBACK_PROMPT


class TestGenerateResponse:
    @pytest.mark.asyncio
    async def test_returns_content(self, service: AIService, fake_chain: Mock):
        response = await service.generate_response(CHAT_ID, "anyone up for cs2?", "alice")

        assert response == "gg wp"
        messages = fake_chain.execute.await_args.args[0]
        assert messages[0]["role"] == "system"
        assert messages[0]["content"].startswith(service.system_prompt)
        assert messages[-1] == {"role": "user", "content": "alice: anyone up for cs2?"}

    @pytest.mark.asyncio
    async def test_includes_history_oldest_first(
        self, service: AIService, memory_store: MemoryStore, fake_chain: Mock
    ):
        memory_store.add_message(
            ChatMessage(chat_id=CHAT_ID, message_id=1, user_id=1, content="first", username="bob")
        )
        memory_store.add_message(
            ChatMessage(chat_id=CHAT_ID, message_id=2, user_id=2, content="second")
        )

        await service.generate_response(CHAT_ID, "third", None)

        messages = fake_chain.execute.await_args.args[0]
        assert [m["content"] for m in messages[1:]] == [
            "bob: first",
            "User: second",
            "User: third",
        ]

    @pytest.mark.asyncio
    async def test_includes_known_facts(
        self, service: AIService, memory_store: MemoryStore, fake_chain: Mock
    ):
        memory_store.add_message(
            ChatMessage(chat_id=CHAT_ID, message_id=1, user_id=7, content="hi", username="alice")
        )
        memory_store.add_fact(
            UserFact(
                user_id=7,
                chat_id=CHAT_ID,
                username="alice",
                fact_type=FactType.GAME,
                fact="plays CS2 daily",
                confidence=0.9,
            )
        )

        await service.generate_response(CHAT_ID, "hello", "alice")

        system = fake_chain.execute.await_args.args[0][0]["content"]
        assert "=== KNOWN FACTS ABOUT USERS ===" in system
        assert "  - plays CS2 daily" in system

    @pytest.mark.asyncio
    async def test_records_last_used_provider(
        self, service: AIService, settings_store: SettingsStore, fake_chain: Mock
    ):
        fake_chain.execute.return_value = success(provider="openai")

        await service.generate_response(CHAT_ID, "hi", "alice")

        assert settings_store.get_chat_settings(CHAT_ID).last_used_provider == "openai"

    @pytest.mark.asyncio
    async def test_rate_limit_message(self, service: AIService, fake_chain: Mock):
        fake_chain.execute.return_value = failure(ErrorCode.RATE_LIMIT, attempts=2)

        assert await service.generate_response(CHAT_ID, "hi") == RATE_LIMIT_MESSAGE

    @pytest.mark.asyncio
    async def test_no_attempts_is_silent(self, service: AIService, fake_chain: Mock):
        fake_chain.execute.return_value = failure(ErrorCode.API_ERROR, attempts=0)

        assert await service.generate_response(CHAT_ID, "hi") is None

    @pytest.mark.asyncio
    async def test_other_failures_are_silent(self, service: AIService, fake_chain: Mock):
        fake_chain.execute.return_value = failure(ErrorCode.AUTH_FAILED, attempts=1)

        assert await service.generate_response(CHAT_ID, "hi") is None

    @pytest.mark.asyncio
    async def test_empty_chain_is_silent(self, service: AIService):
        """With no credentials anywhere the real chain is empty."""
        assert await service.generate_response(CHAT_ID, "hi") is None

    @pytest.mark.asyncio
    async def test_chain_build_failure_is_silent(self, service: AIService, chains: ChainManager):
        chains.get_chain = Mock(side_effect=ValueError("bad provider config"))

        assert await service.generate_response(CHAT_ID, "hi", "alice") is None

    @pytest.mark.asyncio
    async def test_malformed_provider_env_still_responds(
        self, service: AIService, monkeypatch: pytest.MonkeyPatch
    ):
        """A non-numeric GROK_PRIORITY falls back to the default priority."""
        monkeypatch.setenv("GROK_API_KEY", "xai-1234567890")
        monkeypatch.setenv("GROK_PRIORITY", "first")
        completion = Mock(choices=[Mock(message=Mock(content="gg wp"))], usage=Mock(total_tokens=5))
        monkeypatch.setattr(GrokProvider, "_complete", AsyncMock(return_value=completion))

        assert await service.generate_response(CHAT_ID, "hi", "alice") == "gg wp"


class TestChatSettings:
    def test_disabled_by_default(self, service: AIService):
        assert service.is_enabled(CHAT_ID) is False
        assert service.get_settings(CHAT_ID) is None

    def test_set_enabled(self, service: AIService):
        service.set_enabled(CHAT_ID, True)
        assert service.is_enabled(CHAT_ID) is True

        service.set_enabled(CHAT_ID, False)
        assert service.is_enabled(CHAT_ID) is False

    def test_cooldown_after_response(self, service: AIService):
        assert service.check_cooldown(CHAT_ID).on_cooldown is False

        service.update_last_response_time(CHAT_ID)
        status = service.check_cooldown(CHAT_ID)

        assert status.on_cooldown is True
        assert status.minutes_remaining == 7

    def test_configured_default_cooldown(
        self,
        settings_store: SettingsStore,
        memory_store: MemoryStore,
        facts: FactManager,
        chains: ChainManager,
    ):
        service = AIService(
            settings_store, memory_store, facts, chains, config=AIConfig(default_cooldown_minutes=2)
        )
        service.update_last_response_time(CHAT_ID)

        assert service.check_cooldown(CHAT_ID).minutes_remaining == 2


class TestAdminConfiguration:
    def test_invalid_provider(self, service: AIService):
        with pytest.raises(ValueError, match="Invalid provider"):
            service.set_provider_key("claude", "sk-1234567890")

    def test_short_key(self, service: AIService):
        with pytest.raises(ValueError, match="too short"):
            service.set_provider_key("openai", "sk-1")

    def test_set_key_replaces_and_resets(
        self, service: AIService, settings_store: SettingsStore, chains: ChainManager
    ):
        settings_store.add_key("openai", "sk-old-key-123")
        chains.get_chain()

        provider_type = service.set_provider_key("OpenAI", "sk-new-key-123")

        assert provider_type == ProviderType.OPENAI
        assert settings_store.get_active_key("openai").api_key == "sk-new-key-123"
        assert chains.is_initialized is False

    def test_set_priority(self, service: AIService, chains: ChainManager):
        chains.get_chain()

        order = service.set_provider_priority(["openai", " Grok", "openai"])

        assert order == [ProviderType.OPENAI, ProviderType.GROK]
        assert service.get_priority() == [ProviderType.OPENAI, ProviderType.GROK]
        assert chains.is_initialized is False

    def test_set_priority_rejects_unknown(self, service: AIService):
        with pytest.raises(ValueError, match="claude"):
            service.set_provider_priority(["grok", "claude"])

    def test_set_priority_rejects_empty(self, service: AIService):
        with pytest.raises(ValueError):
            service.set_provider_priority(["", " "])

    def test_provider_statuses_on_build_failure(self, service: AIService, chains: ChainManager):
        chains.get_chain = Mock(side_effect=ValueError("bad provider config"))

        assert service.provider_statuses() == []

    def test_provider_statuses(self, service: AIService, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setenv("GROK_API_KEY", "xai-env-key")
        monkeypatch.setenv("OPENAI_API_KEY", "sk-env-key")

        statuses = service.provider_statuses()

        assert [(config.type, status) for config, status in statuses] == [
            (ProviderType.GROK, ProviderStatus.READY),
            (ProviderType.OPENAI, ProviderStatus.NOT_CONFIGURED),
        ]
