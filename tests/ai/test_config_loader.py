"""Tests for ProviderConfigLoader."""

import pytest

from misko.ai import ProviderConfigLoader, ProviderType, SettingsStore
from misko.ai.config_loader import PRIORITY_CONFIG_KEY, is_placeholder, parse_priority


@pytest.fixture
def loader(settings_store: SettingsStore) -> ProviderConfigLoader:
    return ProviderConfigLoader(settings_store)


class TestHelpers:
    @pytest.mark.parametrize("value", [None, "", "   ", "your_grok_api_key_here", "YOUR_KEY_HERE"])
    def test_placeholders(self, value):
        assert is_placeholder(value) is True

    def test_real_key_is_not_placeholder(self):
        assert is_placeholder("xai-1234567890") is False

    def test_parse_priority_drops_unknown_and_duplicates(self):
        assert parse_priority("openai, claude,grok,openai") == [
            ProviderType.OPENAI,
            ProviderType.GROK,
        ]


class TestResolveApiKey:
    def test_env_key(self, loader: ProviderConfigLoader, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setenv("GROK_API_KEY", "xai-env-key")
        assert loader.resolve_api_key(ProviderType.GROK) == "xai-env-key"

    def test_stored_key_wins(
        self,
        loader: ProviderConfigLoader,
        settings_store: SettingsStore,
        monkeypatch: pytest.MonkeyPatch,
    ):
        monkeypatch.setenv("GROK_API_KEY", "xai-env-key")
        settings_store.add_key("grok", "xai-stored-key")

        assert loader.resolve_api_key(ProviderType.GROK) == "xai-stored-key"

    def test_disabled_stored_key_falls_back(
        self,
        loader: ProviderConfigLoader,
        settings_store: SettingsStore,
        monkeypatch: pytest.MonkeyPatch,
    ):
        monkeypatch.setenv("GROK_API_KEY", "xai-env-key")
        settings_store.add_key("grok", "xai-stored-key")
        settings_store.disable_keys("grok")

        assert loader.resolve_api_key(ProviderType.GROK) == "xai-env-key"

    def test_placeholder_env_key_ignored(
        self, loader: ProviderConfigLoader, monkeypatch: pytest.MonkeyPatch
    ):
        monkeypatch.setenv("OPENAI_API_KEY", "your_openai_api_key_here")
        assert loader.resolve_api_key(ProviderType.OPENAI) is None

    def test_without_store(self, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setenv("GROQ_API_KEY", "gsk-env-key")
        assert ProviderConfigLoader().resolve_api_key(ProviderType.GROQ) == "gsk-env-key"


class TestLoad:
    def test_none_without_key(self, loader: ProviderConfigLoader):
        assert loader.load(ProviderType.GROK) is None

    def test_grok_defaults(self, loader: ProviderConfigLoader, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setenv("GROK_API_KEY", "xai-env-key")

        config = loader.load(ProviderType.GROK)

        assert config is not None
        assert config.enabled is True
        assert config.priority == 1
        assert config.model == "grok-beta"
        assert config.base_url == "https://api.x.ai/v1"
        assert config.max_tokens == 500
        assert config.temperature == 0.9

    def test_grok_disabled_explicitly(
        self, loader: ProviderConfigLoader, monkeypatch: pytest.MonkeyPatch
    ):
        monkeypatch.setenv("GROK_API_KEY", "xai-env-key")
        monkeypatch.setenv("GROK_ENABLED", "false")

        assert loader.load(ProviderType.GROK).enabled is False

    def test_openai_opt_in(self, loader: ProviderConfigLoader, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setenv("OPENAI_API_KEY", "sk-env-key")
        assert loader.load(ProviderType.OPENAI).enabled is False

        monkeypatch.setenv("OPENAI_ENABLED", "true")
        assert loader.load(ProviderType.OPENAI).enabled is True

    def test_env_overrides(self, loader: ProviderConfigLoader, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setenv("OPENAI_API_KEY", "sk-env-key")
        monkeypatch.setenv("OPENAI_MODEL", "gpt-4o")
        monkeypatch.setenv("OPENAI_MAX_TOKENS", "800")
        monkeypatch.setenv("OPENAI_TEMPERATURE", "0.2")
        monkeypatch.setenv("OPENAI_PRIORITY", "5")

        config = loader.load(ProviderType.OPENAI)

        assert config.model == "gpt-4o"
        assert config.max_tokens == 800
        assert config.temperature == 0.2
        assert config.priority == 5

    def test_malformed_numbers_use_defaults(
        self, loader: ProviderConfigLoader, monkeypatch: pytest.MonkeyPatch
    ):
        monkeypatch.setenv("GROK_API_KEY", "xai-env-key")
        monkeypatch.setenv("GROK_PRIORITY", "first")
        monkeypatch.setenv("GROK_MAX_TOKENS", "lots")
        monkeypatch.setenv("GROK_TEMPERATURE", "warm")
        monkeypatch.setenv("GROK_MESSAGE_HISTORY_LIMIT", "")

        config = loader.load(ProviderType.GROK)

        assert config.priority == 1
        assert config.max_tokens == 500
        assert config.temperature == 0.9
        assert config.message_history_limit == 25

    def test_empty_strings_are_unset(self, loader: ProviderConfigLoader, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setenv("GROK_API_KEY", "xai-env-key")
        monkeypatch.setenv("GROK_BASE_URL", "")
        monkeypatch.setenv("GROK_MODEL", "")

        config = loader.load(ProviderType.GROK)

        assert config.base_url == "https://api.x.ai/v1"
        assert config.model == "grok-beta"


class TestPriority:
    def test_default_priority(self, loader: ProviderConfigLoader):
        assert loader.get_priority() == [ProviderType.GROK, ProviderType.OPENAI, ProviderType.GROQ]

    def test_custom_default(self, settings_store: SettingsStore):
        loader = ProviderConfigLoader(settings_store, default_priority="groq")
        assert loader.get_priority() == [ProviderType.GROQ]

    def test_set_priority_persists(
        self, loader: ProviderConfigLoader, settings_store: SettingsStore
    ):
        value = loader.set_priority([ProviderType.OPENAI, ProviderType.GROK])

        assert value == "openai,grok"
        assert settings_store.get_config_value(PRIORITY_CONFIG_KEY) == "openai,grok"
        assert loader.get_priority() == [ProviderType.OPENAI, ProviderType.GROK]

    def test_set_priority_requires_store(self):
        with pytest.raises(RuntimeError):
            ProviderConfigLoader().set_priority([ProviderType.GROK])


class TestLoadAll:
    def test_skips_unconfigured(self, loader: ProviderConfigLoader, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setenv("OPENAI_API_KEY", "sk-env-key")

        configs = loader.load_all()

        assert [c.type for c in configs] == [ProviderType.OPENAI]
        assert configs[0].priority == 2

    def test_stored_order_overrides_env_priority(
        self, loader: ProviderConfigLoader, monkeypatch: pytest.MonkeyPatch
    ):
        monkeypatch.setenv("GROK_API_KEY", "xai-env-key")
        monkeypatch.setenv("OPENAI_API_KEY", "sk-env-key")
        loader.set_priority([ProviderType.OPENAI, ProviderType.GROK])

        configs = loader.load_all()

        assert [(c.type, c.priority) for c in configs] == [
            (ProviderType.OPENAI, 1),
            (ProviderType.GROK, 2),
        ]

    def test_stored_order_limits_providers(
        self, loader: ProviderConfigLoader, monkeypatch: pytest.MonkeyPatch
    ):
        monkeypatch.setenv("GROK_API_KEY", "xai-env-key")
        monkeypatch.setenv("OPENAI_API_KEY", "sk-env-key")
        loader.set_priority([ProviderType.OPENAI])

        assert [c.type for c in loader.load_all()] == [ProviderType.OPENAI]
