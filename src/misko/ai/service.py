"""AI response service: context building, provider chain and chat settings."""

from __future__ import annotations

import logging
import sqlite3
from pathlib import Path

from ..config import AIConfig
from ..logging import JSONLLogger, get_logger
from ..memory import FactManager, MemoryStore
from ..policy import CooldownPolicy, CooldownStatus
from .manager import ChainManager
from .providers import ErrorCode, ProviderConfig, ProviderStatus, ProviderType
from .settings import ChatAISettings, SettingsStore

logger = logging.getLogger(__name__)

RATE_LIMIT_MESSAGE = "Easy there, I'm being rate limited. Give me a minute."
FALLBACK_PROMPT = (
    "You are a helpful assistant in a gaming community chat. "
    "Keep responses brief and relevant."
)
MIN_API_KEY_LENGTH = 10


def load_system_prompt(prompts_dir: Path, name: str) -> str:
    """Load `<name>.txt` from the prompts directory, then `default.txt`, then a built-in prompt."""
    for candidate in (name, "default"):
        path = prompts_dir / f"{candidate}.txt"
        try:
            prompt = path.read_text(encoding="utf-8").strip()
        except OSError:
            logger.warning(f"Failed to load prompt '{candidate}'")
            continue
        if prompt:
            return prompt
    return FALLBACK_PROMPT


class AIService:
    """Generates chat responses through the provider chain.

    Also the entry point for chat-level settings (enabled flag, cooldown)
    and admin configuration (provider keys and priority).
    """

    def __init__(
        self,
        settings: SettingsStore,
        memory: MemoryStore,
        facts: FactManager,
        chains: ChainManager,
        config: AIConfig | None = None,
        event_logger: JSONLLogger | None = None,
    ) -> None:
        self.settings = settings
        self.memory = memory
        self.facts = facts
        self.chains = chains
        self.config = config or AIConfig()
        self.cooldown = CooldownPolicy(settings, self.config.default_cooldown_minutes)
        assert self.config.prompts_dir is not None
        self.system_prompt = load_system_prompt(self.config.prompts_dir, self.config.prompt_name)
        self._events = event_logger

    @property
    def events(self) -> JSONLLogger:
        if self._events is None:
            self._events = get_logger()
        return self._events

    def build_conversation_context(self, chat_id: int) -> list[dict[str, str]]:
        """Recent stored messages as user turns, oldest first."""
        try:
            recent = self.memory.get_recent_messages(chat_id, self.config.message_history_limit)
        except sqlite3.Error as e:
            logger.error(f"Error building conversation context: {e}")
            return []

        return [
            {"role": "user", "content": f"{m.username or 'User'}: {m.content}"}
            for m in reversed(recent)
        ]

    def _facts_context(self, chat_id: int) -> str:
        try:
            user_ids = self.memory.get_recent_user_ids(chat_id, self.config.context_user_window)
        except sqlite3.Error as e:
            logger.error(f"Error loading recent users: {e}")
            return ""
        return self.facts.get_user_facts_for_context(chat_id, user_ids)

    async def generate_response(
        self,
        chat_id: int,
        current_message: str,
        username: str | None = None,
    ) -> str | None:
        """Generate a reply to `current_message`.

        Returns:
            The reply text, a rate-limit notice if every attempted provider
            was rate limited last, or None when nothing should be sent.
        """
        try:
            chain = self.chains.get_chain()
        except Exception:
            logger.exception("Failed to build AI provider chain")
            return None

        messages = [
            {"role": "system", "content": self.system_prompt + self._facts_context(chat_id)},
            *self.build_conversation_context(chat_id),
            {"role": "user", "content": f"{username or 'User'}: {current_message}"},
        ]

        result = await chain.execute(messages)

        if not result.success:
            logger.warning(
                f"All AI providers failed: {result.error.message if result.error else 'unknown'}"
            )
            if result.total_attempts == 0:
                return None
            if result.error is not None and result.error.code == ErrorCode.RATE_LIMIT:
                return RATE_LIMIT_MESSAGE
            return None

        try:
            self.settings.upsert_chat_settings(
                chat_id,
                self.config.default_cooldown_minutes,
                last_used_provider=result.provider,
            )
        except sqlite3.Error as e:
            logger.warning(f"Failed to update last used provider: {e}")

        self.events.log(
            "ai_response",
            chat_id=chat_id,
            provider=result.provider,
            model=result.model,
            attempts=result.total_attempts,
            tokens=result.tokens_used,
        )
        logger.info(
            f"Response generated by {result.provider} ({result.total_attempts} provider(s) tried)"
        )
        return result.content or None

    # Chat settings

    def get_settings(self, chat_id: int) -> ChatAISettings | None:
        try:
            return self.settings.get_chat_settings(chat_id)
        except sqlite3.Error as e:
            logger.error(f"Error reading chat settings: {e}")
            return None

    def is_enabled(self, chat_id: int) -> bool:
        settings = self.get_settings(chat_id)
        return settings.enabled if settings else False

    def set_enabled(self, chat_id: int, enabled: bool) -> ChatAISettings:
        return self.settings.upsert_chat_settings(
            chat_id, self.config.default_cooldown_minutes, enabled=enabled
        )

    def check_cooldown(self, chat_id: int) -> CooldownStatus:
        return self.cooldown.check_cooldown(chat_id)

    def update_last_response_time(self, chat_id: int) -> None:
        self.cooldown.update_last_response_time(chat_id)

    # Admin configuration

    def set_provider_key(self, provider: str, api_key: str) -> ProviderType:
        """Store a new credential for a provider and rebuild the chain on next use.

        Raises:
            ValueError: If the provider is unknown or the key is implausibly short.
        """
        provider_type = ProviderType.parse(provider)
        if provider_type is None:
            valid = ", ".join(p.value for p in ProviderType)
            raise ValueError(f"Invalid provider. Must be one of: {valid}")
        if len(api_key) < MIN_API_KEY_LENGTH:
            raise ValueError("API key seems too short")

        self.settings.disable_keys(provider_type.value)
        self.settings.add_key(provider_type.value, api_key)
        self.chains.reset()

        self.events.log("admin_config", provider=provider_type.value, change="api_key")
        logger.info(f"{provider_type.value} API key updated")
        return provider_type

    def set_provider_priority(self, providers: list[str]) -> list[ProviderType]:
        """Persist a new provider order and rebuild the chain on next use.

        Raises:
            ValueError: If the list is empty or names an unknown provider.
        """
        names = [p.strip().lower() for p in providers if p.strip()]
        invalid = [name for name in names if ProviderType.parse(name) is None]
        if invalid:
            raise ValueError(f"Invalid provider(s): {', '.join(invalid)}")
        if not names:
            raise ValueError("At least one provider is required")

        order: list[ProviderType] = []
        for name in names:
            provider_type = ProviderType(name)
            if provider_type not in order:
                order.append(provider_type)

        value = self.chains.loader.set_priority(order)
        self.chains.reset()
        self.events.log("admin_config", change="priority", priority=value)
        return order

    def get_priority(self) -> list[ProviderType]:
        return self.chains.loader.get_priority()

    def provider_statuses(self) -> list[tuple[ProviderConfig, ProviderStatus]]:
        """Config and readiness of each provider in the active chain."""
        try:
            providers = self.chains.get_chain().get_providers()
            return [(p.get_config(), p.is_ready()) for p in providers]
        except Exception:
            logger.exception("Failed to build AI provider chain")
            return []

    def reset(self) -> None:
        """Force configuration to be re-resolved on next use."""
        self.chains.reset()
