"""Resolve provider configuration from stored overrides and the environment.

Credentials come from the settings store first (newest enabled key wins)
and fall back to `<PROVIDER>_API_KEY`. Placeholder values copied from an
example `.env` count as unset. The provider priority order follows the
same layering: a stored comma-separated list beats `AI_PROVIDER_PRIORITY`.
"""

from __future__ import annotations

import logging
import os
import re
import sqlite3
from collections.abc import Callable
from dataclasses import dataclass
from typing import TypeVar

from .providers import ProviderConfig, ProviderType
from .providers.grok_provider import GROK_BASE_URL
from .providers.groq_provider import DEFAULT_GROQ_MODEL
from .settings import SettingsStore

logger = logging.getLogger(__name__)

PRIORITY_CONFIG_KEY = "provider_priority"
DEFAULT_PRIORITY = "grok,openai,groq"

_PLACEHOLDER_PATTERN = re.compile(r"^your_[a-z0-9_]*_here$", re.IGNORECASE)

N = TypeVar("N", int, float)


@dataclass(frozen=True)
class ProviderDefaults:
    """Environment defaults for one provider type."""

    env_prefix: str
    model: str
    priority: int
    enabled_by_default: bool
    base_url: str | None = None


PROVIDER_DEFAULTS: dict[ProviderType, ProviderDefaults] = {
    ProviderType.GROK: ProviderDefaults(
        env_prefix="GROK",
        model="grok-beta",
        priority=1,
        enabled_by_default=True,
        base_url=GROK_BASE_URL,
    ),
    ProviderType.OPENAI: ProviderDefaults(
        env_prefix="OPENAI",
        model="gpt-4o-mini",
        priority=2,
        enabled_by_default=False,
    ),
    ProviderType.GROQ: ProviderDefaults(
        env_prefix="GROQ",
        model=DEFAULT_GROQ_MODEL,
        priority=3,
        enabled_by_default=False,
    ),
}


def is_placeholder(value: str | None) -> bool:
    """True for empty values and `your_..._here` style placeholders."""
    if not value or not value.strip():
        return True
    return bool(_PLACEHOLDER_PATTERN.match(value.strip()))


def env_number(name: str, default: N, cast: Callable[[str], N]) -> N:
    """Read a numeric env variable, falling back to `default` when unset or malformed."""
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    try:
        return cast(value.strip())
    except ValueError:
        logger.warning(f"Invalid {name}={value!r}, using {default}")
        return default


def parse_priority(value: str) -> list[ProviderType]:
    """Parse a comma-separated provider list, dropping unknown and repeated names."""
    order: list[ProviderType] = []
    for name in value.split(","):
        provider_type = ProviderType.parse(name)
        if provider_type is not None and provider_type not in order:
            order.append(provider_type)
    return order


class ProviderConfigLoader:
    """Loads ProviderConfig objects and the provider priority order."""

    def __init__(
        self,
        store: SettingsStore | None = None,
        default_priority: str = DEFAULT_PRIORITY,
    ) -> None:
        self.store = store
        self.default_priority = default_priority

    def _stored_key(self, provider_type: ProviderType) -> str | None:
        if self.store is None:
            return None
        try:
            record = self.store.get_active_key(provider_type.value)
        except sqlite3.Error as e:
            logger.error(f"Error fetching {provider_type.value} API key from store: {e}")
            return None
        if record is None or is_placeholder(record.api_key):
            return None
        return record.api_key

    def resolve_api_key(self, provider_type: ProviderType) -> str | None:
        """Stored key first, then the environment; placeholders are ignored."""
        api_key = self._stored_key(provider_type)
        if api_key:
            return api_key

        env_key = os.getenv(f"{PROVIDER_DEFAULTS[provider_type].env_prefix}_API_KEY")
        if is_placeholder(env_key):
            return None
        return env_key

    def load(self, provider_type: ProviderType) -> ProviderConfig | None:
        """Build the full config for a provider.

        Returns:
            The config, or None when no usable credential resolves.
        """
        defaults = PROVIDER_DEFAULTS[provider_type]
        prefix = defaults.env_prefix

        api_key = self.resolve_api_key(provider_type)
        if not api_key:
            logger.warning(f"{prefix}_API_KEY not configured")
            return None

        enabled_env = os.getenv(f"{prefix}_ENABLED")
        if defaults.enabled_by_default:
            enabled = enabled_env != "false"
        else:
            enabled = enabled_env == "true"

        return ProviderConfig(
            type=provider_type,
            enabled=enabled,
            priority=env_number(f"{prefix}_PRIORITY", defaults.priority, int),
            api_key=api_key,
            model=os.getenv(f"{prefix}_MODEL") or defaults.model,
            max_tokens=env_number(f"{prefix}_MAX_TOKENS", 500, int),
            temperature=env_number(f"{prefix}_TEMPERATURE", 0.9, float),
            base_url=os.getenv(f"{prefix}_BASE_URL") or defaults.base_url,
            message_history_limit=env_number(f"{prefix}_MESSAGE_HISTORY_LIMIT", 25, int),
        )

    def stored_priority(self) -> list[ProviderType] | None:
        """The persisted priority order, or None if none is stored."""
        if self.store is None:
            return None
        try:
            value = self.store.get_config_value(PRIORITY_CONFIG_KEY)
        except sqlite3.Error as e:
            logger.error(f"Error loading provider priority from store: {e}")
            return None
        if not value:
            return None
        return parse_priority(value)

    def get_priority(self) -> list[ProviderType]:
        """Resolve the provider order: stored override, else the default list."""
        stored = self.stored_priority()
        if stored is not None:
            logger.info(f"Using provider priority from store: {', '.join(p.value for p in stored)}")
            return stored
        return parse_priority(self.default_priority)

    def set_priority(self, providers: list[ProviderType]) -> str:
        """Persist the full ordered list as one comma-separated value."""
        if self.store is None:
            raise RuntimeError("No settings store configured")
        value = ",".join(p.value for p in providers)
        self.store.set_config_value(PRIORITY_CONFIG_KEY, value)
        logger.info(f"Provider priority updated: {value}")
        return value

    def load_all(self) -> list[ProviderConfig]:
        """Load configs for every provider in priority order.

        When a priority order is stored, each config's priority becomes its
        1-based position in that order, overriding `<PROVIDER>_PRIORITY`.
        """
        override = self.stored_priority() is not None
        configs: list[ProviderConfig] = []
        for position, provider_type in enumerate(self.get_priority(), start=1):
            config = self.load(provider_type)
            if config is None:
                logger.info(f"Skipping {provider_type.value} - not configured")
                continue
            if override:
                config.priority = position
            configs.append(config)
        return configs
