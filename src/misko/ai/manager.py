"""Owns the active provider chain and rebuilds it when configuration changes."""

from __future__ import annotations

import logging

from ..logging import JSONLLogger
from .chain import ProviderChain
from .config_loader import ProviderConfigLoader
from .providers import create_provider

logger = logging.getLogger(__name__)


class ChainManager:
    """Builds a ProviderChain from the config loader on first use.

    `reset()` drops the chain so the next `get_chain()` re-resolves
    credentials and priority; callers hold the manager, never a chain.
    """

    def __init__(
        self,
        loader: ProviderConfigLoader,
        event_logger: JSONLLogger | None = None,
    ) -> None:
        self.loader = loader
        self._event_logger = event_logger
        self._chain: ProviderChain | None = None

    @property
    def is_initialized(self) -> bool:
        return self._chain is not None

    def build(self) -> ProviderChain:
        """Construct a fresh chain from the current configuration."""
        chain = ProviderChain(event_logger=self._event_logger)
        for config in self.loader.load_all():
            chain.add_provider(create_provider(config))
            logger.info(f"Added {config.type.value} to chain (priority: {config.priority})")
        return chain

    def get_chain(self) -> ProviderChain:
        """Return the active chain, building it if needed."""
        if self._chain is None:
            self._chain = self.build()
            order = " -> ".join(p.name for p in self._chain.get_providers()) or "(empty)"
            logger.info(f"AI provider chain ready: {order}")
        return self._chain

    def rebuild(self) -> ProviderChain:
        """Replace the active chain with a freshly built one."""
        self.reset()
        return self.get_chain()

    def reset(self) -> None:
        """Drop the active chain; the next use rebuilds it."""
        self._chain = None
        logger.info("AI provider chain reset")
