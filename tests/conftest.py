"""Shared fixtures."""

from pathlib import Path

import pytest

from misko.ai import SettingsStore
from misko.logging import JSONLLogger, configure_logger
from misko.memory import MemoryStore

ENV_VARS = [
    "TELEGRAM_TOKEN",
    "MISKO_DB_PATH",
    "AI_PROVIDER_PRIORITY",
    "AI_DEFAULT_COOLDOWN_MINUTES",
    "AI_MESSAGE_HISTORY_LIMIT",
    "AI_PROMPT",
    "GROK_DEFAULT_COOLDOWN_MINUTES",
    "GROK_MESSAGE_HISTORY_LIMIT",
    "GROK_PROMPT",
    "FACT_EXTRACTION_ENABLED",
    "FACT_EXTRACTION_BATCH_SIZE",
    "FACT_EXTRACTION_MIN_MESSAGES",
    "FACT_EXTRACTION_INTERVAL_MS",
    "FACT_EXTRACTION_MESSAGE_THRESHOLD",
] + [
    f"{prefix}_{suffix}"
    for prefix in ("GROK", "OPENAI", "GROQ")
    for suffix in (
        "API_KEY",
        "ENABLED",
        "PRIORITY",
        "MODEL",
        "MAX_TOKENS",
        "TEMPERATURE",
        "BASE_URL",
        "MESSAGE_HISTORY_LIMIT",
    )
]


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep the developer's environment out of configuration tests."""
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture(autouse=True)
def event_log(tmp_path: Path) -> JSONLLogger:
    """Route the global event log to a temporary directory."""
    return configure_logger(tmp_path / "logs")


@pytest.fixture
def memory_store(tmp_path: Path) -> MemoryStore:
    """Create a MemoryStore with a temporary database."""
    store = MemoryStore(tmp_path / "test_misko.db")
    store.init_db()
    yield store
    store.close()


@pytest.fixture
def settings_store(tmp_path: Path) -> SettingsStore:
    """Create a SettingsStore with a temporary database."""
    store = SettingsStore(tmp_path / "test_misko.db")
    store.init_db()
    yield store
    store.close()
