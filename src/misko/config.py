"""Runtime configuration loaded from environment variables."""

import os
from dataclasses import dataclass, field
from pathlib import Path

DEFAULT_DB_PATH = Path.home() / ".misko" / "misko.db"


def _env(*names: str, default: str) -> str:
    """Return the first set environment variable among `names`."""
    for name in names:
        value = os.getenv(name)
        if value:
            return value
    return default


@dataclass
class AIConfig:
    """Configuration for the AI response service."""

    default_cooldown_minutes: int = 7
    message_history_limit: int = 25
    prompt_name: str = "default"
    prompts_dir: Path | None = None
    context_user_window: int = 10
    default_priority: str = "grok,openai,groq"

    def __post_init__(self) -> None:
        if self.prompts_dir is None:
            self.prompts_dir = Path(__file__).parent / "prompts"
        if self.default_cooldown_minutes < 0:
            raise ValueError("default_cooldown_minutes must not be negative")

    @classmethod
    def from_env(cls) -> "AIConfig":
        return cls(
            default_cooldown_minutes=int(
                _env("AI_DEFAULT_COOLDOWN_MINUTES", "GROK_DEFAULT_COOLDOWN_MINUTES", default="7")
            ),
            message_history_limit=int(
                _env("AI_MESSAGE_HISTORY_LIMIT", "GROK_MESSAGE_HISTORY_LIMIT", default="25")
            ),
            prompt_name=_env("AI_PROMPT", "GROK_PROMPT", default="default"),
            default_priority=_env("AI_PROVIDER_PRIORITY", default="grok,openai,groq"),
        )


@dataclass
class FactExtractionConfig:
    """Configuration for the fact extraction pipeline.

    Attributes:
        enabled: Global switch; when False every operation is a no-op.
        batch_size: Recent messages fetched for one live analysis.
        min_messages: Minimum stored messages required to analyze.
        interval_seconds: Time threshold for the background trigger.
        message_threshold: Message-count threshold for the background trigger.
        history_batch_size: Batch size of the full-history backfill.
        history_max_messages: Safety cap for the full-history backfill.
        history_batch_delay: Pause between backfill batches, in seconds.
    """

    enabled: bool = True
    batch_size: int = 10
    min_messages: int = 5
    interval_seconds: float = 300.0
    message_threshold: int = 10
    history_batch_size: int = 20
    history_max_messages: int = 10000
    history_batch_delay: float = 2.0

    @classmethod
    def from_env(cls) -> "FactExtractionConfig":
        return cls(
            enabled=os.getenv("FACT_EXTRACTION_ENABLED") != "false",
            batch_size=int(os.getenv("FACT_EXTRACTION_BATCH_SIZE", "10")),
            min_messages=int(os.getenv("FACT_EXTRACTION_MIN_MESSAGES", "5")),
            interval_seconds=int(os.getenv("FACT_EXTRACTION_INTERVAL_MS", "300000")) / 1000,
            message_threshold=int(os.getenv("FACT_EXTRACTION_MESSAGE_THRESHOLD", "10")),
        )


@dataclass
class RateLimitConfig:
    """In-process spacing limits, all per chat."""

    storage_interval: float = 1.0
    refresh_interval: float = 5.0
    max_messages_per_chat: int = 30


@dataclass
class BotConfig:
    """Top-level configuration bundle for the Telegram bot."""

    db_path: Path = DEFAULT_DB_PATH
    ai: AIConfig = field(default_factory=AIConfig)
    facts: FactExtractionConfig = field(default_factory=FactExtractionConfig)
    limits: RateLimitConfig = field(default_factory=RateLimitConfig)

    @classmethod
    def from_env(cls) -> "BotConfig":
        db_path = os.getenv("MISKO_DB_PATH")
        return cls(
            db_path=Path(db_path).expanduser() if db_path else DEFAULT_DB_PATH,
            ai=AIConfig.from_env(),
            facts=FactExtractionConfig.from_env(),
        )
