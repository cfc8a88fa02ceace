"""Cooldown and rate-limit policies.

All in-process state is keyed per chat, so handlers for different chats
never share an entry.
"""

from __future__ import annotations

import asyncio
import logging
import math
import sqlite3
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .ai.settings import SettingsStore
    from .memory import FactManager

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CooldownStatus:
    """Whether indirect responses are paused in a chat."""

    on_cooldown: bool
    minutes_remaining: int = 0


class CooldownPolicy:
    """Per-chat response cooldown persisted in the settings store.

    Only keyword-triggered responses advance the clock; direct
    interactions never read or write it.
    """

    def __init__(self, settings: SettingsStore, default_cooldown_minutes: int = 7) -> None:
        self.settings = settings
        self.default_cooldown_minutes = default_cooldown_minutes

    def check_cooldown(self, chat_id: int, now: datetime | None = None) -> CooldownStatus:
        """Report the remaining cooldown, rounded up to whole minutes."""
        try:
            settings = self.settings.get_chat_settings(chat_id)
        except sqlite3.Error as e:
            logger.error(f"Error checking cooldown: {e}")
            return CooldownStatus(on_cooldown=False)

        if settings is None or settings.last_response_time is None:
            return CooldownStatus(on_cooldown=False)

        now = now or datetime.now(timezone.utc)
        cooldown_ms = settings.cooldown_minutes * 60 * 1000
        elapsed_ms = (now - settings.last_response_time).total_seconds() * 1000

        if elapsed_ms < cooldown_ms:
            remaining_ms = cooldown_ms - elapsed_ms
            return CooldownStatus(on_cooldown=True, minutes_remaining=math.ceil(remaining_ms / 60000))

        return CooldownStatus(on_cooldown=False)

    def update_last_response_time(self, chat_id: int, now: datetime | None = None) -> None:
        """Start a new cooldown window for the chat."""
        try:
            self.settings.upsert_chat_settings(
                chat_id,
                self.default_cooldown_minutes,
                last_response_time=now or datetime.now(timezone.utc),
            )
        except sqlite3.Error as e:
            logger.error(f"Error updating last response time: {e}")


class RateLimiter:
    """Minimum spacing between accepted events per key."""

    def __init__(self, interval: float) -> None:
        self.interval = interval
        self._last: dict[str, float] = {}

    def check(self, key: str | int, now: float | None = None) -> bool:
        """True if an event for `key` is allowed now. Does not record it."""
        now = time.time() if now is None else now
        last = self._last.get(str(key))
        return last is None or now - last >= self.interval

    def record(self, key: str | int, now: float | None = None) -> None:
        """Mark an accepted event for `key`."""
        self._last[str(key)] = time.time() if now is None else now

    def reset(self, key: str | int | None = None) -> None:
        if key is None:
            self._last.clear()
        else:
            self._last.pop(str(key), None)


class ExtractionScheduler:
    """Decides when stored messages should kick off a background extraction.

    Fires when either `interval_seconds` have passed since the last run in
    the chat or `message_threshold` messages have been stored since then.
    Runs are spawned as tasks and never awaited by the caller.
    """

    def __init__(
        self,
        facts: FactManager,
        interval_seconds: float = 300.0,
        message_threshold: int = 10,
    ) -> None:
        self.facts = facts
        self.interval_seconds = interval_seconds
        self.message_threshold = message_threshold
        self._last_run: dict[str, float] = {}
        self._counts: dict[str, int] = {}
        self._tasks: set[asyncio.Task] = set()

    def record_message(self, chat_id: int, now: float | None = None) -> bool:
        """Count a stored message and spawn an extraction if a threshold is met.

        Returns:
            True if an extraction was started.
        """
        if not self.facts.is_enabled():
            return False

        key = str(chat_id)
        now = time.time() if now is None else now
        count = self._counts.get(key, 0) + 1
        self._counts[key] = count
        elapsed = now - self._last_run.get(key, 0.0)

        if elapsed < self.interval_seconds and count < self.message_threshold:
            return False

        self._last_run[key] = now
        self._counts[key] = 0

        task = asyncio.create_task(self._run(chat_id))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return True

    def pending(self) -> int:
        return len(self._tasks)

    async def wait_idle(self) -> None:
        """Wait for in-flight extraction tasks to finish."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def _run(self, chat_id: int) -> None:
        try:
            count = await self.facts.analyze_and_extract_facts(chat_id)
        except Exception:
            logger.exception(f"Error in background fact extraction for chat {chat_id}")
            return
        if count > 0:
            logger.info(f"Extracted {count} new facts from chat {chat_id}")
