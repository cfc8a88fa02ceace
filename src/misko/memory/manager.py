"""Fact pipeline: extraction, deduplicated storage and prompt context."""

from __future__ import annotations

import asyncio
import inspect
import logging
import sqlite3
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from ..config import FactExtractionConfig
from ..logging import JSONLLogger, get_logger
from .extractor import FactExtractor, display_name
from .models import ChatMessage, ExtractedFact, UserFact
from .store import MemoryStore

logger = logging.getLogger(__name__)

LIVE_REINFORCEMENT = 0.1
HISTORY_REINFORCEMENT = 0.05
MATCH_PREFIX_LENGTH = 20
EXCERPT_LENGTH = 500
CONTEXT_MIN_CONFIDENCE = 0.5
CONTEXT_FACTS_PER_USER = 5

ProgressCallback = Callable[[int, int, int], Awaitable[None] | None]


class FactExtractionDisabledError(RuntimeError):
    """Raised when a history backfill is requested while extraction is off."""


@dataclass(frozen=True)
class HistoryAnalysisResult:
    """Summary of a full-history backfill."""

    total_processed: int
    total_facts: int
    batches: int


def reinforce(confidence: float, increment: float) -> float:
    """Raise a confidence by `increment`, never lowering it and never above 1.0."""
    return max(confidence, min(1.0, confidence + increment))


class FactManager:
    """Orchestrates fact extraction, storage and retrieval.

    All operations are no-ops while the pipeline is disabled, except
    `analyze_entire_history`, which raises.
    """

    def __init__(
        self,
        store: MemoryStore,
        extractor: FactExtractor,
        config: FactExtractionConfig | None = None,
        event_logger: JSONLLogger | None = None,
    ) -> None:
        self.store = store
        self.extractor = extractor
        self.config = config or FactExtractionConfig()
        self._events = event_logger

    @property
    def events(self) -> JSONLLogger:
        if self._events is None:
            self._events = get_logger()
        return self._events

    def is_enabled(self) -> bool:
        return self.config.enabled

    async def analyze_and_extract_facts(self, chat_id: int) -> int:
        """Extract facts from the most recent messages of a chat.

        Returns:
            Number of new facts stored; reinforcements are not counted.
        """
        if not self.config.enabled:
            return 0

        try:
            recent = self.store.get_recent_messages(chat_id, self.config.batch_size)
        except sqlite3.Error as e:
            logger.error(f"Error loading messages for fact extraction: {e}")
            return 0

        if len(recent) < self.config.min_messages:
            return 0

        messages = list(reversed(recent))
        extracted = await self.extractor.extract(messages)
        if not extracted:
            return 0

        stored = self._store_facts(chat_id, messages, extracted, LIVE_REINFORCEMENT)
        self.events.log(
            "fact_extraction",
            chat_id=chat_id,
            messages=len(messages),
            extracted=len(extracted),
            stored=stored,
        )
        return stored

    async def analyze_entire_history(
        self,
        chat_id: int,
        batch_size: int | None = None,
        max_messages: int | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> HistoryAnalysisResult:
        """Run extraction over the whole stored history, oldest first.

        Args:
            chat_id: The chat to analyze.
            batch_size: Messages per extraction call.
            max_messages: Upper bound on messages processed.
            on_progress: Called with (processed, total, new_facts) after each
                batch; may be a coroutine function. Its errors are logged and
                ignored.

        Returns:
            Totals for the run.

        Raises:
            FactExtractionDisabledError: If fact extraction is disabled.
        """
        if not self.config.enabled:
            raise FactExtractionDisabledError("Fact extraction is disabled")

        batch_size = batch_size or self.config.history_batch_size
        max_messages = max_messages or self.config.history_max_messages

        processed = 0
        new_facts = 0
        batches = 0

        try:
            total = min(self.store.count_messages(chat_id), max_messages)
        except sqlite3.Error as e:
            logger.error(f"Error counting messages for history analysis: {e}")
            return HistoryAnalysisResult(total_processed=0, total_facts=0, batches=0)

        logger.info(f"Starting full history analysis: {total} messages in chat {chat_id}")

        while processed < total:
            try:
                messages = self.store.get_messages_ascending(
                    chat_id, offset=processed, limit=min(batch_size, total - processed)
                )
            except sqlite3.Error as e:
                logger.error(f"Error paging history for chat {chat_id}: {e}")
                break

            if not messages:
                break

            extracted = await self.extractor.extract(messages)
            if extracted:
                new_facts += self._store_facts(chat_id, messages, extracted, HISTORY_REINFORCEMENT)

            processed += len(messages)
            batches += 1

            await self._report_progress(on_progress, processed, total, new_facts)
            logger.info(
                f"Batch {batches}: processed {processed}/{total} messages, {new_facts} facts extracted"
            )

            if processed < total and self.config.history_batch_delay > 0:
                await asyncio.sleep(self.config.history_batch_delay)

        self.events.log(
            "history_analysis",
            chat_id=chat_id,
            processed=processed,
            facts=new_facts,
            batches=batches,
        )
        return HistoryAnalysisResult(total_processed=processed, total_facts=new_facts, batches=batches)

    async def _report_progress(
        self,
        on_progress: ProgressCallback | None,
        processed: int,
        total: int,
        new_facts: int,
    ) -> None:
        if on_progress is None:
            return
        try:
            result = on_progress(processed, total, new_facts)
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            logger.warning(f"Progress callback failed: {e}")

    def _store_facts(
        self,
        chat_id: int,
        messages: list[ChatMessage],
        extracted: list[ExtractedFact],
        increment: float,
    ) -> int:
        """Store extracted facts, reinforcing near-duplicates instead of inserting.

        Returns:
            Number of new rows created.
        """
        created = 0
        for item in extracted:
            author = next((m for m in messages if display_name(m) == item.username), None)
            if author is None:
                logger.warning(f"Could not find user for username: {item.username}")
                continue

            try:
                existing = self.store.find_similar_fact(
                    author.user_id,
                    chat_id,
                    item.fact_type,
                    item.fact[:MATCH_PREFIX_LENGTH],
                )
                if existing is not None and existing.id is not None:
                    self.store.update_fact_confidence(
                        existing.id, reinforce(existing.confidence, increment)
                    )
                    logger.debug(f"Reinforced fact for {item.username}: {item.fact}")
                    continue

                excerpt = " | ".join(
                    m.content for m in messages if display_name(m) == item.username
                )[:EXCERPT_LENGTH]
                self.store.add_fact(
                    UserFact(
                        user_id=author.user_id,
                        chat_id=chat_id,
                        username=item.username,
                        fact_type=item.fact_type,
                        fact=item.fact,
                        confidence=item.confidence,
                        extracted_from=excerpt,
                    )
                )
                created += 1
                logger.debug(f"Stored fact for {item.username}: {item.fact}")
            except sqlite3.Error as e:
                logger.error(f"Error storing fact: {e}")

        return created

    def get_user_facts_for_context(self, chat_id: int, user_ids: list[int]) -> str:
        """Format confident facts about `user_ids` for injection into the system prompt.

        Returns:
            A delimited block, or empty string if there is nothing to add.
        """
        if not self.config.enabled or not user_ids:
            return ""

        try:
            facts = self.store.get_active_facts(chat_id, user_ids, CONTEXT_MIN_CONFIDENCE)
        except sqlite3.Error as e:
            logger.error(f"Error retrieving user facts: {e}")
            return ""

        if not facts:
            return ""

        by_user: dict[str, list[str]] = {}
        for fact in facts:
            by_user.setdefault(fact.username or f"User{fact.user_id}", []).append(fact.fact)

        lines = ["", "", "=== KNOWN FACTS ABOUT USERS ==="]
        for username, user_facts in by_user.items():
            lines.append("")
            lines.append(f"{username}:")
            lines.extend(f"  - {fact}" for fact in user_facts[:CONTEXT_FACTS_PER_USER])
        lines.append("=== END OF USER FACTS ===")
        return "\n".join(lines) + "\n\n"

    def get_user_facts(self, user_id: int, chat_id: int) -> list[UserFact]:
        """Active facts about one user, most confident first."""
        try:
            return self.store.get_active_facts(chat_id, [user_id])
        except sqlite3.Error as e:
            logger.error(f"Error retrieving user facts: {e}")
            return []

    def clear_user_facts(self, user_id: int, chat_id: int) -> int:
        """Deactivate every fact about a user. Returns the number cleared."""
        try:
            return self.store.deactivate_facts(user_id, chat_id)
        except sqlite3.Error as e:
            logger.error(f"Error clearing user facts: {e}")
            return 0

    def delete_user_fact(self, user_id: int, chat_id: int, fact_text: str) -> bool:
        """Deactivate facts about a user containing `fact_text`."""
        try:
            return self.store.deactivate_facts(user_id, chat_id, containing=fact_text) > 0
        except sqlite3.Error as e:
            logger.error(f"Error deleting user fact: {e}")
            return False

    def fact_stats(self, chat_id: int) -> dict[str, object]:
        try:
            return self.store.fact_stats(chat_id)
        except sqlite3.Error as e:
            logger.error(f"Error reading fact stats: {e}")
            return {"total": 0, "users": 0, "by_type": {}}
