"""Telegram bot integration for Misko."""

import logging
import os
import sqlite3
import time
from collections.abc import Awaitable, Callable
from typing import Any

from telegram import Bot, Update
from telegram.constants import ChatMemberStatus, ChatType, ParseMode
from telegram.error import TelegramError
from telegram.ext import (
    Application,
    CallbackQueryHandler,
    CommandHandler,
    ContextTypes,
    MessageHandler,
    filters,
)

from ..ai import AIService, ChainManager, ProviderConfigLoader, SettingsStore
from ..config import BotConfig
from ..logging import get_logger
from ..memory import (
    ChatMessage,
    FactExtractionDisabledError,
    FactExtractor,
    FactManager,
    MemoryStore,
)
from ..policy import ExtractionScheduler, RateLimiter
from ..triggers import TriggerType, get_detected_keywords, should_trigger
from . import formatting as fmt

logger = logging.getLogger(__name__)

BoardRefresher = Callable[[Bot], Awaitable[Any]]

REFRESH_BOARD_CALLBACK = "refresh_board"
PROGRESS_EDIT_INTERVAL = 10.0
ADMIN_STATUSES = (ChatMemberStatus.OWNER, ChatMemberStatus.ADMINISTRATOR)


class TelegramBot:
    """Telegram bot for Misko.

    Group text messages are logged for context and fact extraction, and
    answered when they mention the bot, reply to it or talk about games.
    """

    def __init__(
        self,
        token: str | None = None,
        config: BotConfig | None = None,
        board_refresher: BoardRefresher | None = None,
    ) -> None:
        self.token = token or os.getenv("TELEGRAM_TOKEN")
        if not self.token:
            raise ValueError("TELEGRAM_TOKEN not set")

        self.config = config or BotConfig.from_env()
        self.board_refresher = board_refresher
        self.json_logger = get_logger()

        # Storage
        self.memory_store = MemoryStore(self.config.db_path)
        self.memory_store.init_db()
        self.settings_store = SettingsStore(self.config.db_path)
        self.settings_store.init_db()

        # Provider chain shared by responses and fact extraction
        loader = ProviderConfigLoader(self.settings_store, self.config.ai.default_priority)
        self.chains = ChainManager(loader, event_logger=self.json_logger)

        self.facts = FactManager(
            self.memory_store,
            FactExtractor(self.chains),
            config=self.config.facts,
            event_logger=self.json_logger,
        )
        self.ai = AIService(
            self.settings_store,
            self.memory_store,
            self.facts,
            self.chains,
            config=self.config.ai,
            event_logger=self.json_logger,
        )

        self.scheduler = ExtractionScheduler(
            self.facts,
            interval_seconds=self.config.facts.interval_seconds,
            message_threshold=self.config.facts.message_threshold,
        )
        self.storage_limiter = RateLimiter(self.config.limits.storage_interval)
        self.refresh_limiter = RateLimiter(self.config.limits.refresh_interval)

        self._app: Application | None = None

    def store_message(
        self,
        chat_id: int,
        message_id: int,
        user_id: int,
        username: str | None,
        content: str,
    ) -> bool:
        """Log a group message, at most once per storage interval per chat.

        Keeps the per-chat log bounded and notifies the extraction
        scheduler. Storage failures are logged and never raised.

        Returns:
            True if the message was stored.
        """
        if not self.storage_limiter.check(chat_id):
            return False

        try:
            self.memory_store.add_message(
                ChatMessage(
                    chat_id=chat_id,
                    message_id=message_id,
                    user_id=user_id,
                    username=username,
                    content=content,
                )
            )
            self.memory_store.prune_messages(chat_id, self.config.limits.max_messages_per_chat)
        except sqlite3.Error as e:
            logger.error(f"Error storing message: {e}")
            return False

        self.storage_limiter.record(chat_id)
        self.scheduler.record_message(chat_id)
        return True

    async def _is_admin(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> bool:
        chat = update.effective_chat
        user = update.effective_user
        if chat is None or user is None:
            return False

        try:
            member = await context.bot.get_chat_member(chat.id, user.id)
        except TelegramError as e:
            logger.error(f"Error checking admin status: {e}")
            return False
        return member.status in ADMIN_STATUSES

    async def _require_group_admin(
        self, update: Update, context: ContextTypes.DEFAULT_TYPE
    ) -> bool:
        """Reply with the reason and return False unless an admin ran this in a group."""
        assert update.effective_message is not None
        chat = update.effective_chat
        if chat is None or chat.type == ChatType.PRIVATE:
            await update.effective_message.reply_text(fmt.GROUP_ONLY)
            return False
        if not await self._is_admin(update, context):
            await update.effective_message.reply_text(fmt.ADMIN_ONLY)
            return False
        return True

    async def _handle_message(
        self, update: Update, context: ContextTypes.DEFAULT_TYPE
    ) -> None:
        """Handle group text messages."""
        message = update.effective_message
        chat = update.effective_chat
        if message is None or chat is None or chat.type == ChatType.PRIVATE:
            return
        if not message.text or message.from_user is None:
            return

        user = message.from_user
        username = user.username or user.first_name
        text = message.text

        self.store_message(chat.id, message.message_id, user.id, username, text)

        trigger = should_trigger(message, context.bot.username, context.bot.id)
        if not trigger.should_respond:
            return

        logger.info(f"AI triggered by {trigger.trigger_type.value} in chat {chat.id}")
        keywords = get_detected_keywords(text) if trigger.trigger_type == TriggerType.KEYWORD else []
        self.json_logger.log_trigger(chat.id, trigger.trigger_type.value, keywords)

        try:
            if not self.ai.is_enabled(chat.id):
                logger.debug(f"AI not enabled for chat {chat.id}")
                return

            # Only keyword triggers are gated by the cooldown
            if not trigger.is_direct:
                cooldown = self.ai.check_cooldown(chat.id)
                if cooldown.on_cooldown:
                    logger.info(
                        f"AI on cooldown for chat {chat.id} ({cooldown.minutes_remaining}m remaining)"
                    )
                    return

            await chat.send_action("typing")
            response = await self.ai.generate_response(chat.id, text, username)
            if not response:
                logger.warning("AI returned no response")
                return

            await message.reply_text(fmt.truncate_message(response), do_quote=True)

            if not trigger.is_direct:
                self.ai.update_last_response_time(chat.id)

        except Exception as e:
            logger.exception("Error processing message")
            self.json_logger.log("telegram_error", chat_id=chat.id, error=str(e))

    # AI commands

    async def _set_enabled(
        self, update: Update, context: ContextTypes.DEFAULT_TYPE, enabled: bool
    ) -> None:
        assert update.effective_message is not None
        if not await self._require_group_admin(update, context):
            return
        assert update.effective_chat is not None
        chat_id = update.effective_chat.id

        try:
            self.ai.set_enabled(chat_id, enabled)
        except sqlite3.Error as e:
            logger.error(f"Error updating AI settings: {e}")
            await update.effective_message.reply_text(fmt.GENERIC_ERROR)
            return

        logger.info(f"AI {'enabled' if enabled else 'disabled'} for chat {chat_id}")
        await update.effective_message.reply_text(fmt.AI_ENABLED if enabled else fmt.AI_DISABLED)

    async def _handle_enable_ai(
        self, update: Update, context: ContextTypes.DEFAULT_TYPE
    ) -> None:
        """Handle /enable_ai command."""
        await self._set_enabled(update, context, True)

    async def _handle_disable_ai(
        self, update: Update, context: ContextTypes.DEFAULT_TYPE
    ) -> None:
        """Handle /disable_ai command."""
        await self._set_enabled(update, context, False)

    async def _handle_ai_status(
        self, update: Update, context: ContextTypes.DEFAULT_TYPE
    ) -> None:
        """Handle /ai_status command."""
        message = update.effective_message
        chat = update.effective_chat
        assert message is not None
        if chat is None or chat.type == ChatType.PRIVATE:
            await message.reply_text(fmt.GROUP_ONLY)
            return

        settings = self.ai.get_settings(chat.id)
        if settings is None:
            await message.reply_text(fmt.AI_NOT_CONFIGURED)
            return

        text = fmt.format_ai_status(
            settings,
            self.ai.check_cooldown(chat.id),
            self.ai.get_priority(),
            self.ai.provider_statuses(),
        )
        await message.reply_text(text, parse_mode=ParseMode.HTML)

    async def _handle_set_ai_key(
        self, update: Update, context: ContextTypes.DEFAULT_TYPE
    ) -> None:
        """Handle /set_ai_key <provider> <api_key>."""
        message = update.effective_message
        assert message is not None
        if not await self._require_group_admin(update, context):
            return

        args = context.args or []
        if not args:
            await message.reply_text(
                fmt.SET_KEY_USAGE.format(providers=fmt.provider_names()),
                parse_mode=ParseMode.HTML,
            )
            return
        if len(args) != 2:
            await message.reply_text("❌ Invalid format. Use: /set_ai_key <provider> <api_key>")
            return

        provider, api_key = args
        try:
            provider_type = self.ai.set_provider_key(provider, api_key)
        except ValueError as e:
            await message.reply_text(f"❌ {e}")
            return
        except sqlite3.Error as e:
            logger.error(f"Error setting {provider} API key: {e}")
            await message.reply_text("❌ Failed to update API key. Check logs.")
            return

        # The key should not stay in the chat history
        try:
            await message.delete()
        except TelegramError as e:
            logger.warning(f"Could not delete message with API key: {e}")

        await context.bot.send_message(
            message.chat_id,
            f"✅ <b>{provider_type.value} API key updated!</b>\n\n"
            "The new key is now active.",
            parse_mode=ParseMode.HTML,
        )

    async def _handle_set_ai_priority(
        self, update: Update, context: ContextTypes.DEFAULT_TYPE
    ) -> None:
        """Handle /set_ai_priority <provider1>,<provider2>."""
        message = update.effective_message
        assert message is not None
        if not await self._require_group_admin(update, context):
            return

        args = context.args or []
        if not args:
            await message.reply_text(
                fmt.SET_PRIORITY_USAGE.format(providers=fmt.provider_names()),
                parse_mode=ParseMode.HTML,
            )
            return

        try:
            order = self.ai.set_provider_priority("".join(args).split(","))
        except ValueError as e:
            await message.reply_text(f"❌ {e}\n\nValid providers: {fmt.provider_names()}")
            return
        except (sqlite3.Error, RuntimeError) as e:
            logger.error(f"Error setting provider priority: {e}")
            await message.reply_text("❌ Failed to update provider priority. Check logs.")
            return

        await message.reply_text(
            "✅ <b>Provider priority updated!</b>\n\n"
            f"New order: {' → '.join(p.value for p in order)}",
            parse_mode=ParseMode.HTML,
        )

    # Fact commands

    async def _handle_my_facts(
        self, update: Update, context: ContextTypes.DEFAULT_TYPE
    ) -> None:
        """Handle /my_facts command."""
        message = update.effective_message
        assert message is not None
        if update.effective_chat is None or update.effective_user is None:
            return
        if not self.facts.is_enabled():
            await message.reply_text(fmt.FACTS_DISABLED)
            return

        facts = self.facts.get_user_facts(update.effective_user.id, update.effective_chat.id)
        await message.reply_text(fmt.format_user_facts(facts), parse_mode=ParseMode.HTML)

    async def _handle_clear_my_facts(
        self, update: Update, context: ContextTypes.DEFAULT_TYPE
    ) -> None:
        """Handle /clear_my_facts command."""
        message = update.effective_message
        assert message is not None
        if update.effective_chat is None or update.effective_user is None:
            return
        if not self.facts.is_enabled():
            await message.reply_text(fmt.FACTS_DISABLED)
            return

        count = self.facts.clear_user_facts(update.effective_user.id, update.effective_chat.id)
        if count == 0:
            await message.reply_text("📝 I don't have any facts about you to clear.")
            return

        await message.reply_text(
            f"✅ Cleared {count} fact(s) about you.\n\n"
            "I'll start learning about you again from future conversations."
        )

    async def _handle_analyze_facts(
        self, update: Update, context: ContextTypes.DEFAULT_TYPE
    ) -> None:
        """Handle /analyze_facts command."""
        message = update.effective_message
        assert message is not None
        if not self.facts.is_enabled():
            await message.reply_text(fmt.FACTS_DISABLED)
            return
        if not await self._require_group_admin(update, context):
            return
        assert update.effective_chat is not None

        await message.reply_text("🔄 Analyzing recent messages and extracting facts...")
        count = await self.facts.analyze_and_extract_facts(update.effective_chat.id)

        if count == 0:
            await message.reply_text(
                "📝 Analysis complete, but no new facts were extracted.\n\n"
                "Recent messages may have no factual content, the facts may "
                "already be known, or there are not enough messages yet."
            )
        else:
            await message.reply_text(
                f"✅ Analysis complete!\n\nExtracted {count} new fact(s) from recent messages."
            )

    async def _handle_analyze_history(
        self, update: Update, context: ContextTypes.DEFAULT_TYPE
    ) -> None:
        """Handle /analyze_history [max_messages]."""
        message = update.effective_message
        assert message is not None
        if not self.facts.is_enabled():
            await message.reply_text(fmt.FACTS_DISABLED)
            return
        if not await self._require_group_admin(update, context):
            return
        assert update.effective_chat is not None
        chat_id = update.effective_chat.id

        max_messages = fmt.parse_max_messages(context.args or [])
        status = await message.reply_text(
            fmt.format_history_start(max_messages), parse_mode=ParseMode.HTML
        )

        last_update = time.monotonic()

        async def on_progress(processed: int, total: int, new_facts: int) -> None:
            nonlocal last_update
            now = time.monotonic()
            if now - last_update < PROGRESS_EDIT_INTERVAL:
                return
            try:
                await status.edit_text(
                    fmt.format_history_progress(processed, total, new_facts),
                    parse_mode=ParseMode.HTML,
                )
                last_update = now
            except TelegramError as e:
                logger.debug(f"Progress edit skipped: {e}")

        try:
            result = await self.facts.analyze_entire_history(
                chat_id,
                max_messages=max_messages,
                on_progress=on_progress,
            )
        except FactExtractionDisabledError:
            await status.edit_text(fmt.FACTS_DISABLED)
            return
        except Exception as e:
            logger.exception("Error analyzing history")
            self.json_logger.log("telegram_error", chat_id=chat_id, error=str(e))
            await status.edit_text(
                "❌ <b>Analysis failed</b>\n\nAn error occurred during analysis. Check logs.",
                parse_mode=ParseMode.HTML,
            )
            return

        await status.edit_text(fmt.format_history_result(result), parse_mode=ParseMode.HTML)

    async def _handle_fact_status(
        self, update: Update, context: ContextTypes.DEFAULT_TYPE
    ) -> None:
        """Handle /fact_status command."""
        message = update.effective_message
        assert message is not None
        if update.effective_chat is None:
            return

        enabled = self.facts.is_enabled()
        stats = self.facts.fact_stats(update.effective_chat.id) if enabled else {}
        await message.reply_text(fmt.format_fact_stats(stats, enabled), parse_mode=ParseMode.HTML)

    # Callbacks

    async def _handle_refresh_board(
        self, update: Update, context: ContextTypes.DEFAULT_TYPE
    ) -> None:
        """Handle the status board refresh button."""
        query = update.callback_query
        chat = update.effective_chat
        if query is None or chat is None:
            return

        if not self.refresh_limiter.check(chat.id):
            await query.answer("⏳ Please wait a few seconds before refreshing.")
            return

        try:
            await query.answer("🔄 Refreshing...")
            if self.board_refresher is not None:
                await self.board_refresher(context.bot)
            self.refresh_limiter.record(chat.id)
        except Exception as e:
            logger.exception("Refresh error")
            self.json_logger.log("telegram_error", chat_id=chat.id, error=str(e))

    async def _post_shutdown(self, application: Application) -> None:
        """Called after Application.shutdown()."""
        await self.scheduler.wait_idle()
        self.memory_store.close()
        self.settings_store.close()

    def build_app(self) -> Application:
        """Build the Telegram application."""
        self._app = (
            Application.builder()
            .token(self.token)
            .post_shutdown(self._post_shutdown)
            .build()
        )

        # Old /..._grok names are kept as aliases
        self._app.add_handler(CommandHandler(["enable_ai", "enable_grok"], self._handle_enable_ai))
        self._app.add_handler(CommandHandler(["disable_ai", "disable_grok"], self._handle_disable_ai))
        self._app.add_handler(CommandHandler(["ai_status", "grok_status"], self._handle_ai_status))
        self._app.add_handler(CommandHandler("set_ai_key", self._handle_set_ai_key))
        self._app.add_handler(CommandHandler("set_ai_priority", self._handle_set_ai_priority))
        self._app.add_handler(CommandHandler("my_facts", self._handle_my_facts))
        self._app.add_handler(CommandHandler("clear_my_facts", self._handle_clear_my_facts))
        self._app.add_handler(CommandHandler("analyze_facts", self._handle_analyze_facts))
        self._app.add_handler(CommandHandler("analyze_history", self._handle_analyze_history))
        self._app.add_handler(CommandHandler("fact_status", self._handle_fact_status))
        self._app.add_handler(
            CallbackQueryHandler(self._handle_refresh_board, pattern=f"^{REFRESH_BOARD_CALLBACK}$")
        )
        self._app.add_handler(
            MessageHandler(
                filters.TEXT & ~filters.COMMAND & filters.ChatType.GROUPS,
                self._handle_message,
            )
        )

        return self._app

    def run(self) -> None:
        """Run the bot (blocking)."""
        app = self.build_app()

        logger.info("Starting Telegram bot...")
        app.run_polling()
