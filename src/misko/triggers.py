"""Decide whether a group message should get an AI response."""

from __future__ import annotations

import re
from collections.abc import Iterable
from dataclasses import dataclass
from enum import Enum

from telegram import Message, MessageEntity

# Case-insensitive nicknames the bot answers to
BOT_NAME_TRIGGERS = [
    "місько", "міхал", "міха", "михайло", "міша", "місю",
    "misko", "mikhal", "mikha", "mykhailo", "misha", "misyu",
    "бот", "bot", "грок", "grok",
]

GAMING_KEYWORDS = [
    # English
    "cs2", "cs:2", "counter-strike", "counter strike", "csgo", "cs:go",
    "faceit", "valve", "steam", "awp", "ak47", "ak-47", "m4a4", "m4a1",
    "deagle", "desert eagle", "peek", "peeking", "clutch", "clutching",
    "eco", "force buy", "full buy", "headshot", "hs", "spray", "tap",
    "rush", "rotate", "plant", "defuse", "bomb", "smoke", "flash",
    "molly", "molotov", "nade", "grenade", "dust2", "mirage", "inferno",
    "ancient", "anubis", "nuke", "vertigo", "overpass",
    "dota", "dota 2", "valorant", "apex", "apex legends",
    # Ukrainian
    "калаш", "калашніков", "авп", "авпшка", "емка", "емочка",
    "пік", "пікнути", "клатч", "клатчити", "ейм", "аїм",
    "флешка", "хедшот", "спрей", "раш", "рашити",
    "дефка", "дефузити", "плант", "плантити", "смок", "моля",
    "дот", "дота", "валорант",
    # Slang
    "ez", "ggwp", "gg wp", "gl hf", "glhf", "ns", "nice shot",
    "рагає", "рофлить", "тільтує", "читер", "хакер",
]

COMMAND_PREFIX = "/"

# Latin and Ukrainian/Russian Cyrillic letters, digits and underscore
_WORD_CHARS = "а-яА-ЯіІїЇєЄґҐёЁa-zA-Z0-9_"


def compile_term(term: str) -> re.Pattern[str]:
    """Pattern matching `term` only where no word character touches it on either side."""
    return re.compile(
        f"(?<![{_WORD_CHARS}]){re.escape(term)}(?![{_WORD_CHARS}])",
        re.IGNORECASE,
    )


class TriggerType(str, Enum):
    MENTION = "mention"
    REPLY = "reply"
    KEYWORD = "keyword"
    NONE = "none"


@dataclass(frozen=True)
class TriggerResult:
    """Outcome of trigger detection.

    Direct triggers (mention, reply) bypass the response cooldown.
    """

    should_respond: bool
    is_direct: bool
    trigger_type: TriggerType


NO_TRIGGER = TriggerResult(should_respond=False, is_direct=False, trigger_type=TriggerType.NONE)


class TriggerDetector:
    """Classifies messages as direct, keyword or ignorable.

    Checks run in a fixed order and the first match wins: @mention,
    leading bot username, reply to the bot, bot nickname, gaming keyword.
    """

    def __init__(
        self,
        bot_names: Iterable[str] = BOT_NAME_TRIGGERS,
        keywords: Iterable[str] = GAMING_KEYWORDS,
    ) -> None:
        self._names = [(name, compile_term(name)) for name in bot_names]
        self._keywords = [(keyword, compile_term(keyword)) for keyword in keywords]

    def _find(self, patterns: list[tuple[str, re.Pattern[str]]], text: str) -> list[str]:
        lower = text.lower()
        return [term for term, pattern in patterns if pattern.search(lower)]

    def has_bot_name(self, text: str) -> bool:
        lower = text.lower()
        return any(pattern.search(lower) for _, pattern in self._names)

    def has_keyword(self, text: str) -> bool:
        lower = text.lower()
        return any(pattern.search(lower) for _, pattern in self._keywords)

    def detected_keywords(self, text: str) -> list[str]:
        """All matched nicknames and keywords, for logging."""
        return self._find(self._names, text) + self._find(self._keywords, text)

    def classify(
        self,
        text: str | None,
        *,
        bot_username: str,
        bot_id: int,
        from_bot: bool = False,
        mentions: Iterable[str] = (),
        reply_to_user_id: int | None = None,
    ) -> TriggerResult:
        """Classify a message from its plain parts.

        Args:
            text: Message text; None for non-text messages.
            bot_username: The bot's username without the leading @.
            bot_id: The bot's user id.
            from_bot: Whether the sender is a bot.
            mentions: Text of the message's @mention entities.
            reply_to_user_id: Author of the replied-to message, if any.

        Returns:
            The trigger decision.
        """
        if not text or from_bot or text.startswith(COMMAND_PREFIX):
            return NO_TRIGGER

        username = bot_username.lower()
        if username:
            if any(mention.lower() == f"@{username}" for mention in mentions):
                return TriggerResult(True, True, TriggerType.MENTION)

            lower = text.lower()
            if lower.startswith((f"@{username}", f"{username},", f"{username} ")):
                return TriggerResult(True, True, TriggerType.MENTION)

        if reply_to_user_id is not None and reply_to_user_id == bot_id:
            return TriggerResult(True, True, TriggerType.REPLY)

        if self.has_bot_name(text):
            return TriggerResult(True, True, TriggerType.MENTION)

        if self.has_keyword(text):
            return TriggerResult(True, False, TriggerType.KEYWORD)

        return NO_TRIGGER

    def should_trigger(self, message: Message | None, bot_username: str, bot_id: int) -> TriggerResult:
        """Classify a Telegram message."""
        if message is None or not message.text:
            return NO_TRIGGER

        reply = message.reply_to_message
        reply_author = reply.from_user if reply is not None else None

        return self.classify(
            message.text,
            bot_username=bot_username,
            bot_id=bot_id,
            from_bot=bool(message.from_user and message.from_user.is_bot),
            mentions=message.parse_entities([MessageEntity.MENTION]).values(),
            reply_to_user_id=reply_author.id if reply_author is not None else None,
        )


_default_detector = TriggerDetector()


def should_trigger(message: Message | None, bot_username: str, bot_id: int) -> TriggerResult:
    """Classify a Telegram message with the default nicknames and keywords."""
    return _default_detector.should_trigger(message, bot_username, bot_id)


def get_detected_keywords(text: str) -> list[str]:
    """Nicknames and keywords found in `text` by the default detector."""
    return _default_detector.detected_keywords(text)
