"""Fact extraction from chat messages using the provider chain."""

from __future__ import annotations

import json
import logging
import re
from typing import TYPE_CHECKING, Any

from .models import ChatMessage, ExtractedFact, FactType

if TYPE_CHECKING:
    from ..ai.manager import ChainManager

logger = logging.getLogger(__name__)

EXTRACTION_PROMPT = """You are a fact extraction assistant. Analyze the following chat messages and extract FACTUAL information about each user.

IMPORTANT RULES:
1. Only extract CONCRETE, FACTUAL information (not assumptions or interpretations)
2. Focus on: interests, hobbies, skills, games they play, preferences, personal info they share
3. Be specific and accurate
4. Ignore casual conversation without factual content
5. Each fact should be a clear, standalone statement
6. Messages may be in any language (English, Ukrainian, Russian, etc.). Write each fact in the SAME language as the original message.

Return ONLY valid JSON in this format:
{
  "facts": [
    {
      "username": "user123",
      "factType": "interest|preference|personal_info|skill|opinion|game",
      "fact": "clear, specific fact about the user",
      "confidence": 0.0-1.0
    }
  ]
}

FACT TYPES:
- interest: hobbies, things they like (e.g., "enjoys anime")
- preference: specific preferences (e.g., "prefers AWP over AK in CS2")
- personal_info: background info they share (e.g., "lives in Kyiv")
- skill: abilities they have (e.g., "good at headshots", "plays piano")
- opinion: strong viewpoints (e.g., "thinks Valorant is better than CS2")
- game: games they play (e.g., "plays CS2", "mains Dota 2")

Examples:
- "I play CS2 every day" -> {"username": "user", "factType": "game", "fact": "plays CS2 daily", "confidence": 1.0}
- "I'm from Lviv" -> {"username": "user", "factType": "personal_info", "fact": "from Lviv", "confidence": 1.0}
- "I love the AWP, best weapon" -> {"username": "user", "factType": "preference", "fact": "favorite CS2 weapon is AWP", "confidence": 0.9}

If there is nothing factual, return {"facts": []}.

Now analyze these messages:"""

DEFAULT_CONFIDENCE = 0.5

_CODE_FENCE = re.compile(r"^```(?:json)?\s*|\s*```$")


def display_name(message: ChatMessage) -> str:
    """Name used for a message author in prompts and fact matching."""
    return message.username or "Unknown"


def strip_code_fence(content: str) -> str:
    """Remove a markdown code block wrapping the response, if any."""
    return _CODE_FENCE.sub("", content.strip()).strip()


class FactExtractor:
    """Turns a batch of chat messages into extracted facts."""

    def __init__(self, chains: ChainManager) -> None:
        """Initialize the extractor.

        Args:
            chains: Source of the provider chain used for the extraction call.
        """
        self.chains = chains

    def format_messages(self, messages: list[ChatMessage]) -> str:
        return "\n".join(f"{display_name(m)}: {m.content}" for m in messages)

    async def extract(self, messages: list[ChatMessage]) -> list[ExtractedFact]:
        """Extract facts from a batch of messages.

        Args:
            messages: Messages in chronological order.

        Returns:
            Extracted facts, empty if none were found or on any error.
        """
        if not messages:
            return []

        prompt = [
            {"role": "system", "content": EXTRACTION_PROMPT},
            {"role": "user", "content": self.format_messages(messages)},
        ]

        try:
            result = await self.chains.get_chain().execute(prompt)
        except Exception as e:
            logger.warning(f"Fact extraction failed: {e}")
            return []

        if not result.success or not result.content:
            logger.warning(
                f"Fact extraction failed: {result.error.message if result.error else 'empty response'}"
            )
            return []

        facts = self.parse_response(result.content)
        logger.info(f"Extracted {len(facts)} facts from {len(messages)} messages")
        return facts

    def parse_response(self, content: str) -> list[ExtractedFact]:
        """Parse the model's JSON answer.

        Args:
            content: The raw model response.

        Returns:
            Valid facts; malformed items are skipped and malformed
            documents yield an empty list.
        """
        try:
            data = json.loads(strip_code_fence(content))
        except json.JSONDecodeError as e:
            logger.warning(f"Failed to parse extraction response: {e}")
            return []

        if not isinstance(data, dict) or not isinstance(data.get("facts"), list):
            logger.warning("Invalid extraction response: missing 'facts' array")
            return []

        facts = []
        for item in data["facts"]:
            fact = self._parse_item(item)
            if fact is None:
                logger.warning(f"Skipping invalid fact item: {item}")
                continue
            facts.append(fact)
        return facts

    def _parse_item(self, item: Any) -> ExtractedFact | None:
        if not isinstance(item, dict):
            return None

        username = item.get("username")
        text = item.get("fact")
        if not isinstance(username, str) or not username.strip():
            return None
        if not isinstance(text, str) or not text.strip():
            return None

        try:
            fact_type = FactType(str(item.get("factType", "")).strip().lower())
        except ValueError:
            return None

        try:
            confidence = float(item.get("confidence", DEFAULT_CONFIDENCE))
        except (TypeError, ValueError):
            confidence = DEFAULT_CONFIDENCE

        return ExtractedFact(
            username=username.strip(),
            fact_type=fact_type,
            fact=text.strip(),
            confidence=min(1.0, max(0.0, confidence)),
        )
