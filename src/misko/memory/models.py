"""Data models for the message log and user facts."""

from dataclasses import dataclass
from enum import Enum


class FactType(str, Enum):
    """Categories a fact can belong to."""

    INTEREST = "interest"
    PREFERENCE = "preference"
    PERSONAL_INFO = "personal_info"
    SKILL = "skill"
    OPINION = "opinion"
    GAME = "game"


@dataclass(frozen=True)
class ChatMessage:
    """A stored group chat message.

    Attributes:
        chat_id: Telegram chat id.
        message_id: Telegram message id within the chat.
        user_id: Author's Telegram user id.
        content: Message text.
        username: Author's username or first name.
        id: Database ID, None for unsaved messages.
        timestamp: ISO timestamp when stored.
    """

    chat_id: int
    message_id: int
    user_id: int
    content: str
    username: str | None = None
    id: int | None = None
    timestamp: str | None = None


@dataclass(frozen=True)
class UserFact:
    """Something learned about a user in a chat.

    Attributes:
        user_id: Who the fact is about.
        chat_id: Chat the fact was learned in.
        username: Username at extraction time.
        fact_type: One of FactType.
        fact: The fact text.
        confidence: 0.0 to 1.0.
        extracted_from: Excerpt of the source messages.
        is_active: False once cleared or deleted.
        id: Database ID, None for new facts.
        created_at: ISO timestamp when created.
        updated_at: ISO timestamp when last reinforced.
    """

    user_id: int
    chat_id: int
    username: str
    fact_type: FactType
    fact: str
    confidence: float
    extracted_from: str = ""
    is_active: bool = True
    id: int | None = None
    created_at: str | None = None
    updated_at: str | None = None


@dataclass(frozen=True)
class ExtractedFact:
    """A fact as returned by the extraction model, before it is stored."""

    username: str
    fact_type: FactType
    fact: str
    confidence: float
