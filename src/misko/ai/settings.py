"""SQLite storage for chat AI settings, provider credentials and config values."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from ..db import SQLiteStore, parse_timestamp, utcnow


@dataclass
class ChatAISettings:
    """Per-chat AI switches and cooldown state."""

    chat_id: int
    enabled: bool = False
    cooldown_minutes: int = 7
    last_response_time: datetime | None = None
    last_used_provider: str | None = None


@dataclass(frozen=True)
class ProviderKey:
    """A stored API credential for one provider."""

    id: int
    provider: str
    api_key: str
    enabled: bool
    updated_at: str


class SettingsStore(SQLiteStore):
    """Persistent chat settings and AI provider configuration."""

    def init_db(self) -> None:
        """Create the settings tables if they don't exist."""
        conn = self._get_connection()
        conn.execute("""
            CREATE TABLE IF NOT EXISTS chat_ai_settings (
                chat_id             INTEGER PRIMARY KEY,
                enabled             INTEGER NOT NULL DEFAULT 0,
                cooldown_minutes    INTEGER NOT NULL DEFAULT 7,
                last_response_time  TEXT,
                last_used_provider  TEXT
            )
        """)
        conn.execute("""
            CREATE TABLE IF NOT EXISTS ai_provider_keys (
                id          INTEGER PRIMARY KEY AUTOINCREMENT,
                provider    TEXT NOT NULL,
                api_key     TEXT NOT NULL,
                enabled     INTEGER NOT NULL DEFAULT 1,
                created_at  TEXT NOT NULL,
                updated_at  TEXT NOT NULL
            )
        """)
        conn.execute(
            "CREATE INDEX IF NOT EXISTS idx_provider_keys_provider ON ai_provider_keys(provider)"
        )
        conn.execute("""
            CREATE TABLE IF NOT EXISTS ai_config (
                key     TEXT PRIMARY KEY,
                value   TEXT NOT NULL
            )
        """)
        conn.commit()

    # Chat settings

    def get_chat_settings(self, chat_id: int) -> ChatAISettings | None:
        conn = self._get_connection()
        row = conn.execute(
            "SELECT * FROM chat_ai_settings WHERE chat_id = ?", (chat_id,)
        ).fetchone()
        if row is None:
            return None
        return ChatAISettings(
            chat_id=row["chat_id"],
            enabled=bool(row["enabled"]),
            cooldown_minutes=row["cooldown_minutes"],
            last_response_time=(
                parse_timestamp(row["last_response_time"]) if row["last_response_time"] else None
            ),
            last_used_provider=row["last_used_provider"],
        )

    def upsert_chat_settings(
        self,
        chat_id: int,
        default_cooldown_minutes: int,
        **updates: object,
    ) -> ChatAISettings:
        """Update chat settings, creating the row with defaults if missing.

        Args:
            chat_id: The chat to update.
            default_cooldown_minutes: Cooldown used when the row is created.
            **updates: Any of enabled, cooldown_minutes, last_response_time,
                last_used_provider.

        Returns:
            The settings after the update.
        """
        allowed = {"enabled", "cooldown_minutes", "last_response_time", "last_used_provider"}
        unknown = set(updates) - allowed
        if unknown:
            raise ValueError(f"Unknown settings field(s): {', '.join(sorted(unknown))}")

        values = dict(updates)
        if isinstance(values.get("last_response_time"), datetime):
            values["last_response_time"] = values["last_response_time"].isoformat()
        if "enabled" in values:
            values["enabled"] = int(bool(values["enabled"]))

        conn = self._get_connection()
        conn.execute(
            """
            INSERT INTO chat_ai_settings (chat_id, enabled, cooldown_minutes)
            VALUES (?, 0, ?)
            ON CONFLICT(chat_id) DO NOTHING
            """,
            (chat_id, default_cooldown_minutes),
        )
        if values:
            assignments = ", ".join(f"{column} = ?" for column in values)
            conn.execute(
                f"UPDATE chat_ai_settings SET {assignments} WHERE chat_id = ?",
                (*values.values(), chat_id),
            )
        conn.commit()

        settings = self.get_chat_settings(chat_id)
        assert settings is not None
        return settings

    # Provider credentials

    def get_active_key(self, provider: str) -> ProviderKey | None:
        """Most recently updated enabled key for a provider."""
        conn = self._get_connection()
        row = conn.execute(
            """
            SELECT id, provider, api_key, enabled, updated_at FROM ai_provider_keys
            WHERE provider = ? AND enabled = 1
            ORDER BY updated_at DESC, id DESC
            LIMIT 1
            """,
            (provider,),
        ).fetchone()
        if row is None:
            return None
        return ProviderKey(
            id=row["id"],
            provider=row["provider"],
            api_key=row["api_key"],
            enabled=bool(row["enabled"]),
            updated_at=row["updated_at"],
        )

    def disable_keys(self, provider: str) -> int:
        """Disable every stored key for a provider. Returns rows changed."""
        conn = self._get_connection()
        cursor = conn.execute(
            "UPDATE ai_provider_keys SET enabled = 0, updated_at = ? WHERE provider = ? AND enabled = 1",
            (utcnow(), provider),
        )
        conn.commit()
        return cursor.rowcount

    def add_key(self, provider: str, api_key: str) -> ProviderKey:
        """Insert a new enabled key for a provider."""
        now = utcnow()
        conn = self._get_connection()
        cursor = conn.execute(
            """
            INSERT INTO ai_provider_keys (provider, api_key, enabled, created_at, updated_at)
            VALUES (?, ?, 1, ?, ?)
            """,
            (provider, api_key, now, now),
        )
        conn.commit()
        return ProviderKey(
            id=cursor.lastrowid,
            provider=provider,
            api_key=api_key,
            enabled=True,
            updated_at=now,
        )

    # Named config values

    def get_config_value(self, key: str) -> str | None:
        conn = self._get_connection()
        row = conn.execute("SELECT value FROM ai_config WHERE key = ?", (key,)).fetchone()
        return row["value"] if row else None

    def set_config_value(self, key: str, value: str) -> None:
        conn = self._get_connection()
        conn.execute(
            """
            INSERT INTO ai_config (key, value) VALUES (?, ?)
            ON CONFLICT(key) DO UPDATE SET value = excluded.value
            """,
            (key, value),
        )
        conn.commit()
