"""Reply texts for bot commands (Telegram HTML parse mode)."""

from collections.abc import Sequence
from html import escape

from ..ai import ChatAISettings, ProviderConfig, ProviderStatus, ProviderType
from ..memory import HistoryAnalysisResult, UserFact
from ..policy import CooldownStatus

MAX_MESSAGE_LENGTH = 4096
MAX_HISTORY_MESSAGES = 10000

FACT_TYPE_EMOJI = {
    "interest": "🎯",
    "preference": "⭐",
    "personal_info": "ℹ️",
    "skill": "🏆",
    "opinion": "💭",
    "game": "🎮",
}

STATUS_EMOJI = {
    ProviderStatus.READY: "✅",
    ProviderStatus.NOT_CONFIGURED: "⚠️",
    ProviderStatus.ERROR: "❌",
}

GROUP_ONLY = "This command only works in group chats."
ADMIN_ONLY = "❌ This command is only available to administrators."
GENERIC_ERROR = "❌ Something went wrong. Check logs."
FACTS_DISABLED = "❌ Fact extraction is currently disabled."
AI_ENABLED = "✅ AI responses enabled for this chat."
AI_DISABLED = "❌ AI responses disabled for this chat."
AI_NOT_CONFIGURED = "AI is not configured for this chat yet. An admin can run /enable_ai."

SET_KEY_USAGE = (
    "Usage: <code>/set_ai_key &lt;provider&gt; &lt;api_key&gt;</code>\n\n"
    "Providers: {providers}\n"
    "Example: <code>/set_ai_key openai sk-...</code>\n\n"
    "⚠️ Delete your message after setting the key!"
)

SET_PRIORITY_USAGE = (
    "Usage: <code>/set_ai_priority &lt;provider1&gt;,&lt;provider2&gt;</code>\n\n"
    "Available providers: {providers}\n\n"
    "Examples:\n"
    "<code>/set_ai_priority grok,openai</code> - Try Grok first, then OpenAI\n"
    "<code>/set_ai_priority openai</code> - Use only OpenAI"
)


def truncate_message(text: str, max_length: int = MAX_MESSAGE_LENGTH) -> str:
    """Truncate message to fit Telegram limits."""
    if len(text) <= max_length:
        return text
    return text[: max_length - 20] + "\n... [truncated]"


def provider_names() -> str:
    return ", ".join(p.value for p in ProviderType)


def fact_type_label(fact_type: str) -> str:
    """'personal_info' -> 'Personal info'."""
    return fact_type[:1].upper() + fact_type[1:].replace("_", " ")


def parse_max_messages(args: Sequence[str], cap: int = MAX_HISTORY_MESSAGES) -> int:
    """Optional positive message limit for /analyze_history, capped at `cap`."""
    if args:
        try:
            parsed = int(args[0])
        except ValueError:
            return cap
        if parsed > 0:
            return min(parsed, cap)
    return cap


def format_ai_status(
    settings: ChatAISettings,
    cooldown: CooldownStatus,
    priority: Sequence[ProviderType],
    statuses: Sequence[tuple[ProviderConfig, ProviderStatus]],
) -> str:
    lines = [
        "<b>AI Status</b>",
        "",
        f"Enabled: {'✅' if settings.enabled else '❌'}",
        f"Cooldown: {settings.cooldown_minutes} min",
    ]
    if settings.last_used_provider:
        lines.append(f"Last provider: {escape(settings.last_used_provider)}")

    lines.append("")
    lines.append(f"<b>Provider priority:</b> {' → '.join(p.value for p in priority)}")

    if statuses:
        lines.append("")
        lines.append("<b>Available providers:</b>")
        for config, status in statuses:
            lines.append(f"{STATUS_EMOJI[status]} {config.type.value} (priority: {config.priority})")

    if settings.enabled:
        lines.append("")
        if cooldown.on_cooldown:
            lines.append(f"⏰ On cooldown: {cooldown.minutes_remaining} min remaining")
        else:
            lines.append("✅ Ready to respond")

    return "\n".join(lines)


def format_user_facts(facts: Sequence[UserFact]) -> str:
    """Facts about one user grouped by type, in first-seen type order."""
    if not facts:
        return (
            "📝 I haven't learned any facts about you yet!\n\n"
            "Keep chatting and I'll pick up on your interests, preferences, and more."
        )

    by_type: dict[str, list[str]] = {}
    for fact in facts:
        confidence = round(fact.confidence * 100)
        by_type.setdefault(fact.fact_type.value, []).append(
            f"• {escape(fact.fact)} ({confidence}% confidence)"
        )

    lines = ["📝 <b>Facts I've learned about you:</b>", ""]
    for fact_type, entries in by_type.items():
        emoji = FACT_TYPE_EMOJI.get(fact_type, "📌")
        lines.append(f"{emoji} <b>{fact_type_label(fact_type)}:</b>")
        lines.extend(entries)
        lines.append("")

    lines.append(f"<i>Total: {len(facts)} fact(s)</i>")
    lines.append("")
    lines.append("Use /clear_my_facts to reset this information.")
    return truncate_message("\n".join(lines))


def format_fact_stats(stats: dict, enabled: bool) -> str:
    lines = [
        "📊 <b>Fact Extraction Status</b>",
        "",
        f"Status: {'✅ Enabled' if enabled else '❌ Disabled'}",
    ]
    if not enabled:
        return "\n".join(lines)

    lines += [
        "",
        "📝 <b>Statistics for this chat:</b>",
        f"• Total facts: {stats.get('total', 0)}",
        f"• Users tracked: {stats.get('users', 0)}",
    ]

    by_type = stats.get("by_type") or {}
    if by_type:
        lines.append("")
        lines.append("<b>Facts by type:</b>")
        for fact_type, count in by_type.items():
            emoji = FACT_TYPE_EMOJI.get(fact_type, "📌")
            lines.append(f"{emoji} {fact_type_label(fact_type)}: {count}")

    return "\n".join(lines)


def format_history_start(max_messages: int) -> str:
    return (
        "🔄 <b>Analyzing chat history...</b>\n\n"
        f"This will process up to {max_messages} messages.\n"
        "⏳ This may take several minutes. I'll update you on progress."
    )


def format_history_progress(processed: int, total: int, new_facts: int) -> str:
    percent = round(processed / total * 100) if total else 100
    return (
        "🔄 <b>Analyzing chat history...</b>\n\n"
        f"Progress: {processed}/{total} messages ({percent}%)\n"
        f"Facts extracted: {new_facts}\n\n"
        "⏳ Please wait..."
    )


def format_history_result(result: HistoryAnalysisResult) -> str:
    return (
        "✅ <b>History analysis complete!</b>\n\n"
        "📊 <b>Results:</b>\n"
        f"• Messages processed: {result.total_processed}\n"
        f"• New facts extracted: {result.total_facts}\n"
        f"• Batches processed: {result.batches}"
    )
