"""System prompt assembly for a single turn."""

from __future__ import annotations

import locale
import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Any, Protocol

from flowcore.llm.types import ROLE_SYSTEM, ChatMessage, ContentPart

if TYPE_CHECKING:
    from flowcore.config import InferenceSettings
    from flowcore.tools.registry import ToolRegistry

logger = logging.getLogger(__name__)


class SearchSensitivity(str, Enum):
    ESSENTIAL = "essential"
    BALANCED = "balanced"
    PROACTIVE = "proactive"

    @property
    def title(self) -> str:
        return self.value.capitalize()

    @property
    def brief_description(self) -> str:
        return _SEARCH_DESCRIPTIONS[self]


_SEARCH_DESCRIPTIONS = {
    SearchSensitivity.ESSENTIAL: (
        "Only search the web when the question cannot be answered without "
        "current or external information."
    ),
    SearchSensitivity.BALANCED: (
        "Search the web when it would noticeably improve accuracy or freshness "
        "of the answer."
    ),
    SearchSensitivity.PROACTIVE: (
        "Search the web for most questions and ground the answer in the results."
    ),
}


class MemoryProvider(Protocol):
    async def formatted_proactive_memory_context(self) -> str | None: ...


class StaticMemory:
    """Proactive memory backed by a fixed string or a text file."""

    def __init__(self, text: str | None = None, path: str | Path | None = None):
        self._text = text
        self._path = Path(path).expanduser() if path else None

    async def formatted_proactive_memory_context(self) -> str | None:
        text = self._text
        if text is None and self._path is not None:
            if not self._path.is_file():
                logger.warning("Proactive memory file not found: %s", self._path)
                return None
            text = self._path.read_text(encoding="utf-8")
        if not text or not text.strip():
            return None
        return text.strip()


@dataclass
class EditorObject:
    """What the user submitted: text, per-turn options and attachments."""

    text: str
    options: dict[str, Any] = field(default_factory=dict)
    attachments: list[ContentPart] = field(default_factory=list)

    @property
    def browsing(self) -> bool:
        return self.options.get("browsing") is True


# ---------------------------------------------------------------------------
# Prompt texts
# ---------------------------------------------------------------------------

RUNTIME_FACTS_TEMPLATE = """System is providing you up to date information about current query:

Model/Your Name: {model_name}
Current Date: {date}
Current User Locale: {locale}

Please use up-to-date information and ensure compliance with the previously provided guidelines."""

TOOL_GUIDANCE = (
    "The system provides several tools for your convenience. Please use them "
    "wisely and according to the user's query. Avoid requesting information "
    "that is already provided or easily inferred."
)

MEMORY_TOOLS_SECTION = """Memory Tools Available:

STORE MEMORY - Use store_memory proactively to save important user information like:
• Personal details: "User is a software engineer", "User prefers dark mode"
• Project context: "Working on a chat application", "Using Python and asyncio"
• Preferences: "User likes detailed explanations", "User prefers concise responses"
• Goals: "Learning Rust", "Building a chat application"
• Important facts: "User's timezone is PST", "User works remotely"

FORMAT: Store memories in third person format (e.g., "User is a student" not "I'm a student")
WHEN: Immediately when user shares personal info, preferences, or important context

RECALL MEMORY - Use recall_memory to get context:
• At conversation start to understand user background
• When you need context about user preferences or past discussions
• Before making recommendations to personalize them

MANAGE MEMORY - Use list_memories, update_memory, delete_memory to maintain accuracy:
• List memories when you need to update or remove specific information
• Update memories when information changes or becomes more specific
• Delete memories when information becomes outdated or incorrect

Be proactive about memory management to provide personalized, contextually aware assistance. Always format stored information clearly and in third person perspective."""

PROACTIVE_MEMORY_NOTE = (
    "A proactive memory summary has been provided above according to the "
    "user's setting. Treat it as reliable context and keep it updated through "
    "memory tools when necessary."
)


def current_locale(settings: InferenceSettings) -> str:
    if settings.locale:
        return settings.locale
    return locale.getlocale()[0] or "en_US"


def format_runtime_facts(model_name: str, now: datetime, locale_id: str) -> str:
    return RUNTIME_FACTS_TEMPLATE.format(
        model_name=model_name,
        date=now.strftime("%A, %B %d, %Y at %H:%M:%S %Z").strip(),
        locale=locale_id,
    )


def search_directive(sensitivity: SearchSensitivity) -> str:
    return f"Web Search Mode: {sensitivity.title}\n{sensitivity.brief_description}"


async def inject_system_commands(
    messages: list[ChatMessage],
    *,
    model_name: str,
    tools_enabled: bool,
    editor_object: EditorObject,
    settings: InferenceSettings,
    memory: MemoryProvider | None = None,
    registry: ToolRegistry | None = None,
    now: datetime | None = None,
) -> None:
    """
    Append this turn's system instructions and the user input to *messages*.

    Order: runtime facts, proactive memory, web search directive, tool
    guidance, then the user message.  Each system block is conditional;
    the user message is always appended.
    """
    proactive_memory_provided = False

    if settings.include_dynamic_system_info:
        now = now or datetime.now().astimezone()
        messages.append(
            ChatMessage.system(
                format_runtime_facts(model_name, now, current_locale(settings))
            )
        )

    if memory is not None:
        context = await memory.formatted_proactive_memory_context()
        if context:
            messages.append(ChatMessage.system(context))
            proactive_memory_provided = True

    if editor_object.browsing:
        sensitivity = SearchSensitivity(settings.search_sensitivity)
        messages.append(ChatMessage.system(search_directive(sensitivity)))

    if tools_enabled:
        guidance = TOOL_GUIDANCE
        if registry is not None and registry.has_memory_tools():
            guidance += "\n\n" + MEMORY_TOOLS_SECTION
        if proactive_memory_provided:
            guidance += "\n\n" + PROACTIVE_MEMORY_NOTE
        messages.append(ChatMessage.system(guidance))

    if editor_object.attachments:
        content: str | list[ContentPart] = [
            ContentPart.text_part(editor_object.text),
            *editor_object.attachments,
        ]
    else:
        content = editor_object.text
    messages.append(ChatMessage.user(content))


def merge_system_messages(messages: list[ChatMessage]) -> None:
    """Collapse every system message into one at index 0, in place."""
    texts: list[str] = []
    name: str | None = None
    found = False
    for m in messages:
        if m.role != ROLE_SYSTEM:
            continue
        found = True
        texts.append(m.text)
        if name is None and m.name is not None:
            name = m.name

    if not found:
        return
    merged = "\n".join(texts).strip()
    if not merged:
        return

    messages[:] = [m for m in messages if m.role != ROLE_SYSTEM]
    messages.insert(0, ChatMessage.system(merged, name=name))
