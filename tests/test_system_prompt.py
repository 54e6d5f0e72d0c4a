"""Tests for flowcore.prompts.system."""

from __future__ import annotations

from datetime import datetime, timezone

from flowcore.config import InferenceSettings
from flowcore.llm.types import ChatMessage, ContentPart
from flowcore.prompts.system import (
    MEMORY_TOOLS_SECTION,
    PROACTIVE_MEMORY_NOTE,
    TOOL_GUIDANCE,
    EditorObject,
    SearchSensitivity,
    StaticMemory,
    inject_system_commands,
    merge_system_messages,
)
from flowcore.tools.registry import ToolRegistry
from tests.mock_tools import EchoTool, StoreMemoryTool

NOW = datetime(2026, 3, 1, 12, 30, tzinfo=timezone.utc)


async def _inject(
    *,
    tools_enabled=False,
    editor_object=None,
    settings=None,
    memory=None,
    registry=None,
):
    messages: list[ChatMessage] = []
    await inject_system_commands(
        messages,
        model_name="Test Model",
        tools_enabled=tools_enabled,
        editor_object=editor_object or EditorObject(text="hello"),
        settings=settings or InferenceSettings(locale="en_GB"),
        memory=memory,
        registry=registry,
        now=NOW,
    )
    return messages


class TestInjection:
    async def test_runtime_facts_then_user(self):
        messages = await _inject()
        assert [m.role for m in messages] == ["system", "user"]
        facts = messages[0].text
        assert facts.startswith("System is providing you up to date information")
        assert "Model/Your Name: Test Model" in facts
        assert "Current Date: Sunday, March 01, 2026" in facts
        assert "Current User Locale: en_GB" in facts
        assert messages[1].text == "hello"

    async def test_runtime_facts_disabled(self):
        settings = InferenceSettings(include_dynamic_system_info=False)
        messages = await _inject(settings=settings)
        assert [m.role for m in messages] == ["user"]

    async def test_order_of_all_blocks(self):
        registry = ToolRegistry()
        registry.register(EchoTool())
        registry.register(StoreMemoryTool())
        messages = await _inject(
            tools_enabled=True,
            editor_object=EditorObject(text="q", options={"browsing": True}),
            memory=StaticMemory(text="User is a botanist."),
            registry=registry,
        )

        assert [m.role for m in messages] == ["system"] * 4 + ["user"]
        assert messages[1].text == "User is a botanist."
        assert messages[2].text.startswith("Web Search Mode: Balanced\n")
        guidance = messages[3].text
        assert guidance.startswith(TOOL_GUIDANCE)
        assert MEMORY_TOOLS_SECTION in guidance
        assert guidance.endswith(PROACTIVE_MEMORY_NOTE)

    async def test_guidance_without_memory_tools(self):
        registry = ToolRegistry()
        registry.register(EchoTool())
        messages = await _inject(
            tools_enabled=True,
            settings=InferenceSettings(include_dynamic_system_info=False),
            registry=registry,
        )
        assert messages[0].text == TOOL_GUIDANCE

    async def test_no_guidance_when_tools_disabled(self):
        registry = ToolRegistry()
        registry.register(StoreMemoryTool())
        messages = await _inject(
            tools_enabled=False,
            settings=InferenceSettings(include_dynamic_system_info=False),
            registry=registry,
        )
        assert [m.role for m in messages] == ["user"]

    async def test_browsing_must_be_true(self):
        messages = await _inject(
            editor_object=EditorObject(text="q", options={"browsing": "yes"}),
            settings=InferenceSettings(include_dynamic_system_info=False),
        )
        assert [m.role for m in messages] == ["user"]

    async def test_blank_memory_is_skipped(self):
        messages = await _inject(
            tools_enabled=True,
            settings=InferenceSettings(include_dynamic_system_info=False),
            memory=StaticMemory(text="   "),
        )
        assert messages[0].text == TOOL_GUIDANCE

    async def test_attachments_become_parts(self):
        image = ContentPart.image_part("https://example.com/cat.png")
        messages = await _inject(
            editor_object=EditorObject(text="what is this", attachments=[image]),
            settings=InferenceSettings(include_dynamic_system_info=False),
        )
        content = messages[0].content
        assert content[0].text == "what is this"
        assert content[1] is image


async def test_static_memory_reads_file(tmp_path):
    path = tmp_path / "memory.md"
    path.write_text("User likes tea.\n", encoding="utf-8")
    assert await StaticMemory(path=path).formatted_proactive_memory_context() == "User likes tea."
    assert await StaticMemory(path=tmp_path / "missing.md").formatted_proactive_memory_context() is None


def test_search_sensitivity_titles():
    assert SearchSensitivity.ESSENTIAL.title == "Essential"
    assert SearchSensitivity.PROACTIVE.brief_description


class TestMerge:
    def test_merges_into_leading_message(self):
        messages = [
            ChatMessage.user("earlier"),
            ChatMessage.system("one"),
            ChatMessage.assistant("reply"),
            ChatMessage.system("two", name="rules"),
            ChatMessage.system("three", name="ignored"),
        ]
        merge_system_messages(messages)

        assert [m.role for m in messages] == ["system", "user", "assistant"]
        assert messages[0].text == "one\ntwo\nthree"
        assert messages[0].name == "rules"

    def test_trims_whitespace(self):
        messages = [ChatMessage.system("\n  a"), ChatMessage.system("b  \n")]
        merge_system_messages(messages)
        assert messages[0].text == "a\nb"

    def test_no_system_messages(self):
        messages = [ChatMessage.user("hi")]
        merge_system_messages(messages)
        assert len(messages) == 1
        assert messages[0].role == "user"

    def test_empty_merged_text_is_noop(self):
        messages = [ChatMessage.user("hi"), ChatMessage.system("  ")]
        merge_system_messages(messages)
        assert [m.role for m in messages] == ["user", "system"]

    def test_part_content_is_joined(self):
        messages = [
            ChatMessage.system([ContentPart.text_part("x"), ContentPart.text_part("y")]),
        ]
        merge_system_messages(messages)
        assert messages[0].content == "x\ny"
