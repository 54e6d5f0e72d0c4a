"""Instruction texts for conversation compression."""

from __future__ import annotations

from flowcore.llm.types import ChatMessage

SUMMARY_INSTRUCTIONS = """You are a professional conversation summarization assistant. Please compress and summarize the previous conversation according to the following requirements:

1. Retain the core information and important conclusions of the conversation; remove irrelevant, repetitive, or redundant content.
2. Maintain the original logical order and context to ensure the compressed content is easy to understand.
3. Clearly list any to-do items, decisions, conclusions, or key issues mentioned in the conversation.
4. Preserve necessary contextual information to avoid loss or misunderstanding due to compression.
5. Use concise and accurate language; do not add information that was not mentioned or make subjective assumptions.
6. If the conversation covers multiple topics, organize them into separate sections or bullet points.
7. Output the summary in structured Markdown format, including titles and bullet points for easy reference.

Please compress and summarize the content of the "Previous Conversation" according to the above requirements."""

OUTPUT_RULES = (
    "- Do not output any additional text, such as 'Okay' or 'Continue', before the Markdown content.",
    "- Please ensure the output is in Markdown format, including appropriate headings and bullet points.",
    "- Do not output any code blocks or unnecessary formatting.",
    "- Please ensure the output is concise and focused on the key points of the conversation.",
    "**DO NOT START THE OUTPUT WITH ``` NOR ENDING WITH IT**",
)

SUMMARY_REQUEST = "Please summarize the following conversation:"
TRANSCRIPT_NAME = "Previous Conversation"

COMPRESSED_HINT_TEMPLATE = 'This conversation is created by compressing "{title}".'
COMPRESSION_ERROR_TEMPLATE = "An error occurred during compression: {error}"


def summary_system_prompt() -> str:
    return SUMMARY_INSTRUCTIONS + "\n" + "\n".join(OUTPUT_RULES)


def build_summary_messages(transcript: str) -> list[ChatMessage]:
    """The three-message request that asks a model to summarise *transcript*."""
    return [
        ChatMessage.system(summary_system_prompt()),
        ChatMessage.user(SUMMARY_REQUEST),
        ChatMessage.user(transcript, name=TRANSCRIPT_NAME),
    ]
