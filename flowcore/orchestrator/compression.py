"""
Conversation compression.

Summarises an existing conversation into a brand new one: the source is
exported as a markdown transcript, a single summarisation round runs against
it, and the streamed summary becomes the new conversation's first answer.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Callable

from flowcore.config import InferenceSettings
from flowcore.llm.router import ModelRouter
from flowcore.orchestrator.core import InferenceOrchestrator
from flowcore.orchestrator.web_reference import TurnContext
from flowcore.prompts.compression import (
    COMPRESSED_HINT_TEMPLATE,
    COMPRESSION_ERROR_TEMPLATE,
    build_summary_messages,
)
from flowcore.session.manager import ConversationManager
from flowcore.session.messages import MessageRole
from flowcore.session.session import ConversationSession
from flowcore.tools.registry import ToolRegistry
from flowcore.types import ConversationNotFoundError

logger = logging.getLogger(__name__)


@dataclass
class CompressionResult:
    conversation_id: str | None = None
    error: Exception | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


def _save_on_change(session: ConversationSession) -> None:
    session.save()


class ConversationCompressor:
    def __init__(
        self,
        manager: ConversationManager,
        router: ModelRouter,
        settings: InferenceSettings,
    ) -> None:
        self.manager = manager
        self.router = router
        self.settings = settings

    async def compress(
        self,
        source_id: str,
        model_id: str,
        on_conversation_created: Callable[[str], None] | None = None,
        completion: Callable[[CompressionResult], None] | None = None,
    ) -> CompressionResult:
        """
        Compress conversation *source_id* into a new conversation.

        Failures never raise: they are recorded on the new conversation (when
        one exists) and returned in the result.  *completion* is called once
        with the same result.  Cancellation is reported to *completion* too,
        then re-raised.
        """
        created: list[str] = []

        def conversation_created(conversation_id: str) -> None:
            created.append(conversation_id)
            if on_conversation_created is not None:
                on_conversation_created(conversation_id)

        try:
            result = await self._compress(source_id, model_id, conversation_created)
        except asyncio.CancelledError as e:
            logger.info("Compression of %s cancelled", source_id)
            if completion is not None:
                completion(
                    CompressionResult(
                        conversation_id=created[0] if created else None, error=e
                    )
                )
            raise
        if completion is not None:
            completion(result)
        return result

    async def _compress(
        self,
        source_id: str,
        model_id: str,
        on_conversation_created: Callable[[str], None],
    ) -> CompressionResult:
        source = self.manager.conversation(source_id)
        if source is None:
            logger.error("Cannot compress unknown conversation %s", source_id)
            return CompressionResult(error=ConversationNotFoundError(source_id))

        transcript = self.manager.export_conversation(source_id)
        title = source.title

        session = self.manager.create_new_conversation(title=title)
        session.append_new_message(
            MessageRole.HINT,
            lambda m: m.update("document", COMPRESSED_HINT_TEMPLATE.format(title=title)),
        )
        session.save()
        session.notify_messages_did_change()

        on_conversation_created(session.conversation_id)

        session.add_observer(_save_on_change)
        orchestrator = InferenceOrchestrator(
            session, self.router, ToolRegistry(), self.settings
        )
        try:
            await orchestrator.execute_once(
                model_id,
                build_summary_messages(transcript),
                None,
                False,
                TurnContext(),
            )
        except Exception as e:
            logger.exception("Compression of %s failed", source_id)
            session.append_new_message(
                MessageRole.ASSISTANT,
                lambda m: m.update("document", COMPRESSION_ERROR_TEMPLATE.format(error=e)),
            )
            session.notify_messages_did_change()
            session.save()
            return CompressionResult(conversation_id=session.conversation_id, error=e)
        finally:
            session.remove_observer(_save_on_change)

        session.notify_messages_did_change()
        session.save()
        logger.info(
            "Compressed conversation %s into %s", source_id, session.conversation_id
        )
        return CompressionResult(conversation_id=session.conversation_id)
