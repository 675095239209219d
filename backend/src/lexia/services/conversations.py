"""Conversation transcripts: creation, loading and append-only persistence.

Two write paths exist:

- ``append_messages`` stores an already validated batch as-is. Appending the
  same batch twice stores it twice.
- ``reconcile_transcript`` is the compensating write the client issues after
  a stream completes, in case the server-side save was lost. It validates the
  raw batch first, requires a client ID on every message, and only stores
  messages whose client IDs are not already in the transcript, so replaying
  it is harmless.
"""

import logging
from typing import Any, Awaitable, Callable

from lexia_models import DEFAULT_TITLE, Conversation, Message
from lexia.db import Database, InMemoryDatabase
from lexia.errors import AuthorizationError, NotFoundError, PersistenceError
from lexia.services.message_validator import validate_messages
from lexia.services.permissions import CaseCapability, PermissionGate
from lexia.services.titles import first_user_text, generate_conversation_title
from lexia.services.tools import LEXIA_TOOLS, ToolCapabilitySchema

logger = logging.getLogger(__name__)

TitleGenerator = Callable[[str], Awaitable[str | None]]


class ConversationService:
    """Owns conversation metadata and the append-only transcript."""

    def __init__(
        self,
        db: Database | InMemoryDatabase,
        gate: PermissionGate,
        schema: ToolCapabilitySchema = LEXIA_TOOLS,
        title_generator: TitleGenerator = generate_conversation_title,
    ):
        self.db = db
        self.gate = gate
        self.schema = schema
        self.title_generator = title_generator

    async def create_conversation(
        self, user_id: str, case_id: str | None = None
    ) -> Conversation:
        """Create a conversation, optionally referring to a viewable case."""
        if case_id:
            allowed = await self.gate.can_attach_to_case(
                user_id, case_id, CaseCapability.CAN_VIEW
            )
            if not allowed:
                raise AuthorizationError("Forbidden: no access to this case")
        conversation = await self.db.create_conversation(user_id, case_id=case_id)
        logger.info(f"Created conversation {conversation.id} (case={case_id})")
        return conversation

    async def get_owned_conversation(self, user_id: str, conversation_id: str) -> Conversation:
        """Load a conversation the user owns. Others' conversations look missing."""
        conversation = await self.db.get_conversation(conversation_id)
        if conversation is None or conversation.user_id != user_id:
            raise NotFoundError("Conversation not found")
        return conversation

    async def get_conversation(
        self, user_id: str, conversation_id: str
    ) -> tuple[Conversation, list[Message]]:
        """Load a conversation with its transcript."""
        conversation = await self.get_owned_conversation(user_id, conversation_id)
        messages = await self.db.get_messages(conversation_id)
        return conversation, messages

    async def list_conversations(
        self, user_id: str, case_id: str | None = None, limit: int = 50
    ) -> list[Conversation]:
        return await self.db.list_conversations(user_id, case_id=case_id, limit=limit)

    async def append_messages(self, conversation_id: str, messages: list[Message]) -> int:
        """Append validated messages. Returns how many were stored.

        An empty batch is a no-op and leaves the conversation untouched.
        """
        if not messages:
            return 0
        stored = await self.db.append_messages(conversation_id, messages)
        if stored is None:
            raise NotFoundError("Conversation not found")
        logger.info(f"Appended {len(stored)} messages to conversation {conversation_id}")
        return len(stored)

    async def reconcile_transcript(
        self, user_id: str, conversation_id: str, raw_messages: Any
    ) -> int:
        """Validate a client transcript and store the messages not yet saved.

        Returns how many messages were newly stored.
        """
        if isinstance(raw_messages, list) and not raw_messages:
            return 0

        conversation = await self.get_owned_conversation(user_id, conversation_id)
        validated = validate_messages(
            raw_messages, self.schema, conversation_id, require_ids=True
        )
        stored = await self.db.append_messages(
            conversation_id, validated, skip_known_client_ids=True
        )
        if stored is None:
            raise NotFoundError("Conversation not found")

        logger.info(
            f"Reconciled conversation {conversation_id}: "
            f"{len(stored)} new of {len(validated)} submitted"
        )

        if stored and conversation.title == DEFAULT_TITLE:
            await self._generate_title(conversation_id, validated)

        return len(stored)

    async def _generate_title(self, conversation_id: str, messages: list[Message]) -> None:
        text = first_user_text(messages)
        if not text:
            return
        title = await self.title_generator(text)
        if not title:
            return
        try:
            await self.db.update_conversation_title(conversation_id, title)
        except PersistenceError as e:
            logger.error(f"Failed to save title for conversation {conversation_id}: {e}")
