"""In-process database with the same interface as ``Database``.

Used for local development without PostgreSQL and for tests. Per-entity
asyncio locks stand in for row locks, and every write is computed on a copy
and committed in one assignment, so a failed or cancelled operation leaves
nothing half-written.
"""

import asyncio
import logging
import uuid
import weakref
from collections import defaultdict
from datetime import datetime, timezone
from typing import Any, Callable

from lexia_models import (
    DEFAULT_TITLE,
    CaseParties,
    Conversation,
    DraftingSession,
    Message,
)

logger = logging.getLogger(__name__)


class InMemoryDatabase:
    """Dict-backed stand-in for the PostgreSQL client."""

    def __init__(self):
        self.sessions: dict[str, DraftingSession] = {}
        self.conversations: dict[str, Conversation] = {}
        self.messages: dict[str, list[Message]] = defaultdict(list)
        self.activity: list[dict[str, Any]] = []

        # Case data normally owned by the main application
        self.system_roles: dict[str, str] = {}
        self.case_roles: dict[tuple[str, str], str] = {}
        self.portal_contacts: set[tuple[str, str]] = set()
        self.documents: dict[str, str] = {}
        self.case_parties: dict[str, CaseParties] = {}

        # Entries vanish once no coroutine holds or waits on the lock
        self._locks: weakref.WeakValueDictionary[str, asyncio.Lock] = (
            weakref.WeakValueDictionary()
        )

    def _lock(self, key: str) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        return lock

    async def connect(self):
        logger.info("Using in-memory database")

    async def disconnect(self):
        pass

    async def ensure_tables_exist(self):
        pass

    # ============= Seeding helpers =============

    def set_system_role(self, user_id: str, role: str):
        self.system_roles[user_id] = role

    def assign_case(self, case_id: str, user_id: str, role: str = "member"):
        self.case_roles[(case_id, user_id)] = role

    def add_portal_contact(self, user_id: str, case_id: str):
        self.portal_contacts.add((user_id, case_id))

    def add_document(self, document_id: str, case_id: str):
        self.documents[document_id] = case_id

    def set_case_parties(self, case_id: str, parties: CaseParties):
        self.case_parties[case_id] = parties

    # ============= Drafting Session Operations =============

    async def create_session(self, session: DraftingSession) -> DraftingSession:
        self.sessions[session.id] = session.model_copy(deep=True)
        return session

    async def get_session(self, session_id: str) -> DraftingSession | None:
        session = self.sessions.get(session_id)
        return session.model_copy(deep=True) if session else None

    async def list_sessions(
        self,
        user_id: str,
        case_id: str | None = None,
        limit: int = 50,
    ) -> list[DraftingSession]:
        sessions = [
            s
            for s in self.sessions.values()
            if s.owner_id == user_id and (not case_id or s.case_id == case_id)
        ]
        sessions.sort(key=lambda s: s.created_at, reverse=True)
        return [s.model_copy(deep=True) for s in sessions[:limit]]

    async def update_session(
        self,
        session_id: str,
        apply: Callable[[DraftingSession], DraftingSession],
    ) -> DraftingSession | None:
        lock = self._lock(f"session:{session_id}")
        async with lock:
            current = await self.get_session(session_id)
            if current is None:
                return None
            updated = apply(current)
            updated.updated_at = datetime.now(timezone.utc)
            self.sessions[session_id] = updated.model_copy(deep=True)
        return updated

    # ============= Conversation Operations =============

    async def create_conversation(
        self, user_id: str, case_id: str | None = None, title: str | None = None
    ) -> Conversation:
        conversation = Conversation(
            user_id=user_id,
            case_id=case_id,
            title=title or DEFAULT_TITLE,
        )
        self.conversations[conversation.id] = conversation.model_copy()
        return conversation

    async def get_conversation(self, conversation_id: str) -> Conversation | None:
        conversation = self.conversations.get(conversation_id)
        return conversation.model_copy() if conversation else None

    async def list_conversations(
        self, user_id: str, case_id: str | None = None, limit: int = 50
    ) -> list[Conversation]:
        conversations = [
            c
            for c in self.conversations.values()
            if c.user_id == user_id and (not case_id or c.case_id == case_id)
        ]
        conversations.sort(
            key=lambda c: (c.last_message_at is not None, c.last_message_at or c.created_at, c.created_at),
            reverse=True,
        )
        return [c.model_copy() for c in conversations[:limit]]

    async def update_conversation_title(self, conversation_id: str, title: str):
        conversation = self.conversations.get(conversation_id)
        if conversation:
            self.conversations[conversation_id] = conversation.model_copy(
                update={"title": title, "updated_at": datetime.now(timezone.utc)}
            )

    async def append_messages(
        self,
        conversation_id: str,
        messages: list[Message],
        skip_known_client_ids: bool = False,
    ) -> list[Message] | None:
        lock = self._lock(f"conversation:{conversation_id}")
        async with lock:
            conversation = self.conversations.get(conversation_id)
            if conversation is None:
                return None

            if skip_known_client_ids:
                known = {m.client_id for m in self.messages[conversation_id] if m.client_id}
                messages = [m for m in messages if m.client_id not in known]

            if not messages:
                return []

            now = datetime.now(timezone.utc)
            stored = [
                message.model_copy(
                    update={
                        "id": str(uuid.uuid4()),
                        "conversation_id": conversation_id,
                        "position": conversation.message_count + index + 1,
                        "created_at": now,
                    }
                )
                for index, message in enumerate(messages)
            ]
            # Commit transcript and counters together
            self.messages[conversation_id] = self.messages[conversation_id] + stored
            self.conversations[conversation_id] = conversation.model_copy(
                update={
                    "message_count": conversation.message_count + len(stored),
                    "last_message_at": now,
                    "updated_at": now,
                }
            )
        return stored

    async def get_messages(self, conversation_id: str) -> list[Message]:
        return list(self.messages.get(conversation_id, []))

    # ============= Authorization Lookups =============

    async def get_system_role(self, user_id: str) -> str | None:
        return self.system_roles.get(user_id)

    async def get_case_role(self, case_id: str, user_id: str) -> str | None:
        return self.case_roles.get((case_id, user_id))

    async def is_portal_contact(self, user_id: str, case_id: str) -> bool:
        return (user_id, case_id) in self.portal_contacts

    async def get_document_case(self, document_id: str) -> str | None:
        return self.documents.get(document_id)

    async def get_case_parties(self, case_id: str) -> CaseParties | None:
        parties = self.case_parties.get(case_id)
        return parties.model_copy(deep=True) if parties else None

    # ============= Activity Log =============

    async def log_activity(
        self,
        user_id: str,
        action_type: str,
        entity_type: str,
        entity_id: str,
        description: str,
        case_id: str | None = None,
        new_values: dict[str, Any] | None = None,
    ):
        self.activity.append(
            {
                "user_id": user_id,
                "action_type": action_type,
                "entity_type": entity_type,
                "entity_id": entity_id,
                "case_id": case_id,
                "description": description,
                "new_values": new_values,
            }
        )
