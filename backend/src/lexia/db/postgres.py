"""PostgreSQL client for drafting sessions and conversation transcripts."""

import json
import logging
import uuid
import asyncpg
from datetime import datetime, timezone
from typing import Any, Callable
from contextlib import asynccontextmanager

from lexia_models import (
    DEFAULT_TITLE,
    CaseParties,
    Conversation,
    DraftingSession,
    Message,
    ToolCall,
    ToolResult,
)
from lexia.config import settings
from lexia.errors import PersistenceError

logger = logging.getLogger(__name__)


# SQL schema for Lexia tables. Tables of the main application (profiles, cases,
# case_assignments, case_participants, people, companies, documents) are only
# read.
SCHEMA_SQL = """
-- Contestación drafting sessions
CREATE TABLE IF NOT EXISTS contestacion_sessions (
    id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL,
    case_id TEXT,
    raw_input TEXT,
    demanda_document_id TEXT,
    state JSONB NOT NULL DEFAULT '{}',
    current_step TEXT NOT NULL DEFAULT 'init',
    created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
);
CREATE INDEX IF NOT EXISTS idx_contestacion_sessions_user ON contestacion_sessions(user_id);
CREATE INDEX IF NOT EXISTS idx_contestacion_sessions_case ON contestacion_sessions(case_id) WHERE case_id IS NOT NULL;

-- Conversations
CREATE TABLE IF NOT EXISTS conversations (
    id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL,
    case_id TEXT,
    title TEXT NOT NULL,
    message_count INT NOT NULL DEFAULT 0,
    last_message_at TIMESTAMPTZ,
    created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
);
CREATE INDEX IF NOT EXISTS idx_conversations_user_id ON conversations(user_id);
CREATE INDEX IF NOT EXISTS idx_conversations_case_id ON conversations(case_id);

-- Messages (append-only)
CREATE TABLE IF NOT EXISTS messages (
    id TEXT PRIMARY KEY,
    conversation_id TEXT NOT NULL REFERENCES conversations(id) ON DELETE CASCADE,
    client_id TEXT,
    role TEXT NOT NULL CHECK (role IN ('user', 'assistant', 'tool')),
    content TEXT NOT NULL DEFAULT '',
    tool_calls JSONB NOT NULL DEFAULT '[]',
    tool_result JSONB,
    position INT NOT NULL,
    created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    UNIQUE (conversation_id, position)
);
CREATE INDEX IF NOT EXISTS idx_messages_client_id ON messages(conversation_id, client_id);

-- Activity log (best-effort audit trail)
CREATE TABLE IF NOT EXISTS activity_log (
    id BIGSERIAL PRIMARY KEY,
    user_id TEXT NOT NULL,
    action_type TEXT NOT NULL,
    entity_type TEXT NOT NULL,
    entity_id TEXT NOT NULL,
    case_id TEXT,
    description TEXT NOT NULL,
    new_values JSONB,
    created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
);
"""


def _load_json(value: Any) -> Any:
    """JSONB columns come back as text unless a codec is registered."""
    if isinstance(value, str):
        return json.loads(value)
    return value


class Database:
    """PostgreSQL database client for Lexia persistence."""

    def __init__(self):
        self._pool: asyncpg.Pool | None = None

    async def connect(self):
        """Create connection pool."""
        try:
            self._pool = await asyncpg.create_pool(
                settings.database_url,
                min_size=2,
                max_size=10,
            )
        except (asyncpg.PostgresError, OSError) as e:
            logger.error(f"Could not connect to PostgreSQL: {e}")
            raise PersistenceError("Storage unavailable") from e

    async def disconnect(self):
        """Close connection pool."""
        if self._pool:
            await self._pool.close()
            self._pool = None

    @asynccontextmanager
    async def connection(self):
        """Get a connection from the pool.

        Driver failures surface as PersistenceError.
        """
        if not self._pool:
            raise PersistenceError("Database not connected")
        try:
            async with self._pool.acquire() as conn:
                yield conn
        except (asyncpg.PostgresError, asyncpg.InterfaceError, OSError) as e:
            logger.error(f"Database error: {e}")
            raise PersistenceError("Storage failure") from e

    async def ensure_tables_exist(self):
        """Create tables if they don't exist."""
        async with self.connection() as conn:
            await conn.execute(SCHEMA_SQL)

    # ============= Drafting Session Operations =============

    async def create_session(self, session: DraftingSession) -> DraftingSession:
        """Insert a new drafting session."""
        async with self.connection() as conn:
            await conn.execute(
                """
                INSERT INTO contestacion_sessions
                (id, user_id, case_id, raw_input, demanda_document_id, state, current_step, created_at, updated_at)
                VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9)
                """,
                session.id,
                session.owner_id,
                session.case_id,
                session.raw_input,
                session.demanda_document_id,
                self._dump_state(session),
                session.current_step.value,
                session.created_at,
                session.updated_at,
            )
        return session

    async def get_session(self, session_id: str) -> DraftingSession | None:
        """Get a drafting session by ID."""
        async with self.connection() as conn:
            row = await conn.fetchrow(
                "SELECT * FROM contestacion_sessions WHERE id = $1", session_id
            )
        if not row:
            return None
        return self._row_to_session(row)

    async def list_sessions(
        self,
        user_id: str,
        case_id: str | None = None,
        limit: int = 50,
    ) -> list[DraftingSession]:
        """List a user's drafting sessions, newest first."""
        query = "SELECT * FROM contestacion_sessions WHERE user_id = $1"
        params: list[Any] = [user_id]

        if case_id:
            query += " AND case_id = $2"
            params.append(case_id)

        query += f" ORDER BY created_at DESC LIMIT ${len(params) + 1}"
        params.append(limit)

        async with self.connection() as conn:
            rows = await conn.fetch(query, *params)
        return [self._row_to_session(row) for row in rows]

    async def update_session(
        self,
        session_id: str,
        apply: Callable[[DraftingSession], DraftingSession],
    ) -> DraftingSession | None:
        """Read-modify-write a session under a row lock.

        ``apply`` receives the freshest stored session and returns the new
        one. If it raises, the transaction rolls back and nothing is written.
        """
        async with self.connection() as conn:
            async with conn.transaction():
                row = await conn.fetchrow(
                    "SELECT * FROM contestacion_sessions WHERE id = $1 FOR UPDATE",
                    session_id,
                )
                if not row:
                    return None
                updated = apply(self._row_to_session(row))
                updated.updated_at = datetime.now(timezone.utc)
                await conn.execute(
                    """
                    UPDATE contestacion_sessions
                    SET state = $1, current_step = $2, updated_at = $3
                    WHERE id = $4
                    """,
                    self._dump_state(updated),
                    updated.current_step.value,
                    updated.updated_at,
                    session_id,
                )
        return updated

    @staticmethod
    def _dump_state(session: DraftingSession) -> str:
        return json.dumps(
            {key: data.model_dump(mode="json") for key, data in session.state.items()}
        )

    def _row_to_session(self, row: asyncpg.Record) -> DraftingSession:
        return DraftingSession(
            id=row["id"],
            owner_id=row["user_id"],
            case_id=row["case_id"],
            raw_input=row["raw_input"],
            demanda_document_id=row["demanda_document_id"],
            state=_load_json(row["state"]) or {},
            current_step=row["current_step"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )

    # ============= Conversation Operations =============

    async def create_conversation(
        self, user_id: str, case_id: str | None = None, title: str | None = None
    ) -> Conversation:
        """Create a new conversation."""
        now = datetime.now(timezone.utc)
        conversation = Conversation(
            user_id=user_id,
            case_id=case_id,
            title=title or DEFAULT_TITLE,
            created_at=now,
            updated_at=now,
        )
        async with self.connection() as conn:
            await conn.execute(
                """
                INSERT INTO conversations (id, user_id, case_id, title, created_at, updated_at)
                VALUES ($1, $2, $3, $4, $5, $6)
                """,
                conversation.id,
                conversation.user_id,
                conversation.case_id,
                conversation.title,
                conversation.created_at,
                conversation.updated_at,
            )
        return conversation

    async def get_conversation(self, conversation_id: str) -> Conversation | None:
        """Get a conversation by ID."""
        async with self.connection() as conn:
            row = await conn.fetchrow(
                "SELECT * FROM conversations WHERE id = $1", conversation_id
            )
        if not row:
            return None
        return self._row_to_conversation(row)

    async def list_conversations(
        self, user_id: str, case_id: str | None = None, limit: int = 50
    ) -> list[Conversation]:
        """List conversations for a user, most recently active first."""
        query = "SELECT * FROM conversations WHERE user_id = $1"
        params: list[Any] = [user_id]

        if case_id:
            query += " AND case_id = $2"
            params.append(case_id)

        query += (
            " ORDER BY last_message_at DESC NULLS LAST, created_at DESC"
            f" LIMIT ${len(params) + 1}"
        )
        params.append(limit)

        async with self.connection() as conn:
            rows = await conn.fetch(query, *params)
        return [self._row_to_conversation(row) for row in rows]

    async def update_conversation_title(self, conversation_id: str, title: str):
        """Set a conversation's title."""
        async with self.connection() as conn:
            await conn.execute(
                "UPDATE conversations SET title = $1, updated_at = $2 WHERE id = $3",
                title,
                datetime.now(timezone.utc),
                conversation_id,
            )

    async def append_messages(
        self,
        conversation_id: str,
        messages: list[Message],
        skip_known_client_ids: bool = False,
    ) -> list[Message] | None:
        """Append messages and bump the conversation counters in one transaction.

        Returns the stored messages, or None if the conversation does not
        exist. With ``skip_known_client_ids`` messages whose client ID is
        already in the transcript are left out.
        """
        async with self.connection() as conn:
            async with conn.transaction():
                row = await conn.fetchrow(
                    "SELECT message_count FROM conversations WHERE id = $1 FOR UPDATE",
                    conversation_id,
                )
                if not row:
                    return None

                if skip_known_client_ids:
                    client_ids = [m.client_id for m in messages if m.client_id]
                    known_rows = await conn.fetch(
                        """
                        SELECT client_id FROM messages
                        WHERE conversation_id = $1 AND client_id = ANY($2::text[])
                        """,
                        conversation_id,
                        client_ids,
                    )
                    known = {r["client_id"] for r in known_rows}
                    messages = [m for m in messages if m.client_id not in known]

                if not messages:
                    return []

                now = datetime.now(timezone.utc)
                stored = [
                    message.model_copy(
                        update={
                            "id": str(uuid.uuid4()),
                            "conversation_id": conversation_id,
                            "position": row["message_count"] + index + 1,
                            "created_at": now,
                        }
                    )
                    for index, message in enumerate(messages)
                ]
                await conn.executemany(
                    """
                    INSERT INTO messages
                    (id, conversation_id, client_id, role, content, tool_calls, tool_result, position, created_at)
                    VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9)
                    """,
                    [
                        (
                            m.id,
                            m.conversation_id,
                            m.client_id,
                            m.role.value,
                            m.content,
                            json.dumps([c.model_dump(mode="json") for c in m.tool_calls]),
                            json.dumps(m.tool_result.model_dump(mode="json")) if m.tool_result else None,
                            m.position,
                            m.created_at,
                        )
                        for m in stored
                    ],
                )
                await conn.execute(
                    """
                    UPDATE conversations
                    SET message_count = message_count + $1,
                        last_message_at = $2,
                        updated_at = $2
                    WHERE id = $3
                    """,
                    len(stored),
                    now,
                    conversation_id,
                )
        return stored

    async def get_messages(self, conversation_id: str) -> list[Message]:
        """Get all messages for a conversation in append order."""
        async with self.connection() as conn:
            rows = await conn.fetch(
                """
                SELECT * FROM messages
                WHERE conversation_id = $1
                ORDER BY position ASC
                """,
                conversation_id,
            )
        return [self._row_to_message(row) for row in rows]

    def _row_to_conversation(self, row: asyncpg.Record) -> Conversation:
        return Conversation(
            id=row["id"],
            user_id=row["user_id"],
            case_id=row["case_id"],
            title=row["title"],
            message_count=row["message_count"],
            last_message_at=row["last_message_at"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )

    def _row_to_message(self, row: asyncpg.Record) -> Message:
        tool_result = _load_json(row["tool_result"])
        return Message(
            id=row["id"],
            conversation_id=row["conversation_id"],
            client_id=row["client_id"],
            role=row["role"],
            content=row["content"],
            tool_calls=[ToolCall(**c) for c in _load_json(row["tool_calls"]) or []],
            tool_result=ToolResult(**tool_result) if tool_result else None,
            position=row["position"],
            created_at=row["created_at"],
        )

    # ============= Authorization Lookups =============

    async def get_system_role(self, user_id: str) -> str | None:
        """Get the user's system role from their profile."""
        async with self.connection() as conn:
            return await conn.fetchval(
                "SELECT system_role FROM profiles WHERE id = $1", user_id
            )

    async def get_case_role(self, case_id: str, user_id: str) -> str | None:
        """Get the user's role on a case, None when not assigned."""
        async with self.connection() as conn:
            return await conn.fetchval(
                """
                SELECT case_role FROM case_assignments
                WHERE case_id = $1 AND user_id = $2
                """,
                case_id,
                user_id,
            )

    async def is_portal_contact(self, user_id: str, case_id: str) -> bool:
        """Whether a portal user is a contact of the company that owns the case."""
        async with self.connection() as conn:
            found = await conn.fetchval(
                """
                SELECT 1 FROM cases c
                JOIN people p ON p.company_id = c.company_id
                WHERE c.id = $1 AND p.portal_user_id = $2
                LIMIT 1
                """,
                case_id,
                user_id,
            )
        return found is not None

    # ============= Case Data Lookups =============

    async def get_document_case(self, document_id: str) -> str | None:
        """Case a stored document belongs to, None when unknown."""
        async with self.connection() as conn:
            return await conn.fetchval(
                "SELECT case_id FROM documents WHERE id = $1", document_id
            )

    async def get_case_parties(self, case_id: str) -> CaseParties | None:
        """Client company or representative and opposing party of a case."""
        async with self.connection() as conn:
            case_row = await conn.fetchrow(
                """
                SELECT co.id AS company_id, co.company_name, co.legal_name, co.cuit,
                       co.address, co.city, co.province
                FROM cases c
                LEFT JOIN companies co ON co.id = c.company_id
                WHERE c.id = $1
                """,
                case_id,
            )
            if not case_row:
                return None
            participant_rows = await conn.fetch(
                """
                SELECT cp.role, p.first_name, p.last_name, p.dni, p.cuit,
                       p.address, p.city, p.province, p.company_name
                FROM case_participants cp
                JOIN people p ON p.id = cp.person_id
                WHERE cp.case_id = $1
                  AND cp.role IN ('client_representative', 'opposing_party')
                ORDER BY cp.id
                """,
                case_id,
            )

        company = dict(case_row) if case_row["company_id"] is not None else None
        return CaseParties.from_records(company, [dict(row) for row in participant_rows])

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
        """Insert an activity log entry."""
        async with self.connection() as conn:
            await conn.execute(
                """
                INSERT INTO activity_log
                (user_id, action_type, entity_type, entity_id, case_id, description, new_values)
                VALUES ($1, $2, $3, $4, $5, $6, $7)
                """,
                user_id,
                action_type,
                entity_type,
                entity_id,
                case_id,
                description,
                json.dumps(new_values) if new_values is not None else None,
            )
