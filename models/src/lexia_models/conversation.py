"""Conversation and message models."""

from datetime import datetime, timezone
from enum import Enum
from typing import Any
from pydantic import BaseModel, Field
import uuid


DEFAULT_TITLE = "Nueva conversación"


def _uuid() -> str:
    return str(uuid.uuid4())


def _now() -> datetime:
    return datetime.now(timezone.utc)


class MessageRole(str, Enum):
    """Who produced a message."""

    USER = "user"
    ASSISTANT = "assistant"
    TOOL = "tool"


class ToolCall(BaseModel):
    """A tool invocation requested by the assistant."""

    id: str = Field(..., description="Call ID, unique within the transcript")
    name: str = Field(..., description="Declared tool name")
    arguments: dict[str, Any] = Field(default_factory=dict, description="Tool arguments")


class ToolResult(BaseModel):
    """Output of a tool invocation."""

    tool_call_id: str = Field(..., description="ID of the call this answers")
    name: str = Field(..., description="Tool that produced the output")
    output: Any = Field(None, description="Tool output payload")
    is_error: bool = Field(default=False, description="Whether the tool failed")


class Message(BaseModel):
    """A single message in a conversation. Never edited once stored."""

    id: str = Field(default_factory=_uuid, description="Unique message ID")
    conversation_id: str = Field(..., description="Parent conversation ID")
    client_id: str | None = Field(None, description="Message ID assigned by the client")
    role: MessageRole = Field(..., description="Message role")
    content: str = Field(default="", description="Message text")
    tool_calls: list[ToolCall] = Field(default_factory=list, description="Tool calls (assistant only)")
    tool_result: ToolResult | None = Field(None, description="Tool result (tool only)")
    position: int = Field(default=0, description="1-based append position")
    created_at: datetime = Field(default_factory=_now, description="Creation timestamp")


class Conversation(BaseModel):
    """A Lexia chat thread, optionally linked to a case."""

    id: str = Field(default_factory=_uuid, description="Unique conversation ID")
    user_id: str = Field(..., description="Owner user ID")
    case_id: str | None = Field(None, description="Case this conversation refers to")
    title: str = Field(default=DEFAULT_TITLE, description="Conversation title")
    message_count: int = Field(0, description="Number of stored messages")
    last_message_at: datetime | None = Field(None, description="When the last batch was appended")
    created_at: datetime = Field(default_factory=_now, description="Creation timestamp")
    updated_at: datetime = Field(default_factory=_now, description="Last update timestamp")
