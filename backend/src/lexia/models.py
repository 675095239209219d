"""API-specific request and response models."""

from typing import Any
from pydantic import BaseModel, Field

from lexia_models import Conversation, DraftingSession, Message, Step, StepData


class CreateSessionRequest(BaseModel):
    """Request model for starting a contestación session."""

    case_id: str | None = Field(None, description="Case to attach the session to")
    raw_input: str | None = Field(None, description="Complaint text")
    demanda_document_id: str | None = Field(
        None, description="Stored complaint document, must belong to the same case"
    )


class CreateSessionResponse(BaseModel):
    """Response model for a newly created session."""

    session_id: str
    state: dict[str, StepData]
    current_step: Step
    case_id: str | None = None


class SessionResponse(BaseModel):
    """Response model for a stored session."""

    session: DraftingSession


class SessionListResponse(BaseModel):
    """Response model for list of sessions."""

    sessions: list[DraftingSession]
    total: int


class AdvanceRequest(BaseModel):
    """Request model for merging one step's answers."""

    update: StepData


class AdvanceResponse(BaseModel):
    """Response model for an advance call."""

    session: DraftingSession
    current_step: Step
    outstanding: list[Step]
    ready: bool


class CreateConversationRequest(BaseModel):
    """Request model for creating a conversation."""

    case_id: str | None = Field(None, description="Case the conversation refers to")


class ConversationResponse(BaseModel):
    """Response model for conversation with messages."""

    conversation: Conversation
    messages: list[Message] = Field(default_factory=list)


class ConversationListResponse(BaseModel):
    """Response model for list of conversations."""

    conversations: list[Conversation]
    total: int


class AppendMessagesRequest(BaseModel):
    """Request model for persisting a client transcript.

    The payload is validated by the message validator, not here, so a bad
    batch (including one that is not a list) yields a structured validation
    error.
    """

    messages: Any = Field(default_factory=list)


class OkResponse(BaseModel):
    ok: bool = True
