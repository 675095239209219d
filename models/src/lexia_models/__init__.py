"""Shared Pydantic models for Lexia."""

from lexia_models.conversation import (
    DEFAULT_TITLE,
    Conversation,
    Message,
    MessageRole,
    ToolCall,
    ToolResult,
)
from lexia_models.parties import CaseParties, Party, PartyType
from lexia_models.session import (
    COLLECTION_STEPS,
    RAW_INPUT_MAX_LENGTH,
    AdmittedFactsData,
    AdvanceResult,
    ConsolidatedFacts,
    DefensesData,
    DeniedFactsData,
    DraftingSession,
    ExceptionsData,
    Step,
    StepData,
)

__all__ = [
    # Conversations
    "DEFAULT_TITLE",
    "Conversation",
    "Message",
    "MessageRole",
    "ToolCall",
    "ToolResult",
    # Case parties
    "CaseParties",
    "Party",
    "PartyType",
    # Drafting sessions
    "COLLECTION_STEPS",
    "RAW_INPUT_MAX_LENGTH",
    "AdmittedFactsData",
    "AdvanceResult",
    "ConsolidatedFacts",
    "DefensesData",
    "DeniedFactsData",
    "DraftingSession",
    "ExceptionsData",
    "Step",
    "StepData",
]
