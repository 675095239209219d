"""FastAPI application for the Lexia contestación flow."""

import logging

from fastapi import Depends, FastAPI, Header, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from lexia_models import ConsolidatedFacts
from lexia.config import settings
from lexia.db import db
from lexia.errors import AuthenticationError, LexiaError, PersistenceError, ValidationError
from lexia.models import (
    AdvanceRequest,
    AdvanceResponse,
    AppendMessagesRequest,
    ConversationListResponse,
    ConversationResponse,
    CreateConversationRequest,
    CreateSessionRequest,
    CreateSessionResponse,
    OkResponse,
    SessionListResponse,
    SessionResponse,
)
from lexia.services.activity_log import ActivityLog
from lexia.services.conversations import ConversationService
from lexia.services.permissions import PermissionGate
from lexia.services.sessions import SessionManager

logger = logging.getLogger(__name__)

DEV_USER_ID = "local-dev-user"

app = FastAPI(
    title="Lexia API",
    description="Guided contestación drafting sessions and Lexia conversation transcripts",
    version="0.1.0",
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

_gate = PermissionGate(db)
_session_manager = SessionManager(db, _gate, ActivityLog(db))
_conversation_service = ConversationService(db, _gate)


@app.on_event("startup")
async def startup_event():
    """Connect to the database and create tables."""
    await db.connect()
    await db.ensure_tables_exist()


@app.on_event("shutdown")
async def shutdown_event():
    """Clean up on shutdown."""
    await db.disconnect()


@app.exception_handler(LexiaError)
async def lexia_error_handler(request: Request, exc: LexiaError) -> JSONResponse:
    """Map the error taxonomy onto HTTP statuses."""
    if isinstance(exc, ValidationError):
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())
    if isinstance(exc, PersistenceError):
        logger.error(f"Storage failure on {request.method} {request.url.path}: {exc.message}")
        return JSONResponse(status_code=exc.status_code, content={"error": "Error processing request"})
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})


def get_user_id(user_id: str | None = Header(alias="X-User-ID", default=None)) -> str:
    """Authenticated user from the X-User-ID header set by the auth proxy."""
    if user_id:
        return user_id
    if settings.allow_dev_user:
        return DEV_USER_ID
    raise AuthenticationError("Unauthorized")


def get_session_manager() -> SessionManager:
    return _session_manager


def get_conversation_service() -> ConversationService:
    return _conversation_service


# ============= Health & Info =============


@app.get("/")
async def root():
    """Root endpoint."""
    return {"message": "Lexia API", "version": "0.1.0"}


@app.get("/health")
async def health():
    """Health check endpoint."""
    return {"status": "healthy"}


# ============= Contestación Session Endpoints =============


@app.post("/contestacion/sessions", response_model=CreateSessionResponse)
async def create_session(
    request: CreateSessionRequest,
    user_id: str = Depends(get_user_id),
    sessions: SessionManager = Depends(get_session_manager),
):
    """Start a contestación session, optionally attached to a case."""
    session = await sessions.create_session(
        user_id,
        case_id=request.case_id,
        raw_input=request.raw_input,
        demanda_document_id=request.demanda_document_id,
    )
    return CreateSessionResponse(
        session_id=session.id,
        state=session.state,
        current_step=session.current_step,
        case_id=session.case_id,
    )


@app.get("/contestacion/sessions", response_model=SessionListResponse)
async def list_sessions(
    case_id: str | None = None,
    user_id: str = Depends(get_user_id),
    sessions: SessionManager = Depends(get_session_manager),
):
    """List the user's sessions, optionally for one case."""
    items = await sessions.list_sessions(user_id, case_id=case_id)
    return SessionListResponse(sessions=items, total=len(items))


@app.get("/contestacion/sessions/{session_id}", response_model=SessionResponse)
async def get_session(
    session_id: str,
    user_id: str = Depends(get_user_id),
    sessions: SessionManager = Depends(get_session_manager),
):
    """Load a session for resuming."""
    session = await sessions.get_session(user_id, session_id)
    return SessionResponse(session=session)


@app.post("/contestacion/sessions/{session_id}/advance", response_model=AdvanceResponse)
async def advance_session(
    session_id: str,
    request: AdvanceRequest,
    user_id: str = Depends(get_user_id),
    sessions: SessionManager = Depends(get_session_manager),
):
    """Merge one step's answers and move to the next unanswered step."""
    result = await sessions.advance_step(user_id, session_id, request.update)
    return AdvanceResponse(
        session=result.session,
        current_step=result.session.current_step,
        outstanding=result.outstanding,
        ready=result.ready,
    )


@app.get(
    "/contestacion/sessions/{session_id}/consolidated",
    response_model=ConsolidatedFacts,
    response_model_exclude_none=True,
)
async def get_consolidated_facts(
    session_id: str,
    user_id: str = Depends(get_user_id),
    sessions: SessionManager = Depends(get_session_manager),
):
    """Consolidated facts so far. Unanswered fields are left out."""
    return await sessions.consolidate(user_id, session_id)


@app.get("/contestacion/sessions/{session_id}/form-data")
async def get_form_data(
    session_id: str,
    user_id: str = Depends(get_user_id),
    sessions: SessionManager = Depends(get_session_manager),
) -> dict[str, str]:
    """Form fields for the draft generator."""
    return await sessions.form_data(user_id, session_id)


@app.post("/contestacion/sessions/{session_id}/complete", response_model=SessionResponse)
async def complete_session(
    session_id: str,
    user_id: str = Depends(get_user_id),
    sessions: SessionManager = Depends(get_session_manager),
):
    """Finalize a ready session."""
    session = await sessions.complete_session(user_id, session_id)
    return SessionResponse(session=session)


# ============= Conversation Endpoints =============


@app.post("/conversations", response_model=ConversationResponse)
async def create_conversation(
    request: CreateConversationRequest,
    user_id: str = Depends(get_user_id),
    conversations: ConversationService = Depends(get_conversation_service),
):
    """Create an empty conversation."""
    conversation = await conversations.create_conversation(user_id, case_id=request.case_id)
    return ConversationResponse(conversation=conversation)


@app.get("/conversations", response_model=ConversationListResponse)
async def list_conversations(
    case_id: str | None = None,
    user_id: str = Depends(get_user_id),
    conversations: ConversationService = Depends(get_conversation_service),
):
    """List user's conversations."""
    items = await conversations.list_conversations(user_id, case_id=case_id)
    return ConversationListResponse(conversations=items, total=len(items))


@app.get("/conversations/{conversation_id}", response_model=ConversationResponse)
async def get_conversation(
    conversation_id: str,
    user_id: str = Depends(get_user_id),
    conversations: ConversationService = Depends(get_conversation_service),
):
    """Get a conversation with its messages."""
    conversation, messages = await conversations.get_conversation(user_id, conversation_id)
    return ConversationResponse(conversation=conversation, messages=messages)


@app.post("/conversations/{conversation_id}/messages", response_model=OkResponse)
async def append_messages(
    conversation_id: str,
    request: AppendMessagesRequest,
    user_id: str = Depends(get_user_id),
    conversations: ConversationService = Depends(get_conversation_service),
):
    """Persist the transcript the client saw once its stream completed."""
    await conversations.reconcile_transcript(user_id, conversation_id, request.messages)
    return OkResponse()
