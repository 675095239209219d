"""Drafting session lifecycle.

A session walks ``init`` -> one step per fact category -> ``ready`` ->
``completed``. The current step is always derived from which categories are
present in the state, so corrections to earlier steps are just another
advance. Every advance is a read-modify-write against the stored session,
never against a copy sent by the client.
"""

import logging

from lexia_models import (
    COLLECTION_STEPS,
    RAW_INPUT_MAX_LENGTH,
    AdvanceResult,
    ConsolidatedFacts,
    DraftingSession,
    Step,
    StepData,
)
from lexia.db import Database, InMemoryDatabase
from lexia.errors import (
    AuthorizationError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from lexia.services.activity_log import ActivityLog
from lexia.services.consolidation import build_form_data, consolidate
from lexia.services.permissions import CaseCapability, PermissionGate

logger = logging.getLogger(__name__)


def merge_state(state: dict[str, StepData], update: StepData) -> dict[str, StepData]:
    """Merge one step's data into the state.

    Other steps are carried over untouched. For the same step, fields set on
    the update overlay the stored ones.
    """
    merged = dict(state)
    existing = merged.get(update.step)
    if existing is None:
        merged[update.step] = update
    else:
        merged[update.step] = existing.model_copy(
            update=update.model_dump(include=update.model_fields_set)
        )
    return merged


def outstanding_steps(state: dict[str, StepData]) -> list[Step]:
    """Collection steps with no data yet, in order."""
    return [step for step in COLLECTION_STEPS if step.value not in state]


def next_step(state: dict[str, StepData]) -> Step:
    """First unanswered collection step, or READY when all are answered."""
    missing = outstanding_steps(state)
    return missing[0] if missing else Step.READY


class SessionManager:
    """Creates, advances and finalizes contestación sessions."""

    def __init__(
        self,
        db: Database | InMemoryDatabase,
        gate: PermissionGate,
        activity: ActivityLog,
    ):
        self.db = db
        self.gate = gate
        self.activity = activity

    async def create_session(
        self,
        user_id: str,
        case_id: str | None = None,
        raw_input: str | None = None,
        demanda_document_id: str | None = None,
    ) -> DraftingSession:
        """Start a session, optionally attached to a case the user can view.

        The complaint text is cut to RAW_INPUT_MAX_LENGTH characters. A linked
        complaint document must be viewable by the user and, when the session
        has a case, belong to that case.
        """
        if case_id:
            allowed = await self.gate.can_attach_to_case(
                user_id, case_id, CaseCapability.CAN_VIEW
            )
            if not allowed:
                raise AuthorizationError("Forbidden: no access to this case")

        if demanda_document_id:
            await self._check_document(user_id, demanda_document_id, case_id)

        trimmed = (raw_input or "")[:RAW_INPUT_MAX_LENGTH]
        session = DraftingSession(
            owner_id=user_id,
            case_id=case_id or None,
            raw_input=trimmed or None,
            demanda_document_id=demanda_document_id or None,
        )
        session = await self.db.create_session(session)
        logger.info(f"Created contestación session {session.id} (case={session.case_id})")

        await self.activity.record(
            user_id=user_id,
            action_type="create",
            entity_type="contestacion_session",
            entity_id=session.id,
            case_id=session.case_id,
            description="inició una contestación de demanda",
        )
        return session

    async def _check_document(
        self, user_id: str, document_id: str, case_id: str | None
    ) -> None:
        document_case_id = await self.db.get_document_case(document_id)
        if document_case_id is None:
            raise ValidationError("Document not found", cause={"document_id": document_id})

        allowed = await self.gate.can_attach_to_case(
            user_id, document_case_id, CaseCapability.CAN_VIEW
        )
        if not allowed:
            raise AuthorizationError("Forbidden: no access to document case")

        if case_id and document_case_id != case_id:
            raise ValidationError(
                "Document must belong to the same case",
                cause={"document_case_id": document_case_id, "case_id": case_id},
            )

    async def get_session(self, user_id: str, session_id: str) -> DraftingSession:
        """Load a session for resuming."""
        session = await self.db.get_session(session_id)
        if session is None:
            raise NotFoundError("Session not found")
        if session.owner_id != user_id:
            raise AuthorizationError("Forbidden")
        return session

    async def list_sessions(
        self, user_id: str, case_id: str | None = None, limit: int = 50
    ) -> list[DraftingSession]:
        return await self.db.list_sessions(user_id, case_id=case_id, limit=limit)

    async def advance_step(
        self, user_id: str, session_id: str, update: StepData
    ) -> AdvanceResult:
        """Merge a step update and move to the next unanswered step.

        Steps are answered in order: the update must be for the next
        unanswered step or correct one already answered. Missing categories
        are reported in ``outstanding``; they are not an error.
        """

        def apply(session: DraftingSession) -> DraftingSession:
            if session.owner_id != user_id:
                raise AuthorizationError("Forbidden")
            if session.current_step == Step.COMPLETED:
                raise InvalidTransitionError("Session is already completed")
            expected = next_step(session.state)
            if update.step not in session.state and update.step != expected.value:
                raise InvalidTransitionError(
                    f"Cannot answer {update.step} before {expected.value}"
                )
            session.state = merge_state(session.state, update)
            session.current_step = next_step(session.state)
            return session

        session = await self.db.update_session(session_id, apply)
        if session is None:
            raise NotFoundError("Session not found")

        outstanding = outstanding_steps(session.state)
        logger.info(
            f"Session {session_id} advanced with {update.step} -> {session.current_step.value}"
            f" (outstanding: {[s.value for s in outstanding]})"
        )
        return AdvanceResult(session=session, outstanding=outstanding)

    async def consolidate(self, user_id: str, session_id: str) -> ConsolidatedFacts:
        """Consolidated facts so far. Partial sessions give partial results."""
        session = await self.get_session(user_id, session_id)
        return consolidate(session.state)

    async def form_data(self, user_id: str, session_id: str) -> dict[str, str]:
        """Form fields for the draft generator.

        Sessions attached to a case also get the case parties, with our
        client as the defendant.
        """
        session = await self.get_session(user_id, session_id)
        parties = None
        if session.case_id:
            parties = await self.db.get_case_parties(session.case_id)
        return build_form_data(consolidate(session.state), parties)

    async def complete_session(self, user_id: str, session_id: str) -> DraftingSession:
        """Finalize a ready session."""

        def apply(session: DraftingSession) -> DraftingSession:
            if session.owner_id != user_id:
                raise AuthorizationError("Forbidden")
            if session.current_step != Step.READY:
                raise InvalidTransitionError(
                    f"Cannot complete a session at step {session.current_step.value}"
                )
            session.current_step = Step.COMPLETED
            return session

        session = await self.db.update_session(session_id, apply)
        if session is None:
            raise NotFoundError("Session not found")

        logger.info(f"Completed contestación session {session_id}")
        await self.activity.record(
            user_id=user_id,
            action_type="complete",
            entity_type="contestacion_session",
            entity_id=session.id,
            case_id=session.case_id,
            description="completó una contestación de demanda",
        )
        return session
