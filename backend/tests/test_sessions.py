"""Tests for the drafting session lifecycle."""

import asyncio

import pytest

from lexia_models import (
    AdmittedFactsData,
    CaseParties,
    DefensesData,
    DeniedFactsData,
    ExceptionsData,
    Party,
    PartyType,
    Step,
)
from lexia.errors import (
    AuthorizationError,
    InvalidTransitionError,
    NotFoundError,
    PersistenceError,
    ValidationError,
)
from lexia.services.sessions import merge_state, next_step, outstanding_steps


class TestStepHelpers:
    """Test the pure merge and step helpers."""

    def test_merge_keeps_other_steps(self):
        """Merging one step never drops another."""
        state = {"hechos_admitidos": AdmittedFactsData(hechos_admitidos="A")}

        merged = merge_state(state, DefensesData(defensas="D"))

        assert set(merged) == {"hechos_admitidos", "defensas"}
        assert merged["hechos_admitidos"].hechos_admitidos == "A"

    def test_merge_same_step_overlays_fields(self):
        """A correction replaces the text but keeps unset fields."""
        state = {
            "hechos_negados": DeniedFactsData(hechos_negados="v1", prueba_ofrecida=["Testigos"])
        }

        merged = merge_state(state, DeniedFactsData(hechos_negados="v2"))

        assert merged["hechos_negados"].hechos_negados == "v2"
        assert merged["hechos_negados"].prueba_ofrecida == ["Testigos"]

    def test_merge_does_not_mutate_input(self):
        state = {}
        merge_state(state, DefensesData(defensas="D"))
        assert state == {}

    def test_next_step_is_first_missing(self):
        state = {
            "hechos_admitidos": AdmittedFactsData(hechos_admitidos="A"),
            "defensas": DefensesData(defensas="D"),
        }

        assert next_step(state) == Step.HECHOS_NEGADOS
        assert outstanding_steps(state) == [Step.HECHOS_NEGADOS, Step.EXCEPCIONES]

    def test_next_step_ready_when_complete(self):
        state = {
            "hechos_admitidos": AdmittedFactsData(hechos_admitidos="A"),
            "hechos_negados": DeniedFactsData(hechos_negados="N"),
            "defensas": DefensesData(defensas="D"),
            "excepciones": ExceptionsData(excepciones=""),
        }

        assert next_step(state) == Step.READY
        assert outstanding_steps(state) == []


class TestCreateSession:
    """Test SessionManager.create_session()."""

    @pytest.mark.asyncio
    async def test_trims_long_raw_input(self, session_manager, memory_db):
        """A 120k complaint is stored as its first 100k characters."""
        memory_db.assign_case("case-1", "user-1")

        session = await session_manager.create_session(
            "user-1", case_id="case-1", raw_input="a" * 120_000
        )

        assert session.state == {}
        assert session.current_step == Step.INIT
        stored = await memory_db.get_session(session.id)
        assert len(stored.raw_input) == 100_000

    @pytest.mark.asyncio
    async def test_keeps_exact_prefix(self, session_manager, memory_db):
        raw = "".join(chr(ord("a") + i % 26) for i in range(100_050))

        session = await session_manager.create_session("user-1", raw_input=raw)

        stored = await memory_db.get_session(session.id)
        assert stored.raw_input == raw[:100_000]

    @pytest.mark.asyncio
    async def test_ad_hoc_session_skips_permission_check(self, session_manager, memory_db):
        """No case means no gate."""
        session = await session_manager.create_session("user-1")

        assert session.case_id is None
        assert session.raw_input is None
        assert session.id in memory_db.sessions

    @pytest.mark.asyncio
    async def test_denied_case_creates_nothing(self, session_manager, memory_db):
        """A case the user cannot view fails before any write."""
        with pytest.raises(AuthorizationError):
            await session_manager.create_session("user-1", case_id="case-x", raw_input="demanda")

        assert memory_db.sessions == {}
        assert memory_db.activity == []

    @pytest.mark.asyncio
    async def test_admin_can_attach_any_case(self, session_manager, memory_db):
        memory_db.set_system_role("admin", "admin_general")

        session = await session_manager.create_session("admin", case_id="case-x")

        assert session.case_id == "case-x"

    @pytest.mark.asyncio
    async def test_records_activity(self, session_manager, memory_db):
        session = await session_manager.create_session("user-1")

        assert memory_db.activity[0]["entity_id"] == session.id
        assert memory_db.activity[0]["action_type"] == "create"

    @pytest.mark.asyncio
    async def test_activity_failure_does_not_fail_creation(
        self, session_manager, memory_db, monkeypatch
    ):
        """Audit logging is best-effort."""

        async def broken_log(**kwargs):
            raise PersistenceError("activity_log unavailable")

        monkeypatch.setattr(memory_db, "log_activity", broken_log)

        session = await session_manager.create_session("user-1")

        assert session.id in memory_db.sessions


class TestComplaintDocument:
    """Test linking a stored complaint document on creation."""

    @pytest.mark.asyncio
    async def test_links_document_of_same_case(self, session_manager, memory_db):
        memory_db.assign_case("case-1", "user-1")
        memory_db.add_document("doc-1", "case-1")

        session = await session_manager.create_session(
            "user-1", case_id="case-1", demanda_document_id="doc-1"
        )

        stored = await memory_db.get_session(session.id)
        assert stored.demanda_document_id == "doc-1"

    @pytest.mark.asyncio
    async def test_unknown_document(self, session_manager, memory_db):
        with pytest.raises(ValidationError, match="Document not found"):
            await session_manager.create_session("user-1", demanda_document_id="doc-x")

        assert memory_db.sessions == {}

    @pytest.mark.asyncio
    async def test_document_of_another_case(self, session_manager, memory_db):
        """Both cases are viewable, but the document must match the session's case."""
        memory_db.assign_case("case-1", "user-1")
        memory_db.assign_case("case-2", "user-1")
        memory_db.add_document("doc-2", "case-2")

        with pytest.raises(ValidationError, match="same case"):
            await session_manager.create_session(
                "user-1", case_id="case-1", demanda_document_id="doc-2"
            )

        assert memory_db.sessions == {}

    @pytest.mark.asyncio
    async def test_document_case_not_viewable(self, session_manager, memory_db):
        memory_db.add_document("doc-1", "case-9")

        with pytest.raises(AuthorizationError):
            await session_manager.create_session("user-1", demanda_document_id="doc-1")

        assert memory_db.sessions == {}


class TestAdvanceStep:
    """Test SessionManager.advance_step()."""

    @pytest.mark.asyncio
    async def test_admitted_facts_only(self, session_manager):
        """From init, admitted facts alone leave the session short of ready."""
        session = await session_manager.create_session("user-1")

        result = await session_manager.advance_step(
            "user-1", session.id, AdmittedFactsData(hechos_admitidos="La relación laboral")
        )

        assert result.session.current_step == Step.HECHOS_NEGADOS
        assert not result.ready
        assert result.outstanding == [Step.HECHOS_NEGADOS, Step.DEFENSAS, Step.EXCEPCIONES]
        assert result.session.state["hechos_admitidos"].hechos_admitidos == "La relación laboral"

        facts = await session_manager.consolidate("user-1", session.id)
        assert facts.model_dump(exclude_none=True) == {"hechos_admitidos": "La relación laboral"}

    @pytest.mark.asyncio
    async def test_state_is_union_of_updates(self, session_manager, memory_db):
        session = await session_manager.create_session("user-1")
        updates = [
            AdmittedFactsData(hechos_admitidos="A"),
            DeniedFactsData(hechos_negados="N"),
            DefensesData(defensas="D"),
            ExceptionsData(excepciones=""),
        ]

        seen: set[str] = set()
        for update in updates:
            result = await session_manager.advance_step("user-1", session.id, update)
            seen.add(update.step)
            assert set(result.session.state) == seen

        assert result.session.current_step == Step.READY
        assert result.ready
        stored = await memory_db.get_session(session.id)
        assert stored.current_step == Step.READY
        assert set(stored.state) == seen

    @pytest.mark.asyncio
    async def test_correction_after_ready(self, session_manager):
        """Correcting an earlier step keeps the session ready."""
        session = await session_manager.create_session("user-1")
        for update in (
            AdmittedFactsData(hechos_admitidos="A"),
            DeniedFactsData(hechos_negados="N"),
            DefensesData(defensas="D"),
            ExceptionsData(excepciones="E"),
        ):
            await session_manager.advance_step("user-1", session.id, update)

        result = await session_manager.advance_step(
            "user-1", session.id, AdmittedFactsData(hechos_admitidos="A corregido")
        )

        assert result.session.current_step == Step.READY
        assert result.session.state["hechos_admitidos"].hechos_admitidos == "A corregido"
        assert result.session.state["excepciones"].excepciones == "E"

    @pytest.mark.asyncio
    async def test_cannot_skip_ahead(self, session_manager, memory_db):
        """A step after the next unanswered one is rejected and not stored."""
        session = await session_manager.create_session("user-1")

        with pytest.raises(InvalidTransitionError):
            await session_manager.advance_step(
                "user-1", session.id, ExceptionsData(excepciones="Prescripción")
            )

        stored = await memory_db.get_session(session.id)
        assert stored.state == {}
        assert stored.current_step == Step.INIT

        await session_manager.advance_step("user-1", session.id, AdmittedFactsData(hechos_admitidos="A"))
        with pytest.raises(InvalidTransitionError):
            await session_manager.advance_step("user-1", session.id, DefensesData(defensas="D"))

        stored = await memory_db.get_session(session.id)
        assert set(stored.state) == {"hechos_admitidos"}
        assert stored.current_step == Step.HECHOS_NEGADOS

    @pytest.mark.asyncio
    async def test_concurrent_advances_do_not_lose_updates(
        self, session_manager, memory_db, monkeypatch
    ):
        """Racing advances all land in the stored state.

        The store yields between reading and writing, so without the
        per-session lock the last writer would drop the others' changes.
        """
        session = await session_manager.create_session("user-1")
        for update in (
            AdmittedFactsData(hechos_admitidos="A"),
            DeniedFactsData(hechos_negados="N"),
            DefensesData(defensas="D"),
        ):
            await session_manager.advance_step("user-1", session.id, update)

        read_session = memory_db.get_session

        async def slow_get_session(session_id):
            stored = await read_session(session_id)
            await asyncio.sleep(0)
            return stored

        monkeypatch.setattr(memory_db, "get_session", slow_get_session)

        await asyncio.gather(
            session_manager.advance_step("user-1", session.id, AdmittedFactsData(hechos_admitidos="A2")),
            session_manager.advance_step("user-1", session.id, DeniedFactsData(hechos_negados="N2")),
            session_manager.advance_step("user-1", session.id, DefensesData(defensas="D2")),
            session_manager.advance_step("user-1", session.id, ExceptionsData(excepciones="E")),
        )

        stored = await read_session(session.id)
        assert stored.state["hechos_admitidos"].hechos_admitidos == "A2"
        assert stored.state["hechos_negados"].hechos_negados == "N2"
        assert stored.state["defensas"].defensas == "D2"
        assert stored.state["excepciones"].excepciones == "E"
        assert stored.current_step == Step.READY

    @pytest.mark.asyncio
    async def test_locks_are_released(self, session_manager, memory_db):
        """Per-session locks do not accumulate once advances finish."""
        for _ in range(3):
            session = await session_manager.create_session("user-1")
            await session_manager.advance_step(
                "user-1", session.id, AdmittedFactsData(hechos_admitidos="A")
            )

        assert len(memory_db._locks) == 0

    @pytest.mark.asyncio
    async def test_unknown_session(self, session_manager):
        with pytest.raises(NotFoundError):
            await session_manager.advance_step("user-1", "missing", DefensesData(defensas="D"))

    @pytest.mark.asyncio
    async def test_other_users_session(self, session_manager, memory_db):
        """Another user's session is rejected and left untouched."""
        session = await session_manager.create_session("user-1")

        with pytest.raises(AuthorizationError):
            await session_manager.advance_step("user-2", session.id, DefensesData(defensas="D"))

        stored = await memory_db.get_session(session.id)
        assert stored.state == {}

    @pytest.mark.asyncio
    async def test_completed_session_rejects_updates(self, session_manager, memory_db):
        session = await session_manager.create_session("user-1")
        for update in (
            AdmittedFactsData(hechos_admitidos="A"),
            DeniedFactsData(hechos_negados="N"),
            DefensesData(defensas="D"),
            ExceptionsData(excepciones=""),
        ):
            await session_manager.advance_step("user-1", session.id, update)
        await session_manager.complete_session("user-1", session.id)

        with pytest.raises(InvalidTransitionError):
            await session_manager.advance_step("user-1", session.id, DefensesData(defensas="X"))

        stored = await memory_db.get_session(session.id)
        assert stored.state["defensas"].defensas == "D"
        assert stored.current_step == Step.COMPLETED


class TestConsolidateAndComplete:
    """Test consolidate(), form_data() and complete_session()."""

    @pytest.mark.asyncio
    async def test_consolidate_does_not_change_state(self, session_manager, memory_db):
        session = await session_manager.create_session("user-1")
        await session_manager.advance_step("user-1", session.id, AdmittedFactsData(hechos_admitidos="A"))
        before = await memory_db.get_session(session.id)

        first = await session_manager.consolidate("user-1", session.id)
        second = await session_manager.consolidate("user-1", session.id)

        assert first == second
        after = await memory_db.get_session(session.id)
        assert after.state == before.state
        assert after.current_step == before.current_step

    @pytest.mark.asyncio
    async def test_form_data(self, session_manager):
        session = await session_manager.create_session("user-1")
        await session_manager.advance_step("user-1", session.id, AdmittedFactsData(hechos_admitidos="A"))

        form = await session_manager.form_data("user-1", session.id)

        assert form == {"hechos_admitidos": "A", "hechos_negados": "", "defensas": "", "excepciones": ""}

    @pytest.mark.asyncio
    async def test_form_data_includes_case_parties(self, session_manager, memory_db):
        """Our client fills the demandado fields, the other side the demandante ones."""
        memory_db.assign_case("case-1", "user-1")
        memory_db.set_case_parties(
            "case-1",
            CaseParties(
                our_client=Party(
                    tipo=PartyType.PERSONA_JURIDICA,
                    razon_social="Metalúrgica Sur S.A.",
                    documento_tipo="CUIT",
                    documento="30-12345678-9",
                ),
                opposing_party=Party(
                    tipo=PartyType.PERSONA_FISICA,
                    nombre="Juan",
                    apellido="Pérez",
                    documento_tipo="DNI",
                    documento="25123456",
                ),
            ),
        )
        session = await session_manager.create_session("user-1", case_id="case-1")

        form = await session_manager.form_data("user-1", session.id)

        assert form["hechos_admitidos"] == ""
        assert form["demandado_tipo"] == "persona_juridica"
        assert form["demandado_razon_social"] == "Metalúrgica Sur S.A."
        assert form["demandado_documento"] == "30-12345678-9"
        assert form["demandante_tipo"] == "persona_fisica"
        assert form["demandante_apellido"] == "Pérez"
        assert form["demandante_documento_tipo"] == "DNI"
        assert "demandante_razon_social" not in form

    @pytest.mark.asyncio
    async def test_complete_requires_ready(self, session_manager):
        session = await session_manager.create_session("user-1")

        with pytest.raises(InvalidTransitionError):
            await session_manager.complete_session("user-1", session.id)

    @pytest.mark.asyncio
    async def test_complete_ready_session(self, session_manager, memory_db):
        session = await session_manager.create_session("user-1")
        for update in (
            AdmittedFactsData(hechos_admitidos="A"),
            DeniedFactsData(hechos_negados="N"),
            DefensesData(defensas="D"),
            ExceptionsData(excepciones=""),
        ):
            await session_manager.advance_step("user-1", session.id, update)

        completed = await session_manager.complete_session("user-1", session.id)

        assert completed.current_step == Step.COMPLETED
        assert [a["action_type"] for a in memory_db.activity] == ["create", "complete"]

    @pytest.mark.asyncio
    async def test_get_session_checks_owner(self, session_manager):
        session = await session_manager.create_session("user-1")

        with pytest.raises(AuthorizationError):
            await session_manager.get_session("user-2", session.id)
        with pytest.raises(NotFoundError):
            await session_manager.get_session("user-1", "missing")

    @pytest.mark.asyncio
    async def test_list_sessions_by_case(self, session_manager, memory_db):
        memory_db.assign_case("case-1", "user-1")
        in_case = await session_manager.create_session("user-1", case_id="case-1")
        await session_manager.create_session("user-1")
        await session_manager.create_session("user-2")

        assert len(await session_manager.list_sessions("user-1")) == 2
        listed = await session_manager.list_sessions("user-1", case_id="case-1")
        assert [s.id for s in listed] == [in_case.id]
