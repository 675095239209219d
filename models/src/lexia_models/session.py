"""Drafting session models for the guided contestación flow."""

from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Literal, Union
from pydantic import BaseModel, ConfigDict, Field, model_validator
import uuid


def _uuid() -> str:
    return str(uuid.uuid4())


def _now() -> datetime:
    return datetime.now(timezone.utc)


RAW_INPUT_MAX_LENGTH = 100_000


class Step(str, Enum):
    """Steps of a drafting session, in order."""

    INIT = "init"
    HECHOS_ADMITIDOS = "hechos_admitidos"  # Facts the defendant admits
    HECHOS_NEGADOS = "hechos_negados"  # Facts the defendant denies
    DEFENSAS = "defensas"  # Substantive defenses
    EXCEPCIONES = "excepciones"  # Procedural exceptions (prescripción, caducidad...)
    READY = "ready"  # Every collection step answered
    COMPLETED = "completed"  # Terminal, document finalized


# Steps that contribute facts, in the order they are asked
COLLECTION_STEPS: tuple[Step, ...] = (
    Step.HECHOS_ADMITIDOS,
    Step.HECHOS_NEGADOS,
    Step.DEFENSAS,
    Step.EXCEPCIONES,
)


class _StepData(BaseModel):
    """Fields shared by every collection step."""

    model_config = ConfigDict(extra="forbid")

    prueba_ofrecida: list[str] = Field(
        default_factory=list, description="Evidence offered for this category"
    )

    @property
    def text(self) -> str:
        """The free-text answer this step contributes."""
        return getattr(self, self.step)  # type: ignore[attr-defined]


class AdmittedFactsData(_StepData):
    """Facts from the complaint that the defendant admits."""

    step: Literal["hechos_admitidos"] = "hechos_admitidos"
    hechos_admitidos: str = Field(..., description="Admitted facts")


class DeniedFactsData(_StepData):
    """Facts from the complaint that the defendant denies."""

    step: Literal["hechos_negados"] = "hechos_negados"
    hechos_negados: str = Field(..., description="Denied facts")


class DefensesData(_StepData):
    """Substantive defenses raised against the claim."""

    step: Literal["defensas"] = "defensas"
    defensas: str = Field(..., description="Substantive defenses")


class ExceptionsData(_StepData):
    """Procedural exceptions. An empty string means none are raised."""

    step: Literal["excepciones"] = "excepciones"
    excepciones: str = Field(..., description="Procedural exceptions")


StepData = Annotated[
    Union[AdmittedFactsData, DeniedFactsData, DefensesData, ExceptionsData],
    Field(discriminator="step"),
]


class DraftingSession(BaseModel):
    """One contestación drafting task and the facts collected so far."""

    id: str = Field(default_factory=_uuid, description="Unique session ID")
    owner_id: str = Field(..., description="User who started the session")
    case_id: str | None = Field(None, description="Linked case, None for ad-hoc sessions")
    raw_input: str | None = Field(
        None,
        max_length=RAW_INPUT_MAX_LENGTH,
        description="Complaint text the session works from",
    )
    demanda_document_id: str | None = Field(
        None, description="Stored complaint document the session was started from"
    )
    state: dict[str, StepData] = Field(
        default_factory=dict, description="Collected facts keyed by step"
    )
    current_step: Step = Field(default=Step.INIT, description="Current step")
    created_at: datetime = Field(default_factory=_now, description="Creation timestamp")
    updated_at: datetime = Field(default_factory=_now, description="Last update timestamp")

    @model_validator(mode="after")
    def _check_state_keys(self) -> "DraftingSession":
        for key, data in self.state.items():
            if key != data.step:
                raise ValueError(f"State key {key!r} holds data for step {data.step!r}")
        return self


class ConsolidatedFacts(BaseModel):
    """Canonical facts for the contestación document.

    None means the step has not been answered yet; an empty string means it
    was answered with nothing to declare.
    """

    hechos_admitidos: str | None = None
    hechos_negados: str | None = None
    defensas: str | None = None
    excepciones: str | None = None


class AdvanceResult(BaseModel):
    """Outcome of merging a step update into a session."""

    session: DraftingSession
    outstanding: list[Step] = Field(
        default_factory=list, description="Collection steps still missing"
    )

    @property
    def ready(self) -> bool:
        return not self.outstanding
