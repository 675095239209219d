"""Lexia tool definitions and registry.

Tools come in two categories:

DETERMINISTIC: pure code, no model involved.
  - calculateDeadline
  - queryCaseInfo

SEMANTIC: the model produces the meaningful output.
  - summarizeDocument
  - generateDraft
  - getProceduralChecklist

Each tool declares a pydantic model for its arguments. The registry is the
tool-capability schema incoming transcripts are validated against.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


class ToolCategory(str, Enum):
    DETERMINISTIC = "deterministic"
    SEMANTIC = "semantic"


Jurisdiction = Literal["federal", "cordoba", "buenos_aires", "otro"]


class _ToolArgs(BaseModel):
    model_config = ConfigDict(extra="forbid")


class CalculateDeadlineArgs(_ToolArgs):
    start_date: str = Field(..., alias="startDate", pattern=r"^\d{4}-\d{2}-\d{2}$", description="Starting date (YYYY-MM-DD)")
    deadline_type: Literal[
        "apelacion_5dias",
        "apelacion_10dias",
        "contestacion_15dias",
        "ofrecimiento_prueba",
        "alegatos",
        "recurso_extraordinario",
        "custom",
    ] = Field(..., alias="deadlineType")
    custom_days: int | None = Field(None, alias="customDays", ge=0, description="Days for custom deadline")
    jurisdiction: Jurisdiction = "cordoba"


class QueryCaseInfoArgs(_ToolArgs):
    query_type: Literal["documents", "notes", "deadlines", "tasks", "summary"] = Field(
        ..., alias="queryType", description="What to query"
    )


class SummarizeDocumentArgs(_ToolArgs):
    document_text: str = Field(..., alias="documentText", description="The legal document text to summarize")
    summary_type: Literal["brief", "detailed", "key_points"] = Field(..., alias="summaryType")


class GenerateDraftArgs(_ToolArgs):
    template_type: Literal[
        "demanda",
        "contestacion",
        "apelacion",
        "contrato",
        "poder",
        "carta_documento",
        "escrito_judicial",
        "recurso",
        "ofrecimiento_prueba",
    ] = Field(..., alias="templateType", description="Type of document")
    context: str | None = Field(None, description="Additional context for the document")
    jurisdiction: Jurisdiction = "cordoba"


class GetProceduralChecklistArgs(_ToolArgs):
    case_type: Literal[
        "civil_ordinario",
        "civil_ejecutivo",
        "laboral",
        "familia_divorcio",
        "familia_alimentos",
        "sucesion",
        "penal",
        "amparo",
        "desalojo",
    ] = Field(..., alias="caseType", description="Type of case")
    stage: Literal["inicial", "prueba", "alegatos", "sentencia", "ejecucion", "completo"] = "completo"


@dataclass(frozen=True)
class ToolSpec:
    """A tool the assistant may invoke."""

    name: str
    category: ToolCategory
    description: str
    arguments: type[BaseModel]
    allowed_intents: tuple[str, ...] = ()


@dataclass(frozen=True)
class ToolCapabilitySchema:
    """The set of tools (and argument shapes) an assistant is allowed to use."""

    tools: dict[str, ToolSpec] = field(default_factory=dict)

    def __contains__(self, name: object) -> bool:
        return name in self.tools

    def get(self, name: str) -> ToolSpec | None:
        return self.tools.get(name)

    @property
    def names(self) -> list[str]:
        return sorted(self.tools)

    def for_intent(self, allowed_names: list[str]) -> "ToolCapabilitySchema":
        """Subset of tools for an intent. Deterministic tools are always kept.

        An empty list means no restriction.
        """
        if not allowed_names:
            return self
        selected = {
            name: spec
            for name, spec in self.tools.items()
            if name in allowed_names or spec.category == ToolCategory.DETERMINISTIC
        }
        return ToolCapabilitySchema(tools=selected)


LEXIA_TOOLS = ToolCapabilitySchema(
    tools={
        spec.name: spec
        for spec in (
            ToolSpec(
                name="summarizeDocument",
                category=ToolCategory.SEMANTIC,
                description="Summarize a legal document with structured output",
                arguments=SummarizeDocumentArgs,
                allowed_intents=("document_summary", "legal_analysis", "general_chat"),
            ),
            ToolSpec(
                name="generateDraft",
                category=ToolCategory.SEMANTIC,
                description="Generate legal document drafts from templates",
                arguments=GenerateDraftArgs,
                allowed_intents=("document_drafting", "general_chat"),
            ),
            ToolSpec(
                name="getProceduralChecklist",
                category=ToolCategory.SEMANTIC,
                description="Get step-by-step procedural checklists",
                arguments=GetProceduralChecklistArgs,
                allowed_intents=("procedural_query", "legal_analysis", "general_chat"),
            ),
            ToolSpec(
                name="calculateDeadline",
                category=ToolCategory.DETERMINISTIC,
                description="Calculate legal deadlines based on business days",
                arguments=CalculateDeadlineArgs,
                allowed_intents=("procedural_query", "case_query", "general_chat"),
            ),
            ToolSpec(
                name="queryCaseInfo",
                category=ToolCategory.DETERMINISTIC,
                description="Query case information from the database",
                arguments=QueryCaseInfoArgs,
                allowed_intents=("case_query", "legal_analysis", "general_chat"),
            ),
        )
    }
)
