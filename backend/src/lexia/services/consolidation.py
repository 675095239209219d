"""Consolidation of per-step answers into the contestación facts.

Pure functions: the output depends on the session state (and, for the draft
form, the case parties) alone, so it can be recomputed at any time.
"""

from collections.abc import Mapping

from lexia_models import COLLECTION_STEPS, CaseParties, ConsolidatedFacts, Party, StepData

PARTY_FIELDS = (
    "nombre",
    "apellido",
    "razon_social",
    "documento_tipo",
    "documento",
    "domicilio_real",
)


def _render(data: StepData) -> str:
    """Step text followed by the numbered evidence list, if any."""
    text = data.text.strip()
    if not data.prueba_ofrecida:
        return text

    evidence = "\n".join(
        f"{index}. {item.strip()}"
        for index, item in enumerate(data.prueba_ofrecida, start=1)
    )
    if not text:
        return f"Prueba ofrecida:\n{evidence}"
    return f"{text}\n\nPrueba ofrecida:\n{evidence}"


def consolidate(state: Mapping[str, StepData]) -> ConsolidatedFacts:
    """Map each answered step onto its canonical field.

    Steps missing from ``state`` stay None. A step answered with an empty
    string stays an empty string.
    """
    fields: dict[str, str] = {}
    for step in COLLECTION_STEPS:
        data = state.get(step.value)
        if data is not None:
            fields[step.value] = _render(data)
    return ConsolidatedFacts(**fields)


def _party_fields(prefix: str, party: Party) -> dict[str, str]:
    fields = {f"{prefix}_tipo": party.tipo.value}
    for name in PARTY_FIELDS:
        value = getattr(party, name)
        if value:
            fields[f"{prefix}_{name}"] = value
    return fields


def party_form_defaults(parties: CaseParties) -> dict[str, str]:
    """Party fields for a contestación: our client is the defendant."""
    fields: dict[str, str] = {}
    if parties.opposing_party:
        fields.update(_party_fields("demandante", parties.opposing_party))
    if parties.our_client:
        fields.update(_party_fields("demandado", parties.our_client))
    return fields


def build_form_data(
    facts: ConsolidatedFacts, parties: CaseParties | None = None
) -> dict[str, str]:
    """Flatten consolidated facts for the draft generator's form fields.

    Case party data, when given, is merged in as demandante/demandado fields.
    """
    form = {
        name: value if value is not None else ""
        for name, value in facts.model_dump().items()
    }
    if parties is not None:
        form.update(party_form_defaults(parties))
    return form
