"""Case party data used to prefill draft forms."""

from collections.abc import Mapping
from enum import Enum
from typing import Any
from pydantic import BaseModel, Field


class PartyType(str, Enum):
    """Natural person or legal entity."""

    PERSONA_FISICA = "persona_fisica"
    PERSONA_JURIDICA = "persona_juridica"


def _domicilio(record: Mapping[str, Any]) -> str:
    return ", ".join(
        part for part in (record.get("address"), record.get("city"), record.get("province")) if part
    )


class Party(BaseModel):
    """One side of a case, as the draft form needs it."""

    tipo: PartyType
    nombre: str = ""
    apellido: str = ""
    razon_social: str = ""
    documento_tipo: str = ""
    documento: str = ""
    domicilio_real: str = ""

    @classmethod
    def from_person(cls, person: Mapping[str, Any]) -> "Party":
        """A person acting for a company counts as the company."""
        domicilio = _domicilio(person)
        company_name = (person.get("company_name") or "").strip()
        cuit = person.get("cuit") or ""
        if company_name:
            return cls(
                tipo=PartyType.PERSONA_JURIDICA,
                razon_social=company_name,
                documento_tipo="CUIT" if cuit else "",
                documento=cuit,
                domicilio_real=domicilio,
            )

        dni = person.get("dni") or ""
        return cls(
            tipo=PartyType.PERSONA_FISICA,
            nombre=person.get("first_name") or "",
            apellido=person.get("last_name") or "",
            documento_tipo="DNI" if dni else ("CUIT" if cuit else ""),
            documento=dni or cuit,
            domicilio_real=domicilio,
        )

    @classmethod
    def from_company(cls, company: Mapping[str, Any]) -> "Party":
        cuit = company.get("cuit") or ""
        return cls(
            tipo=PartyType.PERSONA_JURIDICA,
            razon_social=company.get("legal_name") or company.get("company_name") or "",
            documento_tipo="CUIT" if cuit else "",
            documento=cuit,
            domicilio_real=_domicilio(company),
        )


class CaseParties(BaseModel):
    """The client we represent and the opposing party of a case."""

    our_client: Party | None = Field(None, description="Company or person we represent")
    opposing_party: Party | None = Field(None, description="First opposing party on the case")

    @classmethod
    def from_records(
        cls,
        company: Mapping[str, Any] | None,
        participants: list[Mapping[str, Any]],
    ) -> "CaseParties":
        """Build from the case's company and its participant rows.

        The case company wins over a client representative; only the first
        opposing party is used.
        """
        representatives = [p for p in participants if p.get("role") == "client_representative"]
        opposing = [p for p in participants if p.get("role") == "opposing_party"]

        our_client = None
        if company:
            our_client = Party.from_company(company)
        elif representatives:
            our_client = Party.from_person(representatives[0])

        return cls(
            our_client=our_client,
            opposing_party=Party.from_person(opposing[0]) if opposing else None,
        )
