"""Static registry of the five hub worlds and their prerequisite graph."""

from __future__ import annotations

from typing import Dict, FrozenSet, Iterable, List, Literal, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

SUPPORTED_LOCALES = ("sv", "de", "fr", "nl", "en")
DEFAULT_LOCALE = "en"
WORLD_COUNT = 5

WorldTheme = Literal[
    "emergency_response",
    "budget_planning",
    "digital_transformation",
    "stakeholder_relations",
    "regulatory_compliance",
]


def resolve_text(text: Mapping[str, str], locale: Optional[str]) -> str:
    """Pick the entry for ``locale``, falling back to English and then any entry."""
    if locale:
        normalized = locale.strip().lower().split("-")[0]
        if text.get(normalized):
            return text[normalized]
    if text.get(DEFAULT_LOCALE):
        return text[DEFAULT_LOCALE]
    for value in text.values():
        if value:
            return value
    return ""


class WorldDefinition(BaseModel):
    model_config = ConfigDict(frozen=True)

    index: int = Field(ge=1, le=WORLD_COUNT)
    world_id: str
    theme: WorldTheme
    prerequisite_world_indices: FrozenSet[int] = frozenset()
    title: Dict[str, str]
    description: Dict[str, str]
    difficulty: int = Field(ge=1, le=5)
    estimated_duration_minutes: int = Field(ge=1)
    competency_focus: FrozenSet[str] = frozenset()

    @field_validator("title", "description")
    @classmethod
    def _requires_default_locale(cls, value: Dict[str, str]) -> Dict[str, str]:
        if not value.get(DEFAULT_LOCALE):
            raise ValueError("Localised text must include an English entry.")
        unknown = set(value) - set(SUPPORTED_LOCALES)
        if unknown:
            raise ValueError(f"Unsupported locale(s): {', '.join(sorted(unknown))}")
        return value


class WorldCatalog:
    """Read-only lookup over world definitions."""

    def __init__(self, definitions: Iterable[WorldDefinition]) -> None:
        ordered = sorted(definitions, key=lambda definition: definition.index)
        self._by_index: Dict[int, WorldDefinition] = {}
        for definition in ordered:
            if definition.index in self._by_index:
                raise ValueError(f"Duplicate world index {definition.index}.")
            self._by_index[definition.index] = definition
        self._validate_prerequisites()

    def _validate_prerequisites(self) -> None:
        for definition in self._by_index.values():
            for prerequisite in definition.prerequisite_world_indices:
                if prerequisite not in self._by_index:
                    raise ValueError(
                        f"World {definition.index} depends on unknown world {prerequisite}."
                    )
                if prerequisite >= definition.index:
                    raise ValueError(
                        f"World {definition.index} may only depend on lower-indexed worlds."
                    )

    def get_definition(self, world_index: int) -> Optional[WorldDefinition]:
        return self._by_index.get(world_index)

    def definitions(self) -> List[WorldDefinition]:
        return list(self._by_index.values())

    @property
    def world_count(self) -> int:
        return len(self._by_index)


_DEFAULT_DEFINITIONS = (
    WorldDefinition(
        index=1,
        world_id="emergency-response",
        theme="emergency_response",
        title={
            "en": "Crisis Management & Emergency Response",
            "sv": "Konsensusbaserad krisberedskap",
            "de": "Systematisches Krisenmanagement",
            "fr": "Coordination de crise raffinée",
            "nl": "Efficiënte crisisrespons",
        },
        description={
            "en": "Crisis decision-making, multi-agency coordination and citizen safety leadership.",
            "sv": "Beslutsfattande i kris, samordning mellan myndigheter och medborgarnas säkerhet.",
            "de": "Entscheidungen in der Krise, behördenübergreifende Koordination und Bürgerschutz.",
            "fr": "Décision en situation de crise, coordination inter-services et sécurité des citoyens.",
            "nl": "Besluitvorming in crisissituaties, samenwerking tussen diensten en burgerveiligheid.",
        },
        difficulty=1,
        estimated_duration_minutes=45,
        competency_focus=frozenset({"emergency_management"}),
    ),
    WorldDefinition(
        index=2,
        world_id="budget-planning",
        theme="budget_planning",
        prerequisite_world_indices=frozenset({1}),
        title={
            "en": "Democratic Budget Planning & Resource Allocation",
            "sv": "Demokratisk budgetplanering",
            "de": "Systematische Haushaltsplanung",
            "fr": "Planification budgétaire excellente",
            "nl": "Efficiënte budgetplanning",
        },
        description={
            "en": "Democratic budget processes, stakeholder engagement and resource optimisation.",
            "sv": "Demokratiska budgetprocesser, dialog med intressenter och resursoptimering.",
            "de": "Demokratische Haushaltsprozesse, Beteiligung und Ressourcenoptimierung.",
            "fr": "Processus budgétaires démocratiques, concertation et optimisation des ressources.",
            "nl": "Democratische begrotingsprocessen, betrokkenheid en inzet van middelen.",
        },
        difficulty=2,
        estimated_duration_minutes=60,
        competency_focus=frozenset({"municipal_administration"}),
    ),
    WorldDefinition(
        index=3,
        world_id="digital-transformation",
        theme="digital_transformation",
        prerequisite_world_indices=frozenset({1}),
        title={
            "en": "Municipal Innovation & Digital Excellence",
            "sv": "Digital demokrati och innovation",
            "de": "Systematische Digitalisierung",
            "fr": "Innovation numérique du service public",
            "nl": "Praktische digitale innovatie",
        },
        description={
            "en": "Digital transformation initiatives and citizen service innovation.",
            "sv": "Digital omställning och innovation i medborgarservicen.",
            "de": "Digitale Transformation und innovative Bürgerdienste.",
            "fr": "Transformation numérique et innovation des services aux citoyens.",
            "nl": "Digitale transformatie en innovatie in de dienstverlening.",
        },
        difficulty=3,
        estimated_duration_minutes=70,
        competency_focus=frozenset({"digital_innovation"}),
    ),
    WorldDefinition(
        index=4,
        world_id="stakeholder-relations",
        theme="stakeholder_relations",
        prerequisite_world_indices=frozenset({2, 3}),
        title={
            "en": "Stakeholder Engagement & Municipal Diplomacy",
            "sv": "Konsensusbyggande kommunikation",
            "de": "Professionelle Stakeholder-Verwaltung",
            "fr": "Excellence diplomatique municipale",
            "nl": "Directe stakeholder communicatie",
        },
        description={
            "en": "Communication, negotiation and diplomacy with municipal stakeholders.",
            "sv": "Kommunikation, förhandling och diplomati med kommunens intressenter.",
            "de": "Kommunikation, Verhandlung und Diplomatie mit kommunalen Akteuren.",
            "fr": "Communication, négociation et diplomatie avec les acteurs municipaux.",
            "nl": "Communicatie, onderhandeling en diplomatie met gemeentelijke partners.",
        },
        difficulty=4,
        estimated_duration_minutes=65,
        competency_focus=frozenset({"leadership_skills", "cultural_adaptation"}),
    ),
    WorldDefinition(
        index=5,
        world_id="regulatory-compliance",
        theme="regulatory_compliance",
        prerequisite_world_indices=frozenset({2, 3, 4}),
        title={
            "en": "Quality Assurance & Regulatory Excellence",
            "sv": "Systematisk kvalitetssäkring",
            "de": "Regulatory Compliance Exzellenz",
            "fr": "Excellence réglementaire systémique",
            "nl": "Systematische compliance borging",
        },
        description={
            "en": "Regulatory compliance, quality management and audit preparation.",
            "sv": "Regelefterlevnad, kvalitetsledning och förberedelse inför granskning.",
            "de": "Regelkonformität, Qualitätsmanagement und Prüfungsvorbereitung.",
            "fr": "Conformité réglementaire, gestion de la qualité et préparation aux audits.",
            "nl": "Naleving van regelgeving, kwaliteitsbeheer en auditvoorbereiding.",
        },
        difficulty=5,
        estimated_duration_minutes=80,
        competency_focus=frozenset({"compliance_knowledge"}),
    ),
)

world_catalog = WorldCatalog(_DEFAULT_DEFINITIONS)


__all__ = [
    "DEFAULT_LOCALE",
    "SUPPORTED_LOCALES",
    "WORLD_COUNT",
    "WorldCatalog",
    "WorldDefinition",
    "resolve_text",
    "world_catalog",
]
