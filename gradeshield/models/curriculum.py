"""
Curriculum registry.

Static table of the semester modules a transcript is expected to list,
with coefficients, OCR aliases and the subject names used by the grade
storage. Module identity is the typed ModuleId; alias resolution is a
separate lookup so callers never key on display strings.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Dict, FrozenSet, Iterator, List, Optional, Tuple, Union

from ..utils.text_utils import normalize_text, similarity


class ModuleId(str, Enum):
    PROBABILITY = "probability_statistics_01"
    ECONOMICS = "business_economics"
    ENGLISH = "english_02"
    ELECTRONICS = "fundamental_electronics_02"
    SFSD = "sfsd"
    ANALYSIS = "analysis_03"
    ARCHITECTURE = "architecture_02"
    ALGEBRA = "algebra_03"


class GradeFieldName(str, Enum):
    """Grade slots of a module: exam is primary, td (continuous assessment) secondary."""
    EXAM = "exam"
    TD = "td"


@dataclass(frozen=True)
class CurriculumModule:
    """One expected module of the semester."""
    module_id: ModuleId
    canonical_name: str
    aliases: Tuple[str, ...]
    coefficient: int
    has_secondary_field: bool
    storage_name: str

    @property
    def fields(self) -> Tuple[GradeFieldName, ...]:
        if self.has_secondary_field:
            return (GradeFieldName.EXAM, GradeFieldName.TD)
        return (GradeFieldName.EXAM,)

    def to_dict(self) -> dict:
        return {
            "moduleId": self.module_id.value,
            "name": self.canonical_name,
            "coefficient": self.coefficient,
            "hasTD": self.has_secondary_field,
            "storageName": self.storage_name,
        }


# Order matters: alias resolution walks modules in this order.
S3_MODULES: Tuple[CurriculumModule, ...] = (
    CurriculumModule(
        ModuleId.PROBABILITY, "Probabilités et Statistiques 01",
        ("probabilit", "statistique", "proba", "prob stat"), 4, True,
        "Probabilité et Statistique 01",
    ),
    CurriculumModule(
        ModuleId.ECONOMICS, "Économie d'entreprise",
        ("economie", "économie", "entreprise", "eco entreprise"), 2, True,
        "Économie d'entreprise",
    ),
    CurriculumModule(
        ModuleId.ENGLISH, "Anglais 02",
        ("anglais", "english"), 2, False,
        "Anglais 02",
    ),
    CurriculumModule(
        ModuleId.ELECTRONICS, "Électronique Fondamentale 02",
        ("electronique", "électronique", "fondamentale"), 4, True,
        "Électronique Fondamentale 02",
    ),
    CurriculumModule(
        ModuleId.SFSD, "SFSD",
        ("sfsd", "structure fichier", "structures de donn", "fichiers"), 4, True,
        "SFSD",
    ),
    CurriculumModule(
        ModuleId.ANALYSIS, "Analyse 03",
        ("analyse math", "analyse 3", "analyse 03", "analyse"), 5, True,
        "Analyse 03",
    ),
    CurriculumModule(
        ModuleId.ARCHITECTURE, "Architecture 02",
        ("architecture", "ordinateur", "arch 02", "arch 2"), 4, True,
        "Architecture 02",
    ),
    CurriculumModule(
        ModuleId.ALGEBRA, "Algèbre 03",
        ("algèbre", "algebre", "algébre", "alg 03", "alg 3"), 3, True,
        "Algèbre 03",
    ),
)

# Fields that may legitimately be blank on an authentic transcript
S3_ALLOWED_EMPTY: FrozenSet[Tuple[ModuleId, GradeFieldName]] = frozenset({
    (ModuleId.ENGLISH, GradeFieldName.EXAM),
    (ModuleId.ECONOMICS, GradeFieldName.EXAM),
    (ModuleId.ECONOMICS, GradeFieldName.TD),
    (ModuleId.PROBABILITY, GradeFieldName.TD),
})

NAME_MATCH_THRESHOLD = 85


class CurriculumRegistry:
    """
    Lookup table over the expected modules.

    Resolution order for a line of OCR text:
    1. Fuzzy similarity against the canonical name (>= 85%)
    2. Literal containment of any alias
    Modules are tried in declaration order; the first hit wins.
    """

    def __init__(
        self,
        modules: Tuple[CurriculumModule, ...] = S3_MODULES,
        allowed_empty: FrozenSet[Tuple[ModuleId, GradeFieldName]] = S3_ALLOWED_EMPTY,
        name_threshold: int = NAME_MATCH_THRESHOLD,
    ):
        self._modules: Dict[ModuleId, CurriculumModule] = {m.module_id: m for m in modules}
        self._order: List[ModuleId] = [m.module_id for m in modules]
        self.allowed_empty = allowed_empty
        self.name_threshold = name_threshold

        # Pre-normalized names and aliases used by resolve()
        self._normalized_names = {m.module_id: normalize_text(m.canonical_name) for m in modules}
        self._normalized_aliases = {
            m.module_id: tuple(dict.fromkeys(normalize_text(a) for a in m.aliases))
            for m in modules
        }
        self._by_display: Dict[str, ModuleId] = {}
        for m in modules:
            self._by_display[m.canonical_name] = m.module_id
            self._by_display[m.storage_name] = m.module_id
            self._by_display[m.module_id.value] = m.module_id

    def __iter__(self) -> Iterator[CurriculumModule]:
        return (self._modules[mid] for mid in self._order)

    def __len__(self) -> int:
        return len(self._order)

    def __contains__(self, module_id: object) -> bool:
        return module_id in self._modules

    def get(self, module_id: ModuleId) -> CurriculumModule:
        return self._modules[module_id]

    def lookup(self, key: Union[str, ModuleId]) -> Optional[ModuleId]:
        """Map a ModuleId, its value, a canonical name or a storage name to a ModuleId."""
        if isinstance(key, ModuleId):
            return key if key in self._modules else None
        return self._by_display.get(key)

    def resolve(self, text: str) -> Optional[CurriculumModule]:
        """Match a line of OCR text to a module, or None."""
        normalized = normalize_text(text)
        if not normalized:
            return None
        for module_id in self._order:
            if similarity(normalized, self._normalized_names[module_id]) >= self.name_threshold:
                return self._modules[module_id]
            for alias in self._normalized_aliases[module_id]:
                if alias in normalized:
                    return self._modules[module_id]
        return None

    def is_allowed_empty(self, module_id: ModuleId, field_name: GradeFieldName) -> bool:
        return (module_id, field_name) in self.allowed_empty


DEFAULT_REGISTRY = CurriculumRegistry()
