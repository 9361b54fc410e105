from gradeshield.models import DEFAULT_REGISTRY, GradeFieldName, ModuleId
from gradeshield.utils.text_utils import normalize_text, parse_grade, percent, round_half_up, similarity


def test_registry_order_and_coefficients():
    assert len(DEFAULT_REGISTRY) == 8
    assert sum(m.coefficient for m in DEFAULT_REGISTRY) == 28
    assert DEFAULT_REGISTRY.get(ModuleId.ENGLISH).fields == (GradeFieldName.EXAM,)


def test_resolve_aliases():
    assert DEFAULT_REGISTRY.resolve("ALGEBRE 3").module_id is ModuleId.ALGEBRA
    assert DEFAULT_REGISTRY.resolve("Structure Fichiers et Structures de Données").module_id is ModuleId.SFSD
    assert DEFAULT_REGISTRY.resolve("Architecture des ordinateurs").module_id is ModuleId.ARCHITECTURE
    assert DEFAULT_REGISTRY.resolve("English").module_id is ModuleId.ENGLISH
    assert DEFAULT_REGISTRY.resolve("Moyenne générale") is None
    assert DEFAULT_REGISTRY.resolve("") is None


def test_resolve_fuzzy_canonical_name():
    # One OCR slip in the canonical name
    assert DEFAULT_REGISTRY.resolve("Algebre O3").module_id is ModuleId.ALGEBRA


def test_lookup():
    assert DEFAULT_REGISTRY.lookup("Probabilité et Statistique 01") is ModuleId.PROBABILITY
    assert DEFAULT_REGISTRY.lookup("Probabilités et Statistiques 01") is ModuleId.PROBABILITY
    assert DEFAULT_REGISTRY.lookup("analysis_03") is ModuleId.ANALYSIS
    assert DEFAULT_REGISTRY.lookup(ModuleId.SFSD) is ModuleId.SFSD
    assert DEFAULT_REGISTRY.lookup("Chimie") is None


def test_allowed_empty():
    assert DEFAULT_REGISTRY.is_allowed_empty(ModuleId.ECONOMICS, GradeFieldName.EXAM)
    assert not DEFAULT_REGISTRY.is_allowed_empty(ModuleId.ANALYSIS, GradeFieldName.TD)


def test_text_helpers():
    assert normalize_text("  Économie   D'Entreprise ") == "economie d'entreprise"
    assert similarity("sfsd", "sfsd") == 100
    assert similarity("abcd", "abce") == 75
    assert similarity("", "") == 100
    assert similarity("Algebre 03", "ALGEBRE O3") == 90
    assert parse_grade("") is None
    assert parse_grade(" 14,5 ") == 14.5
    assert parse_grade(12) == 12.0
    assert round_half_up(2.5) == 3
    assert round_half_up(0.125, 2) == 0.13
    assert percent(2, 3) == 67
    assert percent(1, 0) == 0
