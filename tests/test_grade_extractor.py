from gradeshield.models import ModuleId, PageType
from gradeshield.processors.grade_extractor import detect_page_type, extract_grades

from conftest import transcript


def test_full_transcript_reads_every_module():
    extraction = extract_grades(transcript("AG-S3-48213"))

    assert extraction.page_type is PageType.EXAM
    assert len(extraction.modules_found) == 8
    assert extraction.grades[ModuleId.ANALYSIS].primary == 14.5
    assert extraction.grades[ModuleId.ANALYSIS].secondary == 12.0
    assert extraction.grades[ModuleId.ALGEBRA].primary == 13.0
    assert extraction.grades[ModuleId.PROBABILITY].primary == 9.5
    assert extraction.grades[ModuleId.ECONOMICS].secondary == 17.0


def test_module_without_td_ignores_second_value():
    extraction = extract_grades("Anglais 16 14")

    assert extraction.grades[ModuleId.ENGLISH].primary == 16.0
    assert extraction.grades[ModuleId.ENGLISH].secondary is None


def test_comma_decimals_and_out_of_range_values():
    extraction = extract_grades("Analyse 25 13,75 12")

    grades = extraction.grades[ModuleId.ANALYSIS]
    assert grades.primary == 13.75
    assert grades.secondary == 12.0


def test_values_on_following_lines():
    text = "SFSD\nExamen 11\nTD 15\nFin"
    extraction = extract_grades(text)

    assert extraction.grades[ModuleId.SFSD].primary == 11.0
    assert extraction.grades[ModuleId.SFSD].secondary == 15.0


def test_last_match_wins():
    extraction = extract_grades("Architecture 10 12\nDivers\nAutre\nArchitecture 14 16")

    assert extraction.grades[ModuleId.ARCHITECTURE].primary == 14.0
    assert extraction.modules_found == [ModuleId.ARCHITECTURE]


def test_extraction_is_pure():
    text = transcript("AG-S3-12345")
    assert extract_grades(text) == extract_grades(text)


def test_empty_text():
    extraction = extract_grades("")

    assert extraction.grades == {}
    assert extraction.page_type is PageType.UNKNOWN
    assert extraction.line_count == 0


def test_detect_page_type():
    assert detect_page_type("RELEVÉ DE NOTES - Semestre") is PageType.EXAM
    assert detect_page_type("Fiches d'Évaluation") is PageType.ASSESSMENT
    assert detect_page_type("Tableau de bord") is PageType.UNKNOWN


def test_page_title_before_menu_entry_wins():
    text = "Fiches d'évaluation\nContenu\nMenu: Relevé de notes"
    assert detect_page_type(text) is PageType.ASSESSMENT
