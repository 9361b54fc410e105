import copy

import pytest

from gradeshield.models import ModuleGrades, ModuleId
from gradeshield.processors.averages import (
    calculate_averages,
    merge_screenshot_grades,
    module_average,
    stored_to_grade_map,
)
from gradeshield.processors.credibility import GRADE_SLOTS, compare_grades, cross_check_portal

from conftest import STORED_GRADES


@pytest.fixture
def extracted():
    return stored_to_grade_map(STORED_GRADES)


def test_grade_slots():
    assert len(GRADE_SLOTS) == 15
    optional = [s for s in GRADE_SLOTS if not s.mandatory]
    assert [(s.module_id, s.grade_field.value) for s in optional] == [(ModuleId.PROBABILITY, "td")]


def test_all_grades_match(extracted):
    result = compare_grades(extracted, STORED_GRADES)

    assert result.score == 15
    assert result.passed
    assert result.mandatory_failures == []


def test_tolerance(extracted):
    extracted[ModuleId.ANALYSIS] = ModuleGrades(primary=15.0, secondary=12.0)
    result = compare_grades(extracted, STORED_GRADES)

    assert result.score == 15


def test_optional_slot_mismatch_still_passes(extracted):
    extracted[ModuleId.PROBABILITY] = ModuleGrades(primary=9.5, secondary=5.0)
    result = compare_grades(extracted, STORED_GRADES)

    assert result.score == 14
    assert result.passed


def test_single_mandatory_mismatch_rejects(extracted):
    extracted[ModuleId.ANALYSIS] = ModuleGrades(primary=10.0, secondary=12.0)
    result = compare_grades(extracted, STORED_GRADES)

    assert result.score == 14
    assert not result.passed
    assert len(result.mandatory_failures) == 1
    failure = result.mandatory_failures[0]
    assert failure.module == "Analyse 03"
    assert failure.extracted == 10.0
    assert failure.stored == 14.5


def test_missing_grade_on_one_side_does_not_match(extracted):
    stored = copy.deepcopy(STORED_GRADES)
    stored["Anglais 02"]["exam"] = None
    result = compare_grades(extracted, stored)

    assert not result.passed
    assert result.mandatory_failures[0].grade_field == "exam"


def test_cross_check_portal(extracted):
    extracted[ModuleId.SFSD] = ModuleGrades(primary=16.0, secondary=16.0)
    stored = copy.deepcopy(STORED_GRADES)
    del stored["Anglais 02"]
    stored["Chimie"] = {"exam": 10.0, "td": 10.0}

    report = cross_check_portal(extracted, stored)

    assert len(report.matches) == 6
    assert [m["module"] for m in report.mismatches] == ["SFSD"]
    assert report.mismatches[0]["examDiff"] == 4.5
    assert [s["module"] for s in report.suspicious] == ["SFSD"]
    assert {m["status"] for m in report.missing} == {"not_in_portal", "not_in_video"}


def test_module_average():
    assert module_average(15.0, 10.0, True) == 13.0
    assert module_average(15.0, None, True) == 15.0
    assert module_average(None, 10.0, True) == 10.0
    assert module_average(16.0, 12.0, False) == 16.0


def test_semester_average_is_coefficient_weighted():
    grades = {
        ModuleId.ANALYSIS: ModuleGrades(primary=10.0, secondary=10.0),  # coefficient 5
        ModuleId.ENGLISH: ModuleGrades(primary=16.0),  # coefficient 2
    }
    averages = calculate_averages(grades)

    assert averages.total_coefficients == 7
    assert averages.semester_average == round((10.0 * 5 + 16.0 * 2) / 7, 2)
    assert averages.modules_calculated == 2


def test_merge_screenshots_falls_back_to_first_td_value():
    td_screen = {ModuleId.SFSD: ModuleGrades(primary=16.0)}
    exam_screen = {ModuleId.SFSD: ModuleGrades(primary=11.5, secondary=3.0), ModuleId.ENGLISH: ModuleGrades(16.0)}

    merged = merge_screenshot_grades(td_screen, exam_screen)

    assert merged[ModuleId.SFSD].primary == 11.5
    assert merged[ModuleId.SFSD].secondary == 16.0
    assert merged[ModuleId.ENGLISH].secondary is None


def test_blank_stored_cells_are_missing():
    stored = {"Anglais 02": {"exam": 12, "td": ""}, "SFSD": {"exam": " 11,5 ", "td": "n/a"}}

    grades = stored_to_grade_map(stored)

    assert grades[ModuleId.ENGLISH] == ModuleGrades(primary=12.0, secondary=None)
    assert grades[ModuleId.SFSD] == ModuleGrades(primary=11.5, secondary=None)
