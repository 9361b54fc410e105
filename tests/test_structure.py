from gradeshield.models import DEFAULT_REGISTRY, ModuleGrades, ModuleId
from gradeshield.processors.structure import validate_structure


def complete_grades():
    grades = {}
    for module in DEFAULT_REGISTRY:
        td = 12.0 if module.has_secondary_field else None
        grades[module.module_id] = ModuleGrades(primary=14.0, secondary=td, coefficient=module.coefficient)
    return grades


def test_complete_transcript():
    report = validate_structure(complete_grades())

    assert report.valid
    assert report.score == 100
    assert report.modules_found == 8
    assert report.issues == []


def test_missing_modules():
    grades = complete_grades()
    del grades[ModuleId.SFSD]
    del grades[ModuleId.ENGLISH]

    report = validate_structure(grades)

    assert report.score == 76
    assert report.missing_modules == ["Anglais 02", "SFSD"]
    assert report.issues[0].type == "MISSING_MODULES"
    assert report.issues[0].count == 2


def test_unknown_module_name():
    grades = complete_grades()
    grades["Chimie Organique"] = ModuleGrades(primary=12.0)

    report = validate_structure(grades)

    assert report.score == 85
    assert report.extra_modules == ["Chimie Organique"]
    assert report.modules_found == 9


def test_storage_names_resolve():
    grades = {"Analyse 03": ModuleGrades(primary=14.0, secondary=12.0)}
    report = validate_structure(grades)

    assert report.extra_modules == []
    assert len(report.missing_modules) == 7


def test_grade_out_of_range_and_wrong_coefficient():
    grades = complete_grades()
    grades[ModuleId.ANALYSIS] = ModuleGrades(primary=24.0, secondary=12.0, coefficient=5)
    grades[ModuleId.ALGEBRA] = ModuleGrades(primary=13.0, secondary=15.0, coefficient=6)

    report = validate_structure(grades)

    assert report.score == 82
    assert {i.type for i in report.issues} == {"INVALID_GRADE_RANGE", "WRONG_COEFFICIENT"}


def test_allowed_empty_fields_are_not_penalized():
    grades = complete_grades()
    grades[ModuleId.ECONOMICS] = ModuleGrades()
    grades[ModuleId.ANALYSIS] = ModuleGrades(primary=14.0, secondary=None)

    report = validate_structure(grades)

    assert report.score == 95
    assert [i.type for i in report.issues] == ["MISSING_GRADE"]


def test_score_floor():
    report = validate_structure({})

    assert report.score == 4
    assert not report.valid

    report = validate_structure({f"Inconnu {i}": ModuleGrades() for i in range(3)})
    assert report.score == 0
