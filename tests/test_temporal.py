from gradeshield.models import (
    ConsensusGrade,
    FrameConsensus,
    FrameObservation,
    GradeFieldName,
    ModuleId,
    PageType,
)
from gradeshield.processors.temporal import (
    NO_FRAMES,
    SCREEN_MISSING,
    TIME_GAP_TOO_LARGE,
    aggregate_temporal,
    detect_fluctuations,
)


def frame(index, page_type, timestamp=None, **grades):
    consensus = FrameConsensus(grades={
        ModuleId[name]: ConsensusGrade(ModuleId[name], primary=values[0], secondary=values[1])
        for name, values in grades.items()
    })
    return FrameObservation(
        index=index,
        timestamp=float(index if timestamp is None else timestamp),
        page_type=page_type,
        consensus=consensus,
    )


def test_missing_assessment_screen_blocks():
    frames = [
        frame(0, PageType.EXAM, ANALYSIS=(14.5, 12.0)),
        frame(1, PageType.EXAM, ANALYSIS=(14.5, 12.0)),
    ]
    result = aggregate_temporal(frames)

    assert result.blocked
    assert result.reason == SCREEN_MISSING
    assert result.missing_screens == ["Fiches d'Évaluation"]
    assert result.final_grades == {}
    assert result.page_counts == {"exam": 2, "assessment": 0}


def test_both_screens_missing():
    result = aggregate_temporal([frame(0, PageType.UNKNOWN, ANALYSIS=(14.5, 12.0))])

    assert result.reason == SCREEN_MISSING
    assert len(result.missing_screens) == 2


def test_pages_too_far_apart_block():
    frames = [
        frame(0, PageType.EXAM, timestamp=0, ANALYSIS=(14.5, 12.0)),
        frame(1, PageType.ASSESSMENT, timestamp=2000, ANALYSIS=(14.5, 12.0)),
    ]
    result = aggregate_temporal(frames)

    assert result.reason == TIME_GAP_TOO_LARGE
    assert result.final_grades == {}


def test_no_frames():
    result = aggregate_temporal([])
    assert result.reason == NO_FRAMES
    assert result.blocked


def test_majority_and_consistency():
    frames = [
        frame(0, PageType.EXAM, ANALYSIS=(12.0, 15.0)),
        frame(1, PageType.EXAM, ANALYSIS=(12.0, 15.0)),
        frame(2, PageType.ASSESSMENT, ANALYSIS=(18.0, 15.0)),
    ]
    result = aggregate_temporal(frames)

    assert result.passed
    assert result.pages_independent
    final = result.final_grades[ModuleId.ANALYSIS]
    assert final.primary == 12.0
    assert final.secondary == 15.0
    assert final.primary_consistency == 67
    assert final.secondary_consistency == 100
    assert final.frames_found == 3
    # (67 + 100) / 2
    assert result.consistency == 84

    assert len(result.fluctuations) == 1
    fluctuation = result.fluctuations[0]
    assert fluctuation.grade_field is GradeFieldName.EXAM
    assert fluctuation.delta == 6.0
    assert fluctuation.suspicious


def test_unobserved_field_does_not_lower_consistency():
    frames = [
        frame(0, PageType.EXAM, ENGLISH=(16.0, None)),
        frame(1, PageType.ASSESSMENT, ENGLISH=(16.0, None)),
    ]
    result = aggregate_temporal(frames)

    assert result.consistency == 100


def test_same_frame_for_both_pages_is_not_independent():
    frames = [
        frame(0, PageType.EXAM, ANALYSIS=(14.5, 12.0)),
        frame(0, PageType.ASSESSMENT, ANALYSIS=(14.5, 12.0)),
    ]
    result = aggregate_temporal(frames)

    assert result.passed
    assert not result.pages_independent


def test_detect_fluctuations_thresholds():
    fluctuations = detect_fluctuations(
        ModuleId.SFSD,
        GradeFieldName.TD,
        [(0, 10.0), (1, 11.5), (2, None), (3, 14.0), (4, 8.5)],
    )

    # 11.5 -> 14.0 is a plain fluctuation, 14.0 -> 8.5 a suspicious one
    assert [(f.from_frame, f.to_frame) for f in fluctuations] == [(1, 3), (3, 4)]
    assert [f.suspicious for f in fluctuations] == [False, True]
