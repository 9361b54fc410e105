"""
Multi-engine consensus for a single image or frame.

For each module seen by at least one engine:
- One engine only: keep its values, certainty single_engine, and record
  an informational disagreement.
- Two or more: per field, bucket values to the nearest 0.5 and take the
  most frequent bucket. A field is agreed when >= 2 engines support the
  winning bucket; a field no engine filled in counts as agreed (the
  engines concur that it is blank).
"""

from __future__ import annotations

from typing import Dict, List, Optional, Sequence

from ..models import (
    Certainty,
    ConsensusGrade,
    Disagreement,
    EngineExtraction,
    FrameConsensus,
    ModuleGrades,
    ModuleId,
    PageType,
)
from ..utils.text_utils import percent
from ..utils.voting import majority_vote


def _field_consensus(values: List[Optional[float]]) -> tuple[Optional[float], bool]:
    reported = [v for v in values if v is not None]
    if not reported:
        return None, True
    if len(reported) == 1:
        return reported[0], False
    vote = majority_vote(reported)
    return vote.value, vote.agreed


def build_frame_consensus(extractions: Sequence[EngineExtraction]) -> FrameConsensus:
    """Reduce per-engine extractions of one frame into consensus grades."""
    by_module: Dict[ModuleId, List[tuple[str, ModuleGrades]]] = {}
    for extraction in extractions:
        for module_id, grades in extraction.grades.items():
            by_module.setdefault(module_id, []).append((extraction.engine, grades))

    result = FrameConsensus()

    for module_id, entries in by_module.items():
        engines = [engine for engine, _ in entries]
        values = {engine: grades.to_dict() for engine, grades in entries}

        if len(entries) == 1:
            only = entries[0][1]
            result.grades[module_id] = ConsensusGrade(
                module_id=module_id,
                primary=only.primary,
                secondary=only.secondary,
                certainty=Certainty.SINGLE_ENGINE,
                sources=engines,
            )
            result.disagreements.append(Disagreement(module_id, "single_engine", values))
            continue

        primary, primary_agreed = _field_consensus([g.primary for _, g in entries])
        secondary, secondary_agreed = _field_consensus([g.secondary for _, g in entries])
        agreed = primary_agreed and secondary_agreed

        result.grades[module_id] = ConsensusGrade(
            module_id=module_id,
            primary=primary,
            secondary=secondary,
            certainty=Certainty.CONSENSUS if agreed else Certainty.PARTIAL,
            sources=engines,
        )
        if agreed:
            result.agreements.append(module_id)
        else:
            result.disagreements.append(Disagreement(module_id, "value_mismatch", values))

    result.confidence = percent(len(result.agreements), len(by_module))
    return result


def frame_page_type(extractions: Sequence[EngineExtraction]) -> PageType:
    """First page type any engine recognised, in engine order."""
    for extraction in extractions:
        if extraction.page_type is not PageType.UNKNOWN:
            return extraction.page_type
    return PageType.UNKNOWN
