"""
Screen-recording verification pipeline.

Steps:
    EXTRACTING_FRAMES    1 fps sampling, blur filtering
    OCR_ANALYSIS         frames one after the other, engines concurrently
    AGGREGATING_RESULTS  per-frame consensus, temporal aggregation
                         (coverage/timing failures finish here, REJECTED)
    PORTAL_CROSS_CHECK   credibility check and per-module portal report
    TAMPERING_DETECTION  forensics on the first clear frame, code location
    CALCULATING_SCORE    video trust profile + overrides
"""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from typing import List

from ..exceptions import EvidenceInsufficientError
from ..models import FrameObservation, JobStatus, JobStep, TrustScore, grades_to_dict
from ..processors.averages import stored_to_grade_map
from ..processors.code_locator import best_code_match
from ..processors.credibility import compare_grades, cross_check_portal
from ..processors.temporal import SCREEN_MISSING, TemporalResult, aggregate_temporal
from ..processors.trust_scoring import apply_overrides, video_trust_score
from ..processors.video_frames import extract_frames, filter_clear_frames
from ..utils.image_utils import image_hash
from ..utils.text_utils import round_half_up
from .base import BasePipeline, VerificationOutcome

VIDEO = "video"


def blocked_outcome(temporal: TemporalResult, video_hash: str) -> VerificationOutcome:
    """REJECTED outcome for a failed coverage or timing rule. No grades are reported."""
    if temporal.reason == SCREEN_MISSING:
        issue = f"{SCREEN_MISSING}: screen not shown in the recording ({', '.join(temporal.missing_screens)})"
    else:
        issue = f"{temporal.reason}: pages were not captured in the same session"
    trust = TrustScore(score=0, status=JobStatus.REJECTED.value, issues=[issue])
    trust = apply_overrides(trust, blocked_reason=temporal.reason)
    return VerificationOutcome(
        trust=trust,
        extracted_grades={},
        frames_analyzed=temporal.frames_analyzed,
        image_hash=video_hash,
        breakdown_extra={"temporal": {
            "passed": False,
            "reason": temporal.reason,
            "missingScreens": list(temporal.missing_screens),
            "pageCounts": dict(temporal.page_counts),
        }},
    )


class VideoPipeline(BasePipeline):
    """Verify grades from a short screen recording of the portal."""

    name = "VideoPipeline"

    def process(self) -> VerificationOutcome:
        video_bytes = self.evidence(VIDEO)
        if not video_bytes:
            raise EvidenceInsufficientError("No video to analyze", reason="NO_VIDEO")
        video_hash = image_hash(video_bytes)
        registry = self.context.registry
        video_config = self.config.video

        # Frames
        self.step(JobStep.EXTRACTING_FRAMES)
        frames = extract_frames(video_bytes, video_config)
        frames = filter_clear_frames(frames, video_config.min_frames, video_config.blur_threshold)
        if not frames:
            raise EvidenceInsufficientError("No clear frame extracted from the video", reason="NO_FRAMES")

        # OCR, sequential over frames so one engine set serves the whole job
        self.step(JobStep.OCR_ANALYSIS, f"0/{len(frames)}")
        runner = self.context.ocr
        observations: List[FrameObservation] = []
        texts: List[str] = []
        confidences: List[int] = []
        disagreeing_modules = set()
        for i, frame in enumerate(frames, start=1):
            analysis = self.analyze_image(frame.image_bytes, runner)
            self.context.progress(f"{i}/{len(frames)}")
            if not analysis.has_text:
                self.log_warning("No OCR text", frame=frame.index)
                continue
            texts.extend(analysis.texts)
            confidences.append(analysis.consensus.confidence)
            disagreeing_modules.update(d.module_id for d in analysis.consensus.disagreements)
            observations.append(FrameObservation(
                index=frame.index,
                timestamp=frame.timestamp,
                page_type=analysis.page_type,
                consensus=analysis.consensus,
            ))
            self.log_info(
                "Frame analyzed",
                frame=frame.index,
                page=analysis.page_type.value,
                modules=len(analysis.consensus.grades),
                confidence=analysis.consensus.confidence,
            )

        if not observations:
            raise EvidenceInsufficientError("No OCR engine returned usable text", reason="NO_TEXT")

        # Temporal aggregation
        self.step(JobStep.AGGREGATING_RESULTS)
        temporal = aggregate_temporal(observations, video_config.max_page_gap_sec)
        if temporal.blocked:
            self.log_info("Temporal rule failed", reason=temporal.reason)
            outcome = blocked_outcome(temporal, video_hash)
            outcome.frames_analyzed = len(frames)
            return outcome

        final_grades = {mid: g.as_module_grades() for mid, g in temporal.final_grades.items()}
        ocr_confidence = int(round_half_up(sum(confidences) / len(confidences)))

        # Portal cross-check
        self.step(JobStep.PORTAL_CROSS_CHECK)
        stored = self.context.repository.get_stored_grades(self.job.user_id)
        credibility = compare_grades(
            final_grades,
            stored,
            threshold=self.config.worker.credibility_threshold,
            registry=registry,
        )
        portal = cross_check_portal(final_grades, stored, registry)

        # Forensics and code
        self.step(JobStep.TAMPERING_DETECTION)
        with ThreadPoolExecutor(max_workers=2) as executor:
            tamper_future = executor.submit(self.context.tamper_detector.detect, frames[0].image_bytes)
            code_future = executor.submit(best_code_match, texts, self.job.code)
            tampering = tamper_future.result()
            code_match = code_future.result()
        self.log_info("Forensics done", tampering=tampering.probability, code_confidence=code_match.confidence)

        # Score
        self.step(JobStep.CALCULATING_SCORE)
        trust = video_trust_score(
            ocr_confidence=ocr_confidence,
            disagreements=len(disagreeing_modules),
            extracted=final_grades,
            stored=stored_to_grade_map(stored, registry),
            temporal_consistency=temporal.consistency,
            fluctuations=len(temporal.fluctuations),
            tampering_probability=tampering.probability,
            code=code_match,
            registry=registry,
        )
        for fluctuation in temporal.fluctuations:
            if fluctuation.suspicious:
                module = registry.get(fluctuation.module_id).canonical_name
                trust.issues.append(
                    f"Suspicious change of {module} {fluctuation.grade_field.value}: "
                    f"{fluctuation.from_value} -> {fluctuation.to_value}"
                )
        for entry in portal.suspicious:
            trust.issues.append(f"Large discrepancy with portal grades: {entry['module']}")
        if not temporal.pages_independent:
            trust.issues.append("Both pages first seen in the same frame")
        trust = apply_overrides(trust, credibility=credibility)

        return VerificationOutcome(
            trust=trust,
            extracted_grades=grades_to_dict(final_grades, registry),
            tampering_probability=tampering.probability,
            frames_analyzed=len(frames),
            image_hash=video_hash,
            breakdown_extra={
                "temporal": temporal.to_dict(),
                "credibility": credibility.to_dict(),
                "portalCrossCheck": portal.to_dict(),
                "tampering": tampering.to_dict(),
                "codeMatch": code_match.to_dict(),
            },
        )
