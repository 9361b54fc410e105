"""
Screenshot verification pipeline.

Input: the TD screenshot and/or the exam screenshot of the grade portal
(at least one), plus the verification code the student showed on screen.

Steps:
    OCR_ANALYSIS         every engine on every image ("1/2", "2/2")
    AGGREGATING_RESULTS  merge TD and exam screens, compute averages
    COMPARING_GRADES     credibility check against self-reported grades
    TAMPERING_DETECTION  tamper detection, structure validation and code
                         location, run concurrently
    CALCULATING_SCORE    screenshot trust profile + overrides
"""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from typing import Dict, List

from ..exceptions import EvidenceInsufficientError
from ..models import CodeMatch, GradeMap, JobStep, grades_to_dict
from ..processors.averages import calculate_averages, merge_screenshot_grades
from ..processors.code_locator import best_code_match
from ..processors.credibility import compare_grades
from ..processors.structure import validate_structure
from ..processors.trust_scoring import apply_overrides, screenshot_trust_score
from ..utils.image_utils import decode_image, has_min_resolution, image_hash
from .base import BasePipeline, ImageAnalysis, VerificationOutcome

TD_SCREENSHOT = "td_screenshot"
EXAM_SCREENSHOT = "exam_screenshot"
SCREENSHOT_NAMES = (TD_SCREENSHOT, EXAM_SCREENSHOT)


class ScreenshotPipeline(BasePipeline):
    """Verify grades from one or two portal screenshots."""

    name = "ScreenshotPipeline"

    def load_images(self) -> Dict[str, bytes]:
        images = {}
        min_w, min_h = self.config.screenshot.min_width, self.config.screenshot.min_height
        for name in SCREENSHOT_NAMES:
            data = self.evidence(name)
            if data is None:
                continue
            decoded = decode_image(data)
            if decoded is None:
                raise EvidenceInsufficientError(f"{name} is not a readable image", reason="UNREADABLE_IMAGE")
            if not has_min_resolution(decoded, min_w, min_h):
                raise EvidenceInsufficientError(
                    f"{name} is below the minimum resolution {min_w}x{min_h}",
                    reason="LOW_RESOLUTION",
                )
            images[name] = data
        if not images:
            raise EvidenceInsufficientError("No screenshot to analyze", reason="NO_IMAGES")
        return images

    def process(self) -> VerificationOutcome:
        images = self.load_images()
        registry = self.context.registry
        runner = self.context.ocr

        # OCR
        self.step(JobStep.OCR_ANALYSIS, f"0/{len(images)}")
        analyses: Dict[str, ImageAnalysis] = {}
        for i, (name, data) in enumerate(images.items(), start=1):
            analysis = self.analyze_image(data, runner)
            if analysis.has_text:
                analyses[name] = analysis
            else:
                self.log_warning("No OCR text", image=name)
            self.context.progress(f"{i}/{len(images)}")
            self.log_info(
                "Screenshot analyzed",
                image=name,
                engines=len(analysis.extractions),
                modules=len(analysis.consensus.grades),
                confidence=analysis.consensus.confidence,
            )

        if not analyses:
            raise EvidenceInsufficientError("No OCR engine returned usable text", reason="NO_TEXT")

        # Merge
        self.step(JobStep.AGGREGATING_RESULTS)
        td_grades = analyses[TD_SCREENSHOT].consensus.grade_map() if TD_SCREENSHOT in analyses else {}
        exam_grades = analyses[EXAM_SCREENSHOT].consensus.grade_map() if EXAM_SCREENSHOT in analyses else {}
        if td_grades and exam_grades:
            merged: GradeMap = merge_screenshot_grades(td_grades, exam_grades, registry)
        else:
            merged = dict(td_grades or exam_grades)
        averages = calculate_averages(merged, registry)
        self.log_info("Grades merged", modules=len(merged), semester_average=averages.semester_average)

        # Credibility
        self.step(JobStep.COMPARING_GRADES)
        stored = self.context.repository.get_stored_grades(self.job.user_id)
        credibility = compare_grades(
            merged,
            stored,
            threshold=self.config.worker.credibility_threshold,
            registry=registry,
        )

        # Forensics, structure and code, concurrently
        self.step(JobStep.TAMPERING_DETECTION)
        texts: List[str] = [t for a in analyses.values() for t in a.texts]
        detector = self.context.tamper_detector
        with ThreadPoolExecutor(max_workers=len(images) + 2) as executor:
            tamper_futures = {name: executor.submit(detector.detect, data) for name, data in images.items()}
            structure_future = executor.submit(validate_structure, merged, registry)
            code_future = executor.submit(best_code_match, texts, self.job.code)
            tamper_reports = {name: f.result() for name, f in tamper_futures.items()}
            structure = structure_future.result()
            code_match: CodeMatch = code_future.result()

        # Worst image decides
        worst = max(tamper_reports.values(), key=lambda r: r.probability)
        self.log_info(
            "Forensics done",
            tampering=worst.probability,
            structure=structure.score,
            code_confidence=code_match.confidence,
        )

        # Score
        self.step(JobStep.CALCULATING_SCORE)
        found = sum(1 for g in merged.values() if not g.is_empty)
        trust = screenshot_trust_score(
            code=code_match,
            structure=structure,
            modules_found=found,
            tampering_probability=worst.probability,
            modules_expected=len(registry),
        )
        trust.issues.extend(issue.message for issue in structure.issues)
        trust = apply_overrides(trust, credibility=credibility)

        return VerificationOutcome(
            trust=trust,
            extracted_grades=grades_to_dict(merged, registry),
            tampering_probability=worst.probability,
            frames_analyzed=len(images),
            image_hash=image_hash(b"".join(images[name] for name in SCREENSHOT_NAMES if name in images)),
            breakdown_extra={
                "structure": structure.to_dict(),
                "averages": averages.to_dict(registry),
                "credibility": credibility.to_dict(),
                "tampering": {name: r.to_dict() for name, r in tamper_reports.items()},
                "ocrConfidence": {name: a.consensus.confidence for name, a in analyses.items()},
            },
        )
