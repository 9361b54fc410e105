"""
Evidence processors.

Pure analysis steps used by the verification pipelines:
- OCR engine adapters (Tesseract, OCR.space) and the multi-engine runner
- Grade text extraction and page type detection
- Multi-engine consensus per frame, temporal aggregation across frames
- Structure validation, verification-code location, tamper detection
- Credibility cross-check against self-reported grades
- Trust scoring
"""

from .ocr_engines import (
    OCREngine,
    OCRResult,
    TesseractEngine,
    OCRSpaceEngine,
    KeyRotation,
    MultiOCRRunner,
    build_engines,
)
from .grade_extractor import extract_grades, detect_page_type
from .consensus import build_frame_consensus, frame_page_type
from .temporal import aggregate_temporal, detect_fluctuations, TemporalResult
from .structure import validate_structure
from .code_locator import find_verification_code, best_code_match
from .tamper_detector import TamperDetector, ela_suspicion
from .credibility import compare_grades, cross_check_portal, GRADE_SLOTS, GradeSlot
from .averages import merge_screenshot_grades, calculate_averages, stored_to_grade_map
from .trust_scoring import screenshot_trust_score, video_trust_score, apply_overrides, status_for_score
from .video_frames import VideoFrame, extract_frames, filter_clear_frames, probe_duration, check_duration

__all__ = [
    "OCREngine",
    "OCRResult",
    "TesseractEngine",
    "OCRSpaceEngine",
    "KeyRotation",
    "MultiOCRRunner",
    "build_engines",
    "extract_grades",
    "detect_page_type",
    "build_frame_consensus",
    "frame_page_type",
    "aggregate_temporal",
    "detect_fluctuations",
    "TemporalResult",
    "validate_structure",
    "find_verification_code",
    "best_code_match",
    "TamperDetector",
    "ela_suspicion",
    "compare_grades",
    "cross_check_portal",
    "GRADE_SLOTS",
    "GradeSlot",
    "merge_screenshot_grades",
    "calculate_averages",
    "stored_to_grade_map",
    "screenshot_trust_score",
    "video_trust_score",
    "apply_overrides",
    "status_for_score",
    "VideoFrame",
    "extract_frames",
    "filter_clear_frames",
    "probe_duration",
    "check_duration",
]
