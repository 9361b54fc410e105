import os
import sys

import cv2
import numpy as np
import pytest

sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from gradeshield.config import Config
from gradeshield.models import TamperingReport, TamperSummary
from gradeshield.persistence import AuditLog, JSONRepository
from gradeshield.pipeline import JobOrchestrator
from gradeshield.processors.ocr_engines import OCREngine, OCRResult
from gradeshield.service import VerificationService


# Grades as they appear on the portal and as the student entered them
PORTAL_ROWS = [
    ("Analyse", 14.5, 12.0),
    ("Algèbre", 13.0, 15.0),
    ("SFSD", 11.5, 16.0),
    ("Architecture", 10.0, 13.5),
    ("Électronique Fondamentale", 12.0, 14.0),
    ("Probabilités et Statistiques", 9.5, 11.0),
    ("Économie d'entreprise", 15.0, 17.0),
    ("Anglais", 16.0, None),
]

STORED_GRADES = {
    "Analyse 03": {"exam": 14.5, "td": 12.0},
    "Algèbre 03": {"exam": 13.0, "td": 15.0},
    "SFSD": {"exam": 11.5, "td": 16.0},
    "Architecture 02": {"exam": 10.0, "td": 13.5},
    "Électronique Fondamentale 02": {"exam": 12.0, "td": 14.0},
    "Probabilité et Statistique 01": {"exam": 9.5, "td": 11.0},
    "Économie d'entreprise": {"exam": 15.0, "td": 17.0},
    "Anglais 02": {"exam": 16.0, "td": None},
}


def transcript(code="", title="Relevé de Notes", rows=PORTAL_ROWS):
    """Portal text as an OCR engine would return it."""
    lines = [title, f"Code: {code}" if code else "Semestre"]
    for name, exam, td in rows:
        values = " ".join(str(v) for v in (exam, td) if v is not None)
        lines.append(f"{name} {values}")
    return "\n".join(lines)


def make_image(width=400, height=300, seed=0, ext=".png"):
    rng = np.random.default_rng(seed)
    image = rng.integers(0, 256, size=(height, width, 3), dtype=np.uint8)
    ok, data = cv2.imencode(ext, image)
    assert ok
    return data.tobytes()


class FakeOCR:
    """Shared text source for fake engines: per-image text, else the default."""

    def __init__(self, default=""):
        self.default = default
        self.texts = {}
        self.calls = 0
        self.built = []

    def text_for(self, image_bytes):
        self.calls += 1
        return self.texts.get(image_bytes, self.default)

    def engines(self):
        engines = [FakeEngine("tesseract", self), FakeEngine("ocrspace", self)]
        self.built.extend(engines)
        return engines


class FakeEngine(OCREngine):

    def __init__(self, name, source, confidence=90.0):
        self.name = name
        self.source = source
        self.confidence = confidence
        self.closed = False

    def run(self, image_bytes):
        return OCRResult(engine=self.name, text=self.source.text_for(image_bytes), confidence=self.confidence)

    def close(self):
        self.closed = True


class CleanTamperDetector:

    def __init__(self, probability=0):
        self.probability = probability

    def detect(self, image_bytes):
        return TamperingReport(
            probability=self.probability,
            summary=TamperSummary.from_probability(self.probability),
        )


@pytest.fixture
def config(tmp_path):
    return Config(base_dir=tmp_path)


@pytest.fixture
def repository(config):
    return JSONRepository(config.data_dir / "store")


@pytest.fixture
def fake_ocr():
    return FakeOCR()


@pytest.fixture
def tamper_detector():
    return CleanTamperDetector()


@pytest.fixture
def audit_log(config):
    return AuditLog(config.audit_log_path)


@pytest.fixture
def orchestrator(repository, config, fake_ocr, tamper_detector, audit_log):
    return JobOrchestrator(
        repository,
        config,
        engine_factory=fake_ocr.engines,
        tamper_detector=tamper_detector,
        audit_log=audit_log,
    )


@pytest.fixture
def service(repository, config, orchestrator):
    return VerificationService(repository=repository, config=config, orchestrator=orchestrator)
