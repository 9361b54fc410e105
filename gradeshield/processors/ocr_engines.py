"""
OCR engine adapters.

Two independent engines read every image:
- Tesseract (local, via pytesseract, French + English)
- OCR.space (cloud REST API, via requests)

Adapters never raise on engine failure: they log and return an empty
result with confidence 0, so one broken engine only lowers consensus.
"""

from __future__ import annotations

import base64
import threading
from abc import ABC, abstractmethod
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

import cv2
import numpy as np
import pytesseract
import requests
from pytesseract import Output

from ..config import OCRConfig
from ..exceptions import OCRError
from ..logger import get_logger
from ..utils.image_utils import decode_image, encode_image, preprocess_for_ocr

logger = get_logger(__name__)


@dataclass
class WordBox:
    text: str
    confidence: float
    bbox: Dict[str, int] = field(default_factory=dict)  # x0, y0, x1, y1


@dataclass
class OCRResult:
    engine: str
    text: str = ""
    confidence: float = 0.0
    words: List[WordBox] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.text.strip()


class KeyRotation:
    """
    Round-robin over API keys.

    Owned by whoever builds the engine, so tests and separate services
    never share a counter.
    """

    def __init__(self, keys: Sequence[str]):
        self._keys = [k for k in keys if k]
        self._index = 0
        self._usage: Dict[str, int] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._keys)

    def next_key(self) -> Optional[str]:
        if not self._keys:
            return None
        with self._lock:
            key = self._keys[self._index % len(self._keys)]
            self._index += 1
            self._usage[key] = self._usage.get(key, 0) + 1
            calls = self._usage[key]
        logger.debug(f"OCR.space key {mask_key(key)} call #{calls}")
        return key


def mask_key(key: str) -> str:
    if len(key) <= 8:
        return "****"
    return f"{key[:4]}...{key[-4:]}"


class OCREngine(ABC):
    """Common interface of all OCR adapters."""

    name: str = "engine"

    @abstractmethod
    def run(self, image_bytes: bytes) -> OCRResult:
        """Read text from an encoded image. Must not raise."""

    def empty(self) -> OCRResult:
        return OCRResult(engine=self.name)

    def close(self) -> None:
        """Release engine resources at the end of a job."""


class TesseractEngine(OCREngine):
    """Local Tesseract adapter. One instance is reused for every frame of a job."""

    name = "tesseract"

    def __init__(self, config: OCRConfig):
        self.languages = config.languages
        self.max_width = config.max_width
        if config.tesseract_path:
            pytesseract.pytesseract.tesseract_cmd = config.tesseract_path

    def run(self, image_bytes: bytes) -> OCRResult:
        try:
            image = decode_image(image_bytes)
            if image is None:
                logger.warning("Tesseract: undecodable image")
                return self.empty()
            return self.read(preprocess_for_ocr(image, self.max_width))
        except Exception as e:
            logger.warning(f"Tesseract failed: {e}")
            return self.empty()

    def read(self, gray: np.ndarray) -> OCRResult:
        data = pytesseract.image_to_data(gray, lang=self.languages, output_type=Output.DICT)

        lines: Dict[tuple, List[str]] = {}
        words: List[WordBox] = []
        confidences: List[float] = []

        for i, raw in enumerate(data.get("text", [])):
            text = (raw or "").strip()
            conf = float(data["conf"][i])
            if not text or conf < 0:
                continue
            key = (data["block_num"][i], data["par_num"][i], data["line_num"][i])
            lines.setdefault(key, []).append(text)
            left, top = int(data["left"][i]), int(data["top"][i])
            words.append(WordBox(
                text=text,
                confidence=conf,
                bbox={
                    "x0": left,
                    "y0": top,
                    "x1": left + int(data["width"][i]),
                    "y1": top + int(data["height"][i]),
                },
            ))
            confidences.append(conf)

        text = "\n".join(" ".join(tokens) for tokens in lines.values())
        confidence = round(sum(confidences) / len(confidences), 2) if confidences else 0.0
        return OCRResult(engine=self.name, text=text, confidence=confidence, words=words)


class OCRSpaceEngine(OCREngine):
    """OCR.space REST adapter with round-robin API keys."""

    name = "ocrspace"

    OVERLAY_CONFIDENCE = 85.0
    PLAIN_CONFIDENCE = 60.0

    def __init__(
        self,
        config: OCRConfig,
        keys: Optional[KeyRotation] = None,
        session: Optional[requests.Session] = None,
    ):
        self.url = config.ocr_space_url
        self.language = config.ocr_space_language
        self.ocr_engine = config.ocr_space_engine
        self.timeout = config.timeout_sec
        self.keys = keys if keys is not None else KeyRotation(config.ocr_space_keys)
        # Only a session created here is closed by close()
        self._owns_session = session is None
        self.session = session or requests.Session()

    def run(self, image_bytes: bytes) -> OCRResult:
        api_key = self.keys.next_key()
        if not api_key:
            return self.empty()

        payload = {
            "base64Image": "data:image/jpeg;base64," + base64.b64encode(self._as_jpeg(image_bytes)).decode("ascii"),
            "language": self.language,
            "isOverlayRequired": "true",
            "detectOrientation": "true",
            "scale": "true",
            "OCREngine": str(self.ocr_engine),
        }

        try:
            response = self.session.post(
                self.url,
                headers={"apikey": api_key},
                data=payload,
                timeout=self.timeout,
            )
            response.raise_for_status()
            result = response.json()
        except (requests.RequestException, ValueError) as e:
            logger.warning(f"OCR.space request failed: {e}")
            return self.empty()

        try:
            return self.parse_response(result)
        except OCRError as e:
            logger.warning(f"OCR.space error: {e}")
            return self.empty()

    def parse_response(self, result: Dict[str, Any]) -> OCRResult:
        """
        Raises:
            OCRError: The API reported a processing error
        """
        if result.get("IsErroredOnProcessing"):
            message = result.get("ErrorMessage") or "processing error"
            if isinstance(message, list):
                message = "; ".join(str(m) for m in message)
            raise OCRError(str(message), engine=self.name, status_code=result.get("OCRExitCode"))

        parsed_results = result.get("ParsedResults") or []
        if not parsed_results:
            return self.empty()

        parsed = parsed_results[0]
        overlay = parsed.get("TextOverlay") or {}
        words: List[WordBox] = []
        for line in overlay.get("Lines") or []:
            for word in line.get("Words") or []:
                left, top = int(word.get("Left", 0)), int(word.get("Top", 0))
                words.append(WordBox(
                    text=word.get("WordText", ""),
                    confidence=self.OVERLAY_CONFIDENCE,
                    bbox={
                        "x0": left,
                        "y0": top,
                        "x1": left + int(word.get("Width", 0)),
                        "y1": top + int(word.get("Height", 0)),
                    },
                ))

        confidence = self.OVERLAY_CONFIDENCE if overlay.get("HasOverlay") else self.PLAIN_CONFIDENCE
        return OCRResult(
            engine=self.name,
            text=parsed.get("ParsedText") or "",
            confidence=confidence,
            words=words,
        )

    def close(self) -> None:
        if self._owns_session:
            self.session.close()

    @staticmethod
    def _as_jpeg(image_bytes: bytes) -> bytes:
        # The API payload is declared as JPEG; PNG uploads are re-encoded.
        if image_bytes[:3] == b"\xff\xd8\xff":
            return image_bytes
        image = decode_image(image_bytes, cv2.IMREAD_COLOR)
        if image is None:
            return image_bytes
        return encode_image(image, ".jpg", quality=92)


class MultiOCRRunner:
    """Run every engine on one image concurrently and keep non-empty results."""

    def __init__(self, engines: Sequence[OCREngine]):
        self.engines = list(engines)

    def run_all(self, image_bytes: bytes) -> List[OCRResult]:
        if not self.engines:
            return []

        results: Dict[str, OCRResult] = {}
        with ThreadPoolExecutor(max_workers=len(self.engines)) as executor:
            future_to_engine = {
                executor.submit(engine.run, image_bytes): engine for engine in self.engines
            }
            for future in as_completed(future_to_engine):
                engine = future_to_engine[future]
                try:
                    results[engine.name] = future.result()
                except Exception as e:
                    logger.warning(f"{engine.name} raised: {e}")
                    results[engine.name] = engine.empty()

        # Engine order stays stable so consensus tie-breaks are deterministic
        ordered = [results[e.name] for e in self.engines if e.name in results]
        non_empty = [r for r in ordered if not r.is_empty]
        logger.debug(
            "OCR engines done " + " ".join(f"{r.engine}={len(r.text)}ch/{r.confidence}" for r in ordered)
        )
        return non_empty


def build_engines(config: OCRConfig, keys: Optional[KeyRotation] = None) -> List[OCREngine]:
    """Default engine set: Tesseract always, OCR.space when keys are configured."""
    engines: List[OCREngine] = [TesseractEngine(config)]
    rotation = keys if keys is not None else KeyRotation(config.ocr_space_keys)
    if len(rotation):
        engines.append(OCRSpaceEngine(config, keys=rotation))
    return engines
