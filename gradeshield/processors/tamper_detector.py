"""
Forensic tamper detection for grade screenshots and video frames.

Five statistical checks, each a 0-100 suspicion score:

    ELA                 35%  JPEG q75 re-encode, grayscale pixel diff
    EDGE_CONSISTENCY    25%  Laplacian edge density spread over quadrants
    COLOR_CONSISTENCY   20%  blue/red ratio spread over horizontal strips
    COMPRESSION         10%  size ratios of q90/q50 re-encodes
    BACKGROUND          10%  colour spread of random content patches

A check that raises contributes a fixed conservative score and an
"error" detail; the report is always produced.
"""

from __future__ import annotations

import io
import math
import random
from typing import Callable, Dict, List, Optional

import cv2
import numpy as np
from PIL import Image

from ..config import TamperConfig
from ..logger import get_logger
from ..models import TamperCheck, TamperingReport, TamperSummary
from ..utils.text_utils import round_half_up
from ..utils.timing import timed_operation

logger = get_logger(__name__)

WEIGHTS: Dict[str, float] = {
    "ELA": 0.35,
    "EDGE_CONSISTENCY": 0.25,
    "COLOR_CONSISTENCY": 0.20,
    "COMPRESSION": 0.10,
    "BACKGROUND": 0.10,
}

FALLBACK_SCORES: Dict[str, int] = {
    "ELA": 30,
    "EDGE_CONSISTENCY": 25,
    "COLOR_CONSISTENCY": 20,
    "COMPRESSION": 20,
    "BACKGROUND": 20,
}

INSUFFICIENT_PATCHES_SCORE = 30
ELA_PIXEL_THRESHOLD = 30

EDGE_KERNEL = np.array([[-1, -1, -1], [-1, 8, -1], [-1, -1, -1]], dtype=np.float32)


def ela_suspicion(high_diff_ratio: float, avg_diff: float, max_diff: float) -> int:
    """ELA score from its three statistics. Non-decreasing in each argument."""
    suspicion = 0
    if high_diff_ratio > 0.15:
        suspicion += 40
    elif high_diff_ratio > 0.08:
        suspicion += 20
    elif high_diff_ratio > 0.03:
        suspicion += 10

    if avg_diff > 20:
        suspicion += 30
    elif avg_diff > 12:
        suspicion += 15
    elif avg_diff > 8:
        suspicion += 5

    if max_diff > 200:
        suspicion += 30
    elif max_diff > 150:
        suspicion += 15

    return min(100, suspicion)


def _jpeg_bytes(image: Image.Image, quality: int) -> bytes:
    buffer = io.BytesIO()
    image.save(buffer, format="JPEG", quality=quality)
    return buffer.getvalue()


def _spread(values: List[float]) -> float:
    """Coefficient of variation in percent."""
    mean = sum(values) / len(values)
    if mean <= 0:
        return 0.0
    variance = sum((v - mean) ** 2 for v in values) / len(values)
    return math.sqrt(variance) / mean * 100


class TamperDetector:
    """Runs the forensic checks on one encoded image."""

    def __init__(self, config: Optional[TamperConfig] = None):
        config = config or TamperConfig()
        self.ela_quality = config.ela_quality
        self.patch_count = config.background_patches
        self.patch_size = config.patch_size
        self.seed = config.seed

    def detect(self, image_bytes: bytes) -> TamperingReport:
        image: Optional[Image.Image] = None
        image_format = ""
        decode_error: Optional[Exception] = None
        try:
            with Image.open(io.BytesIO(image_bytes)) as opened:
                image_format = (opened.format or "").lower()
                image = opened.convert("RGB")
        except Exception as e:
            decode_error = e
            logger.warning(f"Tamper detection could not decode image: {e}")

        def needs_image(fn: Callable[[Image.Image], TamperCheck]) -> Callable[[], TamperCheck]:
            def run() -> TamperCheck:
                if image is None:
                    raise ValueError(f"undecodable image: {decode_error}")
                return fn(image)
            return run

        with timed_operation("Tamper detection", logger):
            checks = [
                self._run_check("ELA", needs_image(self.error_level_analysis)),
                self._run_check("EDGE_CONSISTENCY", needs_image(self.edge_consistency)),
                self._run_check("COLOR_CONSISTENCY", needs_image(self.color_consistency)),
                self._run_check(
                    "COMPRESSION",
                    needs_image(lambda img: self.compression_artifacts(img, len(image_bytes), image_format)),
                ),
                self._run_check("BACKGROUND", needs_image(self.background_uniformity)),
            ]

        weighted = sum(c.suspicion_score * WEIGHTS[c.name] for c in checks)
        probability = int(max(0, min(100, round_half_up(weighted))))

        logger.debug(
            "Tamper checks " + " ".join(f"{c.name}={c.suspicion_score}" for c in checks)
            + f" -> {probability}%"
        )
        return TamperingReport(
            probability=probability,
            checks=checks,
            summary=TamperSummary.from_probability(probability),
        )

    @staticmethod
    def _run_check(name: str, fn: Callable[[], TamperCheck]) -> TamperCheck:
        try:
            return fn()
        except Exception as e:
            logger.warning(f"Tamper check {name} failed: {e}")
            return TamperCheck(name=name, suspicion_score=FALLBACK_SCORES[name], details={"error": str(e)})

    def error_level_analysis(self, image: Image.Image) -> TamperCheck:
        original = np.asarray(image.convert("L"), dtype=np.int16)
        with Image.open(io.BytesIO(_jpeg_bytes(image, self.ela_quality))) as recompressed:
            resaved = recompressed.convert("L")
            if resaved.size != image.size:
                resaved = resaved.resize(image.size)
            resaved_arr = np.asarray(resaved, dtype=np.int16)

        diff = np.abs(original - resaved_arr)
        avg_diff = float(diff.mean())
        max_diff = int(diff.max())
        high_diff_ratio = float((diff > ELA_PIXEL_THRESHOLD).mean())

        return TamperCheck(
            name="ELA",
            suspicion_score=ela_suspicion(high_diff_ratio, avg_diff, max_diff),
            details={
                "avgDiff": round(avg_diff, 2),
                "maxDiff": max_diff,
                "highDiffRatio": round(high_diff_ratio * 100, 2),
            },
        )

    def edge_consistency(self, image: Image.Image) -> TamperCheck:
        gray = np.asarray(image.convert("L"))
        h, w = gray.shape
        qh, qw = h // 2, w // 2
        if qh < 3 or qw < 3:
            raise ValueError(f"image too small for quadrant analysis ({w}x{h})")

        densities = []
        for row in range(2):
            for col in range(2):
                quadrant = gray[row * qh:(row + 1) * qh, col * qw:(col + 1) * qw]
                edges = cv2.filter2D(quadrant, -1, EDGE_KERNEL)
                densities.append(float(edges.mean()))

        cov = _spread(densities)
        if cov > 60:
            suspicion = 70
        elif cov > 40:
            suspicion = 45
        elif cov > 25:
            suspicion = 20
        else:
            suspicion = 5

        return TamperCheck(
            name="EDGE_CONSISTENCY",
            suspicion_score=suspicion,
            details={
                "quadrantEdgeDensities": [round(d, 2) for d in densities],
                "coeffOfVariation": round(cov, 2),
            },
        )

    def color_consistency(self, image: Image.Image) -> TamperCheck:
        rgb = np.asarray(image, dtype=np.float64)
        strip_height = rgb.shape[0] // 4
        if strip_height < 1:
            raise ValueError("image too small for strip analysis")

        temperatures = []
        for i in range(4):
            strip = rgb[i * strip_height:(i + 1) * strip_height]
            red = float(strip[..., 0].mean())
            blue = float(strip[..., 2].mean())
            temperatures.append(blue / red if red > 0 else 1.0)

        mean = sum(temperatures) / len(temperatures)
        variance = sum((t - mean) ** 2 for t in temperatures) / len(temperatures)
        max_delta = max(temperatures) - min(temperatures)

        if max_delta > 0.3:
            suspicion = 70
        elif max_delta > 0.15:
            suspicion = 35
        elif max_delta > 0.08:
            suspicion = 15
        else:
            suspicion = 5

        return TamperCheck(
            name="COLOR_CONSISTENCY",
            suspicion_score=suspicion,
            details={
                "stripTemperatures": [round(t, 3) for t in temperatures],
                "maxDelta": round(max_delta, 3),
                "variance": round(variance, 4),
            },
        )

    def compression_artifacts(self, image: Image.Image, original_size: int, image_format: str) -> TamperCheck:
        q90 = len(_jpeg_bytes(image, 90))
        q50 = len(_jpeg_bytes(image, 50))
        size_ratio = q50 / q90
        compression_ratio = q90 / original_size if original_size else 0.0

        suspicion = 0
        # Growing at q90 means the upload was already saved below q90
        if compression_ratio > 1.2:
            suspicion += 30
        if size_ratio > 0.8:
            suspicion += 20
        if image_format == "png":
            suspicion -= 10

        return TamperCheck(
            name="COMPRESSION",
            suspicion_score=max(0, min(100, suspicion)),
            details={
                "format": image_format,
                "originalSize": original_size,
                "q90Size": q90,
                "q50Size": q50,
                "sizeRatio": round(size_ratio, 3),
                "compressionRatio": round(compression_ratio, 3),
            },
        )

    def background_uniformity(self, image: Image.Image) -> TamperCheck:
        rgb = np.asarray(image, dtype=np.float64)
        h, w = rgb.shape[:2]
        size = self.patch_size
        start_y, end_y = int(h * 0.2), int(h * 0.8)
        start_x, end_x = int(w * 0.1), int(w * 0.9)
        span_x = end_x - start_x - size
        span_y = end_y - start_y - size

        # Same seed for every image keeps reports reproducible
        rng = random.Random(self.seed)
        patches = []
        for _ in range(self.patch_count):
            if span_x <= 0 or span_y <= 0:
                break
            x = start_x + int(rng.random() * span_x)
            y = start_y + int(rng.random() * span_y)
            patch = rgb[y:y + size, x:x + size]
            if patch.shape[0] != size or patch.shape[1] != size:
                continue
            patches.append(patch.reshape(-1, 3).mean(axis=0))

        if len(patches) < 3:
            return TamperCheck(
                name="BACKGROUND",
                suspicion_score=INSUFFICIENT_PATCHES_SCORE,
                details={"error": "Insufficient patches", "patchCount": len(patches)},
            )

        means = np.array(patches)
        avg = means.mean(axis=0)
        max_color_diff = float(np.sqrt(((means - avg) ** 2).sum(axis=1)).max())

        if max_color_diff > 60:
            suspicion = 65
        elif max_color_diff > 35:
            suspicion = 35
        elif max_color_diff > 20:
            suspicion = 15
        else:
            suspicion = 5

        return TamperCheck(
            name="BACKGROUND",
            suspicion_score=suspicion,
            details={
                "patchCount": len(patches),
                "maxColorDifference": round(max_color_diff, 2),
                "avgColor": {"r": int(round(avg[0])), "g": int(round(avg[1])), "b": int(round(avg[2]))},
            },
        )
