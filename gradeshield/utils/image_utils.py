"""
Image processing utility functions.

Common operations on uploaded screenshots and sampled video frames.
Images are BGR numpy arrays as returned by OpenCV.
"""

from __future__ import annotations

import hashlib
from typing import Optional, Tuple

import cv2
import numpy as np


def decode_image(data: bytes, flags: int = cv2.IMREAD_COLOR) -> Optional[np.ndarray]:
    """
    Decode an encoded image (PNG, JPEG, ...) from memory.

    Returns:
        Decoded image, or None if the bytes are not a readable image
    """
    if not data:
        return None
    buffer = np.frombuffer(data, dtype=np.uint8)
    return cv2.imdecode(buffer, flags)


def encode_image(image: np.ndarray, ext: str = ".jpg", quality: int = 95) -> bytes:
    """Encode image to bytes (JPEG quality or lossless PNG)."""
    if ext in (".jpg", ".jpeg"):
        params = [cv2.IMWRITE_JPEG_QUALITY, quality]
    else:
        params = []
    success, data = cv2.imencode(ext, image, params)
    if not success:
        raise ValueError(f"Could not encode image as {ext}")
    return data.tobytes()


def image_hash(data: bytes) -> str:
    """SHA-256 of the raw upload, used to spot resubmitted evidence."""
    return hashlib.sha256(data).hexdigest()


def image_size(image: np.ndarray) -> Tuple[int, int]:
    """(width, height) of an image."""
    h, w = image.shape[:2]
    return w, h


def has_min_resolution(image: np.ndarray, min_width: int, min_height: int) -> bool:
    w, h = image_size(image)
    return w >= min_width and h >= min_height


def resize_to_width(image: np.ndarray, max_width: int) -> np.ndarray:
    """Downscale so width <= max_width, keeping aspect ratio. Never upscales."""
    h, w = image.shape[:2]
    if w <= max_width:
        return image
    scale = max_width / float(w)
    return cv2.resize(image, (max_width, max(1, int(round(h * scale)))), interpolation=cv2.INTER_AREA)


def to_gray(image: np.ndarray) -> np.ndarray:
    if len(image.shape) == 3:
        return cv2.cvtColor(image, cv2.COLOR_BGR2GRAY)
    return image.copy()


def laplacian_variance(image: np.ndarray) -> float:
    """Sharpness measure: variance of the Laplacian. Low values mean blur."""
    return float(cv2.Laplacian(to_gray(image), cv2.CV_64F).var())


def preprocess_for_ocr(image: np.ndarray, max_width: int = 1200) -> np.ndarray:
    """
    Preprocess image for OCR.

    Standard preprocessing pipeline:
    1. Downscale to max_width
    2. Convert to grayscale
    3. Normalize contrast

    Args:
        image: Source image (color or grayscale)
        max_width: Width ceiling in pixels

    Returns:
        Preprocessed grayscale image
    """
    gray = to_gray(resize_to_width(image, max_width))
    return cv2.normalize(gray, None, 0, 255, cv2.NORM_MINMAX)
