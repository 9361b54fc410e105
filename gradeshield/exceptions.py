"""
Custom exceptions for the grade verification engine.

All application-specific exceptions inherit from GradeShieldError.

Input errors (bad code, missing files, out-of-range video) are raised
synchronously before a job exists. Evidence errors are raised inside a
running job and turn it into FAILED.
"""

from __future__ import annotations

from typing import Optional, Any


class GradeShieldError(Exception):
    """
    Base exception for all application errors.

    Attributes:
        message: Human-readable error message
        details: Additional error details (for debugging)
        recoverable: Whether the error can potentially be recovered from
    """

    def __init__(
        self,
        message: str,
        details: Optional[dict[str, Any]] = None,
        recoverable: bool = False
    ):
        super().__init__(message)
        self.message = message
        self.details = details or {}
        self.recoverable = recoverable

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


class ConfigurationError(GradeShieldError):
    """Invalid or missing configuration (e.g. Postgres selected without DB_HOST)."""

    def __init__(self, message: str, config_key: Optional[str] = None):
        details = {"config_key": config_key} if config_key else None
        super().__init__(message, details=details, recoverable=False)


class InputValidationError(GradeShieldError):
    """
    Submission rejected before a job is created.

    Examples:
        - Missing verification code
        - Missing screenshot or video upload
        - Unreadable upload
    """

    def __init__(
        self,
        message: str,
        field_name: Optional[str] = None,
        expected: Optional[str] = None
    ):
        details = {}
        if field_name:
            details["field_name"] = field_name
        if expected:
            details["expected"] = expected
        super().__init__(message, details=details, recoverable=True)


class InvalidCodeError(InputValidationError):
    """Submitted verification code does not match an issued, unused code."""

    def __init__(self, message: str = "Invalid or already used verification code", code: Optional[str] = None):
        super().__init__(message, field_name="code")
        if code:
            self.details["code"] = code


class CodeExpiredError(InvalidCodeError):
    """Verification code exists but its TTL has elapsed."""

    def __init__(self, code: Optional[str] = None, expired_at: Optional[str] = None):
        super().__init__("Verification code expired, request a new one", code=code)
        if expired_at:
            self.details["expired_at"] = expired_at


class VideoDurationError(InputValidationError):
    """Screen recording is shorter or longer than the accepted window."""

    def __init__(self, duration_sec: float, min_sec: float, max_sec: float):
        super().__init__(
            f"Video duration {duration_sec:.1f}s outside accepted range",
            field_name="video",
            expected=f"{min_sec:g}-{max_sec:g}s",
        )
        self.details["duration_sec"] = round(duration_sec, 2)


class EvidenceInsufficientError(GradeShieldError):
    """
    The submitted evidence cannot be analyzed.

    Examples:
        - No OCR engine produced text
        - No usable frame in the recording
        - Screenshot below the minimum resolution
    """

    def __init__(self, message: str, reason: Optional[str] = None, **extra: Any):
        details: dict[str, Any] = {}
        if reason:
            details["reason"] = reason
        details.update(extra)
        super().__init__(message, details=details, recoverable=False)


class OCRError(GradeShieldError):
    """OCR engine failed in a way that is not a plain empty result."""

    def __init__(
        self,
        message: str,
        engine: Optional[str] = None,
        status_code: Optional[int] = None
    ):
        details: dict[str, Any] = {}
        if engine:
            details["engine"] = engine
        if status_code is not None:
            details["status_code"] = status_code
        super().__init__(message, details=details, recoverable=True)


class DataPersistenceError(GradeShieldError):
    """
    Failed to save or load data.

    Examples:
        - File write permission denied
        - Invalid JSON format
        - Database connection lost
    """

    def __init__(
        self,
        message: str,
        file_path: Optional[str] = None,
        operation: Optional[str] = None  # "save" or "load"
    ):
        details = {}
        if file_path:
            details["file_path"] = file_path
        if operation:
            details["operation"] = operation
        super().__init__(message, details=details, recoverable=False)


class JobNotFoundError(GradeShieldError):
    """No verification job for the given id or user."""

    def __init__(self, job_id: Optional[str] = None, user_id: Optional[str] = None):
        details = {}
        if job_id:
            details["job_id"] = job_id
        if user_id:
            details["user_id"] = user_id
        super().__init__("Verification job not found", details=details, recoverable=False)


class JobTimeoutError(GradeShieldError):
    """Job exceeded its wall-clock ceiling."""

    def __init__(self, elapsed_sec: float, limit_sec: float, step: Optional[str] = None):
        details: dict[str, Any] = {
            "reason": "TIMEOUT",
            "elapsed_sec": round(elapsed_sec, 2),
            "limit_sec": limit_sec,
        }
        if step:
            details["step"] = step
        super().__init__("Verification timed out", details=details, recoverable=False)


class InvalidTransitionError(GradeShieldError):
    """Job step transition not allowed for the verification type."""

    def __init__(self, from_step: str, to_step: str, verification_type: str):
        super().__init__(
            f"Invalid step transition {from_step} -> {to_step}",
            details={
                "from_step": from_step,
                "to_step": to_step,
                "verification_type": verification_type,
            },
            recoverable=False,
        )
