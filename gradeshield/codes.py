"""
Single-use verification codes.

A code is shown on screen while the student captures the portal, so a
capture made before the request cannot be reused. Codes are
PREFIX + 5 digits (e.g. AG-S3-48213), valid for CODE_TTL_SEC (120 s).
Issuing a code invalidates the user's previous unused codes; the first
submission attempt consumes the code whether or not it is accepted.
"""

from __future__ import annotations

import secrets
from datetime import datetime, timedelta
from typing import Callable, Optional

from .config import CodeConfig
from .exceptions import CodeExpiredError, InputValidationError, InvalidCodeError
from .logger import get_logger
from .models import VerificationCode, utcnow
from .persistence import VerificationRepository

logger = get_logger(__name__)

CODE_MIN = 10000
CODE_MAX = 99999


def generate_code(prefix: str) -> str:
    return f"{prefix}{CODE_MIN + secrets.randbelow(CODE_MAX - CODE_MIN)}"


class CodeIssuer:
    """
    Issue and consume verification codes.

    Args:
        repository: Code storage
        config: Prefix and TTL
        clock: Returns the current UTC time (injectable for tests)
    """

    def __init__(
        self,
        repository: VerificationRepository,
        config: Optional[CodeConfig] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.repository = repository
        self.config = config or CodeConfig()
        self.clock = clock

    def issue(self, user_id: str) -> VerificationCode:
        invalidated = self.repository.invalidate_codes(user_id)
        now = self.clock()
        code = VerificationCode(
            user_id=user_id,
            code=generate_code(self.config.prefix),
            expires_at=now + timedelta(seconds=self.config.ttl_sec),
            created_at=now,
        )
        self.repository.save_code(code)
        logger.info(f"Issued code {code.code} for user {user_id} (ttl={self.config.ttl_sec}s, invalidated={invalidated})")
        return code

    def consume(self, user_id: str, code: str) -> VerificationCode:
        """
        Validate and burn a submitted code.

        Raises:
            InputValidationError: No code submitted
            InvalidCodeError: Unknown or already used code
            CodeExpiredError: Code past its expiry (it is burned anyway)
        """
        code = (code or "").strip().upper()
        if not code:
            raise InputValidationError("Verification code is required", field_name="code")

        record = self.repository.find_code(user_id, code)
        if record is None or record.used:
            logger.info(f"Rejected code {code} for user {user_id}: unknown or already used")
            raise InvalidCodeError(code=code)

        record.used = True
        self.repository.save_code(record)

        if record.is_expired(self.clock()):
            logger.info(f"Rejected code {code} for user {user_id}: expired at {record.expires_at.isoformat()}")
            raise CodeExpiredError(code=code, expired_at=record.expires_at.isoformat())

        return record
