"""
Append-only audit log of finished verifications (one JSON object per line).
"""

from __future__ import annotations

import json
import threading
from pathlib import Path
from typing import Any

from ..exceptions import DataPersistenceError
from ..models import VerificationJob, utcnow


class AuditLog:

    def __init__(self, path: Path):
        self.path = Path(path)
        self._lock = threading.Lock()

    def record(self, job: VerificationJob, **extra: Any) -> dict[str, Any]:
        entry = {
            "logged_at": utcnow().isoformat(),
            "job_id": job.id,
            "user_id": job.user_id,
            "verification_type": job.verification_type.value,
            "status": job.status.value,
            "trust_score": job.trust_score,
            "tampering_probability": job.tampering_probability,
            "image_hash": job.image_hash,
            "frames_analyzed": job.frames_analyzed,
            "processing_time": job.processing_time,
            "issues": list(job.issues),
        }
        entry.update(extra)
        line = json.dumps(entry, ensure_ascii=False)
        with self._lock:
            try:
                self.path.parent.mkdir(parents=True, exist_ok=True)
                with self.path.open("a", encoding="utf-8") as f:
                    f.write(line + "\n")
            except OSError as e:
                raise DataPersistenceError(f"Failed to append audit log: {e}", file_path=str(self.path), operation="save")
        return entry

    def read_all(self) -> list[dict[str, Any]]:
        if not self.path.exists():
            return []
        with self._lock:
            lines = self.path.read_text(encoding="utf-8").splitlines()
        return [json.loads(line) for line in lines if line.strip()]
