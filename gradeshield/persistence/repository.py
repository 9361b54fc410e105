"""
Repository pattern for verification persistence.

Defines the storage contract used by the code issuer, the service
facade and the job orchestrator. Implementations can be swapped between
JSON files and PostgreSQL.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Dict, List, Mapping, Optional

from ..models import VerificationCode, VerificationJob

StoredGrades = Dict[str, Dict[str, Optional[float]]]


class VerificationRepository(ABC):
    """
    Abstract repository for codes, jobs, evidence and the external
    user record (student id, self-reported grades, verified flag).
    """

    # Verification codes

    @abstractmethod
    def save_code(self, code: VerificationCode) -> None:
        """Insert or update a verification code."""
        pass

    @abstractmethod
    def find_code(self, user_id: str, code: str) -> Optional[VerificationCode]:
        """
        Latest code record with this value for the user, used or not.

        Returns:
            Code record if found, None otherwise
        """
        pass

    @abstractmethod
    def invalidate_codes(self, user_id: str) -> int:
        """
        Mark every unused code of the user as used.

        Returns:
            Number of codes invalidated
        """
        pass

    # Jobs

    @abstractmethod
    def save_job(self, job: VerificationJob) -> None:
        """Upsert the user's job, replacing any previous job of that user."""
        pass

    @abstractmethod
    def update_job(self, job: VerificationJob) -> bool:
        """
        Persist progress of a running job.

        Returns:
            False when the user's record now belongs to a newer job
            (the write is dropped)
        """
        pass

    @abstractmethod
    def get_job(self, job_id: str) -> Optional[VerificationJob]:
        pass

    @abstractmethod
    def get_job_by_user(self, user_id: str) -> Optional[VerificationJob]:
        pass

    @abstractmethod
    def list_processing_jobs(self) -> List[VerificationJob]:
        """Jobs not yet terminal, used for restart recovery."""
        pass

    # Evidence blobs

    @abstractmethod
    def save_evidence(self, job_id: str, name: str, data: bytes) -> str:
        """
        Store uploaded evidence bytes.

        Returns:
            Blob key to record on the job
        """
        pass

    @abstractmethod
    def load_evidence(self, key: str) -> Optional[bytes]:
        pass

    @abstractmethod
    def delete_evidence(self, job_id: str) -> None:
        pass

    # External user record

    @abstractmethod
    def get_student_id(self, user_id: str) -> Optional[str]:
        pass

    @abstractmethod
    def get_stored_grades(self, user_id: str) -> StoredGrades:
        """Self-reported grades keyed by subject storage name: {"exam": x, "td": y}."""
        pass

    @abstractmethod
    def save_profile(
        self,
        user_id: str,
        student_id: Optional[str] = None,
        grades: Optional[Mapping[str, Mapping[str, Optional[float]]]] = None,
    ) -> None:
        """Create or update the user record (student id and self-reported grades)."""
        pass

    @abstractmethod
    def set_verified(self, user_id: str, verified: bool) -> None:
        pass

    @abstractmethod
    def is_verified(self, user_id: str) -> bool:
        pass


class JSONRepository(VerificationRepository):
    """
    JSON file-based repository implementation.

    Suitable for a single process; the store lock serializes
    read-modify-write sequences.
    """

    def __init__(self, base_dir):
        from .json_store import JSONStore
        self.store = JSONStore(base_dir)

    # Verification codes

    def _codes(self, user_id: str) -> List[VerificationCode]:
        data = self.store.read("codes", user_id) or []
        return [VerificationCode.from_dict(d) for d in data]

    def _write_codes(self, user_id: str, codes: List[VerificationCode]) -> None:
        self.store.write("codes", user_id, [c.to_dict() for c in codes])

    def save_code(self, code: VerificationCode) -> None:
        with self.store.lock:
            codes = [c for c in self._codes(code.user_id) if c.id != code.id]
            codes.append(code)
            self._write_codes(code.user_id, codes)

    def find_code(self, user_id: str, code: str) -> Optional[VerificationCode]:
        matches = [c for c in self._codes(user_id) if c.code == code]
        if not matches:
            return None
        return max(matches, key=lambda c: c.created_at)

    def invalidate_codes(self, user_id: str) -> int:
        with self.store.lock:
            codes = self._codes(user_id)
            count = 0
            for c in codes:
                if not c.used:
                    c.used = True
                    count += 1
            if count:
                self._write_codes(user_id, codes)
            return count

    # Jobs

    def save_job(self, job: VerificationJob) -> None:
        job.touch()
        self.store.write("jobs", job.user_id, job.to_dict())

    def update_job(self, job: VerificationJob) -> bool:
        with self.store.lock:
            current = self.store.read("jobs", job.user_id)
            if current is not None and current.get("id") != job.id:
                return False
            self.save_job(job)
            return True

    def get_job(self, job_id: str) -> Optional[VerificationJob]:
        for data in self.store.iter_collection("jobs"):
            if data.get("id") == job_id:
                return VerificationJob.from_dict(data)
        return None

    def get_job_by_user(self, user_id: str) -> Optional[VerificationJob]:
        data = self.store.read("jobs", user_id)
        return VerificationJob.from_dict(data) if data else None

    def list_processing_jobs(self) -> List[VerificationJob]:
        jobs = [VerificationJob.from_dict(d) for d in self.store.iter_collection("jobs")]
        return [j for j in jobs if not j.is_terminal]

    # Evidence blobs

    def save_evidence(self, job_id: str, name: str, data: bytes) -> str:
        return self.store.write_blob(job_id, name, data)

    def load_evidence(self, key: str) -> Optional[bytes]:
        return self.store.read_blob(key)

    def delete_evidence(self, job_id: str) -> None:
        self.store.delete_group(job_id)

    # External user record

    def _user(self, user_id: str) -> dict:
        return self.store.read("users", user_id) or {"user_id": user_id, "grades": {}, "is_verified": False}

    def get_student_id(self, user_id: str) -> Optional[str]:
        return self._user(user_id).get("student_id")

    def get_stored_grades(self, user_id: str) -> StoredGrades:
        return dict(self._user(user_id).get("grades") or {})

    def save_profile(
        self,
        user_id: str,
        student_id: Optional[str] = None,
        grades: Optional[Mapping[str, Mapping[str, Optional[float]]]] = None,
    ) -> None:
        with self.store.lock:
            user = self._user(user_id)
            if student_id is not None:
                user["student_id"] = student_id
            if grades is not None:
                user["grades"] = {subject: dict(row) for subject, row in grades.items()}
            self.store.write("users", user_id, user)

    def set_verified(self, user_id: str, verified: bool) -> None:
        with self.store.lock:
            user = self._user(user_id)
            user["is_verified"] = bool(verified)
            self.store.write("users", user_id, user)

    def is_verified(self, user_id: str) -> bool:
        return bool(self._user(user_id).get("is_verified"))
