"""
PostgreSQL repository implementation.
"""
from __future__ import annotations

import threading
from typing import List, Mapping, Optional

import psycopg2
from psycopg2.extras import Json

from ..config import DBConfig
from ..exceptions import DataPersistenceError
from ..logger import get_logger
from ..models import VerificationCode, VerificationJob
from .repository import StoredGrades, VerificationRepository

logger = get_logger(__name__)


class PostgresRepository(VerificationRepository):
    """
    PostgreSQL repository for verification records.

    Handles:
    - Connection management
    - Schema initialization
    - Codes, jobs (one row per user, payload in JSONB), evidence blobs
    - The user record read by the engine (student id, grades, verified flag)
    """

    def __init__(self, config: DBConfig):
        """
        Initialize repository.

        Args:
            config: Database configuration
        """
        self.config = config
        self._conn = None
        self._lock = threading.Lock()

    def _get_connection(self):
        """Get or create database connection."""
        if self._conn is None or self._conn.closed:
            try:
                self._conn = psycopg2.connect(
                    host=self.config.host,
                    port=self.config.port,
                    dbname=self.config.name,
                    user=self.config.user,
                    password=self.config.password,
                    sslmode=self.config.ssl_mode,
                    options=f"-c search_path={self.config.schema}",
                )
                self._conn.autocommit = False
            except Exception as e:
                logger.error(f"Failed to connect to PostgreSQL: {e}")
                raise
        return self._conn

    def _execute(self, sql: str, params: tuple = (), fetch: Optional[str] = None):
        """Run one statement in its own transaction. fetch: None, "one" or "all"."""
        with self._lock:
            conn = self._get_connection()
            try:
                with conn.cursor() as cur:
                    cur.execute(sql, params)
                    if fetch == "one":
                        result = cur.fetchone()
                    elif fetch == "all":
                        result = cur.fetchall()
                    else:
                        result = cur.rowcount
                conn.commit()
                return result
            except psycopg2.Error as e:
                conn.rollback()
                logger.error(f"Database statement failed: {e}")
                raise DataPersistenceError(f"Database error: {e}", operation="save" if fetch is None else "load")

    def init_db(self):
        """Initialize database schema."""
        conn = self._get_connection()
        try:
            with conn.cursor() as cur:
                cur.execute("""
                    CREATE TABLE IF NOT EXISTS verification_codes (
                        id TEXT PRIMARY KEY,
                        user_id TEXT NOT NULL,
                        code TEXT NOT NULL,
                        expires_at TIMESTAMP WITH TIME ZONE NOT NULL,
                        used BOOLEAN NOT NULL DEFAULT FALSE,
                        created_at TIMESTAMP WITH TIME ZONE DEFAULT CURRENT_TIMESTAMP
                    );
                """)
                cur.execute("CREATE INDEX IF NOT EXISTS idx_codes_user_code ON verification_codes(user_id, code);")

                # One row per user: a new submission replaces the previous job
                cur.execute("""
                    CREATE TABLE IF NOT EXISTS verification_jobs (
                        user_id TEXT PRIMARY KEY,
                        job_id TEXT NOT NULL UNIQUE,
                        status TEXT NOT NULL,
                        current_step TEXT NOT NULL,
                        payload JSONB NOT NULL DEFAULT '{}',
                        updated_at TIMESTAMP WITH TIME ZONE DEFAULT CURRENT_TIMESTAMP
                    );
                """)

                cur.execute("""
                    CREATE TABLE IF NOT EXISTS verification_evidence (
                        job_id TEXT NOT NULL,
                        name TEXT NOT NULL,
                        data BYTEA NOT NULL,
                        PRIMARY KEY (job_id, name)
                    );
                """)

                cur.execute("""
                    CREATE TABLE IF NOT EXISTS student_profiles (
                        user_id TEXT PRIMARY KEY,
                        student_id TEXT,
                        grades JSONB NOT NULL DEFAULT '{}',
                        is_verified BOOLEAN NOT NULL DEFAULT FALSE
                    );
                """)
            conn.commit()
            logger.info("Database schema initialized")
        except Exception as e:
            conn.rollback()
            logger.error(f"Failed to initialize database: {e}")
            raise

    # Verification codes

    def save_code(self, code: VerificationCode) -> None:
        self._execute(
            """
            INSERT INTO verification_codes (id, user_id, code, expires_at, used, created_at)
            VALUES (%s, %s, %s, %s, %s, %s)
            ON CONFLICT (id) DO UPDATE SET used = EXCLUDED.used, expires_at = EXCLUDED.expires_at
            """,
            (code.id, code.user_id, code.code, code.expires_at, code.used, code.created_at),
        )

    def find_code(self, user_id: str, code: str) -> Optional[VerificationCode]:
        row = self._execute(
            """
            SELECT id, user_id, code, expires_at, used, created_at FROM verification_codes
            WHERE user_id = %s AND code = %s ORDER BY created_at DESC LIMIT 1
            """,
            (user_id, code),
            fetch="one",
        )
        if not row:
            return None
        return VerificationCode(
            id=row[0], user_id=row[1], code=row[2], expires_at=row[3], used=row[4], created_at=row[5]
        )

    def invalidate_codes(self, user_id: str) -> int:
        return self._execute(
            "UPDATE verification_codes SET used = TRUE WHERE user_id = %s AND used = FALSE",
            (user_id,),
        )

    # Jobs

    def save_job(self, job: VerificationJob) -> None:
        job.touch()
        self._execute(
            """
            INSERT INTO verification_jobs (user_id, job_id, status, current_step, payload, updated_at)
            VALUES (%s, %s, %s, %s, %s, %s)
            ON CONFLICT (user_id) DO UPDATE SET
                job_id = EXCLUDED.job_id,
                status = EXCLUDED.status,
                current_step = EXCLUDED.current_step,
                payload = EXCLUDED.payload,
                updated_at = EXCLUDED.updated_at
            """,
            (job.user_id, job.id, job.status.value, job.current_step.value, Json(job.to_dict()), job.updated_at),
        )

    def update_job(self, job: VerificationJob) -> bool:
        job.touch()
        updated = self._execute(
            """
            UPDATE verification_jobs SET status = %s, current_step = %s, payload = %s, updated_at = %s
            WHERE user_id = %s AND job_id = %s
            """,
            (job.status.value, job.current_step.value, Json(job.to_dict()), job.updated_at, job.user_id, job.id),
        )
        return updated > 0

    def get_job(self, job_id: str) -> Optional[VerificationJob]:
        row = self._execute("SELECT payload FROM verification_jobs WHERE job_id = %s", (job_id,), fetch="one")
        return VerificationJob.from_dict(row[0]) if row else None

    def get_job_by_user(self, user_id: str) -> Optional[VerificationJob]:
        row = self._execute("SELECT payload FROM verification_jobs WHERE user_id = %s", (user_id,), fetch="one")
        return VerificationJob.from_dict(row[0]) if row else None

    def list_processing_jobs(self) -> List[VerificationJob]:
        rows = self._execute(
            "SELECT payload FROM verification_jobs WHERE current_step NOT IN ('COMPLETED', 'ERROR')",
            fetch="all",
        )
        return [VerificationJob.from_dict(r[0]) for r in rows]

    # Evidence blobs

    def save_evidence(self, job_id: str, name: str, data: bytes) -> str:
        self._execute(
            """
            INSERT INTO verification_evidence (job_id, name, data) VALUES (%s, %s, %s)
            ON CONFLICT (job_id, name) DO UPDATE SET data = EXCLUDED.data
            """,
            (job_id, name, psycopg2.Binary(data)),
        )
        return f"{job_id}/{name}"

    def load_evidence(self, key: str) -> Optional[bytes]:
        job_id, _, name = key.partition("/")
        row = self._execute(
            "SELECT data FROM verification_evidence WHERE job_id = %s AND name = %s",
            (job_id, name),
            fetch="one",
        )
        return bytes(row[0]) if row else None

    def delete_evidence(self, job_id: str) -> None:
        self._execute("DELETE FROM verification_evidence WHERE job_id = %s", (job_id,))

    # External user record

    def get_student_id(self, user_id: str) -> Optional[str]:
        row = self._execute("SELECT student_id FROM student_profiles WHERE user_id = %s", (user_id,), fetch="one")
        return row[0] if row else None

    def get_stored_grades(self, user_id: str) -> StoredGrades:
        row = self._execute("SELECT grades FROM student_profiles WHERE user_id = %s", (user_id,), fetch="one")
        return dict(row[0] or {}) if row else {}

    def save_profile(
        self,
        user_id: str,
        student_id: Optional[str] = None,
        grades: Optional[Mapping[str, Mapping[str, Optional[float]]]] = None,
    ) -> None:
        grades_json = Json({s: dict(r) for s, r in grades.items()}) if grades is not None else None
        self._execute(
            """
            INSERT INTO student_profiles (user_id, student_id, grades)
            VALUES (%s, %s, COALESCE(%s, '{}'::jsonb))
            ON CONFLICT (user_id) DO UPDATE SET
                student_id = COALESCE(EXCLUDED.student_id, student_profiles.student_id),
                grades = COALESCE(%s, student_profiles.grades)
            """,
            (user_id, student_id, grades_json, grades_json),
        )

    def set_verified(self, user_id: str, verified: bool) -> None:
        self._execute(
            """
            INSERT INTO student_profiles (user_id, is_verified) VALUES (%s, %s)
            ON CONFLICT (user_id) DO UPDATE SET is_verified = EXCLUDED.is_verified
            """,
            (user_id, verified),
        )

    def is_verified(self, user_id: str) -> bool:
        row = self._execute("SELECT is_verified FROM student_profiles WHERE user_id = %s", (user_id,), fetch="one")
        return bool(row[0]) if row else False
