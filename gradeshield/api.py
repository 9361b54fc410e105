"""
FastAPI entrypoint for grade verification.

The caller's identity arrives in the X-User-Id header, set by the
authentication layer in front of this service. Submissions return 202
immediately with the job id; clients poll the status endpoint.
"""

from __future__ import annotations

from typing import Any, Optional

from fastapi import FastAPI, File, Form, Header, HTTPException, Request, UploadFile
from fastapi.responses import JSONResponse

from .exceptions import GradeShieldError, InputValidationError, JobNotFoundError
from .logger import get_logger
from .models import JobStatus
from .service import VerificationService

logger = get_logger(__name__)


def _user_id(x_user_id: Optional[str]) -> str:
    if not x_user_id or not x_user_id.strip():
        raise HTTPException(status_code=401, detail="Missing authenticated user")
    return x_user_id.strip()


async def _read(upload: Optional[UploadFile]) -> Optional[bytes]:
    if upload is None:
        return None
    data = await upload.read()
    return data or None


def _accepted(job) -> JSONResponse:
    body = {"jobId": job.id, "status": JobStatus.PROCESSING.value}
    if job.is_terminal:
        # Inline execution (no worker pool) already finished the job
        body = {"jobId": job.id, "status": job.status.value}
    return JSONResponse(status_code=202, content=body)


def create_app(service: Optional[VerificationService] = None) -> FastAPI:
    """
    Build the application.

    Args:
        service: Pre-built service (tests); by default a service with a
            worker pool is created on startup and stopped on shutdown
    """
    app = FastAPI(
        title="GradeShield",
        description="Grade authenticity verification from portal screenshots and screen recordings",
        version="1.0.0",
    )
    app.state.service = service

    @app.on_event("startup")
    def startup_event() -> None:
        if app.state.service is None:
            app.state.service = VerificationService.with_workers()
            logger.info("Verification service started")

    @app.on_event("shutdown")
    def shutdown_event() -> None:
        if app.state.service is not None:
            app.state.service.shutdown()

    @app.exception_handler(InputValidationError)
    async def input_error_handler(request: Request, exc: InputValidationError) -> JSONResponse:
        return JSONResponse(
            status_code=400,
            content={"status": JobStatus.REJECTED.value, "error": exc.message, "details": exc.details},
        )

    @app.exception_handler(JobNotFoundError)
    async def not_found_handler(request: Request, exc: JobNotFoundError) -> JSONResponse:
        return JSONResponse(status_code=404, content={"error": exc.message})

    @app.exception_handler(GradeShieldError)
    async def server_error_handler(request: Request, exc: GradeShieldError) -> JSONResponse:
        logger.error(f"Request failed: {exc}")
        return JSONResponse(status_code=500, content={"error": exc.message})

    @app.get("/health")
    def health() -> dict[str, Any]:
        svc = app.state.service
        return {"status": "ok", "workers": bool(svc and svc.pool and svc.pool.running)}

    @app.post("/api/grades/verify/code")
    def issue_code(x_user_id: Optional[str] = Header(None)) -> dict[str, Any]:
        code = app.state.service.issue_code(_user_id(x_user_id))
        return {"code": code.code, "expiresAt": code.expires_at.isoformat(), "ttlSeconds": code.ttl_seconds}

    @app.post("/api/grades/verify/screenshots", status_code=202)
    async def submit_screenshots(
        code: str = Form(""),
        tdScreenshot: Optional[UploadFile] = File(None),
        examScreenshot: Optional[UploadFile] = File(None),
        x_user_id: Optional[str] = Header(None),
    ) -> JSONResponse:
        user_id = _user_id(x_user_id)
        job = app.state.service.submit_screenshots(
            user_id,
            code,
            td_screenshot=await _read(tdScreenshot),
            exam_screenshot=await _read(examScreenshot),
        )
        return _accepted(job)

    @app.post("/api/grades/verify/video", status_code=202)
    async def submit_video(
        code: str = Form(""),
        video: Optional[UploadFile] = File(None),
        x_user_id: Optional[str] = Header(None),
    ) -> JSONResponse:
        user_id = _user_id(x_user_id)
        job = app.state.service.submit_video(user_id, code, await _read(video))
        return _accepted(job)

    @app.get("/api/grades/verify/status/{job_id}")
    def job_status(job_id: str, x_user_id: Optional[str] = Header(None)) -> dict[str, Any]:
        return app.state.service.get_status(_user_id(x_user_id), job_id).projection()

    @app.get("/api/grades/verify/status")
    def current_status(x_user_id: Optional[str] = Header(None)) -> dict[str, Any]:
        return app.state.service.get_status(_user_id(x_user_id)).projection()

    return app


app = create_app()
