# main.py

import argparse
import json
import sys
import time
from pathlib import Path

from rich.console import Console
from rich.table import Table

from gradeshield.config import get_config
from gradeshield.exceptions import GradeShieldError
from gradeshield.logger import setup_logger
from gradeshield.service import VerificationService

console = Console(force_terminal=True)
logger = setup_logger()


def read_bytes(path):
    if not path:
        return None
    return Path(path).read_bytes()


def print_job(job):
    color = {"VERIFIED": "green", "PENDING": "yellow", "REJECTED": "red", "FAILED": "red"}.get(job.status.value, "white")
    console.print(f"[bold {color}]{job.status.value}[/] {job.message}")

    table = Table(title=f"Job {job.id}")
    table.add_column("Field")
    table.add_column("Value")
    table.add_row("Trust score", str(job.trust_score))
    table.add_row("Tampering", f"{job.tampering_probability}%" if job.tampering_probability is not None else "-")
    table.add_row("Frames/images", str(job.frames_analyzed))
    table.add_row("Processing time", f"{job.processing_time}s")
    if job.error_message:
        table.add_row("Error", job.error_message)
    console.print(table)

    if job.extracted_grades:
        grades = Table(title="Extracted grades")
        grades.add_column("Module")
        grades.add_column("Exam", justify="right")
        grades.add_column("TD", justify="right")
        for module, row in job.extracted_grades.items():
            grades.add_row(module, str(row.get("exam")), str(row.get("td")))
        console.print(grades)

    for issue in job.issues:
        console.print(f"  • {issue}")


def main():
    parser = argparse.ArgumentParser(description="GradeShield grade verification")
    sub = parser.add_subparsers(dest="command", required=True)

    serve = sub.add_parser("serve", help="Run the HTTP API")
    serve.add_argument("--host", default="0.0.0.0")
    serve.add_argument("--port", type=int, default=8000)

    code = sub.add_parser("issue-code", help="Issue a verification code for a user")
    code.add_argument("--user", required=True)

    profile = sub.add_parser("set-grades", help="Store self-reported grades for a user")
    profile.add_argument("--user", required=True)
    profile.add_argument("--grades", required=True, help='JSON file: {"<subject>": {"exam": x, "td": y}}')
    profile.add_argument("--student-id")

    shots = sub.add_parser("verify-screenshots", help="Verify TD/exam screenshots synchronously")
    shots.add_argument("--user", required=True)
    shots.add_argument("--code", required=True)
    shots.add_argument("--td")
    shots.add_argument("--exam")

    video = sub.add_parser("verify-video", help="Verify a screen recording synchronously")
    video.add_argument("--user", required=True)
    video.add_argument("--code", required=True)
    video.add_argument("--video", required=True)

    sub.add_parser("init-db", help="Create PostgreSQL tables")

    args = parser.parse_args()

    if args.command == "serve":
        import uvicorn
        logger.info(f"🛡️ GradeShield API on {args.host}:{args.port}")
        uvicorn.run("gradeshield.api:app", host=args.host, port=args.port)
        return

    config = get_config()
    service = VerificationService(config=config)
    start_time = time.perf_counter()

    try:
        if args.command == "issue-code":
            issued = service.issue_code(args.user)
            console.print(f"[bold]{issued.code}[/] valid until {issued.expires_at.isoformat()}")

        elif args.command == "set-grades":
            grades = json.loads(Path(args.grades).read_text(encoding="utf-8"))
            service.repository.save_profile(args.user, student_id=args.student_id, grades=grades)
            logger.info(f"✅ Stored {len(grades)} subjects for {args.user}")

        elif args.command == "verify-screenshots":
            job = service.submit_screenshots(args.user, args.code, read_bytes(args.td), read_bytes(args.exam))
            print_job(job)

        elif args.command == "verify-video":
            job = service.submit_video(args.user, args.code, read_bytes(args.video))
            print_job(job)

        elif args.command == "init-db":
            # Selecting the postgres backend creates the schema
            if config.storage_backend != "postgres":
                console.print("[yellow]STORAGE_BACKEND is not postgres, nothing to do[/]")
            else:
                logger.info("✅ Database schema ready")

    except GradeShieldError as e:
        console.print(f"[bold red]Rejected:[/] {e}")
        sys.exit(1)

    elapsed = time.perf_counter() - start_time
    logger.info(f"🎉 Done in {elapsed:.2f} seconds")


if __name__ == "__main__":
    main()
