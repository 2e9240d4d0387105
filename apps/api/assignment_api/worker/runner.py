from __future__ import annotations

import logging
import socket
import time
from dataclasses import dataclass

from sqlalchemy import text
from sqlalchemy.orm import Session

from assignment_api.db.session import get_sessionmaker
from assignment_api.models.enums import JobStatus, JobType
from assignment_api.worker.errors import PermanentJobError
from assignment_api.worker.handlers import handle_job

logger = logging.getLogger("assignment.worker")


@dataclass(frozen=True)
class WorkerConfig:
    poll_interval_seconds: float = 0.5
    max_backoff_seconds: float = 60.0
    worker_id: str = socket.gethostname()


def run_worker_forever(config: WorkerConfig) -> None:
    logger.info("worker %s polling for jobs", config.worker_id)
    while True:
        ran = run_one_job(config=config)
        if not ran:
            time.sleep(config.poll_interval_seconds)


def run_one_job(*, config: WorkerConfig) -> bool:
    session = get_sessionmaker()()
    try:
        job = _claim_next_job(session=session, worker_id=config.worker_id)
        if job is None:
            session.commit()
            return False
        # Release the claim row lock before running the handler.
        session.commit()

        job_id = int(job["id"])
        job_type = JobType(job["type"])
        try:
            handle_job(session=session, job_id=job_id, job_type=job_type, payload=job["payload"])
        except PermanentJobError as e:
            session.rollback()
            logger.error("job %s (%s) failed permanently: %s", job_id, job_type.value, e)
            _mark_failed(session=session, config=config, job_id=job_id, error=str(e), permanent=True)
        except Exception as e:
            session.rollback()
            logger.warning("job %s (%s) failed: %s", job_id, job_type.value, e)
            _mark_failed(session=session, config=config, job_id=job_id, error=str(e), permanent=False)
        else:
            _mark_succeeded(session=session, job_id=job_id)

        session.commit()
        return True
    finally:
        session.close()


def _claim_next_job(*, session: Session, worker_id: str) -> dict | None:
    sql = text(
        """
        WITH next_job AS (
          SELECT id
          FROM bg_jobs
          WHERE status = 'queued'
            AND run_at <= now()
          ORDER BY run_at ASC, id ASC
          FOR UPDATE SKIP LOCKED
          LIMIT 1
        )
        UPDATE bg_jobs
        SET status = 'running',
            locked_at = now(),
            locked_by = :worker_id
        WHERE id IN (SELECT id FROM next_job)
        RETURNING id, organization_id, type, payload, attempts, max_attempts
        """
    )
    row = session.execute(sql, {"worker_id": worker_id}).mappings().fetchone()
    if row is None:
        return None
    return dict(row)


def _mark_succeeded(*, session: Session, job_id: int) -> None:
    session.execute(
        text("UPDATE bg_jobs SET status = :status, last_error = NULL WHERE id = :id"),
        {"id": job_id, "status": JobStatus.succeeded.value},
    )


def _mark_failed(
    *,
    session: Session,
    config: WorkerConfig,
    job_id: int,
    error: str,
    permanent: bool,
) -> None:
    row = (
        session.execute(
            text("SELECT attempts, max_attempts FROM bg_jobs WHERE id = :id FOR UPDATE"),
            {"id": job_id},
        )
        .mappings()
        .fetchone()
    )
    if row is None:
        return
    attempts = int(row["attempts"]) + 1

    if permanent or attempts >= int(row["max_attempts"]):
        session.execute(
            text(
                """
                UPDATE bg_jobs
                SET status = :status,
                    attempts = :attempts,
                    last_error = :error
                WHERE id = :id
                """
            ),
            {"id": job_id, "status": JobStatus.failed.value, "attempts": attempts, "error": error},
        )
        return

    backoff_seconds = min(config.max_backoff_seconds, 0.5 * (2 ** min(attempts, 8)))
    session.execute(
        text(
            """
            UPDATE bg_jobs
            SET status = :status,
                attempts = :attempts,
                last_error = :error,
                run_at = now() + make_interval(secs => :backoff_seconds)
            WHERE id = :id
            """
        ),
        {
            "id": job_id,
            "status": JobStatus.queued.value,
            "attempts": attempts,
            "error": error,
            "backoff_seconds": backoff_seconds,
        },
    )
