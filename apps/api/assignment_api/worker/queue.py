from __future__ import annotations

import json
from datetime import datetime

from sqlalchemy import text
from sqlalchemy.orm import Session

from assignment_api.models.enums import JobType


def enqueue_job(
    *,
    session: Session,
    job_type: JobType,
    organization_id: int | None,
    payload: dict,
    dedupe_key: str | None = None,
    run_at: datetime | None = None,
    max_attempts: int = 25,
) -> int | None:
    """Insert a job in the caller's transaction; it becomes visible on commit.

    Returns None when a queued/running job with the same dedupe key exists.
    """
    sql = text(
        """
        INSERT INTO bg_jobs (
          organization_id,
          type,
          status,
          run_at,
          attempts,
          max_attempts,
          dedupe_key,
          payload
        )
        VALUES (
          :organization_id,
          :type,
          'queued',
          COALESCE(:run_at, now()),
          0,
          :max_attempts,
          :dedupe_key,
          CAST(:payload AS jsonb)
        )
        ON CONFLICT DO NOTHING
        RETURNING id
        """
    )
    res = session.execute(
        sql,
        {
            "organization_id": organization_id,
            "type": job_type.value,
            "run_at": run_at,
            "max_attempts": max_attempts,
            "dedupe_key": dedupe_key,
            "payload": json.dumps(payload, separators=(",", ":"), sort_keys=True),
        },
    ).fetchone()
    if res is None:
        return None
    return int(res[0])
