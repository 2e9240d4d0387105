from __future__ import annotations

from sqlalchemy.orm import Session

from assignment_api.models.enums import JobType
from assignment_api.worker.jobs.assignment_created import assignment_created
from assignment_api.worker.jobs.assignment_pool_check import assignment_pool_check


def handle_job(*, session: Session, job_id: int, job_type: JobType, payload: dict) -> None:
    _ = job_id
    if job_type == JobType.assignment_created:
        assignment_created(session=session, payload=payload)
        return
    if job_type == JobType.assignment_pool_check:
        assignment_pool_check(session=session, payload=payload)
        return

    raise NotImplementedError(f"Job type not implemented: {job_type.value}")
