from __future__ import annotations

import json

import httpx
import pytest
from sqlalchemy import text
from sqlalchemy.orm import Session

from assignment_api.models.enums import JobType
from assignment_api.services.assignment.distribution import give_user_more_texts
from assignment_api.worker.queue import enqueue_job
from assignment_api.worker.runner import WorkerConfig, run_one_job

CONFIG = WorkerConfig(worker_id="test-worker")


@pytest.fixture()
def empty_queue(db_session: Session) -> None:
    # The database is shared by the whole session; park anything other tests queued.
    db_session.execute(text("UPDATE bg_jobs SET status = 'cancelled' WHERE status = 'queued'"))
    db_session.commit()


def _job(session: Session, job_id: int) -> dict:
    row = session.execute(
        text("SELECT status::text AS status, attempts, last_error FROM bg_jobs WHERE id = :id"),
        {"id": job_id},
    ).mappings().one()
    return dict(row)


def test_idle_worker_reports_no_work(empty_queue) -> None:
    assert run_one_job(config=CONFIG) is False


def test_assignment_created_job_writes_audit_event(
    empty_queue, seed, db_session: Session
) -> None:
    org_id = seed.organization(features=seed.features())
    campaign_id = seed.campaign(organization_id=org_id)
    seed.contacts(campaign_id=campaign_id, count=2)
    user_id = seed.texter(organization_id=org_id)
    seed.commit()

    give_user_more_texts(session=db_session, user_id=user_id, organization_id=org_id, count=1)
    db_session.commit()

    # The pool check is scheduled in the future, so only the created job is due.
    assert run_one_job(config=CONFIG) is True
    assert run_one_job(config=CONFIG) is False

    job = db_session.execute(
        text(
            """
            SELECT status::text AS status
            FROM bg_jobs
            WHERE organization_id = :org_id AND type = 'assignment_created'
            """
        ),
        {"org_id": org_id},
    ).scalar_one()
    assert job == "succeeded"

    events = db_session.execute(
        text(
            """
            SELECT actor_user_id, event_data
            FROM audit_events
            WHERE organization_id = :org_id AND event_type = 'assignment.created'
            """
        ),
        {"org_id": org_id},
    ).mappings().all()
    assert len(events) == 1
    assert events[0]["actor_user_id"] == user_id
    assert events[0]["event_data"]["campaign_id"] == campaign_id


def test_pool_check_job_notifies_drained_teams(
    empty_queue, seed, db_session: Session, settings_env, monkeypatch
) -> None:
    settings_env(ASSIGNMENT_COMPLETE_NOTIFICATION_URL="https://hooks.example.test/complete")
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={})

    monkeypatch.setattr(
        "assignment_api.worker.jobs.assignment_pool_check.build_http_client",
        lambda: httpx.Client(transport=httpx.MockTransport(handler)),
    )

    org_id = seed.organization(features=seed.features())
    seed.commit()
    job_id = enqueue_job(
        session=db_session,
        job_type=JobType.assignment_pool_check,
        organization_id=org_id,
        payload={"organization_id": org_id, "teams": [[-1, "General"]]},
    )
    db_session.commit()
    assert job_id is not None

    assert run_one_job(config=CONFIG) is True

    assert _job(db_session, job_id)["status"] == "succeeded"
    assert [json.loads(r.content) for r in seen] == [{"team": "General"}]


def test_invalid_payload_fails_permanently(empty_queue, db_session: Session) -> None:
    job_id = enqueue_job(
        session=db_session,
        job_type=JobType.assignment_pool_check,
        organization_id=None,
        payload={"teams": "not-a-list"},
    )
    db_session.commit()
    assert job_id is not None

    assert run_one_job(config=CONFIG) is True

    job = _job(db_session, job_id)
    assert job["status"] == "failed"
    assert job["attempts"] == 1
    assert "invalid assignment_pool_check payload" in job["last_error"]


def test_transient_failure_is_requeued_with_backoff(
    empty_queue, db_session: Session, monkeypatch
) -> None:
    def boom(*, session, payload):  # type: ignore[no-untyped-def]
        raise RuntimeError("database hiccup")

    monkeypatch.setattr("assignment_api.worker.handlers.assignment_created", boom)

    job_id = enqueue_job(
        session=db_session,
        job_type=JobType.assignment_created,
        organization_id=None,
        payload={"assignment_id": 1},
    )
    db_session.commit()
    assert job_id is not None

    assert run_one_job(config=CONFIG) is True

    job = _job(db_session, job_id)
    assert job["status"] == "queued"
    assert job["attempts"] == 1
    assert job["last_error"] == "database hiccup"
    due = db_session.execute(
        text("SELECT run_at > now() FROM bg_jobs WHERE id = :id"), {"id": job_id}
    ).scalar_one()
    assert due is True
