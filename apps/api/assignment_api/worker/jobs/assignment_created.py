from __future__ import annotations

import logging

from sqlalchemy import text
from sqlalchemy.orm import Session

from assignment_api.services.audit import log_event
from assignment_api.worker.errors import PermanentJobError

logger = logging.getLogger("assignment.worker")


def assignment_created(*, session: Session, payload: dict) -> None:
    try:
        assignment_id = int(payload["assignment_id"])
    except (KeyError, TypeError, ValueError) as e:
        raise PermanentJobError(f"invalid assignment_created payload: {payload!r}") from e

    row = session.execute(
        text(
            """
            SELECT a.id, a.user_id, a.campaign_id, c.organization_id
            FROM assignments AS a
            JOIN campaigns AS c ON c.id = a.campaign_id
            WHERE a.id = :id
            """
        ),
        {"id": assignment_id},
    ).mappings().fetchone()
    if row is None:
        # Assignment or campaign deleted since the job was queued.
        return

    log_event(
        session=session,
        organization_id=int(row["organization_id"]),
        actor_user_id=int(row["user_id"]),
        event_type="assignment.created",
        event_data={"assignment_id": assignment_id, "campaign_id": int(row["campaign_id"])},
    )
    logger.info(
        "assignment %s created for user %s on campaign %s",
        assignment_id,
        row["user_id"],
        row["campaign_id"],
    )
