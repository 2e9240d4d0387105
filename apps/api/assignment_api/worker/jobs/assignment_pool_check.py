from __future__ import annotations

from sqlalchemy.orm import Session

from assignment_api.core.config import get_settings
from assignment_api.core.http import build_http_client
from assignment_api.services.assignment.notifier import notify_if_all_assigned
from assignment_api.worker.errors import PermanentJobError


def assignment_pool_check(*, session: Session, payload: dict) -> None:
    try:
        organization_id = int(payload["organization_id"])
        teams_assigned_to = {int(team_id): str(title) for team_id, title in payload["teams"]}
    except (KeyError, TypeError, ValueError) as e:
        raise PermanentJobError(f"invalid assignment_pool_check payload: {payload!r}") from e

    with build_http_client() as http_client:
        notify_if_all_assigned(
            session=session,
            organization_id=organization_id,
            teams_assigned_to=teams_assigned_to,
            http_client=http_client,
            settings=get_settings(),
        )
