from __future__ import annotations

import logging
from collections.abc import Mapping

import httpx
from sqlalchemy.orm import Session

from assignment_api.core.config import Settings
from assignment_api.core.metrics import observe_pool_notification
from assignment_api.services.assignment.targets import resolve_organization_targets

logger = logging.getLogger("assignment.engine")


def find_emptied_teams(
    *,
    teams_assigned_to: Mapping[int, str],
    remaining_team_ids: set[int],
    notification_team_ids: set[int],
) -> list[tuple[int, str]]:
    emptied = [
        (team_id, title)
        for team_id, title in teams_assigned_to.items()
        if team_id not in remaining_team_ids
    ]
    if notification_team_ids:
        emptied = [(team_id, title) for team_id, title in emptied if team_id in notification_team_ids]
    return emptied


def notify_if_all_assigned(
    *,
    session: Session,
    organization_id: int,
    teams_assigned_to: Mapping[int, str],
    http_client: httpx.Client,
    settings: Settings,
) -> list[str]:
    """POST once per team whose pool was drained. Never raises.

    Returns the titles of teams that were successfully notified.
    """
    url = settings.ASSIGNMENT_COMPLETE_NOTIFICATION_URL
    if not url:
        logger.debug(
            "not checking if assignments are available: "
            "ASSIGNMENT_COMPLETE_NOTIFICATION_URL is unset"
        )
        return []

    try:
        targets = resolve_organization_targets(session=session, organization_id=organization_id)
    except Exception:
        logger.exception("could not resolve assignment targets for organization %s", organization_id)
        observe_pool_notification(result="error")
        return []

    emptied = find_emptied_teams(
        teams_assigned_to=teams_assigned_to,
        remaining_team_ids={t.team_id for t in targets},
        notification_team_ids=settings.notification_team_ids,
    )

    notified: list[str] = []
    for team_id, title in emptied:
        try:
            response = http_client.post(
                url, json={"team": title}, timeout=settings.WEBHOOK_TIMEOUT_SECONDS
            )
            response.raise_for_status()
        except httpx.HTTPError as e:
            logger.error("assignment complete notification for team %s failed: %s", team_id, e)
            observe_pool_notification(result="error")
            continue
        observe_pool_notification(result="sent")
        notified.append(title)

    if notified:
        logger.info(
            "notified pool exhaustion for organization %s teams %s", organization_id, notified
        )
    return notified
