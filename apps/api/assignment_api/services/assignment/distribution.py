from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta

from sqlalchemy.orm import Session

from assignment_api.core.config import get_settings
from assignment_api.core.metrics import observe_distribution
from assignment_api.models.enums import JobType
from assignment_api.services.assignment.claims import claim_contacts
from assignment_api.services.assignment.errors import NoEligibleWorkError
from assignment_api.services.assignment.targets import AssignmentTarget, resolve_targets
from assignment_api.worker.queue import enqueue_job

logger = logging.getLogger("assignment.engine")


@dataclass
class DistributionResult:
    total_claimed: int = 0
    # team id -> title, in the order teams were first drawn from.
    teams_assigned_to: dict[int, str] = field(default_factory=dict)


def _cap_left(target: AssignmentTarget, claimed_by_team: dict[int, int]) -> int | None:
    if not target.max_request_count:
        return None
    return target.max_request_count - claimed_by_team.get(target.team_id, 0)


def _team_capped(target: AssignmentTarget, claimed_by_team: dict[int, int]) -> bool:
    cap_left = _cap_left(target, claimed_by_team)
    return cap_left is not None and cap_left <= 0


def give_user_more_texts(
    *,
    session: Session,
    user_id: int,
    organization_id: int,
    count: int,
    preferred_team_id: int | None = None,
) -> DistributionResult:
    """Hand up to `count` contacts to the user across targets, in rank order.

    Everything happens in the caller's transaction; the caller commits. Raises
    NoEligibleWorkError when not a single contact could be claimed.
    """
    result = DistributionResult()
    claimed_by_team: dict[int, int] = {}
    remaining = count

    while remaining > 0:
        # Targets are re-resolved each round: a claim may drain a campaign.
        targets = [
            t
            for t in resolve_targets(session=session, user_id=user_id, organization_id=organization_id)
            if not _team_capped(t, claimed_by_team)
        ]
        if not targets:
            break

        target = next((t for t in targets if t.team_id == preferred_team_id), targets[0])
        cap_left = _cap_left(target, claimed_by_team)
        wanted = remaining if cap_left is None else min(remaining, cap_left)

        claim = claim_contacts(
            session=session,
            campaign_id=target.campaign_id,
            assignment_type=target.assignment_type,
            user_id=user_id,
            escalation_tag_ids=target.escalation_tag_ids,
            count_wanted=wanted,
        )
        if claim.claimed_count == 0:
            break

        result.teams_assigned_to.setdefault(target.team_id, target.team_title)
        claimed_by_team[target.team_id] = claimed_by_team.get(target.team_id, 0) + claim.claimed_count
        result.total_claimed += claim.claimed_count
        remaining -= claim.claimed_count

    if result.total_claimed == 0:
        observe_distribution(outcome="no_work")
        raise NoEligibleWorkError()

    _schedule_pool_check(
        session=session,
        organization_id=organization_id,
        teams_assigned_to=result.teams_assigned_to,
    )
    observe_distribution(outcome="fulfilled" if remaining <= 0 else "partial")
    logger.info(
        "gave user %s %s/%s texts in organization %s from teams %s",
        user_id,
        result.total_claimed,
        count,
        organization_id,
        sorted(result.teams_assigned_to),
    )
    return result


def _schedule_pool_check(
    *, session: Session, organization_id: int, teams_assigned_to: dict[int, str]
) -> None:
    if not teams_assigned_to:
        return
    # Delay lets the committed assignments reach readers before pools are re-checked.
    delay = get_settings().ASSIGNMENT_COMPLETE_NOTIFICATION_DELAY_SECONDS
    enqueue_job(
        session=session,
        job_type=JobType.assignment_pool_check,
        organization_id=organization_id,
        payload={
            "organization_id": organization_id,
            "teams": [[team_id, title] for team_id, title in teams_assigned_to.items()],
        },
        run_at=datetime.now(UTC) + timedelta(seconds=max(0.0, delay)),
    )
