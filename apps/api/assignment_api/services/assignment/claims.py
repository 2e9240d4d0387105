from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass

from sqlalchemy import text
from sqlalchemy.orm import Session

from assignment_api.core.metrics import observe_contacts_claimed
from assignment_api.models.enums import AssignmentType, JobType
from assignment_api.worker.queue import enqueue_job

logger = logging.getLogger("assignment.engine")


@dataclass(frozen=True)
class ClaimResult:
    claimed_count: int
    assignment_id: int
    assignment_created: bool


def find_or_create_assignment(
    *, session: Session, user_id: int, campaign_id: int
) -> tuple[int, bool]:
    created_id = session.execute(
        text(
            """
            INSERT INTO assignments (user_id, campaign_id)
            VALUES (:user_id, :campaign_id)
            ON CONFLICT (user_id, campaign_id) DO NOTHING
            RETURNING id
            """
        ),
        {"user_id": user_id, "campaign_id": campaign_id},
    ).scalar_one_or_none()
    if created_id is not None:
        return int(created_id), True

    existing_id = session.execute(
        text(
            """
            SELECT id
            FROM assignments
            WHERE user_id = :user_id AND campaign_id = :campaign_id
            """
        ),
        {"user_id": user_id, "campaign_id": campaign_id},
    ).scalar_one()
    return int(existing_id), False


def claim_contacts(
    *,
    session: Session,
    campaign_id: int,
    assignment_type: AssignmentType,
    user_id: int,
    escalation_tag_ids: Iterable[int] = (),
    count_wanted: int,
    dynamic_pool: bool = False,
) -> ClaimResult:
    """Attach up to `count_wanted` pooled contacts of one campaign to the user.

    Runs in the caller's transaction. Rows locked by a concurrent claimer are
    skipped, so two sessions never receive the same contact. With `dynamic_pool`
    the campaign's own unsent contacts are drawn whether or not the campaign
    is open to autoassignment.
    """
    assignment_id, created = find_or_create_assignment(
        session=session, user_id=user_id, campaign_id=campaign_id
    )
    if created:
        _enqueue_assignment_created(
            session=session,
            assignment_id=assignment_id,
            user_id=user_id,
            campaign_id=campaign_id,
        )

    if count_wanted <= 0:
        return ClaimResult(claimed_count=0, assignment_id=assignment_id, assignment_created=created)

    tag_ids = sorted(set(escalation_tag_ids))
    params: dict = {
        "campaign_id": campaign_id,
        "count": count_wanted,
        "assignment_id": assignment_id,
    }
    if dynamic_pool:
        pool_filter = """(
              cc.archived = false
              AND cc.is_opted_out = false
              AND cc.message_status = 'needsMessage'
            )"""
    elif assignment_type == AssignmentType.UNSENT:
        pool_filter = (
            "cc.id IN (SELECT id FROM assignable_needs_message WHERE campaign_id = :campaign_id)"
        )
    elif tag_ids:
        # Contained in the claiming team's escalation tags, not the union over all of the user's teams.
        pool_filter = """(
              cc.id IN (SELECT id FROM assignable_needs_reply WHERE campaign_id = :campaign_id)
              OR cc.id IN (
                SELECT id
                FROM assignable_needs_reply_with_escalation_tags
                WHERE campaign_id = :campaign_id
                  AND applied_escalation_tags <@ CAST(:tag_ids AS integer[])
              )
            )"""
        params["tag_ids"] = tag_ids
    else:
        pool_filter = (
            "cc.id IN (SELECT id FROM assignable_needs_reply WHERE campaign_id = :campaign_id)"
        )

    # The outer `assignment_id IS NULL` is re-evaluated against the locked row version.
    sql = text(
        f"""
        WITH matching_contact AS (
          SELECT cc.id
          FROM campaign_contacts AS cc
          WHERE cc.campaign_id = :campaign_id
            AND cc.assignment_id IS NULL
            AND {pool_filter}
          ORDER BY cc.id
          LIMIT :count
          FOR UPDATE OF cc SKIP LOCKED
        )
        UPDATE campaign_contacts AS target_contact
        SET assignment_id = :assignment_id
        FROM matching_contact
        WHERE target_contact.id = matching_contact.id
          AND target_contact.assignment_id IS NULL
        RETURNING target_contact.id
        """
    )
    claimed = len(session.execute(sql, params).fetchall())

    observe_contacts_claimed(assignment_type=assignment_type.value, count=claimed)
    logger.debug(
        "claimed %s/%s %s contacts on campaign %s for assignment %s",
        claimed,
        count_wanted,
        assignment_type.value,
        campaign_id,
        assignment_id,
    )
    return ClaimResult(claimed_count=claimed, assignment_id=assignment_id, assignment_created=created)


def _enqueue_assignment_created(
    *, session: Session, assignment_id: int, user_id: int, campaign_id: int
) -> None:
    organization_id = session.execute(
        text("SELECT organization_id FROM campaigns WHERE id = :campaign_id"),
        {"campaign_id": campaign_id},
    ).scalar_one()
    enqueue_job(
        session=session,
        job_type=JobType.assignment_created,
        organization_id=int(organization_id),
        payload={
            "assignment_id": assignment_id,
            "user_id": user_id,
            "campaign_id": campaign_id,
        },
        dedupe_key=f"assignment_created:{assignment_id}",
    )
