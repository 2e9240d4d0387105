from __future__ import annotations

import logging
from datetime import UTC, datetime, timedelta

from fastapi import HTTPException, status
from sqlalchemy import text
from sqlalchemy.orm import Session

from assignment_api.models.enums import AssignmentType, MessageStatus
from assignment_api.services.audit import log_event

logger = logging.getLogger("assignment.engine")

_RELEASE_STATUS = {
    AssignmentType.UNSENT: MessageStatus.needsMessage,
    AssignmentType.UNREPLIED: MessageStatus.needsResponse,
}


def release_contacts(
    *,
    session: Session,
    organization_id: int,
    actor_user_id: int,
    campaign_id: int,
    target: AssignmentType,
    age_in_hours: float | None = None,
) -> str:
    """Return assigned contacts of one status to the pool so they can be handed out again."""
    is_archived = session.execute(
        text(
            """
            SELECT is_archived
            FROM campaigns
            WHERE id = :campaign_id AND organization_id = :organization_id
            """
        ),
        {"campaign_id": campaign_id, "organization_id": organization_id},
    ).scalar_one_or_none()
    if is_archived is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Campaign not found")

    params: dict = {
        "campaign_id": campaign_id,
        "message_status": _RELEASE_STATUS[target].value,
        "archived": bool(is_archived),
    }
    age_clause = ""
    if age_in_hours:
        age_clause = "AND cc.updated_at < :updated_before"
        params["updated_before"] = datetime.now(UTC) - timedelta(hours=age_in_hours)

    # Escalated conversations stay with whoever holds them.
    released = session.execute(
        text(
            f"""
            UPDATE campaign_contacts AS cc
            SET assignment_id = NULL
            WHERE cc.campaign_id = :campaign_id
              AND cc.assignment_id IS NOT NULL
              AND cc.archived = :archived
              AND cc.is_opted_out = false
              AND cc.message_status = :message_status
              AND NOT EXISTS (
                SELECT 1
                FROM campaign_contact_tags AS cct
                JOIN tags AS t ON t.id = cct.tag_id
                WHERE cct.campaign_contact_id = cc.id
                  AND t.is_assignable = false
              )
              {age_clause}
            """
        ),
        params,
    ).rowcount

    log_event(
        session=session,
        organization_id=organization_id,
        actor_user_id=actor_user_id,
        event_type="campaign.contacts_released",
        event_data={
            "campaign_id": campaign_id,
            "target": target.value,
            "age_in_hours": age_in_hours,
            "released": released,
        },
    )
    session.commit()
    logger.info("released %s %s contacts on campaign %s", released, target.value, campaign_id)
    return f"Released {released} {_target_label(target)} messages for reassignment"


def _target_label(target: AssignmentType) -> str:
    return target.value.lower()
