from __future__ import annotations

from fastapi import HTTPException, status
from sqlalchemy import text
from sqlalchemy.orm import Session

from assignment_api.models.enums import AssignmentType
from assignment_api.services.assignment.claims import claim_contacts


def find_new_campaign_contact(
    *,
    session: Session,
    assignment_id: int,
    user_id: int,
    organization_id: int,
    number_contacts: int | None,
) -> bool:
    """Top up a dynamic-assignment campaign with fresh contacts for its owner."""
    row = (
        session.execute(
            text(
                """
                SELECT a.id, a.user_id, a.campaign_id, a.max_contacts,
                       c.use_dynamic_assignment
                FROM assignments AS a
                JOIN campaigns AS c ON c.id = a.campaign_id
                WHERE a.id = :assignment_id AND c.organization_id = :organization_id
                """
            ),
            {"assignment_id": assignment_id, "organization_id": organization_id},
        )
        .mappings()
        .fetchone()
    )
    if row is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Assignment not found")
    if int(row["user_id"]) != user_id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid assignment")

    max_contacts = row["max_contacts"]
    if not row["use_dynamic_assignment"] or max_contacts == 0:
        return False

    counts = (
        session.execute(
            text(
                """
                SELECT
                  count(*) AS total,
                  count(*) FILTER (
                    WHERE message_status = 'needsMessage' AND is_opted_out = false
                  ) AS unsent
                FROM campaign_contacts
                WHERE assignment_id = :assignment_id AND archived = false
                """
            ),
            {"assignment_id": assignment_id},
        )
        .mappings()
        .one()
    )

    wanted = number_contacts or 1
    if max_contacts and int(counts["total"]) + wanted > max_contacts:
        wanted = max_contacts - int(counts["total"])

    # Don't add more if they already hold that many unsent contacts.
    if wanted <= 0 or int(counts["unsent"]) >= wanted:
        return False

    result = claim_contacts(
        session=session,
        campaign_id=int(row["campaign_id"]),
        assignment_type=AssignmentType.UNSENT,
        user_id=user_id,
        count_wanted=wanted,
        dynamic_pool=True,
    )
    session.commit()
    return result.claimed_count > 0
