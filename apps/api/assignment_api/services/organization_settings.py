from __future__ import annotations

from fastapi import HTTPException, status
from sqlalchemy import select
from sqlalchemy.orm import Session

from assignment_api.models.identity import Organization
from assignment_api.services.assignment.config import TextRequestConfig, TextRequestType
from assignment_api.services.audit import log_event


def get_text_request_settings(*, session: Session, organization_id: int) -> TextRequestConfig:
    org = session.get(Organization, organization_id)
    if org is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Organization not found")
    return TextRequestConfig.from_features(org.features)


def update_text_request_settings(
    *,
    session: Session,
    organization_id: int,
    actor_user_id: int,
    updates: dict,
) -> TextRequestConfig:
    org = (
        session.execute(
            select(Organization).where(Organization.id == organization_id).with_for_update()
        )
        .scalars()
        .first()
    )
    if org is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Organization not found")

    current = TextRequestConfig.from_features(org.features)
    updated = TextRequestConfig(
        request_type=TextRequestType(updates.get("request_type", current.request_type)),
        general_enabled=bool(updates.get("general_enabled", current.general_enabled)),
        max_request_count=int(updates.get("max_request_count", current.max_request_count)),
    )

    # Reassign rather than mutate so the JSONB column is flagged dirty.
    org.features = {**(org.features or {}), **updated.to_features()}
    session.add(org)
    log_event(
        session=session,
        organization_id=organization_id,
        actor_user_id=actor_user_id,
        event_type="organization.text_request_settings_updated",
        event_data=updated.to_features(),
    )
    session.commit()
    return updated
