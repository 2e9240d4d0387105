from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from assignment_api.core.deps import OrgContext, require_csrf_header, require_min_role, require_org
from assignment_api.db.session import get_session
from assignment_api.models.enums import OrganizationRole
from assignment_api.schemas.assignments import TextRequestSettingsOut, TextRequestSettingsUpdate
from assignment_api.services.assignment.config import TextRequestConfig
from assignment_api.services.organization_settings import (
    get_text_request_settings,
    update_text_request_settings,
)

router = APIRouter(
    prefix="/organization", tags=["organization"], dependencies=[Depends(require_csrf_header)]
)


def _to_out(config: TextRequestConfig) -> TextRequestSettingsOut:
    return TextRequestSettingsOut(
        request_type=config.request_type,
        general_enabled=config.general_enabled,
        max_request_count=config.max_request_count,
    )


@router.get("/text-request-settings", response_model=TextRequestSettingsOut)
def text_request_settings_get(
    org: OrgContext = Depends(require_org), session: Session = Depends(get_session)
) -> TextRequestSettingsOut:
    return _to_out(get_text_request_settings(session=session, organization_id=org.organization_id))


@router.put("/text-request-settings", response_model=TextRequestSettingsOut)
def text_request_settings_update(
    payload: TextRequestSettingsUpdate,
    org: OrgContext = Depends(require_min_role(OrganizationRole.admin)),
    session: Session = Depends(get_session),
) -> TextRequestSettingsOut:
    updated = update_text_request_settings(
        session=session,
        organization_id=org.organization_id,
        actor_user_id=org.user.id,
        updates=payload.model_dump(exclude_unset=True, exclude_none=True),
    )
    return _to_out(updated)
