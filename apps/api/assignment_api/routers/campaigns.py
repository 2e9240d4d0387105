from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from assignment_api.core.deps import OrgContext, require_csrf_header, require_min_role
from assignment_api.db.session import get_session
from assignment_api.models.enums import OrganizationRole
from assignment_api.schemas.assignments import ReleaseContactsRequest, ReleaseContactsResponse
from assignment_api.services.assignment.release import release_contacts

router = APIRouter(prefix="/campaigns", tags=["campaigns"], dependencies=[Depends(require_csrf_header)])


@router.post("/{campaign_id}/release-contacts", response_model=ReleaseContactsResponse)
def campaigns_release_contacts(
    campaign_id: int,
    payload: ReleaseContactsRequest,
    org: OrgContext = Depends(require_min_role(OrganizationRole.admin)),
    session: Session = Depends(get_session),
) -> ReleaseContactsResponse:
    message = release_contacts(
        session=session,
        organization_id=org.organization_id,
        actor_user_id=org.user.id,
        campaign_id=campaign_id,
        target=payload.target,
        age_in_hours=payload.age_in_hours,
    )
    return ReleaseContactsResponse(message=message)
