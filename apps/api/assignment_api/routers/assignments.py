from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from assignment_api.core.deps import OrgContext, require_csrf_header, require_org
from assignment_api.db.session import get_session
from assignment_api.schemas.assignments import FindNewContactsRequest, FindNewContactsResponse
from assignment_api.services.assignment.dynamic import find_new_campaign_contact

router = APIRouter(
    prefix="/assignments", tags=["assignments"], dependencies=[Depends(require_csrf_header)]
)


@router.post("/{assignment_id}/find-new-contacts", response_model=FindNewContactsResponse)
def assignments_find_new_contacts(
    assignment_id: int,
    payload: FindNewContactsRequest | None = None,
    org: OrgContext = Depends(require_org),
    session: Session = Depends(get_session),
) -> FindNewContactsResponse:
    found = find_new_campaign_contact(
        session=session,
        assignment_id=assignment_id,
        user_id=org.user.id,
        organization_id=org.organization_id,
        number_contacts=payload.number_contacts if payload else None,
    )
    return FindNewContactsResponse(found=found)
