from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from assignment_api.core.deps import OrgContext, require_min_role, require_org
from assignment_api.db.session import get_session
from assignment_api.models.enums import OrganizationRole
from assignment_api.schemas.assignments import AssignmentTargetOut, MyAssignmentTargetsResponse
from assignment_api.services.assignment.targets import (
    resolve_organization_targets,
    resolve_targets,
)

router = APIRouter(prefix="/assignment-targets", tags=["assignment-targets"])


@router.get("/mine", response_model=MyAssignmentTargetsResponse)
def assignment_targets_mine(
    org: OrgContext = Depends(require_org), session: Session = Depends(get_session)
) -> MyAssignmentTargetsResponse:
    targets = resolve_targets(
        session=session, user_id=org.user.id, organization_id=org.organization_id
    )
    return MyAssignmentTargetsResponse(
        texts_available=bool(targets),
        targets=[AssignmentTargetOut.model_validate(t) for t in targets],
    )


@router.get("", response_model=list[AssignmentTargetOut])
def assignment_targets_list(
    org: OrgContext = Depends(require_min_role(OrganizationRole.supervolunteer)),
    session: Session = Depends(get_session),
) -> list[AssignmentTargetOut]:
    targets = resolve_organization_targets(session=session, organization_id=org.organization_id)
    return [AssignmentTargetOut.model_validate(t) for t in targets]
