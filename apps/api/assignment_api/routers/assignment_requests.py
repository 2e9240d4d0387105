from __future__ import annotations

import httpx
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from assignment_api.core.config import get_settings
from assignment_api.core.deps import OrgContext, require_csrf_header, require_min_role, require_org
from assignment_api.core.http import get_http_client
from assignment_api.db.session import get_session
from assignment_api.models.enums import AssignmentRequestStatus, OrganizationRole
from assignment_api.schemas.assignments import (
    ApproveResponse,
    AssignmentRequestCreate,
    AssignmentRequestCreateResponse,
    AssignmentRequestOut,
    PendingCountResponse,
    RejectResponse,
)
from assignment_api.services.assignment.requests import (
    approve_assignment_request,
    count_pending_assignment_requests,
    create_assignment_request,
    list_assignment_requests,
    reject_assignment_request,
)

router = APIRouter(
    prefix="/assignment-requests",
    tags=["assignment-requests"],
    dependencies=[Depends(require_csrf_header)],
)


@router.post("", response_model=AssignmentRequestCreateResponse)
def assignment_requests_create(
    payload: AssignmentRequestCreate,
    org: OrgContext = Depends(require_org),
    session: Session = Depends(get_session),
    http_client: httpx.Client = Depends(get_http_client),
) -> AssignmentRequestCreateResponse:
    result = create_assignment_request(
        session=session,
        http_client=http_client,
        settings=get_settings(),
        user=org.user,
        email=payload.email or org.user.email,
        organization_id=org.organization_id,
        amount=payload.count,
        preferred_team_id=payload.preferred_team_id,
    )
    return AssignmentRequestCreateResponse(result=result)


@router.get("", response_model=list[AssignmentRequestOut])
def assignment_requests_list(
    status_filter: AssignmentRequestStatus | None = Query(default=None, alias="status"),
    org: OrgContext = Depends(require_min_role(OrganizationRole.supervolunteer)),
    session: Session = Depends(get_session),
) -> list[AssignmentRequestOut]:
    return list_assignment_requests(
        session=session,
        organization_id=org.organization_id,
        status_filter=status_filter,
    )


@router.get("/pending-count", response_model=PendingCountResponse)
def assignment_requests_pending_count(
    org: OrgContext = Depends(require_min_role(OrganizationRole.supervolunteer)),
    session: Session = Depends(get_session),
) -> PendingCountResponse:
    return PendingCountResponse(
        count=count_pending_assignment_requests(session=session, organization_id=org.organization_id)
    )


@router.post("/{request_id}/approve", response_model=ApproveResponse)
def assignment_requests_approve(
    request_id: int,
    org: OrgContext = Depends(require_org),
    session: Session = Depends(get_session),
) -> ApproveResponse:
    # Role is checked against the request's own organization inside the service.
    number_assigned = approve_assignment_request(
        session=session, request_id=request_id, approver_id=org.user.id
    )
    return ApproveResponse(number_assigned=number_assigned)


@router.post("/{request_id}/reject", response_model=RejectResponse)
def assignment_requests_reject(
    request_id: int,
    org: OrgContext = Depends(require_org),
    session: Session = Depends(get_session),
) -> RejectResponse:
    rejected = reject_assignment_request(
        session=session, request_id=request_id, approver_id=org.user.id
    )
    return RejectResponse(rejected=rejected)
