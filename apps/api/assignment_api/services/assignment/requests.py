from __future__ import annotations

import logging

import httpx
from fastapi import HTTPException, status
from sqlalchemy import func, select, text
from sqlalchemy.orm import Session

from assignment_api.core.config import Settings
from assignment_api.core.metrics import observe_assignment_request
from assignment_api.core.security import token_authorization_header
from assignment_api.db.session import separate_transaction
from assignment_api.models.enums import AssignmentRequestStatus, OrganizationRole
from assignment_api.models.identity import User
from assignment_api.models.requests import AssignmentRequest
from assignment_api.services.assignment.distribution import give_user_more_texts
from assignment_api.services.assignment.errors import (
    AutoassignError,
    ExternalServiceError,
    NoEligibleWorkError,
)
from assignment_api.services.assignment.targets import texts_available
from assignment_api.services.audit import log_event
from assignment_api.services.authz import require_role

logger = logging.getLogger("assignment.engine")

RESULT_CREATED = "Created"
RESULT_NO_TEXTS = "No texts available at the moment"


def create_assignment_request(
    *,
    session: Session,
    http_client: httpx.Client,
    settings: Settings,
    user: User,
    organization_id: int,
    amount: int,
    preferred_team_id: int | None,
    email: str | None = None,
) -> str:
    if amount <= 0:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_CONTENT, detail="count must be positive"
        )

    if not texts_available(session=session, user_id=user.id, organization_id=organization_id):
        session.rollback()
        return RESULT_NO_TEXTS

    req = AssignmentRequest(
        organization_id=organization_id,
        user_id=user.id,
        amount=amount,
        preferred_team_id=preferred_team_id,
    )
    session.add(req)
    session.flush()
    request_id = req.id
    session.commit()
    observe_assignment_request(status=AssignmentRequestStatus.pending.value)

    if not settings.ASSIGNMENT_REQUESTED_URL:
        return RESULT_CREATED

    try:
        response = http_client.post(
            settings.ASSIGNMENT_REQUESTED_URL,
            json={"count": amount, "email": email or user.email},
            headers=token_authorization_header(settings.ASSIGNMENT_REQUESTED_TOKEN),
            timeout=settings.WEBHOOK_TIMEOUT_SECONDS,
        )
        response.raise_for_status()
    except Exception as e:
        logger.error("assignment requested webhook failed for request %s: %s", request_id, e)
        session.execute(
            text("DELETE FROM assignment_requests WHERE id = :id"), {"id": request_id}
        )
        session.commit()
        raise ExternalServiceError(_webhook_error_message(e)) from e

    logger.debug("assignment requested webhook accepted request %s", request_id)
    return RESULT_CREATED


def _webhook_error_message(error: Exception) -> str:
    if isinstance(error, httpx.HTTPStatusError):
        try:
            body = error.response.json()
        except ValueError:
            body = None
        if isinstance(body, dict) and body.get("message"):
            return str(body["message"])
        return f"Assignment service responded with {error.response.status_code}"
    return str(error) or error.__class__.__name__


def list_assignment_requests(
    *,
    session: Session,
    organization_id: int,
    status_filter: AssignmentRequestStatus | None,
) -> list[AssignmentRequest]:
    stmt = select(AssignmentRequest).where(AssignmentRequest.organization_id == organization_id)
    if status_filter is not None:
        stmt = stmt.where(AssignmentRequest.status == status_filter)
    return list(
        session.execute(stmt.order_by(AssignmentRequest.created_at.asc(), AssignmentRequest.id.asc()))
        .scalars()
        .all()
    )


def count_pending_assignment_requests(*, session: Session, organization_id: int) -> int:
    return int(
        session.execute(
            select(func.count())
            .select_from(AssignmentRequest)
            .where(
                AssignmentRequest.organization_id == organization_id,
                AssignmentRequest.status == AssignmentRequestStatus.pending,
            )
        ).scalar_one()
    )


def _load_request_for_update(*, session: Session, request_id: int) -> AssignmentRequest:
    req = (
        session.execute(
            select(AssignmentRequest).where(AssignmentRequest.id == request_id).with_for_update()
        )
        .scalars()
        .first()
    )
    if req is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail="Assignment request not found"
        )
    return req


def _require_pending(req: AssignmentRequest) -> None:
    if req.status != AssignmentRequestStatus.pending:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Assignment request is already {req.status.value}",
        )


def approve_assignment_request(*, session: Session, request_id: int, approver_id: int) -> int:
    """Distribute the requested amount and mark the request approved.

    Returns the number of contacts handed out; 0 when no work was available, in
    which case the request ends up rejected.
    """
    req = _load_request_for_update(session=session, request_id=request_id)
    require_role(
        session=session,
        user_id=approver_id,
        organization_id=req.organization_id,
        min_role=OrganizationRole.supervolunteer,
    )
    _require_pending(req)

    try:
        result = give_user_more_texts(
            session=session,
            user_id=req.user_id,
            organization_id=req.organization_id,
            count=req.amount,
            preferred_team_id=req.preferred_team_id,
        )
    except NoEligibleWorkError:
        session.rollback()
        _mark_rejected(request_id=request_id, actor_user_id=approver_id)
        return 0

    req.status = AssignmentRequestStatus.approved
    req.approved_by_user_id = approver_id
    log_event(
        session=session,
        organization_id=req.organization_id,
        actor_user_id=approver_id,
        event_type="assignment_request.approved",
        event_data={"assignment_request_id": req.id, "number_assigned": result.total_claimed},
    )
    session.commit()
    observe_assignment_request(status=AssignmentRequestStatus.approved.value)
    return result.total_claimed


def reject_assignment_request(*, session: Session, request_id: int, approver_id: int) -> bool:
    req = _load_request_for_update(session=session, request_id=request_id)
    require_role(
        session=session,
        user_id=approver_id,
        organization_id=req.organization_id,
        min_role=OrganizationRole.supervolunteer,
    )
    _require_pending(req)

    req.status = AssignmentRequestStatus.rejected
    req.approved_by_user_id = approver_id
    log_event(
        session=session,
        organization_id=req.organization_id,
        actor_user_id=approver_id,
        event_type="assignment_request.rejected",
        event_data={"assignment_request_id": req.id},
    )
    session.commit()
    observe_assignment_request(status=AssignmentRequestStatus.rejected.value)
    return True


def fulfill_pending_request_for(*, session: Session, external_id: str) -> int:
    """Fulfill the newest-organization pending request of a user known by external id."""
    user = session.execute(select(User).where(User.external_id == external_id)).scalars().first()
    if user is None:
        raise AutoassignError(f"No user found with id {external_id}")

    req = (
        session.execute(
            select(AssignmentRequest)
            .where(
                AssignmentRequest.user_id == user.id,
                AssignmentRequest.status == AssignmentRequestStatus.pending,
            )
            # The external service is not organization aware.
            .order_by(AssignmentRequest.organization_id.desc(), AssignmentRequest.id.asc())
            .limit(1)
            .with_for_update(skip_locked=True)
        )
        .scalars()
        .first()
    )
    if req is None:
        raise AutoassignError(f"No pending request exists for {external_id}")

    request_id = req.id
    try:
        result = give_user_more_texts(
            session=session,
            user_id=user.id,
            organization_id=req.organization_id,
            count=req.amount,
            preferred_team_id=req.preferred_team_id,
        )
        req.status = AssignmentRequestStatus.approved
        session.commit()
    except Exception as e:
        logger.info(
            "failed to give user %s more texts, rejecting request %s: %s",
            external_id,
            request_id,
            e,
        )
        session.rollback()
        _mark_rejected(request_id=request_id, actor_user_id=None)
        raise AutoassignError(str(e), is_fatal=not isinstance(e, NoEligibleWorkError)) from e

    observe_assignment_request(status=AssignmentRequestStatus.approved.value)
    return result.total_claimed


def _mark_rejected(*, request_id: int, actor_user_id: int | None) -> None:
    # Separate transaction so the rejection survives the distribution rollback.
    with separate_transaction() as session:
        session.execute(
            text(
                """
                UPDATE assignment_requests
                SET status = 'rejected',
                    approved_by_user_id = COALESCE(:actor_user_id, approved_by_user_id)
                WHERE id = :id AND status = 'pending'
                """
            ),
            {"id": request_id, "actor_user_id": actor_user_id},
        )
    observe_assignment_request(status=AssignmentRequestStatus.rejected.value)
