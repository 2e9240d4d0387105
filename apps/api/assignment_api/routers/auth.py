from __future__ import annotations

from fastapi import APIRouter, Depends, Response
from sqlalchemy.orm import Session

from assignment_api.core.deps import require_csrf_header, require_session
from assignment_api.core.security import (
    clear_csrf_cookie,
    clear_session_cookie,
    new_random_token,
    set_csrf_cookie,
    set_session_cookie,
)
from assignment_api.db.session import get_session
from assignment_api.models.auth import AuthSession
from assignment_api.models.identity import User
from assignment_api.schemas.auth import CsrfTokenResponse, DevLoginRequest, LoginResponse
from assignment_api.services.audit import log_event
from assignment_api.services.auth.sessions import create_dev_session, revoke_session

router = APIRouter(prefix="/auth", tags=["auth"], dependencies=[Depends(require_csrf_header)])


@router.get("/csrf", response_model=CsrfTokenResponse)
def issue_csrf(response: Response) -> CsrfTokenResponse:
    token = new_random_token()
    set_csrf_cookie(response, token)
    response.headers["Cache-Control"] = "no-store"
    return CsrfTokenResponse(csrf_token=token)


@router.post("/dev/login", response_model=LoginResponse)
def dev_login(
    payload: DevLoginRequest, response: Response, session: Session = Depends(get_session)
) -> LoginResponse:
    token, auth_session, org, membership, user = create_dev_session(
        session=session,
        email=payload.email,
        organization_name=payload.organization_name,
        role=payload.role,
    )

    # Rotate CSRF on login so the token is always paired with a session.
    csrf = new_random_token()
    set_session_cookie(response, token)
    set_csrf_cookie(response, csrf)

    session.commit()
    response.headers["Cache-Control"] = "no-store"

    return LoginResponse(
        user=user,
        organization=org,
        role=membership.role,
        session=auth_session,
        csrf_token=csrf,
    )


@router.post("/logout")
def logout(
    response: Response,
    auth: tuple[AuthSession, User] = Depends(require_session),
    session: Session = Depends(get_session),
) -> dict[str, str]:
    auth_session, user = auth
    revoke_session(session=session, auth_session=auth_session, reason="logout")
    log_event(
        session=session,
        organization_id=auth_session.active_organization_id,
        actor_user_id=user.id,
        event_type="auth.logout",
    )
    session.commit()

    clear_session_cookie(response)
    clear_csrf_cookie(response)
    response.headers["Cache-Control"] = "no-store"
    return {"status": "ok"}
