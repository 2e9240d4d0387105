from __future__ import annotations

from datetime import UTC, datetime, timedelta

from fastapi import HTTPException, status
from sqlalchemy import select
from sqlalchemy.orm import Session

from assignment_api.core.config import get_settings
from assignment_api.core.security import hash_session_token, new_random_token
from assignment_api.models.auth import AuthSession
from assignment_api.models.enums import OrganizationRole
from assignment_api.models.identity import Membership, Organization, User
from assignment_api.services.audit import log_event


def _normalize_email(email: str) -> str:
    return email.strip().lower()


def create_dev_session(
    *,
    session: Session,
    email: str,
    organization_name: str,
    role: OrganizationRole = OrganizationRole.admin,
) -> tuple[str, AuthSession, Organization, Membership, User]:
    settings = get_settings()
    if not settings.ALLOW_DEV_LOGIN:
        # Hide route behavior in prod rather than exposing an auth bypass.
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Not found")

    email_norm = _normalize_email(email)
    if "@" not in email_norm or " " in email_norm:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_CONTENT, detail="Invalid email"
        )

    org_name = organization_name.strip()
    if not org_name:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_CONTENT,
            detail="Organization name is required",
        )

    org = (
        session.execute(
            select(Organization).where(Organization.name == org_name).order_by(Organization.id.asc())
        )
        .scalars()
        .first()
    )
    if org is None:
        org = Organization(name=org_name)
        session.add(org)
        session.flush()

    user = session.execute(select(User).where(User.email == email_norm)).scalars().first()
    if user is None:
        user = User(email=email_norm)
        session.add(user)
        session.flush()

    membership = (
        session.execute(
            select(Membership).where(
                Membership.organization_id == org.id,
                Membership.user_id == user.id,
            )
        )
        .scalars()
        .first()
    )
    if membership is None:
        # The role only applies to a first login; later logins keep the stored role.
        membership = Membership(organization_id=org.id, user_id=user.id, role=role)
        session.add(membership)
        session.flush()

    token = new_random_token()
    auth_session = AuthSession(
        user_id=user.id,
        active_organization_id=org.id,
        token_hash=hash_session_token(token),
        expires_at=datetime.now(UTC) + timedelta(seconds=settings.SESSION_TTL_SECONDS),
    )
    session.add(auth_session)
    session.flush()

    log_event(
        session=session,
        organization_id=org.id,
        actor_user_id=user.id,
        event_type="auth.dev_login",
        event_data={"role": membership.role.value},
    )

    return token, auth_session, org, membership, user


def revoke_session(*, session: Session, auth_session: AuthSession, reason: str) -> None:
    auth_session.revoked_at = datetime.now(UTC)
    auth_session.revoked_reason = reason
    session.add(auth_session)
