from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPBasic, HTTPBasicCredentials
from sqlalchemy import select
from sqlalchemy.orm import Session

from assignment_api.core.config import get_settings
from assignment_api.core.security import credentials_match, hash_session_token
from assignment_api.db.session import get_session
from assignment_api.models.auth import AuthSession
from assignment_api.models.enums import OrganizationRole
from assignment_api.models.identity import Membership, Organization, User

SAFE_METHODS = {"GET", "HEAD", "OPTIONS"}

_basic_auth = HTTPBasic(auto_error=False)


@dataclass(frozen=True)
class OrgContext:
    organization: Organization
    membership: Membership
    user: User
    session: AuthSession

    @property
    def organization_id(self) -> int:
        return self.organization.id

    @property
    def role(self) -> OrganizationRole:
        return self.membership.role


def require_csrf_header(request: Request) -> None:
    if request.method in SAFE_METHODS:
        return

    settings = get_settings()
    cookie_token = request.cookies.get(settings.CSRF_COOKIE_NAME)
    header_token = request.headers.get(settings.CSRF_HEADER_NAME)

    if not cookie_token or not header_token or cookie_token != header_token:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="CSRF token missing or invalid",
        )


def require_session(
    request: Request,
    session: Session = Depends(get_session),
) -> tuple[AuthSession, User]:
    settings = get_settings()
    raw = request.cookies.get(settings.SESSION_COOKIE_NAME)
    if not raw:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")

    token_hash = hash_session_token(raw)
    now = datetime.now(UTC)

    auth_session = (
        session.execute(
            select(AuthSession).where(
                AuthSession.token_hash == token_hash,
                AuthSession.revoked_at.is_(None),
                AuthSession.expires_at > now,
            )
        )
        .scalars()
        .first()
    )
    if auth_session is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid session")

    user = session.get(User, auth_session.user_id)
    if user is None or user.is_disabled:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN, detail="User disabled or missing"
        )

    return auth_session, user


def require_org(
    auth: tuple[AuthSession, User] = Depends(require_session),
    session: Session = Depends(get_session),
) -> OrgContext:
    auth_session, user = auth

    org = session.get(Organization, auth_session.active_organization_id)
    if org is None:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Organization missing")

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
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN, detail="Not a member of this organization"
        )

    return OrgContext(organization=org, membership=membership, user=user, session=auth_session)


def require_min_role(min_role: OrganizationRole):
    def _dep(org: OrgContext = Depends(require_org)) -> OrgContext:
        if not org.membership.role.at_least(min_role):
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Insufficient role")
        return org

    return _dep


def require_assignment_service(
    credentials: HTTPBasicCredentials | None = Depends(_basic_auth),
) -> None:
    settings = get_settings()
    expected_user = settings.ASSIGNMENT_USERNAME
    expected_password = settings.ASSIGNMENT_PASSWORD
    if not expected_user or not expected_password:
        # Endpoint stays closed until credentials are configured.
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Not found")

    if credentials is None or not credentials_match(
        username=credentials.username,
        password=credentials.password,
        expected_username=expected_user,
        expected_password=expected_password,
    ):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid credentials",
            headers={"WWW-Authenticate": "Basic"},
        )
