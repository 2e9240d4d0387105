from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.orm import Session

from assignment_api.models.enums import OrganizationRole
from assignment_api.models.identity import Membership
from assignment_api.services.assignment.errors import AuthorizationError


def require_role(
    *,
    session: Session,
    user_id: int,
    organization_id: int,
    min_role: OrganizationRole,
) -> OrganizationRole:
    role = session.execute(
        select(Membership.role).where(
            Membership.organization_id == organization_id,
            Membership.user_id == user_id,
        )
    ).scalar_one_or_none()
    if role is None or not role.at_least(min_role):
        raise AuthorizationError(
            f"User {user_id} needs role {min_role.value} in organization {organization_id}"
        )
    return role
