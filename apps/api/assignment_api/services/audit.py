from __future__ import annotations

from sqlalchemy.orm import Session

from assignment_api.models.audit import AuditEvent


def log_event(
    *,
    session: Session,
    organization_id: int,
    actor_user_id: int | None,
    event_type: str,
    event_data: dict | None = None,
) -> AuditEvent:
    evt = AuditEvent(
        organization_id=organization_id,
        actor_user_id=actor_user_id,
        event_type=event_type,
        event_data=event_data or {},
    )
    session.add(evt)
    session.flush()
    return evt
