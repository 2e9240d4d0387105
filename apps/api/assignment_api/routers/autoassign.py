from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Body, Depends
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from assignment_api.core.deps import require_assignment_service
from assignment_api.db.session import get_session
from assignment_api.services.assignment.errors import AutoassignError
from assignment_api.services.assignment.requests import fulfill_pending_request_for

logger = logging.getLogger("assignment.api")

router = APIRouter(tags=["autoassign"], dependencies=[Depends(require_assignment_service)])


@router.post("/autoassign")
def autoassign(
    payload: dict[str, Any] | None = Body(default=None),
    session: Session = Depends(get_session),
) -> JSONResponse:
    # Called machine-to-machine by the external assignment service; no CSRF/session.
    payload = payload or {}
    if not payload.get("slack_id"):
        return JSONResponse(
            status_code=400, content={"error": "Missing parameter `slack_id` in POST body."}
        )
    if not payload.get("count"):
        return JSONResponse(
            status_code=400, content={"error": "Missing parameter `count` in POST body."}
        )

    try:
        number_assigned = fulfill_pending_request_for(
            session=session, external_id=str(payload["slack_id"])
        )
    except AutoassignError as e:
        logger.error("error handling autoassignment request: %s", e.message)
        if e.is_fatal:
            return JSONResponse(status_code=500, content={"error": e.message})
        return JSONResponse(status_code=200, content={"numberAssigned": 0, "info": e.message})

    return JSONResponse(status_code=200, content={"numberAssigned": number_assigned})
