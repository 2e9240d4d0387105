from __future__ import annotations

import math
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, field_serializer

from assignment_api.models.enums import AssignmentRequestStatus, AssignmentType
from assignment_api.services.assignment.config import TextRequestType


class AssignmentRequestCreate(BaseModel):
    count: int = Field(gt=0, le=10_000)
    preferred_team_id: int | None = None
    # Email the external assignment service should contact; defaults to the login email.
    email: str | None = Field(default=None, max_length=320)


class AssignmentRequestCreateResponse(BaseModel):
    result: str


class AssignmentRequestOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    organization_id: int
    user_id: int
    amount: int
    preferred_team_id: int | None
    status: AssignmentRequestStatus
    approved_by_user_id: int | None
    created_at: datetime
    updated_at: datetime


class PendingCountResponse(BaseModel):
    count: int


class ApproveResponse(BaseModel):
    number_assigned: int


class RejectResponse(BaseModel):
    rejected: bool


class FindNewContactsRequest(BaseModel):
    number_contacts: int | None = Field(default=None, gt=0)


class FindNewContactsResponse(BaseModel):
    found: bool


class AssignmentTargetOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    priority: float | None
    team_id: int
    team_title: str
    assignment_type: AssignmentType
    max_request_count: int | None
    campaign_id: int
    campaign_title: str
    enabled: bool
    count_left: int | None = None

    @field_serializer("priority")
    def _infinite_priority_as_null(self, value: float | None) -> float | None:
        # JSON has no infinity; General ranks last on the texter view.
        if value is None or math.isinf(value):
            return None
        return value


class MyAssignmentTargetsResponse(BaseModel):
    texts_available: bool
    targets: list[AssignmentTargetOut]


class ReleaseContactsRequest(BaseModel):
    target: AssignmentType
    age_in_hours: float | None = Field(default=None, gt=0)


class ReleaseContactsResponse(BaseModel):
    message: str


class TextRequestSettingsOut(BaseModel):
    request_type: TextRequestType
    general_enabled: bool
    max_request_count: int


class TextRequestSettingsUpdate(BaseModel):
    request_type: TextRequestType | None = None
    general_enabled: bool | None = None
    max_request_count: int | None = Field(default=None, ge=0)

