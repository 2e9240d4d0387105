from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from assignment_api.models.enums import OrganizationRole


class CsrfTokenResponse(BaseModel):
    csrf_token: str


class DevLoginRequest(BaseModel):
    email: str = Field(min_length=3, max_length=320)
    organization_name: str = Field(min_length=1, max_length=200)
    role: OrganizationRole = OrganizationRole.admin


class UserOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    email: str
    first_name: str | None
    last_name: str | None


class OrganizationOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str


class SessionOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    created_at: datetime
    expires_at: datetime


class LoginResponse(BaseModel):
    user: UserOut
    organization: OrganizationOut
    role: OrganizationRole
    session: SessionOut
    csrf_token: str
