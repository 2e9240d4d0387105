from __future__ import annotations

from assignment_api.models.audit import AuditEvent  # noqa: F401
from assignment_api.models.auth import AuthSession  # noqa: F401
from assignment_api.models.base import Base as Base  # noqa: F401
from assignment_api.models.campaigns import (  # noqa: F401
    Assignment,
    Campaign,
    CampaignContact,
    CampaignContactTag,
    Tag,
)
from assignment_api.models.enums import (  # noqa: F401
    AssignmentRequestStatus,
    AssignmentType,
    JobStatus,
    JobType,
    MessageStatus,
    OrganizationRole,
)
from assignment_api.models.identity import Membership, Organization, User  # noqa: F401
from assignment_api.models.jobs import BgJob  # noqa: F401
from assignment_api.models.requests import AssignmentRequest  # noqa: F401
from assignment_api.models.teams import (  # noqa: F401
    CampaignTeam,
    Team,
    TeamEscalationTag,
    UserTeam,
)
