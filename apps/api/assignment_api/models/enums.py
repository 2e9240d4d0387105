from __future__ import annotations

import enum


class OrganizationRole(enum.StrEnum):
    texter = "texter"
    supervolunteer = "supervolunteer"
    admin = "admin"
    owner = "owner"

    @property
    def rank(self) -> int:
        return _ROLE_RANK[self]

    def at_least(self, other: OrganizationRole) -> bool:
        return self.rank >= other.rank


_ROLE_RANK = {
    OrganizationRole.texter: 0,
    OrganizationRole.supervolunteer: 1,
    OrganizationRole.admin: 2,
    OrganizationRole.owner: 3,
}


class AssignmentType(enum.StrEnum):
    UNSENT = "UNSENT"
    UNREPLIED = "UNREPLIED"


class MessageStatus(enum.StrEnum):
    needsMessage = "needsMessage"
    needsResponse = "needsResponse"
    convo = "convo"
    messaged = "messaged"
    closed = "closed"
    needsOptOut = "needsOptOut"


class AssignmentRequestStatus(enum.StrEnum):
    pending = "pending"
    approved = "approved"
    rejected = "rejected"


class JobStatus(enum.StrEnum):
    queued = "queued"
    running = "running"
    succeeded = "succeeded"
    failed = "failed"
    cancelled = "cancelled"


class JobType(enum.StrEnum):
    assignment_created = "assignment_created"
    assignment_pool_check = "assignment_pool_check"
