from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, Enum, ForeignKey, Integer, text
from sqlalchemy.orm import Mapped, mapped_column

from assignment_api.models.base import Base
from assignment_api.models.enums import AssignmentRequestStatus


class AssignmentRequest(Base):
    __tablename__ = "assignment_requests"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    organization_id: Mapped[int] = mapped_column(
        ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    amount: Mapped[int] = mapped_column(Integer, nullable=False)
    # No foreign key: -1 addresses the General pool.
    preferred_team_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    status: Mapped[AssignmentRequestStatus] = mapped_column(
        Enum(AssignmentRequestStatus, name="assignment_request_status", create_type=False),
        nullable=False,
        server_default=text("'pending'"),
    )
    approved_by_user_id: Mapped[int | None] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=text("now()")
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=text("now()")
    )
