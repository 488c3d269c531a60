"""
Module: approval_kernel.models.approval_log
Responsibility: ORM persistence for approval log entries.

Architecture position: Kernel > Models.  May import from db/base.py,
    domain/ and exceptions only.

Invariants enforced:
    - Append-only: ORM listeners reject UPDATE and DELETE of a log row.
    - Conditional append: UNIQUE(category, uuid, sequence) makes the second
      of two racing appends with the same expected sequence fail.
    - Valid actions: DB check constraint limits ``action`` values.
    - ``created_at`` is written and read back as UTC, also on backends that
      drop the offset (SQLite).

Failure modes:
    - IntegrityError on a duplicate (category, uuid, sequence).
    - ImmutabilityViolationError on UPDATE/DELETE through the ORM.
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    DateTime,
    Index,
    String,
    Text,
    UniqueConstraint,
    event,
)
from sqlalchemy.orm import Mapped, mapped_column

from approval_kernel.db.base import Base
from approval_kernel.domain.approval_log import (
    ApprovalAction,
    ApprovalLog,
    InstanceKey,
    LogEntry,
)
from approval_kernel.exceptions import ImmutabilityViolationError


def _as_utc(value: datetime | None) -> datetime | None:
    # Naive values come back from backends without offsets and are UTC
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class ApprovalLogModel(Base):
    """Persistent approval log entry. Append-only."""

    __tablename__ = "approval_logs"

    __table_args__ = (
        UniqueConstraint(
            "category", "uuid", "sequence",
            name="uq_approval_logs_instance_sequence",
        ),
        CheckConstraint(
            "action IN ('submit', 'approve', 'refuse', 'resubmit', "
            "'confirm', 'cancel', 'edit')",
            name="ck_approval_logs_valid_action",
        ),
        Index("ix_approval_logs_instance", "category", "uuid"),
    )

    category: Mapped[int] = mapped_column(nullable=False)
    uuid: Mapped[str] = mapped_column(String(64), nullable=False)
    sequence: Mapped[int] = mapped_column(nullable=False)
    level_index: Mapped[int] = mapped_column(nullable=False, default=0)
    actor_role_id: Mapped[int] = mapped_column(nullable=False)
    actor_user_id: Mapped[int] = mapped_column(nullable=False)
    action: Mapped[str] = mapped_column(String(20), nullable=False)
    opinion: Mapped[str] = mapped_column(Text, nullable=False, default="")
    fields: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    approved: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    created_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )

    def __repr__(self) -> str:
        return (
            f"<ApprovalLog {self.category}/{self.uuid} "
            f"#{self.sequence} {self.action}>"
        )

    def to_dto(self) -> ApprovalLog:
        """Convert ORM model to frozen domain DTO."""
        return ApprovalLog(
            category=self.category,
            uuid=self.uuid,
            sequence=self.sequence,
            level_index=self.level_index,
            actor_role_id=self.actor_role_id,
            actor_user_id=self.actor_user_id,
            action=ApprovalAction(self.action),
            opinion=self.opinion or "",
            fields=tuple(self.fields or ()),
            approved=self.approved,
            created_at=_as_utc(self.created_at),
        )

    @classmethod
    def from_entry(
        cls,
        key: InstanceKey,
        sequence: int,
        entry: LogEntry,
    ) -> ApprovalLogModel:
        """Create ORM model from a planned entry at ``sequence``."""
        return cls(
            category=key.category,
            uuid=key.uuid,
            sequence=sequence,
            level_index=entry.level_index,
            actor_role_id=entry.actor_role_id,
            actor_user_id=entry.actor_user_id,
            action=entry.action.value,
            opinion=entry.opinion,
            fields=list(entry.fields),
            approved=entry.approved,
            created_at=_as_utc(entry.created_at),
        )


# =============================================================================
# ORM-Level Immutability (Append-Only)
# =============================================================================


@event.listens_for(ApprovalLogModel, "before_update")
def prevent_log_update(mapper, connection, target):
    """Prevent updates to approval log rows."""
    raise ImmutabilityViolationError(
        entity_type="ApprovalLog",
        entity_id=f"{target.category}/{target.uuid}#{target.sequence}",
        reason="Approval log entries are immutable -- cannot modify",
    )


@event.listens_for(ApprovalLogModel, "before_delete")
def prevent_log_delete(mapper, connection, target):
    """Prevent deletion of approval log rows."""
    raise ImmutabilityViolationError(
        entity_type="ApprovalLog",
        entity_id=f"{target.category}/{target.uuid}#{target.sequence}",
        reason="Approval log entries are immutable -- cannot delete",
    )
