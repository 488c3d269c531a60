"""
Approval log types (``approval_kernel.domain.approval_log``).

Responsibility
--------------
Pure value objects for the append-only approval log of an instance and the
state derived from it: actions, log entries, the derived ``InstanceState``,
the boolean ``StatusProjection`` and the human-facing ``LogTrack``.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.

Invariants enforced
-------------------
* Log entries are frozen; the store assigns ``sequence`` on append and
  sequences of one instance are strictly increasing.
* ``StatusProjection`` and ``InstanceState`` are never persisted; they are
  recomputed from the log by ``approval_engines.projection``.
* END and CANCELLED are terminal phases.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any


# =========================================================================
# Actions and phases
# =========================================================================


class ApprovalAction(str, Enum):
    """Actions recorded in the approval log."""

    SUBMIT = "submit"
    APPROVE = "approve"
    REFUSE = "refuse"
    RESUBMIT = "resubmit"
    CONFIRM = "confirm"
    CANCEL = "cancel"
    EDIT = "edit"


SUBMITTER_ACTIONS: frozenset[ApprovalAction] = frozenset({
    ApprovalAction.SUBMIT,
    ApprovalAction.RESUBMIT,
    ApprovalAction.CONFIRM,
    ApprovalAction.CANCEL,
})


class InstancePhase(str, Enum):
    """Derived lifecycle phase of an instance's current chain."""

    SUBMITTED = "submitted"
    APPROVING = "approving"
    WAITING_CONFIRM = "waiting_confirm"
    WAITING_RESUBMIT = "waiting_resubmit"
    CANCELLED = "cancelled"
    ENDED = "ended"


TERMINAL_PHASES: frozenset[InstancePhase] = frozenset({
    InstancePhase.CANCELLED,
    InstancePhase.ENDED,
})

# SUBMITTED is Approving(0) before any approver acted in the round.
APPROVING_PHASES: frozenset[InstancePhase] = frozenset({
    InstancePhase.SUBMITTED,
    InstancePhase.APPROVING,
})


# =========================================================================
# Identity
# =========================================================================


@dataclass(frozen=True)
class InstanceKey:
    """Identity of an instance: opaque foreign key into the host record."""

    category: int
    uuid: str

    def __str__(self) -> str:
        return f"{self.category}/{self.uuid}"


@dataclass(frozen=True)
class Actor:
    """Who is acting: a role id and a user id from the host directory."""

    role_id: int
    user_id: int


# =========================================================================
# Log records
# =========================================================================


@dataclass(frozen=True)
class LogEntry:
    """An unsequenced log entry, as planned by the transition engine."""

    level_index: int
    actor_role_id: int
    actor_user_id: int
    action: ApprovalAction
    opinion: str = ""
    fields: tuple[str, ...] = ()
    approved: bool | None = None
    created_at: datetime | None = None

    def sequenced(self, key: InstanceKey, sequence: int) -> ApprovalLog:
        """Bind this entry to an instance at the given sequence number."""
        return ApprovalLog(
            category=key.category,
            uuid=key.uuid,
            sequence=sequence,
            level_index=self.level_index,
            actor_role_id=self.actor_role_id,
            actor_user_id=self.actor_user_id,
            action=self.action,
            opinion=self.opinion,
            fields=self.fields,
            approved=self.approved,
            created_at=self.created_at,
        )


@dataclass(frozen=True)
class ApprovalLog:
    """A stored, sequenced approval log entry.  Immutable."""

    category: int
    uuid: str
    sequence: int
    level_index: int
    actor_role_id: int
    actor_user_id: int
    action: ApprovalAction
    opinion: str = ""
    fields: tuple[str, ...] = ()
    approved: bool | None = None
    created_at: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "category": self.category,
            "uuid": self.uuid,
            "sequence": self.sequence,
            "levelIndex": self.level_index,
            "approvalRoleId": self.actor_role_id,
            "approvalUserId": self.actor_user_id,
            "action": self.action.value,
            "approvalOpinion": self.opinion,
            "fields": list(self.fields),
            "approved": self.approved,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
        }


# =========================================================================
# Derived state
# =========================================================================


@dataclass(frozen=True)
class InstanceState:
    """State of an instance's current chain, derived from its log.

    ``level_index`` is the number of approvals since the latest
    submit/resubmit.  ``last_sequence`` is the sequence of the newest stored
    entry; conditional appends expect it.
    """

    phase: InstancePhase
    level_index: int
    last_sequence: int
    chain_length: int
    submitter_role_id: int
    submitter_user_id: int

    @property
    def is_terminal(self) -> bool:
        return self.phase in TERMINAL_PHASES

    @property
    def is_approving(self) -> bool:
        return self.phase in APPROVING_PHASES

    def is_submitter(self, actor: Actor) -> bool:
        return actor.user_id == self.submitter_user_id


@dataclass(frozen=True)
class StatusProjection:
    """Boolean status of an instance (wire name ``FsmApprovalLog``)."""

    end: bool = False
    waiting_confirm: bool = False
    waiting_resubmit: bool = False
    cancel: bool = False

    def to_dict(self) -> dict[str, bool]:
        return {
            "end": self.end,
            "waitingConfirm": self.waiting_confirm,
            "waitingResubmit": self.waiting_resubmit,
            "cancel": self.cancel,
        }


@dataclass(frozen=True)
class LogTrack:
    """One row of the human-readable approval track of an instance."""

    created_at: datetime | None
    name: str
    opinion: str
    action: ApprovalAction
    end: bool
    cancel: bool

    def to_dict(self) -> dict[str, Any]:
        return {
            "createdAt": self.created_at.isoformat() if self.created_at else None,
            "name": self.name,
            "opinion": self.opinion,
            "status": self.action.value,
            "end": self.end,
            "cancel": self.cancel,
        }
