"""
Module: approval_kernel.selectors.approving_selector
Responsibility: The approving queue -- instances currently waiting for a
    given actor.  Instance state is never stored; it is derived per instance
    by replaying its log against its machine, exactly as the engine does.
Architecture position: Kernel > Selectors.  Reads ``ApprovalLogModel`` and
    ``MachineModel``; uses the pure builder, projection and permission
    predicates from ``approval_engines``.

Invariants enforced:
    - Read-only.
    - An instance is listed only while it is approving (submitted or between
      levels) and the awaited level authorizes the actor.
    - Deterministic order: by category, then uuid.

Failure modes:
    - Instances whose category has no stored machine are skipped.

Cost:
    One streamed query over the current chain of every instance in the
    requested categories.  Earlier chains stay in the database; a page stops
    reading once it is full.  ``count_approving`` reads the whole queue.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime
from itertools import groupby

from sqlalchemy import and_, func, select
from sqlalchemy.orm import Session

from approval_engines.level_graph import build_machine
from approval_engines.permissions import is_pending
from approval_engines.projection import current_chain, project_state
from approval_kernel.domain.approval_log import ApprovalAction, ApprovalLog
from approval_kernel.domain.machine import Machine
from approval_kernel.models.approval_log import ApprovalLogModel
from approval_kernel.models.machine import MachineModel
from approval_kernel.selectors.base import BaseSelector

_STREAM_BATCH = 500


@dataclass(frozen=True)
class PendingInstance:
    """An instance waiting on the querying actor."""

    category: int
    uuid: str
    level_index: int
    level_name: str
    submitter_role_id: int
    submitter_user_id: int
    can_approval_roles: tuple[int, ...]
    can_approval_users: tuple[int, ...]
    submitted_at: datetime | None

    def to_dict(self) -> dict:
        return {
            "category": self.category,
            "uuid": self.uuid,
            "level": self.level_index,
            "levelName": self.level_name,
            "submitterRoleId": self.submitter_role_id,
            "submitterUserId": self.submitter_user_id,
            "canApprovalRoles": list(self.can_approval_roles),
            "canApprovalUsers": list(self.can_approval_users),
            "createdAt": self.submitted_at.isoformat() if self.submitted_at else None,
        }


class ApprovingSelector(BaseSelector[ApprovalLogModel]):
    """
    Selector for the approving queue.

    Contract:
        ``find_approving`` returns ``PendingInstance`` DTOs for instances the
        actor may approve right now.  ``offset``/``limit`` page the filtered
        result.
    """

    def __init__(self, session: Session):
        super().__init__(session)

    def find_approving(
        self,
        role_id: int,
        user_id: int,
        category: int | None = None,
        offset: int = 0,
        limit: int | None = None,
    ) -> list[PendingInstance]:
        machines = self._load_machines(category)
        if not machines or (limit is not None and limit <= 0):
            return []

        result = self.session.execute(self._current_chains_query(list(machines)))
        skip = max(offset, 0)
        found: list[PendingInstance] = []
        try:
            rows = result.scalars()
            for (cat, _), group in groupby(rows, key=lambda r: (r.category, r.uuid)):
                logs = tuple(row.to_dto() for row in group)
                pending = self._pending_for(machines[cat], logs, role_id, user_id)
                if pending is None:
                    continue
                if skip:
                    skip -= 1
                    continue
                found.append(pending)
                if limit is not None and len(found) >= limit:
                    break
        finally:
            result.close()
        return found

    def count_approving(
        self,
        role_id: int,
        user_id: int,
        category: int | None = None,
    ) -> int:
        return len(self.find_approving(role_id, user_id, category=category))

    @staticmethod
    def _current_chains_query(categories: list[int]):
        """Rows of each instance's current chain, from its latest submit on.

        Entries of earlier chains never leave the database.  Approval state
        still depends on the actor and the machine, so the filtering happens
        per instance while the rows stream in.
        """
        chain_start = (
            select(
                ApprovalLogModel.category.label("category"),
                ApprovalLogModel.uuid.label("uuid"),
                func.max(ApprovalLogModel.sequence).label("start"),
            )
            .where(ApprovalLogModel.category.in_(categories))
            .where(ApprovalLogModel.action == ApprovalAction.SUBMIT.value)
            .group_by(ApprovalLogModel.category, ApprovalLogModel.uuid)
            .subquery()
        )
        return (
            select(ApprovalLogModel)
            .join(
                chain_start,
                and_(
                    ApprovalLogModel.category == chain_start.c.category,
                    ApprovalLogModel.uuid == chain_start.c.uuid,
                    ApprovalLogModel.sequence >= chain_start.c.start,
                ),
            )
            .order_by(
                ApprovalLogModel.category,
                ApprovalLogModel.uuid,
                ApprovalLogModel.sequence,
            )
            .execution_options(yield_per=_STREAM_BATCH)
        )

    def _load_machines(self, category: int | None) -> dict[int, Machine]:
        query = select(MachineModel)
        if category is not None:
            query = query.where(MachineModel.category == category)
        models: Iterable[MachineModel] = self.session.execute(query).scalars().all()
        return {m.category: build_machine(m.to_definition()) for m in models}

    @staticmethod
    def _pending_for(
        machine: Machine,
        logs: tuple[ApprovalLog, ...],
        role_id: int,
        user_id: int,
    ) -> PendingInstance | None:
        state = project_state(machine, logs)
        if state is None or not state.is_approving:
            return None
        level = machine.level(state.level_index)
        if level is None or not is_pending(level, role_id, user_id):
            return None
        chain = current_chain(logs)
        return PendingInstance(
            category=machine.category,
            uuid=logs[0].uuid,
            level_index=state.level_index,
            level_name=level.name,
            submitter_role_id=state.submitter_role_id,
            submitter_user_id=state.submitter_user_id,
            can_approval_roles=tuple(sorted(level.roles)),
            can_approval_users=tuple(sorted(level.users)),
            submitted_at=chain[0].created_at if chain else None,
        )
