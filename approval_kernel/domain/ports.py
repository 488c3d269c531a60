"""
Collaborator interfaces (``approval_kernel.domain.ports``).

Responsibility
--------------
Narrow ``Protocol`` definitions for everything the approval engine consumes
but does not own: machine lookup, the append-only log store, the transition
hook and the host application's record detail.  The engine depends on these
by capability only; no concrete transport or database is imported here.

Log store contract
------------------
``append_log`` is a conditional write.  It succeeds only when the newest
stored sequence of the instance equals ``expected_sequence`` (0 for an
instance with no log) and then stores the entry at ``expected_sequence + 1``.
Otherwise it raises ``LogAppendConflictError`` and stores nothing.  Of two
racing appends with the same expectation at most one succeeds.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Protocol

from approval_kernel.domain.approval_log import (
    ApprovalAction,
    ApprovalLog,
    InstanceKey,
    LogEntry,
    StatusProjection,
)
from approval_kernel.domain.machine import Machine


@dataclass(frozen=True)
class HookContext:
    """What the transition hook is told about the change it follows."""

    category: int
    uuid: str
    action: ApprovalAction
    actor_role_id: int
    actor_user_id: int
    sequence: int
    status: StatusProjection


class MachineStore(Protocol):
    """Lookup of resolved machines by category."""

    def get_machine(self, category: int) -> Machine:
        """Return the machine or raise ``MachineNotFoundError``."""
        ...


class LogStore(Protocol):
    """Append-only approval log storage with conditional append."""

    def append_log(
        self,
        key: InstanceKey,
        expected_sequence: int,
        entry: LogEntry,
    ) -> int:
        """Append ``entry`` and return its sequence number."""
        ...

    def list_logs(self, key: InstanceKey) -> tuple[ApprovalLog, ...]:
        """Return every entry of the instance ordered by sequence."""
        ...

    def has_logs(self, category: int) -> bool:
        """Return True when any instance of the category has a log."""
        ...


class TransitionHook(Protocol):
    """Side channel invoked after a log entry is durably appended."""

    def __call__(
        self,
        context: HookContext,
        logs: tuple[ApprovalLog, ...],
    ) -> None:
        ...


class DetailProvider(Protocol):
    """Host application access to the business record behind an instance."""

    def get_detail(self, category: int, uuid: str) -> Mapping[str, str]:
        """Return the current ``{field key: value}`` of the record."""
        ...

    def update_detail(
        self,
        category: int,
        uuid: str,
        fields: Mapping[str, str],
    ) -> None:
        """Persist edited field values on the record."""
        ...
