"""
approval_engines.projection -- Status projection over the approval log.

Responsibility:
    Derive an instance's ``InstanceState`` from its ordered log, and the
    boolean ``StatusProjection`` and ``LogTrack`` from that.  Nothing here is
    ever persisted; every caller re-derives from the full log.

Architecture position:
    Engines -- pure calculation layer, zero I/O.

Rules:
    - Only the current *chain* counts: the entries from the latest
      ``submit`` onward.  Earlier chains are concluded history.
    - ``level_index`` = approvals since the latest submit/resubmit.
    - Approving the last level ends the chain, or waits for the submitter's
      confirmation when the machine requires it.
    - Refuse and confirm(approved=False) wait for a resubmit; resubmit
      restarts at level 0 without dropping any entry.
    - Edit entries never change the phase.
"""

from __future__ import annotations

from collections.abc import Sequence

from approval_kernel.domain.approval_log import (
    SUBMITTER_ACTIONS,
    ApprovalAction,
    ApprovalLog,
    InstancePhase,
    InstanceState,
    LogTrack,
    StatusProjection,
)
from approval_kernel.domain.machine import Machine


def current_chain(logs: Sequence[ApprovalLog]) -> tuple[ApprovalLog, ...]:
    """Entries from the latest ``submit`` onward (empty when never submitted)."""
    for index in range(len(logs) - 1, -1, -1):
        if logs[index].action == ApprovalAction.SUBMIT:
            return tuple(logs[index:])
    return ()


def _after_approval(machine: Machine, approvals: int) -> InstancePhase:
    if approvals < machine.level_count:
        return InstancePhase.APPROVING
    if machine.submitter_confirm:
        return InstancePhase.WAITING_CONFIRM
    return InstancePhase.ENDED


def project_state(machine: Machine, logs: Sequence[ApprovalLog]) -> InstanceState | None:
    """Fold the current chain into an ``InstanceState``.

    Returns None when the instance has never been submitted.
    """
    chain = current_chain(logs)
    if not chain:
        return None

    submit = chain[0]
    phase = InstancePhase.SUBMITTED if machine.level_count else InstancePhase.ENDED
    level_index = 0

    for entry in chain[1:]:
        if phase in (InstancePhase.ENDED, InstancePhase.CANCELLED):
            break
        action = entry.action
        if action == ApprovalAction.APPROVE:
            level_index += 1
            phase = _after_approval(machine, level_index)
        elif action == ApprovalAction.REFUSE:
            phase = InstancePhase.WAITING_RESUBMIT
        elif action == ApprovalAction.RESUBMIT:
            phase = InstancePhase.SUBMITTED
            level_index = 0
        elif action == ApprovalAction.CONFIRM:
            phase = InstancePhase.ENDED if entry.approved else InstancePhase.WAITING_RESUBMIT
        elif action == ApprovalAction.CANCEL:
            phase = InstancePhase.CANCELLED

    return InstanceState(
        phase=phase,
        level_index=level_index,
        last_sequence=logs[-1].sequence,
        chain_length=len(chain),
        submitter_role_id=submit.actor_role_id,
        submitter_user_id=submit.actor_user_id,
    )


def project_status(state: InstanceState | None) -> StatusProjection:
    """Boolean status of a derived state; all False for no state."""
    if state is None:
        return StatusProjection()
    return StatusProjection(
        end=state.phase == InstancePhase.ENDED,
        waiting_confirm=state.phase == InstancePhase.WAITING_CONFIRM,
        waiting_resubmit=state.phase == InstancePhase.WAITING_RESUBMIT,
        cancel=state.phase == InstancePhase.CANCELLED,
    )


def project_track(machine: Machine, logs: Sequence[ApprovalLog]) -> tuple[LogTrack, ...]:
    """Human-readable track of the current chain.

    Submitter entries are named after ``machine.submitter_name``, approver
    entries after the level they acted on.  ``end``/``cancel`` mark the entry
    that concluded the chain.
    """
    chain = current_chain(logs)
    if not chain:
        return ()

    submitter_user_id = chain[0].actor_user_id
    rows: list[LogTrack] = []
    for position in range(len(chain)):
        entry = chain[position]
        state = project_state(machine, chain[: position + 1])
        by_submitter = entry.action in SUBMITTER_ACTIONS or (
            entry.action == ApprovalAction.EDIT
            and entry.actor_user_id == submitter_user_id
        )
        if by_submitter:
            name = machine.submitter_name
        else:
            level = machine.level(entry.level_index)
            name = level.name if level is not None else ""
        rows.append(LogTrack(
            created_at=entry.created_at,
            name=name,
            opinion=entry.opinion,
            action=entry.action,
            end=state is not None and state.phase == InstancePhase.ENDED,
            cancel=state is not None and state.phase == InstancePhase.CANCELLED,
        ))
    return tuple(rows)
