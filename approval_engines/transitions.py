"""
approval_engines.transitions -- Transition planner.

Responsibility:
    Decide whether an action is legal against an instance's derived state
    and, when it is, produce the single ``LogEntry`` to append.  The planner
    never reads or writes storage: the caller supplies the machine, the
    state derived from the log, the actor and a timestamp.

Architecture position:
    Engines -- pure calculation layer, zero I/O.

State machine:
    submit    : (none | terminal chain)          -> SUBMITTED(0) | ENDED
    approve   : SUBMITTED/APPROVING(L), can_act  -> APPROVING(L+1) | WAITING_CONFIRM | ENDED
    refuse    : SUBMITTED/APPROVING(L), can_refuse -> WAITING_RESUBMIT
    resubmit  : WAITING_RESUBMIT, submitter      -> SUBMITTED(0)
    confirm   : WAITING_CONFIRM, submitter       -> ENDED | WAITING_RESUBMIT
    cancel    : submitter, chain == [submit]     -> CANCELLED
    edit      : approver with edit rights at L, or submitter while SUBMITTED
                                                 -> (unchanged)

Failure modes:
    Each refusal raises the matching ``TransitionError`` subclass; see the
    individual ``plan_*`` functions.  Nothing is returned on failure.
"""

from __future__ import annotations

from collections.abc import Collection
from datetime import datetime

from approval_engines.permissions import (
    can_act,
    can_edit_fields,
    can_refuse,
    submitter_can_edit_fields,
)
from approval_engines.tracer import traced_engine
from approval_kernel.domain.approval_log import (
    Actor,
    ApprovalAction,
    InstanceKey,
    InstancePhase,
    InstanceState,
    LogEntry,
)
from approval_kernel.domain.machine import Level, Machine
from approval_kernel.exceptions import (
    IllegalStatusError,
    NoEditLogDetailPermissionError,
    NoPermissionApproveError,
    NoPermissionOrEndedError,
    NoPermissionRefuseError,
    OnlySubmitterCancelError,
    RepeatSubmitError,
    StartedCannotCancelError,
    UnknownActionError,
)


def _awaited_level(
    machine: Machine,
    state: InstanceState | None,
    key: InstanceKey,
    level: int | None,
) -> Level:
    """The level the instance is waiting on, or NoPermissionOrEndedError."""
    if state is None or not state.is_approving:
        raise NoPermissionOrEndedError(key.category, key.uuid)
    if level is not None and level != state.level_index:
        raise NoPermissionOrEndedError(key.category, key.uuid)
    current = machine.level(state.level_index)
    if current is None:
        raise NoPermissionOrEndedError(key.category, key.uuid)
    return current


@traced_engine("transitions", "1.0", fingerprint_fields=("key",))
def plan_submit(
    machine: Machine,
    state: InstanceState | None,
    actor: Actor,
    *,
    key: InstanceKey,
    now: datetime | None = None,
) -> LogEntry:
    """Open a new chain.  RepeatSubmitError while a chain is still active."""
    if state is not None and not state.is_terminal:
        raise RepeatSubmitError(key.category, key.uuid)
    return LogEntry(
        level_index=0,
        actor_role_id=actor.role_id,
        actor_user_id=actor.user_id,
        action=ApprovalAction.SUBMIT,
        created_at=now,
    )


@traced_engine("transitions", "1.0", fingerprint_fields=("key", "level"))
def plan_approve(
    machine: Machine,
    state: InstanceState | None,
    actor: Actor,
    *,
    key: InstanceKey,
    level: int | None = None,
    opinion: str = "",
    now: datetime | None = None,
) -> LogEntry:
    """Approve the awaited level.

    Raises:
        NoPermissionOrEndedError: not approving, or ``level`` is not the
            awaited level.
        NoPermissionApproveError: actor not in the level's roles/users.
    """
    current = _awaited_level(machine, state, key, level)
    if not can_act(current, actor.role_id, actor.user_id):
        raise NoPermissionApproveError(key.category, key.uuid)
    return LogEntry(
        level_index=state.level_index,
        actor_role_id=actor.role_id,
        actor_user_id=actor.user_id,
        action=ApprovalAction.APPROVE,
        opinion=opinion,
        created_at=now,
    )


@traced_engine("transitions", "1.0", fingerprint_fields=("key", "level"))
def plan_refuse(
    machine: Machine,
    state: InstanceState | None,
    actor: Actor,
    *,
    key: InstanceKey,
    level: int | None = None,
    opinion: str = "",
    now: datetime | None = None,
) -> LogEntry:
    """Refuse at the awaited level.

    Raises:
        NoPermissionOrEndedError: not approving, or wrong ``level``.
        NoPermissionRefuseError: level forbids refusal or actor unauthorized.
    """
    current = _awaited_level(machine, state, key, level)
    if not can_refuse(current, actor.role_id, actor.user_id):
        raise NoPermissionRefuseError(key.category, key.uuid)
    return LogEntry(
        level_index=state.level_index,
        actor_role_id=actor.role_id,
        actor_user_id=actor.user_id,
        action=ApprovalAction.REFUSE,
        opinion=opinion,
        created_at=now,
    )


@traced_engine("transitions", "1.0", fingerprint_fields=("key",))
def plan_resubmit(
    machine: Machine,
    state: InstanceState | None,
    actor: Actor,
    *,
    key: InstanceKey,
    fields: Collection[str] = (),
    opinion: str = "",
    now: datetime | None = None,
) -> LogEntry:
    """Restart a refused chain at level 0.

    Raises:
        IllegalStatusError: not waiting for resubmit, or actor is not the
            submitter.
        NoEditLogDetailPermissionError: a field key is outside the
            submitter's edit allowance.
    """
    if state is None or state.phase != InstancePhase.WAITING_RESUBMIT:
        raise IllegalStatusError(key.category, key.uuid)
    if not state.is_submitter(actor):
        raise IllegalStatusError(key.category, key.uuid)
    if not submitter_can_edit_fields(machine, fields):
        raise NoEditLogDetailPermissionError(key.category, key.uuid, tuple(sorted(fields)))
    return LogEntry(
        level_index=0,
        actor_role_id=actor.role_id,
        actor_user_id=actor.user_id,
        action=ApprovalAction.RESUBMIT,
        opinion=opinion,
        fields=tuple(sorted(fields)),
        created_at=now,
    )


@traced_engine("transitions", "1.0", fingerprint_fields=("key", "approved"))
def plan_confirm(
    machine: Machine,
    state: InstanceState | None,
    actor: Actor,
    *,
    key: InstanceKey,
    approved: bool,
    opinion: str = "",
    now: datetime | None = None,
) -> LogEntry:
    """Submitter accepts (ends) or rejects (back to resubmit) the result.

    Raises:
        IllegalStatusError: not waiting for confirmation, or actor is not
            the submitter.
    """
    if state is None or state.phase != InstancePhase.WAITING_CONFIRM:
        raise IllegalStatusError(key.category, key.uuid)
    if not state.is_submitter(actor):
        raise IllegalStatusError(key.category, key.uuid)
    return LogEntry(
        level_index=state.level_index,
        actor_role_id=actor.role_id,
        actor_user_id=actor.user_id,
        action=ApprovalAction.CONFIRM,
        opinion=opinion,
        approved=bool(approved),
        created_at=now,
    )


@traced_engine("transitions", "1.0", fingerprint_fields=("key",))
def plan_cancel(
    machine: Machine,
    state: InstanceState | None,
    actor: Actor,
    *,
    key: InstanceKey,
    opinion: str = "",
    now: datetime | None = None,
) -> LogEntry:
    """Withdraw a chain nobody has acted on yet.

    Raises:
        IllegalStatusError: never submitted.
        OnlySubmitterCancelError: actor is not the submitter.
        StartedCannotCancelError: the chain holds more than the submit entry
            (or already concluded).
    """
    if state is None:
        raise IllegalStatusError(key.category, key.uuid)
    if not state.is_submitter(actor):
        raise OnlySubmitterCancelError(key.category, key.uuid)
    if state.chain_length != 1 or state.is_terminal:
        raise StartedCannotCancelError(key.category, key.uuid)
    return LogEntry(
        level_index=state.level_index,
        actor_role_id=actor.role_id,
        actor_user_id=actor.user_id,
        action=ApprovalAction.CANCEL,
        opinion=opinion,
        created_at=now,
    )


@traced_engine("transitions", "1.0", fingerprint_fields=("key",))
def plan_edit(
    machine: Machine,
    state: InstanceState | None,
    actor: Actor,
    *,
    key: InstanceKey,
    fields: Collection[str],
    opinion: str = "",
    now: datetime | None = None,
) -> LogEntry:
    """Record an edit of record fields without changing the phase.

    Allowed for an approver of the awaited level whose level grants edit
    rights over every key, or for the submitter before any approver acted
    in the current round, within ``submitter_edit_fields``.

    Raises:
        NoEditLogDetailPermissionError: otherwise (including an empty key
            list).
    """
    keys = tuple(sorted(set(fields)))
    denied = NoEditLogDetailPermissionError(key.category, key.uuid, keys)
    if not keys or state is None:
        raise denied

    allowed = False
    if state.is_approving:
        current = machine.level(state.level_index)
        if current is not None and can_edit_fields(current, actor.role_id, actor.user_id, keys):
            allowed = True
    if (
        not allowed
        and state.phase == InstancePhase.SUBMITTED
        and state.is_submitter(actor)
        and submitter_can_edit_fields(machine, keys)
    ):
        allowed = True
    if not allowed:
        raise denied

    return LogEntry(
        level_index=state.level_index,
        actor_role_id=actor.role_id,
        actor_user_id=actor.user_id,
        action=ApprovalAction.EDIT,
        opinion=opinion,
        fields=keys,
        created_at=now,
    )


def plan_action(
    action: ApprovalAction | str,
    machine: Machine,
    state: InstanceState | None,
    actor: Actor,
    *,
    key: InstanceKey,
    **params,
) -> LogEntry:
    """Route to the ``plan_*`` function of ``action``."""
    try:
        action = ApprovalAction(action)
    except ValueError:
        raise UnknownActionError(key.category, key.uuid, str(action)) from None
    planner = _PLANNERS[action]
    return planner(machine, state, actor, key=key, **params)


_PLANNERS = {
    ApprovalAction.SUBMIT: plan_submit,
    ApprovalAction.APPROVE: plan_approve,
    ApprovalAction.REFUSE: plan_refuse,
    ApprovalAction.RESUBMIT: plan_resubmit,
    ApprovalAction.CONFIRM: plan_confirm,
    ApprovalAction.CANCEL: plan_cancel,
    ApprovalAction.EDIT: plan_edit,
}
