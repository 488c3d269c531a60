"""
approval_kernel.services.transition_service -- Approval transition engine.

Responsibility:
    Executes approval actions against instances: loads the machine and the
    instance's log, derives the state, lets the pure planner validate the
    action, appends exactly one entry with a conditional write, re-derives
    the status and notifies the transition hook.

Architecture position:
    Kernel > Services.  Depends on collaborators only through the
    ``domain.ports`` protocols; pure decisions live in ``approval_engines``.

Invariants enforced:
    - One entry per successful call; nothing written on failure.
    - Status is recomputed from the full log after every append.
    - Append-then-notify: the hook sees only durably appended entries, and
      its failure never rolls the entry back.
    - No global state: options come from the ``EngineConfig`` argument.

Concurrency:
    The append expects the sequence the caller observed.  When another
    writer got there first, the log is reloaded and the action re-planned
    once: if it is no longer legal the caller gets the same error a late
    caller would (e.g. NoPermissionOrEndedError); otherwise the
    LogAppendConflictError propagates.  The engine never retries.

Failure modes:
    - TransitionError subclasses for refused actions.
    - MachineNotFoundError from the machine store.
    - LogAppendConflictError, storage errors and hook errors unchanged.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from typing import Any

from approval_engines.permissions import (
    can_act,
    can_edit,
    can_refuse,
    submitter_can_edit_field,
)
from approval_engines.projection import project_state, project_status, project_track
from approval_engines.transitions import (
    plan_approve,
    plan_cancel,
    plan_confirm,
    plan_edit,
    plan_refuse,
    plan_resubmit,
    plan_submit,
)
from approval_kernel.domain.approval_log import (
    Actor,
    ApprovalAction,
    ApprovalLog,
    InstanceKey,
    InstancePhase,
    InstanceState,
    LogEntry,
    LogTrack,
    StatusProjection,
)
from approval_kernel.domain.clock import Clock, SystemClock
from approval_kernel.domain.dtos import (
    ApprovalRequest,
    DetailField,
    DetailRequest,
    SubmitRequest,
    TransitionResponse,
)
from approval_kernel.domain.engine_config import EngineConfig, HookFailurePolicy
from approval_kernel.domain.machine import Machine
from approval_kernel.domain.ports import (
    DetailProvider,
    HookContext,
    LogStore,
    MachineStore,
    TransitionHook,
)
from approval_kernel.exceptions import (
    DetailProviderMissingError,
    LogAppendConflictError,
    OpinionTooLongError,
    TransitionError,
    UnknownActionError,
)
from approval_kernel.logging_config import LogContext, get_logger
from approval_kernel.services.hook_outbox import HookOutbox

logger = get_logger("services.transition")

Planner = Callable[[Machine, InstanceState | None], LogEntry]


class ApprovalEngine:
    """
    The approval state machine service.

    Contract:
        Every public mutating method appends exactly one log entry and
        returns a ``TransitionResponse``, or raises without writing.

    Usage:
        engine = ApprovalEngine(machines, logs, hook=notify)
        engine.submit(category=1, uuid="abc", role_id=1, user_id=1)
        engine.approve(category=1, uuid="abc", role_id=5, user_id=9)
    """

    def __init__(
        self,
        machine_store: MachineStore,
        log_store: LogStore,
        *,
        hook: TransitionHook | None = None,
        detail_provider: DetailProvider | None = None,
        config: EngineConfig | None = None,
        clock: Clock | None = None,
        outbox: HookOutbox | None = None,
    ) -> None:
        self._machines = machine_store
        self._logs = log_store
        self._hook = hook
        self._details = detail_provider
        self._config = config or EngineConfig()
        self._clock = clock or SystemClock()
        if outbox is None:
            outbox = HookOutbox(max_attempts=self._config.max_hook_attempts)
        self._outbox = outbox

    @property
    def outbox(self) -> HookOutbox:
        return self._outbox

    @property
    def config(self) -> EngineConfig:
        return self._config

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def submit(self, category: int, uuid: str, role_id: int, user_id: int) -> TransitionResponse:
        """Open an approval chain for a record; the actor becomes the submitter."""
        actor = Actor(role_id, user_id)
        key = InstanceKey(category, uuid)
        return self._execute(
            key, actor, ApprovalAction.SUBMIT,
            lambda machine, state: plan_submit(
                machine, state, actor, key=key, now=self._clock.now(),
            ),
        )

    def approve(
        self,
        category: int,
        uuid: str,
        role_id: int,
        user_id: int,
        opinion: str = "",
        level: int | None = None,
    ) -> TransitionResponse:
        """Approve the level the instance is waiting on (or ``level``)."""
        actor = Actor(role_id, user_id)
        key = InstanceKey(category, uuid)
        self._check_opinion(key, opinion)
        return self._execute(
            key, actor, ApprovalAction.APPROVE,
            lambda machine, state: plan_approve(
                machine, state, actor,
                key=key, level=level, opinion=opinion, now=self._clock.now(),
            ),
        )

    def refuse(
        self,
        category: int,
        uuid: str,
        role_id: int,
        user_id: int,
        opinion: str = "",
        level: int | None = None,
    ) -> TransitionResponse:
        """Refuse at the awaited level; the submitter must resubmit."""
        actor = Actor(role_id, user_id)
        key = InstanceKey(category, uuid)
        self._check_opinion(key, opinion)
        return self._execute(
            key, actor, ApprovalAction.REFUSE,
            lambda machine, state: plan_refuse(
                machine, state, actor,
                key=key, level=level, opinion=opinion, now=self._clock.now(),
            ),
        )

    def resubmit(
        self,
        category: int,
        uuid: str,
        role_id: int,
        user_id: int,
        fields: Mapping[str, str] | None = None,
        opinion: str = "",
    ) -> TransitionResponse:
        """Restart a refused chain at level 0, optionally with field edits."""
        actor = Actor(role_id, user_id)
        key = InstanceKey(category, uuid)
        fields = dict(fields or {})
        self._check_opinion(key, opinion)
        return self._execute(
            key, actor, ApprovalAction.RESUBMIT,
            lambda machine, state: plan_resubmit(
                machine, state, actor,
                key=key, fields=fields.keys(), opinion=opinion, now=self._clock.now(),
            ),
            detail_fields=fields,
        )

    def confirm(
        self,
        category: int,
        uuid: str,
        role_id: int,
        user_id: int,
        approved: bool,
        opinion: str = "",
    ) -> TransitionResponse:
        """Submitter accepts (ends) or rejects (back to resubmit) the result."""
        actor = Actor(role_id, user_id)
        key = InstanceKey(category, uuid)
        self._check_opinion(key, opinion)
        return self._execute(
            key, actor, ApprovalAction.CONFIRM,
            lambda machine, state: plan_confirm(
                machine, state, actor,
                key=key, approved=approved, opinion=opinion, now=self._clock.now(),
            ),
        )

    def cancel(
        self,
        category: int,
        uuid: str,
        role_id: int,
        user_id: int,
        opinion: str = "",
    ) -> TransitionResponse:
        """Withdraw a chain before anyone acted on it."""
        actor = Actor(role_id, user_id)
        key = InstanceKey(category, uuid)
        self._check_opinion(key, opinion)
        return self._execute(
            key, actor, ApprovalAction.CANCEL,
            lambda machine, state: plan_cancel(
                machine, state, actor, key=key, opinion=opinion, now=self._clock.now(),
            ),
        )

    def edit_detail(
        self,
        category: int,
        uuid: str,
        role_id: int,
        user_id: int,
        fields: Mapping[str, str],
        opinion: str = "",
    ) -> TransitionResponse:
        """Record which field keys the actor changed; the phase is unchanged."""
        actor = Actor(role_id, user_id)
        key = InstanceKey(category, uuid)
        fields = dict(fields)
        self._check_opinion(key, opinion)
        return self._execute(
            key, actor, ApprovalAction.EDIT,
            lambda machine, state: plan_edit(
                machine, state, actor,
                key=key, fields=fields.keys(), opinion=opinion, now=self._clock.now(),
            ),
            detail_fields=fields,
        )

    def dispatch(self, action: ApprovalAction | str, payload: Mapping[str, Any]) -> TransitionResponse:
        """Run ``action`` with a camelCase wire payload."""
        try:
            action = ApprovalAction(action)
        except ValueError:
            raise UnknownActionError(
                int(payload.get("category") or 0), str(payload.get("uuid") or ""), str(action),
            ) from None

        if action == ApprovalAction.SUBMIT:
            req = SubmitRequest.from_dict(payload)
            return self.submit(req.category, req.uuid, req.submitter_role_id, req.submitter_user_id)
        if action in (ApprovalAction.EDIT, ApprovalAction.RESUBMIT):
            detail = DetailRequest.from_dict(payload)
            method = self.edit_detail if action == ApprovalAction.EDIT else self.resubmit
            return method(
                detail.category, detail.uuid,
                detail.approval_role_id, detail.approval_user_id,
                detail.field_map(), opinion=detail.approval_opinion,
            )

        req = ApprovalRequest.from_dict(payload)
        args = (req.category, req.uuid, req.approval_role_id, req.approval_user_id)
        if action == ApprovalAction.APPROVE:
            return self.approve(*args, opinion=req.approval_opinion, level=req.level)
        if action == ApprovalAction.REFUSE:
            return self.refuse(*args, opinion=req.approval_opinion, level=req.level)
        if action == ApprovalAction.CONFIRM:
            return self.confirm(*args, approved=bool(req.approved), opinion=req.approval_opinion)
        return self.cancel(*args, opinion=req.approval_opinion)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_logs(self, category: int, uuid: str) -> tuple[ApprovalLog, ...]:
        return self._logs.list_logs(InstanceKey(category, uuid))

    def get_state(self, category: int, uuid: str) -> InstanceState | None:
        machine = self._machines.get_machine(category)
        return project_state(machine, self.get_logs(category, uuid))

    def get_status(self, category: int, uuid: str) -> StatusProjection:
        return project_status(self.get_state(category, uuid))

    def log_track(self, category: int, uuid: str) -> tuple[LogTrack, ...]:
        machine = self._machines.get_machine(category)
        return project_track(machine, self.get_logs(category, uuid))

    def check_permission(
        self,
        category: int,
        uuid: str,
        role_id: int,
        user_id: int,
        approved: bool = True,
    ) -> bool:
        """May the actor approve (``approved``) or refuse the instance now?"""
        machine = self._machines.get_machine(category)
        state = project_state(machine, self.get_logs(category, uuid))
        if state is None or not state.is_approving:
            return False
        level = machine.level(state.level_index)
        if level is None:
            return False
        if approved:
            return can_act(level, role_id, user_id)
        return can_refuse(level, role_id, user_id)

    def submitter_detail(
        self,
        category: int,
        uuid: str,
        role_id: int | None = None,
        user_id: int | None = None,
    ) -> tuple[DetailField, ...]:
        """Current record fields with whether the actor may edit each now.

        Without an actor, ``editable`` reflects the submitter's allowance.
        """
        if self._details is None:
            raise DetailProviderMissingError("submitter_detail")
        machine = self._machines.get_machine(category)
        state = project_state(machine, self.get_logs(category, uuid))
        detail = self._details.get_detail(category, uuid)

        def editable(field_key: str) -> bool:
            if state is None:
                return False
            if role_id is not None and user_id is not None and state.is_approving:
                level = machine.level(state.level_index)
                if (
                    level is not None
                    and can_edit(level, role_id, user_id)
                    and field_key in level.edit_fields
                ):
                    return True
            submitter_turn = state.phase in (
                InstancePhase.SUBMITTED, InstancePhase.WAITING_RESUBMIT,
            )
            is_submitter = user_id is None or user_id == state.submitter_user_id
            return submitter_turn and is_submitter and submitter_can_edit_field(machine, field_key)

        return tuple(
            DetailField(key=k, val=str(v), editable=editable(k))
            for k, v in detail.items()
        )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _check_opinion(self, key: InstanceKey, opinion: str) -> None:
        limit = self._config.max_opinion_length
        if limit and len(opinion) > limit:
            raise OpinionTooLongError(key.category, key.uuid, len(opinion), limit)

    def _execute(
        self,
        key: InstanceKey,
        actor: Actor,
        action: ApprovalAction,
        planner: Planner,
        detail_fields: Mapping[str, str] | None = None,
    ) -> TransitionResponse:
        with LogContext.bind_instance(key, actor_id=actor.user_id, action=action.value):
            machine = self._machines.get_machine(key.category)
            logs = self._logs.list_logs(key)
            state = project_state(machine, logs)
            expected = logs[-1].sequence if logs else 0

            try:
                entry = planner(machine, state)
            except TransitionError as exc:
                logger.info(
                    "transition_rejected",
                    extra={"error_code": exc.code, "observed_sequence": expected},
                )
                raise

            try:
                sequence = self._logs.append_log(key, expected, entry)
            except LogAppendConflictError:
                self._replan_after_conflict(key, machine, planner)
                raise

            logger.info(
                "approval_log_appended",
                extra={"sequence": sequence, "level_index": entry.level_index},
            )

            # The entry is committed: the hook runs even if the provider fails
            try:
                if detail_fields and self._details is not None:
                    self._details.update_detail(key.category, key.uuid, detail_fields)
            finally:
                logs = self._logs.list_logs(key)
                status = project_status(project_state(machine, logs))
                context = HookContext(
                    category=key.category,
                    uuid=key.uuid,
                    action=action,
                    actor_role_id=actor.role_id,
                    actor_user_id=actor.user_id,
                    sequence=sequence,
                    status=status,
                )
                self._notify(context, logs)
            return TransitionResponse(status=status, logs=logs)

    def _replan_after_conflict(
        self,
        key: InstanceKey,
        machine: Machine,
        planner: Planner,
    ) -> None:
        """Surface the domain error a late caller would see, if any."""
        logs = self._logs.list_logs(key)
        state = project_state(machine, logs)
        logger.warning(
            "approval_log_conflict",
            extra={"stored_sequence": logs[-1].sequence if logs else 0},
        )
        # Raises the TransitionError when the action is no longer legal
        planner(machine, state)

    def _notify(self, context: HookContext, logs: tuple[ApprovalLog, ...]) -> None:
        if self._hook is None:
            return
        try:
            self._hook(context, logs)
        except Exception as exc:  # hook is host code; the entry is committed
            if self._config.record_hook_failures:
                delivery = self._outbox.record_failure(context, logs, exc)
                delivery_id = str(delivery.delivery_id)
            else:
                delivery_id = None
            logger.error(
                "transition_hook_failed",
                exc_info=True,
                extra={"sequence": context.sequence, "delivery_id": delivery_id},
            )
            if self._config.hook_failure_policy == HookFailurePolicy.RAISE:
                raise
