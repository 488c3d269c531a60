"""
Tests for the pure transition planner.

Tests cover:
- plan_submit: new chain, repeat submit, re-submit after a terminal chain
- plan_approve / plan_refuse: awaited level, authorization, stale level
- plan_resubmit / plan_confirm: phase and submitter checks, field allowance
- plan_cancel: submitter only, before anyone acted
- plan_edit: approver edit rights, submitter edit window, empty key list
- plan_action: routing and unknown actions
"""

from datetime import UTC, datetime

import pytest

from approval_engines.level_graph import build_machine
from approval_engines.transitions import (
    plan_action,
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
    InstanceKey,
    InstancePhase,
    InstanceState,
)
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

KEY = InstanceKey(1, "doc-1")
SUBMITTER = Actor(role_id=1, user_id=1)
LEAD = Actor(role_id=5, user_id=9)
HR = Actor(role_id=3, user_id=7)
STRANGER = Actor(role_id=6, user_id=9)
NOW = datetime(2024, 1, 1, 12, 0, tzinfo=UTC)


def make_state(
    phase: InstancePhase = InstancePhase.SUBMITTED,
    level_index: int = 0,
    chain_length: int = 1,
) -> InstanceState:
    return InstanceState(
        phase=phase,
        level_index=level_index,
        last_sequence=chain_length,
        chain_length=chain_length,
        submitter_role_id=SUBMITTER.role_id,
        submitter_user_id=SUBMITTER.user_id,
    )


@pytest.fixture
def machine(machine_def):
    return build_machine(machine_def)


class TestPlanSubmit:

    def test_first_submit(self, machine):
        entry = plan_submit(machine, None, SUBMITTER, key=KEY, now=NOW)
        assert entry.action == ApprovalAction.SUBMIT
        assert entry.level_index == 0
        assert entry.actor_user_id == SUBMITTER.user_id
        assert entry.created_at == NOW

    @pytest.mark.parametrize("phase", [
        InstancePhase.SUBMITTED,
        InstancePhase.APPROVING,
        InstancePhase.WAITING_CONFIRM,
        InstancePhase.WAITING_RESUBMIT,
    ])
    def test_repeat_submit_while_active(self, machine, phase):
        with pytest.raises(RepeatSubmitError):
            plan_submit(machine, make_state(phase), SUBMITTER, key=KEY)

    @pytest.mark.parametrize("phase", [InstancePhase.ENDED, InstancePhase.CANCELLED])
    def test_submit_after_terminal_chain(self, machine, phase):
        entry = plan_submit(machine, make_state(phase), SUBMITTER, key=KEY)
        assert entry.action == ApprovalAction.SUBMIT


class TestPlanApprove:

    def test_authorized_by_role(self, machine):
        entry = plan_approve(machine, make_state(), LEAD, key=KEY, opinion="ok", now=NOW)
        assert entry.action == ApprovalAction.APPROVE
        assert entry.level_index == 0
        assert entry.opinion == "ok"

    def test_authorized_by_user(self, machine):
        state = make_state(InstancePhase.APPROVING, level_index=1, chain_length=2)
        entry = plan_approve(machine, state, HR, key=KEY)
        assert entry.level_index == 1

    def test_unauthorized(self, machine):
        with pytest.raises(NoPermissionApproveError):
            plan_approve(machine, make_state(), STRANGER, key=KEY)

    def test_stale_level(self, machine):
        state = make_state(InstancePhase.APPROVING, level_index=1, chain_length=2)
        with pytest.raises(NoPermissionOrEndedError):
            plan_approve(machine, state, LEAD, key=KEY, level=0)

    def test_matching_level(self, machine):
        entry = plan_approve(machine, make_state(), LEAD, key=KEY, level=0)
        assert entry.level_index == 0

    @pytest.mark.parametrize("phase", [
        InstancePhase.ENDED,
        InstancePhase.CANCELLED,
        InstancePhase.WAITING_CONFIRM,
        InstancePhase.WAITING_RESUBMIT,
    ])
    def test_not_approving(self, machine, phase):
        with pytest.raises(NoPermissionOrEndedError):
            plan_approve(machine, make_state(phase, level_index=2), HR, key=KEY)

    def test_never_submitted(self, machine):
        with pytest.raises(NoPermissionOrEndedError):
            plan_approve(machine, None, LEAD, key=KEY)


class TestPlanRefuse:

    def test_refuse(self, machine):
        entry = plan_refuse(machine, make_state(), LEAD, key=KEY, opinion="no")
        assert entry.action == ApprovalAction.REFUSE

    def test_unauthorized(self, machine):
        with pytest.raises(NoPermissionRefuseError):
            plan_refuse(machine, make_state(), STRANGER, key=KEY)

    def test_level_forbids_refusal(self, machine_def):
        from dataclasses import replace

        levels = (replace(machine_def.levels[0], refuse=False), machine_def.levels[1])
        machine = build_machine(replace(machine_def, levels=levels))
        with pytest.raises(NoPermissionRefuseError):
            plan_refuse(machine, make_state(), LEAD, key=KEY)


class TestPlanResubmit:

    def test_resubmit(self, machine):
        state = make_state(InstancePhase.WAITING_RESUBMIT, level_index=1, chain_length=3)
        entry = plan_resubmit(machine, state, SUBMITTER, key=KEY, fields=["remark", "amount"])
        assert entry.action == ApprovalAction.RESUBMIT
        assert entry.level_index == 0
        assert entry.fields == ("amount", "remark")

    def test_wrong_phase(self, machine):
        with pytest.raises(IllegalStatusError):
            plan_resubmit(machine, make_state(), SUBMITTER, key=KEY)

    def test_not_submitter(self, machine):
        state = make_state(InstancePhase.WAITING_RESUBMIT, chain_length=2)
        with pytest.raises(IllegalStatusError):
            plan_resubmit(machine, state, LEAD, key=KEY)

    def test_field_outside_allowance(self, machine):
        state = make_state(InstancePhase.WAITING_RESUBMIT, chain_length=2)
        with pytest.raises(NoEditLogDetailPermissionError) as exc_info:
            plan_resubmit(machine, state, SUBMITTER, key=KEY, fields=["payee"])
        assert exc_info.value.fields == ("payee",)


class TestPlanConfirm:

    def test_confirm(self, machine):
        state = make_state(InstancePhase.WAITING_CONFIRM, level_index=2, chain_length=3)
        entry = plan_confirm(machine, state, SUBMITTER, key=KEY, approved=True)
        assert entry.action == ApprovalAction.CONFIRM
        assert entry.approved is True

    def test_wrong_phase(self, machine):
        with pytest.raises(IllegalStatusError):
            plan_confirm(machine, make_state(), SUBMITTER, key=KEY, approved=True)

    def test_not_submitter(self, machine):
        state = make_state(InstancePhase.WAITING_CONFIRM, level_index=2, chain_length=3)
        with pytest.raises(IllegalStatusError):
            plan_confirm(machine, state, HR, key=KEY, approved=True)


class TestPlanCancel:

    def test_cancel_untouched_chain(self, machine):
        entry = plan_cancel(machine, make_state(), SUBMITTER, key=KEY)
        assert entry.action == ApprovalAction.CANCEL

    def test_never_submitted(self, machine):
        with pytest.raises(IllegalStatusError):
            plan_cancel(machine, None, SUBMITTER, key=KEY)

    def test_not_submitter(self, machine):
        with pytest.raises(OnlySubmitterCancelError):
            plan_cancel(machine, make_state(), LEAD, key=KEY)

    def test_started(self, machine):
        state = make_state(InstancePhase.APPROVING, level_index=1, chain_length=2)
        with pytest.raises(StartedCannotCancelError):
            plan_cancel(machine, state, SUBMITTER, key=KEY)

    def test_terminal_single_entry_chain(self):
        from approval_kernel.domain.machine import Machine

        state = make_state(InstancePhase.ENDED)
        with pytest.raises(StartedCannotCancelError):
            plan_cancel(Machine(category=9, name="direct"), state, SUBMITTER, key=KEY)


class TestPlanEdit:

    def test_approver_with_edit_rights(self, machine):
        state = make_state(InstancePhase.APPROVING, level_index=1, chain_length=2)
        entry = plan_edit(machine, state, HR, key=KEY, fields=["amount", "amount"])
        assert entry.action == ApprovalAction.EDIT
        assert entry.fields == ("amount",)
        assert entry.level_index == 1

    def test_approver_field_outside_level(self, machine):
        state = make_state(InstancePhase.APPROVING, level_index=1, chain_length=2)
        with pytest.raises(NoEditLogDetailPermissionError):
            plan_edit(machine, state, HR, key=KEY, fields=["remark"])

    def test_approver_without_edit_flag(self, machine):
        with pytest.raises(NoEditLogDetailPermissionError):
            plan_edit(machine, make_state(), LEAD, key=KEY, fields=["amount"])

    def test_submitter_before_approval(self, machine):
        entry = plan_edit(machine, make_state(), SUBMITTER, key=KEY, fields=["remark"])
        assert entry.fields == ("remark",)

    def test_submitter_after_approval_started(self, machine):
        state = make_state(InstancePhase.APPROVING, level_index=1, chain_length=2)
        with pytest.raises(NoEditLogDetailPermissionError):
            plan_edit(machine, state, SUBMITTER, key=KEY, fields=["remark"])

    def test_empty_field_list(self, machine):
        with pytest.raises(NoEditLogDetailPermissionError):
            plan_edit(machine, make_state(), SUBMITTER, key=KEY, fields=[])

    def test_never_submitted(self, machine):
        with pytest.raises(NoEditLogDetailPermissionError):
            plan_edit(machine, None, SUBMITTER, key=KEY, fields=["remark"])


class TestPlanAction:

    def test_routes_by_name(self, machine):
        entry = plan_action("approve", machine, make_state(), LEAD, key=KEY)
        assert entry.action == ApprovalAction.APPROVE

    def test_unknown_action(self, machine):
        with pytest.raises(UnknownActionError) as exc_info:
            plan_action("escalate", machine, make_state(), LEAD, key=KEY)
        assert exc_info.value.action == "escalate"
