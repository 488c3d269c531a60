"""Tests for the wire DTOs and the value objects' wire shapes."""

from datetime import UTC, datetime

import pytest

from approval_kernel.domain.approval_log import (
    ApprovalAction,
    ApprovalLog,
    LogEntry,
    InstanceKey,
    StatusProjection,
)
from approval_kernel.domain.dtos import (
    ApprovalRequest,
    DetailField,
    DetailRequest,
    SubmitRequest,
    TransitionResponse,
)
from approval_kernel.domain.machine import LevelDef, MachineDef


class TestRequests:

    def test_submit_request(self):
        req = SubmitRequest.from_dict({
            "category": "3", "uuid": "doc-1", "submitterRoleId": 2, "submitterUserId": "8",
        })
        assert req == SubmitRequest(category=3, uuid="doc-1", submitter_role_id=2, submitter_user_id=8)

    def test_approval_request_defaults(self):
        req = ApprovalRequest.from_dict({"category": 1, "uuid": "doc-1"})
        assert req.approval_opinion == ""
        assert req.approved is None
        assert req.level is None

    @pytest.mark.parametrize("raw, expected", [
        (True, True), (False, False), (1, True), (0, False),
        ("1", True), ("true", True), ("0", False), ("no", False),
    ])
    def test_approved_flag_forms(self, raw, expected):
        req = ApprovalRequest.from_dict({"category": 1, "uuid": "u", "approved": raw})
        assert req.approved is expected

    def test_detail_request_field_map(self):
        req = DetailRequest.from_dict({
            "category": 1,
            "uuid": "doc-1",
            "approvalRoleId": 5,
            "approvalUserId": 9,
            "fields": [{"key": "amount", "val": "10"}, {"key": "remark"}],
        })
        assert req.field_map() == {"amount": "10", "remark": ""}
        assert req.fields[0] == DetailField(key="amount", val="10")

    def test_missing_category(self):
        with pytest.raises(KeyError):
            ApprovalRequest.from_dict({"uuid": "doc-1"})


class TestResponses:

    def test_transition_response(self):
        created = datetime(2024, 1, 1, 12, 0, tzinfo=UTC)
        log = LogEntry(
            level_index=0,
            actor_role_id=1,
            actor_user_id=2,
            action=ApprovalAction.SUBMIT,
            created_at=created,
        ).sequenced(InstanceKey(1, "doc-1"), 1)
        payload = TransitionResponse(status=StatusProjection(), logs=(log,)).to_dict()

        assert payload["end"] is False
        assert payload["cancel"] is False
        assert payload["logs"] == [{
            "category": 1,
            "uuid": "doc-1",
            "sequence": 1,
            "levelIndex": 0,
            "approvalRoleId": 1,
            "approvalUserId": 2,
            "action": "submit",
            "approvalOpinion": "",
            "fields": [],
            "approved": None,
            "createdAt": created.isoformat(),
        }]

    def test_sequenced_entry(self):
        log = LogEntry(
            level_index=1, actor_role_id=5, actor_user_id=9, action=ApprovalAction.APPROVE,
        ).sequenced(InstanceKey(2, "x"), 7)
        assert isinstance(log, ApprovalLog)
        assert (log.category, log.uuid, log.sequence) == (2, "x", 7)


class TestMachineDefWire:

    def test_to_dict_joins_lists(self):
        definition = MachineDef(
            category=1,
            name="expense",
            submitter_edit_fields=("amount", "remark"),
            levels=(LevelDef(name="lead", roles=(5, 6)),),
        )
        data = definition.to_dict()
        assert data["submitterEditFields"] == "amount,remark"
        assert data["levels"][0]["roles"] == "5,6"

    def test_round_trip_through_dict(self, machine_def):
        assert MachineDef.from_dict(machine_def.to_dict()).to_dict() == machine_def.to_dict()
