"""
Module: approval_engines
Responsibility:
    Package entrypoint that re-exports the public symbols of the pure
    approval engine sub-modules: level graph builder, permission resolver,
    status projection and transition planner.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import approval_kernel domain types and exceptions.
    MUST NOT import approval_kernel services, models or db.

Invariants enforced:
    - Purity: engines never read the clock; timestamps are passed in.
    - Determinism: identical inputs always produce identical outputs.
"""

from approval_engines.level_graph import (
    build_levels,
    build_machine,
    parse_field_keys,
    parse_id_set,
)
from approval_engines.permissions import (
    can_act,
    can_edit,
    can_edit_fields,
    can_refuse,
    is_pending,
    submitter_can_edit_field,
    submitter_can_edit_fields,
)
from approval_engines.projection import (
    current_chain,
    project_state,
    project_status,
    project_track,
)
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

__all__ = [
    "build_levels",
    "build_machine",
    "parse_field_keys",
    "parse_id_set",
    "can_act",
    "can_edit",
    "can_edit_fields",
    "can_refuse",
    "is_pending",
    "submitter_can_edit_field",
    "submitter_can_edit_fields",
    "current_chain",
    "project_state",
    "project_status",
    "project_track",
    "plan_action",
    "plan_approve",
    "plan_cancel",
    "plan_confirm",
    "plan_edit",
    "plan_refuse",
    "plan_resubmit",
    "plan_submit",
]
