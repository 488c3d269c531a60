"""
approval_engines.permissions -- Permission Resolver.

Pure predicates over a resolved ``Level`` (or ``Machine``) and an actor.
A level authorizes an actor when the actor's user id is listed, or the
actor's role id is listed.
"""

from __future__ import annotations

from collections.abc import Iterable

from approval_kernel.domain.machine import Level, Machine


def can_act(level: Level, role_id: int, user_id: int) -> bool:
    return user_id in level.users or role_id in level.roles


def can_edit(level: Level, role_id: int, user_id: int) -> bool:
    return level.edit and can_act(level, role_id, user_id)


def can_refuse(level: Level, role_id: int, user_id: int) -> bool:
    return level.refuse and can_act(level, role_id, user_id)


def can_edit_fields(level: Level, role_id: int, user_id: int, keys: Iterable[str]) -> bool:
    """Approver may edit every one of ``keys`` at this level."""
    return can_edit(level, role_id, user_id) and set(keys) <= level.edit_fields


def submitter_can_edit_field(machine: Machine, field_key: str) -> bool:
    return field_key in machine.submitter_edit_fields


def submitter_can_edit_fields(machine: Machine, keys: Iterable[str]) -> bool:
    return set(keys) <= machine.submitter_edit_fields


def is_pending(level: Level, role_id: int, user_id: int) -> bool:
    """Approving-queue predicate for listing queries.

    True when an instance waiting at ``level`` is waiting for this actor.
    """
    return can_act(level, role_id, user_id)
