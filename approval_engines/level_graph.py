"""
approval_engines.level_graph -- Level Graph Builder.

Responsibility:
    Resolve an authored ``MachineDef`` into an immutable ``Machine``: validate
    the level list and materialize every comma-separated role/user id list
    and field-key list into frozensets, once, at machine-load time.  The
    permission checks never re-parse.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import approval_kernel domain types and exceptions.

Validation order:
    1. Empty level list                    -> EventsEmptyError
    2. Level with a blank name             -> EventNameEmptyError
    3. Zero or several terminal candidates -> EventEndPointNotUniqueError
    4. Non-integer role/user id token      -> InvalidLevelIdsError

Terminal rule:
    With no explicit ``end`` flag on any level, the last level is the
    terminal.  Once any level carries the flag, exactly one level may be
    ``end=True`` and it must be the last one.
"""

from __future__ import annotations

from collections.abc import Sequence

from approval_engines.tracer import traced_engine
from approval_kernel.domain.machine import (
    FieldList,
    IdList,
    Level,
    LevelDef,
    Machine,
    MachineDef,
)
from approval_kernel.exceptions import (
    EventEndPointNotUniqueError,
    EventNameEmptyError,
    EventsEmptyError,
    InvalidLevelIdsError,
)


def parse_id_set(value: IdList, *, level_name: str = "", field: str = "id") -> frozenset[int]:
    """Parse ``"1,2, 2"`` or ``[1, 2, 2]`` into ``frozenset({1, 2})``.

    Blank tokens are skipped.
    """
    if isinstance(value, str):
        tokens: Sequence = value.split(",")
    else:
        tokens = value

    ids: set[int] = set()
    for token in tokens:
        if isinstance(token, bool):
            raise InvalidLevelIdsError(level_name, field, str(token))
        if isinstance(token, int):
            ids.add(token)
            continue
        text = str(token).strip()
        if not text:
            continue
        try:
            ids.add(int(text))
        except ValueError:
            raise InvalidLevelIdsError(level_name, field, text) from None
    return frozenset(ids)


def parse_field_keys(value: FieldList) -> frozenset[str]:
    """Parse ``"amount, remark"`` or ``["amount", "remark"]`` into a key set."""
    tokens = value.split(",") if isinstance(value, str) else value
    return frozenset(str(t).strip() for t in tokens if str(t).strip())


def _terminal_indexes(level_defs: Sequence[LevelDef]) -> list[int]:
    if all(d.end is None for d in level_defs):
        return [len(level_defs) - 1]
    return [i for i, d in enumerate(level_defs) if d.end]


@traced_engine("level_graph", "1.0")
def build_levels(level_defs: Sequence[LevelDef], *, machine_name: str = "") -> tuple[Level, ...]:
    """Validate and resolve an ordered level definition list.

    Raises:
        EventsEmptyError, EventNameEmptyError, EventEndPointNotUniqueError,
        InvalidLevelIdsError -- see module docstring for order.
    """
    if not level_defs:
        raise EventsEmptyError(machine_name)

    for index, level_def in enumerate(level_defs):
        if not (level_def.name or "").strip():
            raise EventNameEmptyError(index)

    end_indexes = _terminal_indexes(level_defs)
    if end_indexes != [len(level_defs) - 1]:
        raise EventEndPointNotUniqueError(end_indexes)

    return tuple(
        Level(
            name=d.name.strip(),
            edit=d.edit,
            refuse=d.refuse,
            edit_fields=parse_field_keys(d.edit_fields),
            roles=parse_id_set(d.roles, level_name=d.name, field="role"),
            users=parse_id_set(d.users, level_name=d.name, field="user"),
        )
        for d in level_defs
    )


def build_machine(machine_def: MachineDef) -> Machine:
    """Resolve an authored machine into the immutable engine form."""
    return Machine(
        category=machine_def.category,
        name=machine_def.name,
        submitter_name=machine_def.submitter_name,
        submitter_edit_fields=parse_field_keys(machine_def.submitter_edit_fields),
        submitter_confirm=machine_def.submitter_confirm,
        submitter_confirm_edit_fields=parse_field_keys(
            machine_def.submitter_confirm_edit_fields
        ),
        levels=build_levels(machine_def.levels, machine_name=machine_def.name),
    )
