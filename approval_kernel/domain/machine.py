"""
Machine definition types (``approval_kernel.domain.machine``).

Responsibility
--------------
Pure value objects for approval machines.  A *definition* (``MachineDef``
and ``LevelDef``) is what an administrator authors: role/user ids and field
keys as comma-separated strings or lists.  A *resolved* machine
(``Machine`` and ``Level``) is what the engine consults: every id list and
field list already materialized as a frozenset.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.  Resolution from
definition to machine lives in ``approval_engines.level_graph``.

Invariants enforced
-------------------
* A ``Machine`` is immutable; once instances reference its category the
  machine registry refuses updates (see ``MachineService``).
* ``Machine.levels`` order is the approval sequence; the last level is the
  terminal approving level.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any

IdList = str | Sequence[int]
FieldList = str | Sequence[str]


# =========================================================================
# Definitions (authored)
# =========================================================================


@dataclass(frozen=True)
class LevelDef:
    """One authored approval level.

    ``end`` is optional.  When no level of a machine sets it, the last level
    is the implied terminal; when any level sets it, exactly one level (the
    last) must set ``end=True``.
    """

    name: str
    edit: bool = False
    refuse: bool = False
    edit_fields: FieldList = ""
    roles: IdList = ""
    users: IdList = ""
    end: bool | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> LevelDef:
        """Parse a wire/YAML dict (camelCase or snake_case keys)."""
        return cls(
            name=data.get("name") or "",
            edit=parse_flag(data.get("edit")),
            refuse=parse_flag(data.get("refuse")),
            edit_fields=_first(data, "editFields", "edit_fields", default=""),
            roles=data.get("roles") or "",
            users=data.get("users") or "",
            end=parse_optional_flag(data.get("end")),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "edit": self.edit,
            "refuse": self.refuse,
            "editFields": _join(self.edit_fields),
            "roles": _join(self.roles),
            "users": _join(self.users),
            "end": self.end,
        }


@dataclass(frozen=True)
class MachineDef:
    """An authored approval machine for one category of record."""

    category: int
    name: str
    submitter_name: str = ""
    submitter_edit_fields: FieldList = ""
    submitter_confirm: bool = False
    submitter_confirm_edit_fields: FieldList = ""
    levels: tuple[LevelDef, ...] = ()

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> MachineDef:
        """Parse a wire/YAML dict (camelCase or snake_case keys)."""
        return cls(
            category=int(data["category"]),
            name=data.get("name") or "",
            submitter_name=_first(data, "submitterName", "submitter_name", default=""),
            submitter_edit_fields=_first(
                data, "submitterEditFields", "submitter_edit_fields", default="",
            ),
            submitter_confirm=parse_flag(
                _first(data, "submitterConfirm", "submitter_confirm", default=None)
            ),
            submitter_confirm_edit_fields=_first(
                data,
                "submitterConfirmEditFields",
                "submitter_confirm_edit_fields",
                default="",
            ),
            levels=tuple(LevelDef.from_dict(lv) for lv in data.get("levels") or ()),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "category": self.category,
            "name": self.name,
            "submitterName": self.submitter_name,
            "submitterEditFields": _join(self.submitter_edit_fields),
            "submitterConfirm": self.submitter_confirm,
            "submitterConfirmEditFields": _join(self.submitter_confirm_edit_fields),
            "levels": [lv.to_dict() for lv in self.levels],
        }


# =========================================================================
# Resolved machine
# =========================================================================


@dataclass(frozen=True)
class Level:
    """A resolved approval level.  Ids and field keys are parsed sets."""

    name: str
    edit: bool = False
    refuse: bool = False
    edit_fields: frozenset[str] = frozenset()
    roles: frozenset[int] = frozenset()
    users: frozenset[int] = frozenset()


@dataclass(frozen=True)
class Machine:
    """A resolved approval machine.

    ``submitter_confirm_edit_fields`` is carried for the hosting application
    but no transition consults it.
    """

    category: int
    name: str
    submitter_name: str = ""
    submitter_edit_fields: frozenset[str] = frozenset()
    submitter_confirm: bool = False
    submitter_confirm_edit_fields: frozenset[str] = frozenset()
    levels: tuple[Level, ...] = field(default_factory=tuple)

    @property
    def level_count(self) -> int:
        return len(self.levels)

    def level(self, index: int) -> Level | None:
        """Return the level at ``index`` or None when out of range."""
        if 0 <= index < len(self.levels):
            return self.levels[index]
        return None

    def is_last_level(self, index: int) -> bool:
        return index == len(self.levels) - 1


def _first(data: dict[str, Any], *keys: str, default: Any) -> Any:
    for key in keys:
        if key in data and data[key] is not None:
            return data[key]
    return default


def _join(value: IdList | FieldList) -> str:
    if isinstance(value, str):
        return value
    return ",".join(str(v) for v in value)


def parse_flag(value: Any, default: bool = False) -> bool:
    """Read a 0/1 or true/false flag, as numbers, strings or booleans."""
    if value is None:
        return default
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes")
    return bool(value)


def parse_optional_flag(value: Any) -> bool | None:
    if value is None:
        return None
    return parse_flag(value)
