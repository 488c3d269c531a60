"""
Module: approval_kernel.models.machine
Responsibility: ORM persistence for approval machine definitions.

Architecture position: Kernel > Models.  May import from db/base.py and
    domain/ only.

Invariants enforced:
    - One machine per category: UNIQUE(category).
    - The authored definition is stored as-is (ids and field keys as
      comma-separated strings, levels as JSON); resolution to a ``Machine``
      happens once per load in ``MachineService``.
"""

from __future__ import annotations

from sqlalchemy import JSON, Boolean, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from approval_kernel.db.base import TimestampedBase
from approval_kernel.domain.machine import LevelDef, MachineDef


class MachineModel(TimestampedBase):
    """Persistent approval machine definition."""

    __tablename__ = "approval_machines"

    category: Mapped[int] = mapped_column(nullable=False, unique=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    submitter_name: Mapped[str] = mapped_column(String(200), nullable=False, default="")
    submitter_edit_fields: Mapped[str] = mapped_column(Text, nullable=False, default="")
    submitter_confirm: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    submitter_confirm_edit_fields: Mapped[str] = mapped_column(
        Text, nullable=False, default="",
    )
    levels: Mapped[list] = mapped_column(JSON, nullable=False, default=list)

    def __repr__(self) -> str:
        return f"<ApprovalMachine {self.category} {self.name!r}>"

    def to_definition(self) -> MachineDef:
        """Convert ORM model to the authored domain definition."""
        return MachineDef(
            category=self.category,
            name=self.name,
            submitter_name=self.submitter_name,
            submitter_edit_fields=self.submitter_edit_fields,
            submitter_confirm=self.submitter_confirm,
            submitter_confirm_edit_fields=self.submitter_confirm_edit_fields,
            levels=tuple(LevelDef.from_dict(lv) for lv in self.levels or ()),
        )

    def apply_definition(self, definition: MachineDef) -> None:
        """Copy every authored field of ``definition`` onto this row."""
        data = definition.to_dict()
        self.category = definition.category
        self.name = definition.name
        self.submitter_name = definition.submitter_name
        self.submitter_edit_fields = data["submitterEditFields"]
        self.submitter_confirm = definition.submitter_confirm
        self.submitter_confirm_edit_fields = data["submitterConfirmEditFields"]
        self.levels = data["levels"]

    @classmethod
    def from_definition(cls, definition: MachineDef) -> MachineModel:
        model = cls()
        model.apply_definition(definition)
        return model
