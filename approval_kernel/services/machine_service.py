"""
approval_kernel.services.machine_service -- Approval machine registry.

Responsibility:
    Create, update, delete and look up approval machines.  Every definition
    passes through the Level Graph Builder before it is stored, so a stored
    machine is always valid, and ``get_machine`` resolves it once per
    service instance.

Architecture position:
    Kernel > Services.  May import from domain/, models/, db/ and the pure
    ``approval_engines`` builder.

Invariants enforced:
    - One machine per category.
    - A machine referenced by approval logs is immutable: update and delete
      are refused (instances derive their state by replaying the log
      against the machine, so changing it would rewrite history).

Failure modes:
    - MachineDefinitionError subclasses from the builder on invalid input.
    - MachineAlreadyExistsError / MachineNotFoundError / MachineInUseError.
"""

from __future__ import annotations

import threading
from collections.abc import Iterable

from sqlalchemy import select
from sqlalchemy.orm import Session

from approval_engines.level_graph import build_machine
from approval_kernel.domain.machine import Machine, MachineDef
from approval_kernel.domain.ports import LogStore
from approval_kernel.exceptions import (
    MachineAlreadyExistsError,
    MachineInUseError,
    MachineNotFoundError,
)
from approval_kernel.logging_config import get_logger
from approval_kernel.models.machine import MachineModel

logger = get_logger("services.machine")


class MachineService:
    """
    SQLAlchemy-backed machine registry; also a ``MachineStore``.

    Contract:
        Does NOT call ``session.commit()`` -- the caller controls
        transaction boundaries (see ``session_scope``).
    """

    def __init__(self, session: Session, log_store: LogStore) -> None:
        self._session = session
        self._log_store = log_store
        self._cache: dict[int, Machine] = {}

    def create_machine(self, definition: MachineDef) -> Machine:
        """Validate and store a new machine."""
        machine = build_machine(definition)
        if self._load_model(definition.category) is not None:
            raise MachineAlreadyExistsError(definition.category)

        self._session.add(MachineModel.from_definition(definition))
        self._session.flush()
        self._cache[machine.category] = machine

        logger.info(
            "machine_created",
            extra={
                "category": machine.category,
                "machine_name": machine.name,
                "level_count": machine.level_count,
            },
        )
        return machine

    def update_machine(self, category: int, definition: MachineDef) -> Machine:
        """Replace the definition of an unreferenced machine.

        ``definition.category`` is ignored; the machine keeps ``category``.
        """
        model = self._require_model(category)
        if self._log_store.has_logs(category):
            raise MachineInUseError(category)

        definition = MachineDef(
            category=category,
            name=definition.name,
            submitter_name=definition.submitter_name,
            submitter_edit_fields=definition.submitter_edit_fields,
            submitter_confirm=definition.submitter_confirm,
            submitter_confirm_edit_fields=definition.submitter_confirm_edit_fields,
            levels=definition.levels,
        )
        machine = build_machine(definition)
        model.apply_definition(definition)
        self._session.flush()
        self._cache[category] = machine

        logger.info(
            "machine_updated",
            extra={"category": category, "level_count": machine.level_count},
        )
        return machine

    def delete_machines(self, categories: Iterable[int]) -> int:
        """Delete unreferenced machines; returns how many rows were removed.

        All categories are checked before anything is deleted.
        """
        categories = list(dict.fromkeys(categories))
        for category in categories:
            if self._log_store.has_logs(category):
                raise MachineInUseError(category)

        removed = 0
        for category in categories:
            model = self._load_model(category)
            if model is None:
                continue
            self._session.delete(model)
            self._cache.pop(category, None)
            removed += 1
        self._session.flush()

        logger.info(
            "machines_deleted",
            extra={"categories": categories, "removed": removed},
        )
        return removed

    def find_machines(
        self,
        name: str | None = None,
        submitter_name: str | None = None,
        submitter_confirm: bool | None = None,
    ) -> list[MachineDef]:
        """List stored definitions, newest first, filtered by substring/flag."""
        query = select(MachineModel).order_by(
            MachineModel.created_at.desc(), MachineModel.category,
        )
        if name and name.strip():
            query = query.where(MachineModel.name.contains(name.strip()))
        if submitter_name and submitter_name.strip():
            query = query.where(
                MachineModel.submitter_name.contains(submitter_name.strip())
            )
        if submitter_confirm is not None:
            query = query.where(MachineModel.submitter_confirm == submitter_confirm)

        models = self._session.execute(query).scalars().all()
        return [m.to_definition() for m in models]

    def get_definition(self, category: int) -> MachineDef:
        return self._require_model(category).to_definition()

    def get_machine(self, category: int) -> Machine:
        """``MachineStore`` port: the resolved machine of ``category``."""
        machine = self._cache.get(category)
        if machine is None:
            machine = build_machine(self._require_model(category).to_definition())
            self._cache[category] = machine
        return machine

    def _load_model(self, category: int) -> MachineModel | None:
        return self._session.execute(
            select(MachineModel).where(MachineModel.category == category)
        ).scalar_one_or_none()

    def _require_model(self, category: int) -> MachineModel:
        model = self._load_model(category)
        if model is None:
            raise MachineNotFoundError(category)
        return model


class InMemoryMachineStore:
    """Process-local ``MachineStore`` for embedding and tests."""

    def __init__(self, definitions: Iterable[MachineDef] = ()) -> None:
        self._machines: dict[int, Machine] = {}
        self._lock = threading.Lock()
        for definition in definitions:
            self.register(definition)

    def register(self, definition: MachineDef) -> Machine:
        machine = build_machine(definition)
        with self._lock:
            if machine.category in self._machines:
                raise MachineAlreadyExistsError(machine.category)
            self._machines[machine.category] = machine
        return machine

    def get_machine(self, category: int) -> Machine:
        with self._lock:
            machine = self._machines.get(category)
        if machine is None:
            raise MachineNotFoundError(category)
        return machine
