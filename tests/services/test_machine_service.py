"""
Tests for MachineService and InMemoryMachineStore.

Covers:
- create_machine(): validation before storage, duplicate category
- update_machine(): not found, in use, category pinned
- delete_machines(): all-or-nothing in-use check, removed count
- find_machines(): substring and flag filters
- get_machine(): resolved machine, not found
"""

from dataclasses import replace

import pytest

from approval_kernel.db.engine import session_scope
from approval_kernel.domain.approval_log import ApprovalAction, InstanceKey, LogEntry
from approval_kernel.domain.machine import LevelDef, MachineDef
from approval_kernel.exceptions import (
    EventsEmptyError,
    MachineAlreadyExistsError,
    MachineInUseError,
    MachineNotFoundError,
)
from approval_kernel.services.machine_service import InMemoryMachineStore, MachineService
from tests.conftest import scenario_machine_def


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def make_service(session, sql_log_store) -> MachineService:
    return MachineService(session, sql_log_store)


def add_log(sql_log_store, category: int) -> None:
    sql_log_store.append_log(
        InstanceKey(category, "doc-1"),
        0,
        LogEntry(
            level_index=0,
            actor_role_id=1,
            actor_user_id=1,
            action=ApprovalAction.SUBMIT,
        ),
    )


# ---------------------------------------------------------------------------
# create_machine
# ---------------------------------------------------------------------------


class TestCreateMachine:

    def test_create_and_get(self, session, sql_log_store, machine_def):
        service = make_service(session, sql_log_store)
        machine = service.create_machine(machine_def)
        assert machine.level_count == 2

        fresh = make_service(session, sql_log_store)
        assert fresh.get_machine(machine_def.category).levels[1].users == frozenset({7})
        assert fresh.get_definition(machine_def.category).to_dict() == machine_def.to_dict()

    def test_invalid_definition_not_stored(self, session, sql_log_store):
        service = make_service(session, sql_log_store)
        with pytest.raises(EventsEmptyError):
            service.create_machine(MachineDef(category=5, name="empty"))
        with pytest.raises(MachineNotFoundError):
            service.get_machine(5)

    def test_duplicate_category(self, session, sql_log_store, machine_def):
        service = make_service(session, sql_log_store)
        service.create_machine(machine_def)
        with pytest.raises(MachineAlreadyExistsError) as exc_info:
            service.create_machine(machine_def)
        assert exc_info.value.category == machine_def.category


# ---------------------------------------------------------------------------
# update_machine / delete_machines
# ---------------------------------------------------------------------------


class TestUpdateMachine:

    def test_update_unreferenced(self, session, sql_log_store, machine_def):
        service = make_service(session, sql_log_store)
        service.create_machine(machine_def)

        changed = replace(
            machine_def,
            category=42,
            name="expense-v2",
            levels=(LevelDef(name="cfo", users="11"),),
        )
        machine = service.update_machine(machine_def.category, changed)
        assert machine.category == machine_def.category
        assert machine.level_count == 1
        assert service.get_definition(machine_def.category).name == "expense-v2"

    def test_update_unknown(self, session, sql_log_store, machine_def):
        service = make_service(session, sql_log_store)
        with pytest.raises(MachineNotFoundError):
            service.update_machine(machine_def.category, machine_def)

    def test_update_in_use(self, session_factory, sql_log_store, machine_def):
        with session_scope(session_factory) as session:
            make_service(session, sql_log_store).create_machine(machine_def)
        add_log(sql_log_store, machine_def.category)

        with session_factory() as session:
            with pytest.raises(MachineInUseError):
                make_service(session, sql_log_store).update_machine(
                    machine_def.category, machine_def,
                )


class TestDeleteMachines:

    def test_delete(self, session, sql_log_store):
        service = make_service(session, sql_log_store)
        service.create_machine(scenario_machine_def(category=1))
        service.create_machine(scenario_machine_def(category=2))

        assert service.delete_machines([1, 2, 3]) == 2
        assert service.find_machines() == []

    def test_delete_in_use_removes_nothing(self, session_factory, sql_log_store):
        with session_scope(session_factory) as session:
            service = make_service(session, sql_log_store)
            service.create_machine(scenario_machine_def(category=1))
            service.create_machine(scenario_machine_def(category=2))
        add_log(sql_log_store, 2)

        with session_factory() as session:
            service = make_service(session, sql_log_store)
            with pytest.raises(MachineInUseError) as exc_info:
                service.delete_machines([1, 2])
            assert exc_info.value.category == 2
            assert {d.category for d in service.find_machines()} == {1, 2}


# ---------------------------------------------------------------------------
# find_machines
# ---------------------------------------------------------------------------


class TestFindMachines:

    @pytest.fixture
    def service(self, session, sql_log_store):
        service = make_service(session, sql_log_store)
        service.create_machine(scenario_machine_def(category=1))
        service.create_machine(replace(
            scenario_machine_def(category=2, submitter_confirm=True),
            name="leave",
            submitter_name="employee",
        ))
        return service

    def test_no_filter(self, service):
        assert {d.category for d in service.find_machines()} == {1, 2}

    def test_name_substring(self, service):
        assert [d.category for d in service.find_machines(name="lea")] == [2]

    def test_submitter_name_substring(self, service):
        assert [d.category for d in service.find_machines(submitter_name="appl")] == [1]

    def test_confirm_flag(self, service):
        assert [d.category for d in service.find_machines(submitter_confirm=True)] == [2]
        assert [d.category for d in service.find_machines(submitter_confirm=False)] == [1]

    def test_blank_filter_ignored(self, service):
        assert len(service.find_machines(name="  ")) == 2


# ---------------------------------------------------------------------------
# InMemoryMachineStore
# ---------------------------------------------------------------------------


class TestInMemoryMachineStore:

    def test_register_and_get(self, machine_def):
        store = InMemoryMachineStore([machine_def])
        assert store.get_machine(machine_def.category).name == "expense"

    def test_duplicate(self, machine_def):
        store = InMemoryMachineStore([machine_def])
        with pytest.raises(MachineAlreadyExistsError):
            store.register(machine_def)

    def test_unknown(self):
        with pytest.raises(MachineNotFoundError):
            InMemoryMachineStore().get_machine(1)
