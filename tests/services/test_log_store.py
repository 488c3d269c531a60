"""
Tests for the LogStore implementations.

Covers:
- Conditional append: sequence numbering, stale expectations write nothing
- list_logs ordering and isolation between instances
- has_logs per category
- SQL: unique (category, uuid, sequence) as the last line of defense
- SQL: ORM-level immutability of stored rows
- created_at comes back as UTC from both stores
"""

from datetime import UTC, datetime, timedelta, timezone

import pytest
from sqlalchemy import select

from approval_kernel.domain.approval_log import ApprovalAction, InstanceKey, LogEntry
from approval_kernel.exceptions import ImmutabilityViolationError, LogAppendConflictError
from approval_kernel.models.approval_log import ApprovalLogModel
from approval_kernel.services.log_store import InMemoryLogStore

KEY = InstanceKey(1, "doc-1")
OTHER = InstanceKey(1, "doc-2")


def make_entry(action: ApprovalAction = ApprovalAction.SUBMIT, **kwargs) -> LogEntry:
    defaults = dict(
        level_index=0,
        actor_role_id=1,
        actor_user_id=1,
        action=action,
        created_at=datetime(2024, 1, 1, 12, 0, tzinfo=UTC),
    )
    defaults.update(kwargs)
    return LogEntry(**defaults)


@pytest.fixture(params=["memory", "sql"])
def store(request):
    if request.param == "memory":
        return InMemoryLogStore()
    return request.getfixturevalue("sql_log_store")


class TestConditionalAppend:

    def test_sequences_start_at_one(self, store):
        assert store.append_log(KEY, 0, make_entry()) == 1
        assert store.append_log(KEY, 1, make_entry(ApprovalAction.APPROVE, actor_role_id=5)) == 2

        logs = store.list_logs(KEY)
        assert [log.sequence for log in logs] == [1, 2]
        assert logs[1].action == ApprovalAction.APPROVE
        assert logs[1].actor_role_id == 5

    def test_stale_expectation_rejected(self, store):
        store.append_log(KEY, 0, make_entry())
        with pytest.raises(LogAppendConflictError) as exc_info:
            store.append_log(KEY, 0, make_entry())
        assert exc_info.value.expected_sequence == 0
        assert exc_info.value.actual_sequence == 1
        assert len(store.list_logs(KEY)) == 1

    def test_expectation_ahead_rejected(self, store):
        with pytest.raises(LogAppendConflictError):
            store.append_log(KEY, 3, make_entry())
        assert store.list_logs(KEY) == ()

    def test_instances_are_independent(self, store):
        store.append_log(KEY, 0, make_entry())
        assert store.append_log(OTHER, 0, make_entry()) == 1
        assert len(store.list_logs(KEY)) == 1

    def test_fields_and_flags_round_trip(self, store):
        store.append_log(KEY, 0, make_entry(
            ApprovalAction.CONFIRM, opinion="ok", fields=("amount",), approved=False,
        ))
        (log,) = store.list_logs(KEY)
        assert log.opinion == "ok"
        assert log.fields == ("amount",)
        assert log.approved is False

    def test_created_at_keeps_utc(self, store):
        store.append_log(KEY, 0, make_entry())
        (log,) = store.list_logs(KEY)
        assert log.created_at == datetime(2024, 1, 1, 12, 0, tzinfo=UTC)
        assert log.created_at.isoformat() == "2024-01-01T12:00:00+00:00"
        assert log.to_dict()["createdAt"] == "2024-01-01T12:00:00+00:00"

    def test_has_logs(self, store):
        assert not store.has_logs(1)
        store.append_log(KEY, 0, make_entry())
        assert store.has_logs(1)
        assert not store.has_logs(2)


class TestInMemoryStore:

    def test_instance_keys(self):
        store = InMemoryLogStore()
        store.append_log(KEY, 0, make_entry())
        store.append_log(InstanceKey(2, "doc-9"), 0, make_entry())
        assert set(store.instance_keys()) == {KEY, InstanceKey(2, "doc-9")}
        assert store.instance_keys(category=2) == (InstanceKey(2, "doc-9"),)


class TestSqlLogStore:

    def test_unique_constraint_maps_to_conflict(self, session_factory, sql_log_store, monkeypatch):
        """A race that passes the pre-check still loses on the unique key."""
        sql_log_store.append_log(KEY, 0, make_entry())
        monkeypatch.setattr(type(sql_log_store), "_last_sequence", staticmethod(lambda s, k: 0))

        with pytest.raises(LogAppendConflictError):
            sql_log_store.append_log(KEY, 0, make_entry())

        with session_factory() as session:
            rows = session.execute(select(ApprovalLogModel)).scalars().all()
        assert len(rows) == 1

    def test_offset_timestamps_stored_as_utc(self, sql_log_store):
        local = datetime(2024, 1, 1, 20, 0, tzinfo=timezone(timedelta(hours=8)))
        sql_log_store.append_log(KEY, 0, make_entry(created_at=local))
        (log,) = sql_log_store.list_logs(KEY)
        assert log.created_at == local
        assert log.created_at.utcoffset() == timedelta(0)

    def test_update_rejected(self, session_factory, sql_log_store):
        sql_log_store.append_log(KEY, 0, make_entry())
        with session_factory() as session:
            row = session.execute(select(ApprovalLogModel)).scalar_one()
            row.opinion = "rewritten"
            with pytest.raises(ImmutabilityViolationError):
                session.flush()
            session.rollback()

    def test_delete_rejected(self, session_factory, sql_log_store):
        sql_log_store.append_log(KEY, 0, make_entry())
        with session_factory() as session:
            row = session.execute(select(ApprovalLogModel)).scalar_one()
            session.delete(row)
            with pytest.raises(ImmutabilityViolationError):
                session.flush()
            session.rollback()
