"""
Pytest fixtures for the approval engine test suite.

Provides:
- Structured logging configured for every test, plus captured JSON logs
- Deterministic clock
- In-memory machine/log stores and an engine wired to them
- A file-backed SQLite database per test for the SQLAlchemy stores
- The two-level scenario machine used across the suite:
  level 0 approved by role 5, level 1 approved by user 7
"""

import json
import logging
from io import StringIO

import pytest

from approval_kernel.db.engine import (
    create_engine_from_url,
    create_session_factory,
    create_tables,
    drop_tables,
)
from approval_kernel.domain.clock import DeterministicClock
from approval_kernel.domain.machine import LevelDef, MachineDef
from approval_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from approval_kernel.services.log_store import InMemoryLogStore, SqlLogStore
from approval_kernel.services.machine_service import InMemoryMachineStore
from approval_kernel.services.transition_service import ApprovalEngine

# Scenario actors
SUBMITTER_ROLE = 1
SUBMITTER_USER = 1
LEAD_ROLE = 5
HR_USER = 7
CATEGORY = 1


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture approval_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, engine):
            engine.submit(...)
            logs = captured_logs()
            assert any(r["message"] == "approval_log_appended" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("approval_kernel")
    previous_level = root.level
    root.setLevel(logging.DEBUG)
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)
    root.setLevel(previous_level)


# =============================================================================
# Machines
# =============================================================================


def scenario_machine_def(
    category: int = CATEGORY,
    submitter_confirm: bool = False,
) -> MachineDef:
    return MachineDef(
        category=category,
        name="expense",
        submitter_name="applicant",
        submitter_edit_fields="amount,remark",
        submitter_confirm=submitter_confirm,
        levels=(
            LevelDef(name="lead", roles=str(LEAD_ROLE), refuse=True),
            LevelDef(
                name="hr",
                users=str(HR_USER),
                refuse=True,
                edit=True,
                edit_fields="amount",
            ),
        ),
    )


@pytest.fixture
def machine_def() -> MachineDef:
    return scenario_machine_def()


@pytest.fixture
def confirm_machine_def() -> MachineDef:
    return scenario_machine_def(category=2, submitter_confirm=True)


# =============================================================================
# In-memory wiring
# =============================================================================


@pytest.fixture
def deterministic_clock():
    return DeterministicClock()


@pytest.fixture
def log_store() -> InMemoryLogStore:
    return InMemoryLogStore()


@pytest.fixture
def machine_store(machine_def, confirm_machine_def) -> InMemoryMachineStore:
    return InMemoryMachineStore([machine_def, confirm_machine_def])


@pytest.fixture
def engine(machine_store, log_store, deterministic_clock) -> ApprovalEngine:
    return ApprovalEngine(machine_store, log_store, clock=deterministic_clock)


# =============================================================================
# SQLite wiring
# =============================================================================


@pytest.fixture
def db_engine(tmp_path):
    engine = create_engine_from_url(f"sqlite:///{tmp_path / 'approval.db'}")
    create_tables(engine)
    yield engine
    drop_tables(engine)
    engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return create_session_factory(db_engine)


@pytest.fixture
def session(session_factory):
    session = session_factory()
    yield session
    session.rollback()
    session.close()


@pytest.fixture
def sql_log_store(session_factory) -> SqlLogStore:
    return SqlLogStore(session_factory)
