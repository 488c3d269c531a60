"""
approval_kernel.services.log_store -- Approval log storage.

Responsibility:
    Implementations of the ``LogStore`` port: a SQLAlchemy store for
    production and a thread-safe in-memory store for embedding and tests.

Architecture position:
    Kernel > Services -- imperative shell infrastructure.

Invariants enforced:
    - Conditional append: an entry is stored at ``expected_sequence + 1``
      only when the newest stored sequence equals ``expected_sequence``.
    - Append-only: neither store exposes update or delete.
    - Durability before notification: ``SqlLogStore.append_log`` commits
      its own transaction before returning, so the engine only notifies the
      hook about entries that are durable.

Failure modes:
    - LogAppendConflictError when the expectation is stale, including when
      the UNIQUE(category, uuid, sequence) constraint catches a race the
      pre-check missed.
    - Other database errors propagate unchanged.
"""

from __future__ import annotations

import threading
from collections import defaultdict

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker

from approval_kernel.domain.approval_log import ApprovalLog, InstanceKey, LogEntry
from approval_kernel.exceptions import LogAppendConflictError
from approval_kernel.logging_config import get_logger
from approval_kernel.models.approval_log import ApprovalLogModel

logger = get_logger("services.log_store")


class InMemoryLogStore:
    """
    Process-local log store.

    Contract:
        Same conditional-append semantics as ``SqlLogStore``; a single lock
        serializes appends so exactly one of two racing appends wins.

    Non-goals:
        Durability across processes.
    """

    def __init__(self) -> None:
        self._logs: dict[InstanceKey, list[ApprovalLog]] = defaultdict(list)
        self._lock = threading.Lock()

    def append_log(
        self,
        key: InstanceKey,
        expected_sequence: int,
        entry: LogEntry,
    ) -> int:
        with self._lock:
            chain = self._logs[key]
            current = chain[-1].sequence if chain else 0
            if current != expected_sequence:
                raise LogAppendConflictError(
                    key.category, key.uuid, expected_sequence, current,
                )
            sequence = current + 1
            chain.append(entry.sequenced(key, sequence))
        logger.debug(
            "approval_log_stored",
            extra={"instance": str(key), "sequence": sequence},
        )
        return sequence

    def list_logs(self, key: InstanceKey) -> tuple[ApprovalLog, ...]:
        with self._lock:
            return tuple(self._logs.get(key, ()))

    def has_logs(self, category: int) -> bool:
        with self._lock:
            return any(k.category == category and v for k, v in self._logs.items())

    def instance_keys(self, category: int | None = None) -> tuple[InstanceKey, ...]:
        """Every instance with a log, optionally limited to one category."""
        with self._lock:
            return tuple(
                k for k, v in self._logs.items()
                if v and (category is None or k.category == category)
            )


class SqlLogStore:
    """
    SQLAlchemy-backed log store.

    Contract:
        Each call runs in its own session from ``session_factory`` and
        commits before returning.

    Guarantees:
        - The pre-check rejects stale expectations without writing.
        - UNIQUE(category, uuid, sequence) rejects the loser of a race that
          passed the pre-check concurrently.
    """

    def __init__(self, session_factory: sessionmaker[Session]) -> None:
        self._session_factory = session_factory

    def append_log(
        self,
        key: InstanceKey,
        expected_sequence: int,
        entry: LogEntry,
    ) -> int:
        sequence = expected_sequence + 1
        try:
            with self._session_factory.begin() as session:
                current = self._last_sequence(session, key)
                if current != expected_sequence:
                    raise LogAppendConflictError(
                        key.category, key.uuid, expected_sequence, current,
                    )
                session.add(ApprovalLogModel.from_entry(key, sequence, entry))
                session.flush()
        except IntegrityError as exc:
            logger.warning(
                "approval_log_unique_conflict",
                extra={"instance": str(key), "sequence": sequence},
            )
            raise LogAppendConflictError(
                key.category, key.uuid, expected_sequence,
            ) from exc

        logger.debug(
            "approval_log_stored",
            extra={"instance": str(key), "sequence": sequence},
        )
        return sequence

    def list_logs(self, key: InstanceKey) -> tuple[ApprovalLog, ...]:
        with self._session_factory() as session:
            rows = session.execute(
                select(ApprovalLogModel)
                .where(
                    ApprovalLogModel.category == key.category,
                    ApprovalLogModel.uuid == key.uuid,
                )
                .order_by(ApprovalLogModel.sequence)
            ).scalars().all()
            return tuple(row.to_dto() for row in rows)

    def has_logs(self, category: int) -> bool:
        with self._session_factory() as session:
            found = session.execute(
                select(ApprovalLogModel.id)
                .where(ApprovalLogModel.category == category)
                .limit(1)
            ).first()
            return found is not None

    @staticmethod
    def _last_sequence(session: Session, key: InstanceKey) -> int:
        return session.execute(
            select(func.max(ApprovalLogModel.sequence)).where(
                ApprovalLogModel.category == key.category,
                ApprovalLogModel.uuid == key.uuid,
            )
        ).scalar() or 0
