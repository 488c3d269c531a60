"""
approval_kernel.services.hook_outbox -- Pending transition-hook deliveries.

Responsibility:
    Closes the at-least-once gap of append-then-notify.  When the hook fails
    after a log entry was committed, the engine records the delivery here;
    ``redeliver`` retries every pending delivery with a hook.

Invariants enforced:
    - A delivery leaves the outbox only after the hook returned normally.
    - Deliveries are retried in the order they failed.

Failure modes:
    - ``redeliver`` never raises for a failing hook; the delivery stays
      pending with an incremented attempt count and the last error text.
    - A delivery that reaches ``max_attempts`` failures is dropped and logged
      at ERROR as ``hook_delivery_dropped``.  ``discard`` drops one by id.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, replace
from uuid import UUID, uuid4

from approval_kernel.domain.approval_log import ApprovalLog
from approval_kernel.domain.ports import HookContext, TransitionHook
from approval_kernel.logging_config import get_logger

logger = get_logger("services.hook_outbox")


@dataclass(frozen=True)
class PendingDelivery:
    """A hook call that has not succeeded yet."""

    delivery_id: UUID
    context: HookContext
    logs: tuple[ApprovalLog, ...]
    attempts: int = 1
    last_error: str = ""


class HookOutbox:
    """Thread-safe in-process outbox of failed hook deliveries."""

    def __init__(self, max_attempts: int = 0) -> None:
        if max_attempts < 0:
            raise ValueError(f"max_attempts must be >= 0, got {max_attempts}")
        self._max_attempts = max_attempts
        self._pending: dict[UUID, PendingDelivery] = {}
        self._lock = threading.Lock()

    def record_failure(
        self,
        context: HookContext,
        logs: tuple[ApprovalLog, ...],
        error: BaseException,
    ) -> PendingDelivery:
        delivery = PendingDelivery(
            delivery_id=uuid4(),
            context=context,
            logs=logs,
            last_error=repr(error),
        )
        if self._max_attempts == 1:
            logger.error(
                "hook_delivery_dropped",
                extra={
                    "delivery_id": str(delivery.delivery_id),
                    "sequence": context.sequence,
                    "attempts": 1,
                    "error": delivery.last_error,
                },
            )
            return delivery
        with self._lock:
            self._pending[delivery.delivery_id] = delivery
        return delivery

    def pending(self) -> tuple[PendingDelivery, ...]:
        with self._lock:
            return tuple(self._pending.values())

    def __len__(self) -> int:
        with self._lock:
            return len(self._pending)

    def discard(self, delivery_id: UUID) -> bool:
        """Drop a pending delivery without delivering it."""
        with self._lock:
            removed = self._pending.pop(delivery_id, None)
        if removed is not None:
            logger.warning(
                "hook_delivery_discarded",
                extra={"delivery_id": str(delivery_id), "attempts": removed.attempts},
            )
        return removed is not None

    def redeliver(self, hook: TransitionHook) -> int:
        """Retry every pending delivery; returns how many succeeded."""
        delivered = 0
        for delivery in self.pending():
            try:
                hook(delivery.context, delivery.logs)
            except Exception as exc:  # hook is host code; keep it pending
                self._record_retry_failure(delivery, exc)
                continue
            with self._lock:
                self._pending.pop(delivery.delivery_id, None)
            delivered += 1

        if delivered:
            logger.info("hook_redelivered", extra={"delivered": delivered})
        return delivered

    def _record_retry_failure(self, delivery: PendingDelivery, exc: Exception) -> None:
        attempts = delivery.attempts + 1
        exhausted = bool(self._max_attempts) and attempts >= self._max_attempts
        with self._lock:
            if delivery.delivery_id not in self._pending:
                return
            if exhausted:
                del self._pending[delivery.delivery_id]
            else:
                self._pending[delivery.delivery_id] = replace(
                    delivery, attempts=attempts, last_error=repr(exc),
                )

        extra = {
            "delivery_id": str(delivery.delivery_id),
            "sequence": delivery.context.sequence,
            "attempts": attempts,
            "error": repr(exc),
        }
        if exhausted:
            logger.error("hook_delivery_dropped", extra=extra)
        else:
            logger.warning("hook_redelivery_failed", extra=extra)
