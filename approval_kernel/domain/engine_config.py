"""
Engine configuration value (``approval_kernel.domain.engine_config``).

The approval engine holds no global options.  Everything tunable is carried
by one frozen ``EngineConfig`` passed to its constructor; YAML loading of
this value lives in ``approval_config``.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class HookFailurePolicy(str, Enum):
    """What the engine does when the transition hook raises.

    The log entry is already committed in both cases.
    """

    RAISE = "raise"
    LOG = "log"


@dataclass(frozen=True)
class EngineConfig:
    """Options of one ``ApprovalEngine``.

    ``record_hook_failures`` enqueues failed hook deliveries in the engine's
    ``HookOutbox`` so they can be redelivered.  ``max_opinion_length`` of 0
    disables the opinion length check.  A failed delivery is dropped from the
    outbox once it has failed ``max_hook_attempts`` times; 0 keeps it until
    it is delivered or discarded.
    """

    hook_failure_policy: HookFailurePolicy = HookFailurePolicy.RAISE
    record_hook_failures: bool = True
    max_opinion_length: int = 1000
    max_hook_attempts: int = 5
