"""
ApprovalConfigSet schema.

The human-authored, reviewable configuration artifact: engine options plus
the approval machine definitions.  YAML is parsed into these types by the
loader; the engine and the machine registry consume them directly.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from approval_kernel.domain.engine_config import EngineConfig
from approval_kernel.domain.machine import MachineDef


@dataclass(frozen=True)
class ApprovalConfigSet:
    """Everything one YAML configuration file declares."""

    engine: EngineConfig = field(default_factory=EngineConfig)
    machines: tuple[MachineDef, ...] = ()
    checksum: str = ""

    def machine(self, category: int) -> MachineDef | None:
        for definition in self.machines:
            if definition.category == category:
                return definition
        return None

    @property
    def categories(self) -> tuple[int, ...]:
        return tuple(m.category for m in self.machines)
