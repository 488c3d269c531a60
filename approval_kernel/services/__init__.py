"""Services for the approval kernel (write side)."""

from approval_kernel.services.hook_outbox import HookOutbox, PendingDelivery
from approval_kernel.services.log_store import InMemoryLogStore, SqlLogStore
from approval_kernel.services.machine_service import InMemoryMachineStore, MachineService
from approval_kernel.services.transition_service import ApprovalEngine

__all__ = [
    "ApprovalEngine",
    "HookOutbox",
    "InMemoryLogStore",
    "InMemoryMachineStore",
    "MachineService",
    "PendingDelivery",
    "SqlLogStore",
]
