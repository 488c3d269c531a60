"""SQLAlchemy ORM models of the approval kernel."""

from approval_kernel.models.approval_log import ApprovalLogModel
from approval_kernel.models.machine import MachineModel

__all__ = ["ApprovalLogModel", "MachineModel"]
