"""Selectors for the approval kernel (read side)."""

from approval_kernel.selectors.approving_selector import ApprovingSelector, PendingInstance

__all__ = [
    "ApprovingSelector",
    "PendingInstance",
]
