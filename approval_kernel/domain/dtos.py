"""
Wire DTOs (``approval_kernel.domain.dtos``).

Request and response shapes of the exposed engine operations.  Field names
on the wire are camelCase and stable; ``from_dict``/``to_dict`` are the only
places that know them.  HTTP binding itself is the host application's job.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from approval_kernel.domain.approval_log import ApprovalLog, StatusProjection
from approval_kernel.domain.machine import parse_optional_flag


@dataclass(frozen=True)
class DetailField:
    """One field of the host record: ``{key, val}`` (plus editability)."""

    key: str
    val: str = ""
    editable: bool = False

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> DetailField:
        return cls(key=str(data["key"]), val=str(data.get("val") or ""))

    def to_dict(self) -> dict[str, Any]:
        return {"key": self.key, "val": self.val, "editable": self.editable}


@dataclass(frozen=True)
class SubmitRequest:
    """``{category, uuid, submitterRoleId, submitterUserId}``"""

    category: int
    uuid: str
    submitter_role_id: int
    submitter_user_id: int

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> SubmitRequest:
        return cls(
            category=int(data["category"]),
            uuid=str(data["uuid"]),
            submitter_role_id=int(data.get("submitterRoleId") or 0),
            submitter_user_id=int(data.get("submitterUserId") or 0),
        )


@dataclass(frozen=True)
class ApprovalRequest:
    """``{category, uuid, approvalRoleId, approvalUserId, approvalOpinion, approved}``

    ``level`` is optional; when present the action only applies if the
    instance is still awaiting that level.
    """

    category: int
    uuid: str
    approval_role_id: int
    approval_user_id: int
    approval_opinion: str = ""
    approved: bool | None = None
    level: int | None = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> ApprovalRequest:
        level = data.get("level")
        return cls(
            category=int(data["category"]),
            uuid=str(data["uuid"]),
            approval_role_id=int(data.get("approvalRoleId") or 0),
            approval_user_id=int(data.get("approvalUserId") or 0),
            approval_opinion=str(data.get("approvalOpinion") or ""),
            approved=parse_optional_flag(data.get("approved")),
            level=int(level) if level is not None else None,
        )


@dataclass(frozen=True)
class DetailRequest:
    """``{category, uuid, approvalRoleId, approvalUserId, fields: [{key, val}]}``"""

    category: int
    uuid: str
    approval_role_id: int
    approval_user_id: int
    fields: tuple[DetailField, ...] = ()
    approval_opinion: str = ""

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> DetailRequest:
        return cls(
            category=int(data["category"]),
            uuid=str(data["uuid"]),
            approval_role_id=int(data.get("approvalRoleId") or 0),
            approval_user_id=int(data.get("approvalUserId") or 0),
            fields=tuple(DetailField.from_dict(f) for f in data.get("fields") or ()),
            approval_opinion=str(data.get("approvalOpinion") or ""),
        )

    def field_map(self) -> dict[str, str]:
        return {f.key: f.val for f in self.fields}


@dataclass(frozen=True)
class TransitionResponse:
    """Result of a successful transition: status plus the full ordered log."""

    status: StatusProjection
    logs: tuple[ApprovalLog, ...]

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = self.status.to_dict()
        payload["logs"] = [log.to_dict() for log in self.logs]
        return payload
