"""
Module: approval_kernel.selectors.base
Responsibility: Base class for read-only query selectors, the query side
    next to the write-side services.
Architecture position: Kernel > Selectors.  May import from db/, models/,
    domain/ and the pure ``approval_engines``.  MUST NOT import services/.

Invariants enforced:
    - Read-only access: selectors never add, delete, flush or commit.
    - DTO return convention: selectors return frozen dataclasses, not ORM
      model instances.
    - Session ownership: the caller owns the session and its transaction.
"""

from abc import ABC
from typing import Generic, TypeVar

from sqlalchemy.orm import Session

from approval_kernel.db.base import Base

ModelType = TypeVar("ModelType", bound=Base)


class BaseSelector(ABC, Generic[ModelType]):
    """Holds the caller's session for subclass queries."""

    def __init__(self, session: Session):
        self.session = session
