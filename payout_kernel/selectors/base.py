"""
Module: payout_kernel.selectors.base
Responsibility: Abstract base class for read-only query selectors.  Selectors
    are the read side of the kernel: they turn ORM rows into frozen snapshots
    so services never act on live rows outside their transaction.
Architecture position: Kernel > Selectors.  May import from db/, models/ and
    domain/types.py.  MUST NOT import from services/ or outer layers.

Invariants enforced:
    - Read-only access: selectors accept a Session from the caller and MUST NOT
      call session.add(), session.delete(), session.commit(), or session.flush().
    - DTO return convention: selectors return frozen dataclasses, not ORM rows.
    - Session ownership: the caller owns the session and its transaction.
"""

from abc import ABC
from typing import Generic, TypeVar

from sqlalchemy.orm import Session

from payout_kernel.db.base import Base

ModelType = TypeVar("ModelType", bound=Base)


class BaseSelector(ABC, Generic[ModelType]):
    """
    Abstract base class for all selectors.

    Contract:
        Selectors accept a Session from the caller, perform read-only queries,
        and return DTOs.  They MUST NOT mutate any data.
    """

    def __init__(self, session: Session):
        self.session = session
