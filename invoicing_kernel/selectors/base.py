"""
Module: invoicing_kernel.selectors.base
Responsibility: Abstract base class for read-only query selectors.
Architecture position: Kernel > Selectors.  May import from db/ and models/.
    MUST NOT import from services/ or outer packages.

Invariants enforced:
    - Selectors accept a Session from the caller and never add, delete,
      flush or commit.
"""

from abc import ABC

from sqlalchemy.orm import Session


class BaseSelector(ABC):
    """Base class for selectors; the caller owns the session."""

    def __init__(self, session: Session):
        self.session = session
