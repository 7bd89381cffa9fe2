"""
BaseService -- abstract base for session-bound kernel services.

Responsibility:
    Common constructor for services that write within a caller-owned
    transaction.  They use ``session.flush()`` -- never ``session.commit()``.
    Only the orchestrating services (InvoiceLifecycleManager,
    RefundVoucherService, GatewayCallRecorder) open and commit transactions.
"""

from abc import ABC

from sqlalchemy.orm import Session


class BaseService(ABC):
    """
    Abstract base class for flush-only services.

    Guarantees:
        - Never calls ``session.commit()`` or ``session.rollback()``.
    """

    def __init__(self, session: Session):
        self.session = session
