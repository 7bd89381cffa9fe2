"""
SequenceAllocator -- document number allocation under a series row lock.

Responsibility:
    Hands out the next unused document number for a serial prefix in the
    current year: ``{prefix}{year}{9-digit sequence}``.  The sequence is
    derived from the highest existing invoice number of the series, read
    while holding an exclusive lock on the series' anchor row.

Architecture position:
    Kernel > Services -- imperative shell infrastructure.
    Called by InvoiceLifecycleManager (single and bulk paths) and
    RefundVoucherService.

Invariants enforced:
    - Uniqueness: every read-increment-write for one series happens under
      ``SELECT ... FOR UPDATE`` on its document_series row.  The lock is
      held until the CALLER commits, and the caller writes the number onto
      the invoice row inside that same transaction.
    - Monotonic within a series; the year comes from the injected Clock so
      a new year starts a new series at 1.
    - The unique constraint on invoices.document_number is the backstop.

Failure modes:
    - AllocationFailure on lock timeout or any database error while locking
      or reading.  Nothing is written; the caller rolls back.
    - Malformed suffix on the highest number: logged as a warning and the
      series restarts at 1.

Audit relevance:
    Allocations are logged at INFO with series and number.
"""

from sqlalchemy import select, text
from sqlalchemy.exc import DBAPIError, IntegrityError
from sqlalchemy.orm import Session

from invoicing_kernel.domain.clock import Clock, SystemClock
from invoicing_kernel.domain.numbering import (
    MalformedDocumentNumber,
    format_document_number,
    parse_sequence,
    series_prefix,
)
from invoicing_kernel.exceptions import AllocationFailure
from invoicing_kernel.logging_config import get_logger
from invoicing_kernel.models.document_series import DocumentSeries, series_key
from invoicing_kernel.models.invoice import Invoice

logger = get_logger("services.sequence_allocator")


class SequenceAllocator:
    """
    Allocates document numbers inside the caller's transaction.

    Contract:
        ``allocate`` / ``allocate_block`` return numbers that no other
        transaction can obtain until this one ends.  The caller MUST write
        every returned number onto an invoice row before committing.

    Guarantees:
        - Concurrent callers for one series are serialized on the series
          row lock; distinct series never block each other.
        - Never calls ``session.commit()``.

    Non-goals:
        - Strict gaplessness.  A number allocated in a transaction that
          rolls back leaves a gap.

    Usage:
        with session_scope(factory) as session:
            number = SequenceAllocator(session, clock).allocate("EMA")
            invoice.document_number = number
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        lock_timeout_ms: int = 5000,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._lock_timeout_ms = lock_timeout_ms

    def allocate(self, serial_prefix: str) -> str:
        """
        Allocate the next document number for ``serial_prefix``.

        Preconditions:
            - The caller is inside an active transaction.
        Postconditions:
            - The series row is locked until the caller's transaction ends.

        Raises:
            AllocationFailure: lock timeout or database error.
        """
        return self.allocate_block(serial_prefix, 1)[0]

    def allocate_block(self, serial_prefix: str, count: int) -> list[str]:
        """
        Allocate ``count`` consecutive numbers for ``serial_prefix``.

        The block is seeded once from the database maximum under the series
        lock and handed out in order, which is how bulk issuance numbers a
        whole batch in one transaction.

        Raises:
            ValueError: if ``count`` < 1 or ``serial_prefix`` is empty.
            AllocationFailure: lock timeout or database error.
        """
        if count < 1:
            raise ValueError("count must be at least 1")
        if not serial_prefix:
            raise ValueError("serial_prefix is required")

        year = self._clock.current_year()
        key = series_key(serial_prefix, year)

        try:
            self._apply_lock_timeout()
            self._lock_series(serial_prefix, year, key)
            start = self._next_sequence(serial_prefix, year)
        except AllocationFailure:
            raise
        except DBAPIError as exc:
            logger.warning(
                "sequence_allocation_failed",
                extra={"series_key": key, "error": str(exc.orig or exc)},
            )
            raise AllocationFailure(key, str(exc.orig or exc)) from exc

        numbers = [
            format_document_number(serial_prefix, year, start + offset)
            for offset in range(count)
        ]
        logger.info(
            "sequence_allocated",
            extra={
                "series_key": key,
                "first": numbers[0],
                "last": numbers[-1],
                "count": count,
            },
        )
        return numbers

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _apply_lock_timeout(self) -> None:
        bind = self._session.get_bind()
        if bind.dialect.name == "postgresql":
            self._session.execute(
                text(f"SET LOCAL lock_timeout = '{int(self._lock_timeout_ms)}ms'")
            )

    def _select_series(self, key: str) -> DocumentSeries | None:
        return self._session.execute(
            select(DocumentSeries)
            .where(DocumentSeries.series_key == key)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def _lock_series(self, serial_prefix: str, year: int, key: str) -> DocumentSeries:
        series = self._select_series(key)
        if series is not None:
            return series

        # First use of this series.  A concurrent creator may win the
        # insert; the savepoint keeps the caller's other work intact.
        savepoint = self._session.begin_nested()
        try:
            series = DocumentSeries(series_key=key, serial_prefix=serial_prefix, year=year)
            self._session.add(series)
            self._session.flush()
            savepoint.commit()
            logger.debug("document_series_created", extra={"series_key": key})
            return series
        except IntegrityError:
            logger.debug("document_series_race_retry", extra={"series_key": key})
            savepoint.rollback()
            series = self._select_series(key)
            if series is None:
                raise AllocationFailure(key, "series row vanished after concurrent create")
            return series

    def _next_sequence(self, serial_prefix: str, year: int) -> int:
        head = series_prefix(serial_prefix, year)
        latest = self._session.execute(
            select(Invoice.document_number)
            .where(Invoice.document_number.startswith(head, autoescape=True))
            .order_by(Invoice.document_number.desc())
            .limit(1)
        ).scalar_one_or_none()

        if latest is None:
            return 1
        try:
            return parse_sequence(latest, serial_prefix, year) + 1
        except MalformedDocumentNumber as exc:
            logger.warning(
                "sequence_suffix_malformed",
                extra={
                    "series_key": head,
                    "document_number": latest,
                    "reason": exc.reason,
                },
            )
            return 1
