"""
SequenceService -- gap-tolerant, never-repeating counters in the database.

Responsibility:
    Hands out the integers behind bill numbers (``HD000001``, ...).  Each
    named sequence is one row in ``sequence_counters``; allocating a value
    locks that row, increments it and returns the new value.

Architecture position:
    Kernel > Services.  Used by SqlBillRepository.next_sequence inside its
    own ``session_scope``; this class never commits.

Invariants enforced:
    - Values of one sequence are strictly increasing and never reused.
      They are never derived from MAX(bill_number).
    - A value is consumed only when the caller's transaction commits.

Failure modes:
    - IntegrityError when two transactions create the same new counter row
      at once; the loser retries against the winner's row.
"""

from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from billing_kernel.logging_config import get_logger
from billing_kernel.models.sequence import SequenceCounter

logger = get_logger("services.sequence")


class SequenceService:
    """Counter rows for one session.  The caller owns the transaction."""

    BILL_NUMBER = "bill_number"

    def __init__(self, session: Session):
        self._session = session

    def _row(self, name: str, *, lock: bool) -> SequenceCounter | None:
        stmt = select(SequenceCounter).where(SequenceCounter.name == name)
        if lock:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        return self._session.execute(stmt).scalar_one_or_none()

    def _create(self, name: str, value: int) -> SequenceCounter:
        """Insert a counter row, or lock the row a concurrent writer just made."""
        if self._session.get_bind().dialect.name == "sqlite":
            # One writer at a time; no savepoint needed
            row = SequenceCounter(name=name, current_value=value)
            self._session.add(row)
            self._session.flush()
            return row

        savepoint = self._session.begin_nested()
        try:
            row = SequenceCounter(name=name, current_value=value)
            self._session.add(row)
            self._session.flush()
        except IntegrityError:
            savepoint.rollback()
            logger.debug("sequence_counter_created_concurrently", extra={"sequence_name": name})
            existing = self._row(name, lock=True)
            if existing is None:
                raise
            return existing
        savepoint.commit()
        return row

    def next_value(self, name: str) -> int:
        """Allocate and return the next value of ``name`` (first value is 1)."""
        row = self._row(name, lock=True)
        if row is None:
            row = self._create(name, 0)
        row.current_value += 1
        self._session.flush()
        logger.debug(
            "sequence_allocated",
            extra={"sequence_name": name, "value": row.current_value},
        )
        return row.current_value

    def current_value(self, name: str) -> int | None:
        """Last value handed out, or None if ``name`` was never used."""
        row = self._row(name, lock=False)
        return None if row is None else row.current_value

    def reset(self, name: str, value: int = 0) -> None:
        """
        Set ``name`` so that the next allocation returns ``value + 1``.

        Only for tests and data migrations: rewinding the bill number
        sequence makes the next issue collide with uq_bills_bill_number.
        """
        row = self._row(name, lock=True)
        if row is None:
            self._create(name, value)
        else:
            row.current_value = value
            self._session.flush()
