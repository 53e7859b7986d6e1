"""
Bill repositories -- the persistence boundary for Bill aggregates.

Responsibility:
    Store and return whole Bill values.  Every write is one atomic replace
    guarded by an optimistic version check; readers always see either the
    previous or the next complete Bill, never a mix.

Architecture position:
    Kernel > Services -- imperative shell.  Used by the ledger, payment and
    lifecycle services (which add per-bill locking and retries on top).

Invariants enforced:
    - ``save`` succeeds only when the stored version equals
      ``expected_version``; the stored version then increments by one.
    - Payments are append-only: a save that drops or rewrites a stored
      payment raises AppendOnlyViolationError.
    - ``bill_number`` is unique across stored bills.
    - ``snapshot`` returns an immutable tuple and never blocks writers
      beyond the instant needed to copy references.

Failure modes:
    - BillNotFoundError for unknown ids.
    - OptimisticLockError when the stored version moved.
    - ConflictError for duplicate ids or bill numbers.
"""

from __future__ import annotations

import itertools
import threading
from dataclasses import replace
from typing import Protocol
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.orm.exc import StaleDataError

from billing_kernel.db.engine import session_scope
from billing_kernel.domain.bill import Bill
from billing_kernel.exceptions import (
    AppendOnlyViolationError,
    BillNotFoundError,
    ConflictError,
    OptimisticLockError,
)
from billing_kernel.logging_config import LogContext, get_logger
from billing_kernel.models.bill import BillModel
from billing_kernel.services.sequence_service import SequenceService

logger = get_logger("services.bill_repository")


class BillRepository(Protocol):
    """Contract shared by every bill store."""

    def add(self, bill: Bill) -> Bill: ...

    def get(self, bill_id: str) -> Bill: ...

    def save(self, bill: Bill, expected_version: int) -> Bill: ...

    def snapshot(self) -> tuple[Bill, ...]: ...

    def find_by_source(self, source_ref: str) -> tuple[Bill, ...]: ...

    def next_sequence(self, name: str) -> int: ...


def _check_append_only(stored: Bill, incoming: Bill) -> None:
    if len(incoming.payments) < len(stored.payments):
        raise AppendOnlyViolationError(stored.id)
    for old, new in zip(stored.payments, incoming.payments):
        if old != new:
            raise AppendOnlyViolationError(stored.id)


class InMemoryBillRepository:
    """
    Process-local bill store.

    Bills are frozen values, so storing and returning the same object is
    safe.  ``_mutex`` is held only for dictionary reads and swaps.
    """

    def __init__(self) -> None:
        self._mutex = threading.Lock()
        self._bills: dict[str, Bill] = {}
        self._counters: dict[str, itertools.count] = {}

    def add(self, bill: Bill) -> Bill:
        stored = replace(bill, version=1)
        with self._mutex:
            if bill.id in self._bills:
                raise ConflictError(f"Bill {bill.id} already exists")
            self._check_number_unique(stored)
            self._bills[bill.id] = stored
        return stored

    def get(self, bill_id: str) -> Bill:
        with self._mutex:
            bill = self._bills.get(bill_id)
        if bill is None:
            raise BillNotFoundError(bill_id)
        return bill

    def save(self, bill: Bill, expected_version: int) -> Bill:
        with self._mutex:
            stored = self._bills.get(bill.id)
            if stored is None:
                raise BillNotFoundError(bill.id)
            if stored.version != expected_version:
                raise OptimisticLockError(bill.id, expected_version, stored.version)
            _check_append_only(stored, bill)
            updated = replace(bill, version=expected_version + 1)
            self._check_number_unique(updated)
            self._bills[bill.id] = updated
        return updated

    def snapshot(self) -> tuple[Bill, ...]:
        with self._mutex:
            return tuple(self._bills.values())

    def find_by_source(self, source_ref: str) -> tuple[Bill, ...]:
        return tuple(b for b in self.snapshot() if b.source_ref == source_ref)

    def next_sequence(self, name: str) -> int:
        with self._mutex:
            counter = self._counters.setdefault(name, itertools.count(1))
            return next(counter)

    def _check_number_unique(self, bill: Bill) -> None:
        if bill.bill_number is None:
            return
        for other in self._bills.values():
            if other.id != bill.id and other.bill_number == bill.bill_number:
                raise ConflictError(f"Bill number {bill.bill_number} already used")


class SqlBillRepository:
    """
    SQLAlchemy-backed bill store.

    Each call runs in its own ``session_scope`` transaction.  The
    ``version_id_col`` on BillModel turns a lost update into StaleDataError,
    which is reported as OptimisticLockError.
    """

    def __init__(self, session_factory: sessionmaker[Session]):
        self._session_factory = session_factory

    def add(self, bill: Bill) -> Bill:
        try:
            with session_scope(self._session_factory) as session:
                model = BillModel.from_dto(bill)
                session.add(model)
                session.flush()
                result = model.to_dto()
        except IntegrityError as e:
            raise ConflictError(f"Bill {bill.id} conflicts with a stored bill") from e
        logger.debug("bill_row_inserted", extra={"bill_id": bill.id})
        return result

    def get(self, bill_id: str) -> Bill:
        key = self._key(bill_id)
        with session_scope(self._session_factory) as session:
            model = session.get(BillModel, key)
            bill = model.to_dto() if model is not None else None
        if bill is None:
            raise BillNotFoundError(bill_id)
        return bill

    def save(self, bill: Bill, expected_version: int) -> Bill:
        key = self._key(bill.id)
        try:
            with session_scope(self._session_factory) as session:
                model = session.get(BillModel, key)
                if model is None:
                    raise BillNotFoundError(bill.id)
                if model.version != expected_version:
                    raise OptimisticLockError(bill.id, expected_version, model.version)
                model.apply_dto(bill, updated_by_id=LogContext.get_all().get("actor_id"))
                session.flush()
                result = model.to_dto()
        except StaleDataError as e:
            raise OptimisticLockError(bill.id, expected_version, None) from e
        except IntegrityError as e:
            raise ConflictError(f"Bill {bill.id} conflicts with a stored bill") from e
        logger.debug(
            "bill_row_updated",
            extra={"bill_id": bill.id, "version": result.version},
        )
        return result

    def snapshot(self) -> tuple[Bill, ...]:
        with session_scope(self._session_factory) as session:
            models = session.execute(
                select(BillModel).order_by(BillModel.created_at)
            ).scalars().all()
            return tuple(m.to_dto() for m in models)

    def find_by_source(self, source_ref: str) -> tuple[Bill, ...]:
        with session_scope(self._session_factory) as session:
            models = session.execute(
                select(BillModel).where(BillModel.source_ref == source_ref)
            ).scalars().all()
            return tuple(m.to_dto() for m in models)

    def next_sequence(self, name: str) -> int:
        with session_scope(self._session_factory) as session:
            return SequenceService(session).next_value(name)

    @staticmethod
    def _key(bill_id: str) -> UUID:
        try:
            return UUID(str(bill_id))
        except ValueError:
            raise BillNotFoundError(bill_id) from None
