"""
BaseBillService -- shared commit protocol for every bill-mutating service.

Responsibility:
    Provides the one way a bill changes: take the bill's lock, load the
    current value, compute the new value with a pure domain function,
    verify the ledger invariants, and save it with the loaded version as
    the expected version.

Architecture position:
    Kernel > Services -- imperative shell infrastructure.
    BillLedger, PaymentProcessor and BillLifecycle extend this class.

Invariants enforced:
    - Mutations of the same bill are serialized by BillLockRegistry;
      different bills never contend.
    - Every save carries an optimistic version check.  On
      OptimisticLockError the WHOLE operation is re-run from a fresh load,
      up to ``settings.max_conflict_retries`` extra attempts.
    - A rejected or failed operation never leaves a partial bill behind:
      the recomputed value is discarded and the error propagates.

Failure modes:
    - Domain errors (ValidationError, InvalidTransitionError,
      OverpaymentError, ConflictError subclasses) propagate unchanged.
    - ConflictError when version conflicts persist past the retry budget.
    - Any persistence error other than a version conflict propagates.
"""

from __future__ import annotations

from collections.abc import Callable

from billing_kernel.domain.bill import Bill
from billing_kernel.domain.clock import Clock
from billing_kernel.domain.ledger import check_invariants
from billing_kernel.exceptions import (
    BillingKernelError,
    ConflictError,
    OptimisticLockError,
)
from billing_kernel.logging_config import LogContext, get_logger
from billing_kernel.services.bill_locks import BillLockRegistry
from billing_kernel.services.bill_repository import BillRepository
from billing_kernel.services.settings import LedgerSettings

logger = get_logger("services.base")


class BaseBillService:
    """
    Base class for services that change bills.

    Services that share a repository should share a lock registry too;
    ``BillingServices`` in ``billing_kernel.services`` wires that up.
    """

    def __init__(
        self,
        repository: BillRepository,
        clock: Clock,
        settings: LedgerSettings | None = None,
        locks: BillLockRegistry | None = None,
    ):
        self._repository = repository
        self._clock = clock
        self._settings = settings or LedgerSettings()
        self._locks = locks or BillLockRegistry()

    @property
    def settings(self) -> LedgerSettings:
        return self._settings

    def _mutate(
        self,
        bill_id: str,
        action: str,
        change: Callable[[Bill], Bill],
        actor_id: str | None = None,
    ) -> Bill:
        """
        Apply ``change`` to the current value of ``bill_id`` and commit it.

        ``change`` must be pure: it may run more than once when a version
        conflict forces a retry.
        """
        attempts = self._settings.max_conflict_retries + 1
        last_conflict: OptimisticLockError | None = None

        with LogContext.bind(bill_id=bill_id, actor_id=actor_id), self._locks.hold(bill_id):
            for attempt in range(1, attempts + 1):
                current = self._repository.get(bill_id)
                try:
                    updated = change(current)
                except BillingKernelError as e:
                    logger.info(
                        "bill_operation_rejected",
                        extra={
                            "action": action,
                            "error_code": e.code,
                            "status": current.status.value,
                            "reason": str(e),
                        },
                    )
                    raise
                check_invariants(updated)

                try:
                    saved = self._repository.save(updated, expected_version=current.version)
                except OptimisticLockError as e:
                    last_conflict = e
                    logger.warning(
                        "bill_version_conflict",
                        extra={
                            "action": action,
                            "attempt": attempt,
                            "max_attempts": attempts,
                            "expected_version": e.expected_version,
                            "actual_version": e.actual_version,
                        },
                    )
                    continue

                logger.info(
                    "bill_operation_committed",
                    extra={
                        "action": action,
                        "from_status": current.status.value,
                        "to_status": saved.status.value,
                        "version": saved.version,
                        "attempt": attempt,
                    },
                )
                return saved

        raise ConflictError(
            f"Could not {action} bill {bill_id}: concurrent modification "
            f"persisted after {attempts} attempts"
        ) from last_conflict
