"""
Typed Exception Hierarchy for the Billing Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Every rejected ledger operation must be distinguishable by TYPE and by a
machine-readable CODE, never by parsing the message:

    try:
        processor.apply_payment(bill_id, amount, PaymentMethod.CASH)
    except OverpaymentError as e:
        api_response(code=e.code, balance_due=e.balance_due)

Rejected operations leave the stored Bill unchanged.  No error in this module
is ever silently downgraded.

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    BillingKernelError (base)
    |
    +-- ValidationError
    |   +-- CurrencyMismatchError
    |
    +-- InvalidTransitionError
    |
    +-- OverpaymentError
    |
    +-- ConflictError
    |   +-- OptimisticLockError
    |   +-- PaymentsExistError
    |   +-- DuplicateBillError
    |   +-- AppendOnlyViolationError
    |
    +-- BillNotFoundError
    |
    +-- LedgerInvariantError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category      | Code                        | When Raised
--------------|-----------------------------|-------------------------------------
Validation    | VALIDATION_ERROR            | Malformed input (amounts, quantities)
              | CURRENCY_MISMATCH           | Money in a different currency
--------------|-----------------------------|-------------------------------------
Lifecycle     | INVALID_TRANSITION          | Action not permitted from status
--------------|-----------------------------|-------------------------------------
Payment       | OVERPAYMENT                 | Amount exceeds balance due
--------------|-----------------------------|-------------------------------------
Conflict      | CONFLICT                    | Re-fetch and retry
              | OPTIMISTIC_LOCK_CONFLICT    | Stored version moved underneath us
              | PAYMENTS_EXIST              | Void/cancel of a bill holding money
              | BILL_ALREADY_EXISTS         | Source document already billed
              | APPEND_ONLY_VIOLATION       | Stored payments would be rewritten
--------------|-----------------------------|-------------------------------------
Lookup        | BILL_NOT_FOUND              | Bill id unknown
--------------|-----------------------------|-------------------------------------
Integrity     | LEDGER_INVARIANT_VIOLATION  | Derived totals disagree with inputs

===============================================================================
HANDLING PATTERNS
===============================================================================

1. ValidationError -> caller corrects input and resubmits.
2. InvalidTransitionError -> caller re-reads the bill; the action is not
   available from its current status.
3. OverpaymentError -> caller lowers the amount (no credit balances exist).
4. ConflictError -> caller re-fetches current state and retries.
"""

from decimal import Decimal


class BillingKernelError(Exception):
    """
    Base exception for all billing kernel errors.

    All subclasses carry a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "BILLING_KERNEL_ERROR"


# Validation


class ValidationError(BillingKernelError):
    """Malformed input, rejected before any state change."""

    code: str = "VALIDATION_ERROR"

    def __init__(self, message: str, field: str | None = None):
        self.field = field
        super().__init__(message)


class CurrencyMismatchError(ValidationError):
    """Money in a currency other than the bill's currency."""

    code: str = "CURRENCY_MISMATCH"

    def __init__(self, expected: str, actual: str, field: str | None = None):
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Currency mismatch: expected {expected}, got {actual}",
            field=field,
        )


# Lifecycle


class InvalidTransitionError(BillingKernelError):
    """Lifecycle action attempted from a status that does not permit it."""

    code: str = "INVALID_TRANSITION"

    def __init__(self, bill_id: str, action: str, status: str):
        self.bill_id = bill_id
        self.action = action
        self.status = status
        super().__init__(
            f"Cannot {action} bill {bill_id} in status {status}"
        )


# Payment


class OverpaymentError(BillingKernelError):
    """Payment amount exceeds the balance due."""

    code: str = "OVERPAYMENT"

    def __init__(self, bill_id: str, amount: int, balance_due: int, currency: str):
        self.bill_id = bill_id
        self.amount = amount
        self.balance_due = balance_due
        self.currency = currency
        super().__init__(
            f"Payment of {amount} {currency} exceeds balance due "
            f"{balance_due} {currency} on bill {bill_id}"
        )


# Conflicts


class ConflictError(BillingKernelError):
    """Operation conflicts with the current state; re-fetch and retry."""

    code: str = "CONFLICT"


class OptimisticLockError(ConflictError):
    """Stored bill version differs from the version the change was based on."""

    code: str = "OPTIMISTIC_LOCK_CONFLICT"

    def __init__(self, bill_id: str, expected_version: int, actual_version: int | None):
        self.bill_id = bill_id
        self.expected_version = expected_version
        self.actual_version = actual_version
        super().__init__(
            f"Concurrent modification of bill {bill_id}: "
            f"expected version {expected_version}, found {actual_version}"
        )


class PaymentsExistError(ConflictError):
    """Bill has received money and can only be written off."""

    code: str = "PAYMENTS_EXIST"

    def __init__(self, bill_id: str, action: str, amount_paid: int):
        self.bill_id = bill_id
        self.action = action
        self.amount_paid = amount_paid
        super().__init__(
            f"Cannot {action} bill {bill_id}: {amount_paid} already paid; "
            f"write the bill off instead"
        )


class DuplicateBillError(ConflictError):
    """A live bill already exists for the source document."""

    code: str = "BILL_ALREADY_EXISTS"

    def __init__(self, source_ref: str, existing_bill_id: str):
        self.source_ref = source_ref
        self.existing_bill_id = existing_bill_id
        super().__init__(
            f"Source document {source_ref} already billed by {existing_bill_id}"
        )


class AppendOnlyViolationError(ConflictError):
    """A save would remove or rewrite recorded payments."""

    code: str = "APPEND_ONLY_VIOLATION"

    def __init__(self, bill_id: str):
        self.bill_id = bill_id
        super().__init__(f"Payments of bill {bill_id} are append-only")


# Lookup


class BillNotFoundError(BillingKernelError):
    """Bill with given id was not found."""

    code: str = "BILL_NOT_FOUND"

    def __init__(self, bill_id: str):
        self.bill_id = bill_id
        super().__init__(f"Bill not found: {bill_id}")


# Integrity


class LedgerInvariantError(BillingKernelError):
    """Derived fields of a bill disagree with its line items and payments."""

    code: str = "LEDGER_INVARIANT_VIOLATION"

    def __init__(self, bill_id: str, invariant: str, expected: int | Decimal, actual: int | Decimal):
        self.bill_id = bill_id
        self.invariant = invariant
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Bill {bill_id} violates {invariant}: expected {expected}, got {actual}"
        )
