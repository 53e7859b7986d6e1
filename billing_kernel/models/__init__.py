"""ORM models for the billing kernel."""

from billing_kernel.models.bill import BillLineItemModel, BillModel, BillPaymentModel
from billing_kernel.models.sequence import SequenceCounter

__all__ = [
    "BillModel",
    "BillLineItemModel",
    "BillPaymentModel",
    "SequenceCounter",
]
