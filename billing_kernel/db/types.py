"""
Module: billing_kernel.db.types
Responsibility: Column type constants for billing tables.  Centralizes
    column widths so that every model uses identical definitions.
Architecture position: Kernel > DB.  May be imported by models/ and
    services/.  MUST NOT import from either.

Invariants enforced:
    CRITICAL: No floats and no Numeric money.  Amounts are stored as
    BigInteger minor units, exactly as ``billing_kernel.domain.money.Money``
    holds them; percentages are Numeric(9, 4).
"""

from sqlalchemy import BigInteger, Numeric, String

# Amount in integer minor units (dong, cents)
MinorUnits = BigInteger

# Percentage rate 0-100 with four decimal places
Rate = Numeric(9, 4)

# ISO 4217 currency code (e.g., "VND", "USD")
Currency = String(3)

# Monotonic sequence number for ordering
Sequence = BigInteger

# Opaque references to external collaborators (patients, doctors, documents)
ExternalRef = String(100)

# Short identifier strings (statuses, methods, service codes, sequence names)
ShortCode = String(50)

# Display names
Name = String(255)
