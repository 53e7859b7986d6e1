"""
Pytest fixtures for the billing kernel test suite.

Provides:
- Structured logging for the whole session plus a log capture fixture
- Deterministic clock and ledger settings
- In-memory repository and wired services
- A file-backed SQLite session factory for the SQL repository tests
- Bill builders shared by the unit, service and engine tests
"""

import json
import logging
from datetime import datetime
from io import StringIO
from uuid import uuid4

import pytest

from billing_kernel.db.engine import (
    create_tables,
    get_session_factory,
    init_engine_from_url,
    reset_engine,
)
from billing_kernel.domain.clock import DeterministicClock
from billing_kernel.domain.bill import LineItem
from billing_kernel.domain.ledger import create_draft
from billing_kernel.domain.money import Money
from billing_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from billing_kernel.services import (
    InMemoryBillRepository,
    LedgerSettings,
    SqlBillRepository,
    build_services,
)
from tests.builders import FIXED_NOW, TEST_ACTOR_ID, consultation_line

# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG, stream=StringIO())
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture billing_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, services):
            services.payments.apply_payment(...)
            logs = captured_logs()
            assert any(r["message"] == "payment_applied" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("billing_kernel")
    previous_level = root.level
    root.setLevel(logging.DEBUG)
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)
    root.setLevel(previous_level)


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "slow_locks: mark test as exercising real thread contention"
    )


# =============================================================================
# Core fixtures
# =============================================================================


@pytest.fixture
def deterministic_clock():
    return DeterministicClock(FIXED_NOW)


@pytest.fixture
def settings():
    return LedgerSettings()


@pytest.fixture
def repository():
    return InMemoryBillRepository()


@pytest.fixture
def services(repository, deterministic_clock, settings):
    return build_services(repository, deterministic_clock, settings)


@pytest.fixture
def draft_bill(services):
    """A DRAFT bill for 2 x 50,000 VND @ 10% (grand total 105,000)."""
    return services.ledger.create_draft(
        "patient-1", [consultation_line()], created_by=TEST_ACTOR_ID,
    )


@pytest.fixture
def issued_bill(services, draft_bill):
    """The draft bill, issued with the default 30-day payment terms."""
    return services.lifecycle.issue(draft_bill.id, actor_id=TEST_ACTOR_ID)


@pytest.fixture
def make_draft():
    """Factory for pure DRAFT bills built without any service."""

    def _make(
        *lines: LineItem,
        discount: Money | None = None,
        created_at: datetime = FIXED_NOW,
        currency: str = "VND",
    ):
        return create_draft(
            bill_id=str(uuid4()),
            patient_ref="patient-1",
            line_items=lines or (consultation_line(),),
            currency=currency,
            created_at=created_at,
            discount=discount,
        )

    return _make


# =============================================================================
# SQL fixtures
# =============================================================================


@pytest.fixture
def sql_session_factory(tmp_path):
    """Fresh SQLite database per test, tables created from Base.metadata."""
    init_engine_from_url(f"sqlite:///{tmp_path / 'bills.db'}")
    create_tables()
    yield get_session_factory()
    reset_engine()


@pytest.fixture
def sql_repository(sql_session_factory):
    return SqlBillRepository(sql_session_factory)


@pytest.fixture
def sql_services(sql_repository, deterministic_clock, settings):
    return build_services(sql_repository, deterministic_clock, settings)
