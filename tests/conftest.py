"""
Pytest fixtures for the budget kernel test suite.

Provides:
- A fresh SQLite database file per test (BEGIN IMMEDIATE transactions, so
  concurrency tests exercise real write serialization)
- The operations facade wired to a deterministic clock and a recording
  notifier
- Factories for pools, wallets and requests in a given lifecycle state
- Captured JSON logs

Environment Variables:
- DATABASE_URL: run against PostgreSQL instead (database must exist and be
  empty; tables are created and dropped per test).
"""

import json
import logging
import os
from io import StringIO
from uuid import uuid4

import pytest

from budget_kernel.db.engine import (
    create_tables,
    drop_tables,
    get_session_factory,
    init_engine_from_url,
    reset_engine,
)
from budget_kernel.db.immutability import register_immutability_listeners
from budget_kernel.domain.clock import DeterministicClock
from budget_kernel.domain.notifications import RecordingNotifier
from budget_kernel.domain.request_lifecycle import BudgetRequestSubmission
from budget_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from budget_kernel.services.budget_operations import (
    AllocateFunds,
    ApproveRequest,
    BudgetOperations,
    CreatePool,
    OpenWallet,
)

# Test actor IDs for all test operations
TEST_ACTOR_ID = uuid4()
TEST_APPROVER_ID = uuid4()

DEFAULT_POOL = "ENG"


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
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
    Capture budget_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, ops):
            ops.open_wallet(...)
            logs = captured_logs()
            assert any(r["message"] == "wallet_opened" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("budget_kernel")
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
        "markers", "slow_locks: mark test as potentially waiting for DB locks"
    )


# =============================================================================
# Database
# =============================================================================


@pytest.fixture
def database_url(tmp_path) -> str:
    return os.environ.get("DATABASE_URL") or f"sqlite:///{tmp_path / 'budget_ledger.db'}"


@pytest.fixture
def db_engine(database_url):
    """Engine with all tables created and immutability listeners active."""
    eng = init_engine_from_url(database_url, lock_timeout_seconds=10)
    create_tables()
    register_immutability_listeners()
    yield eng
    if eng.dialect.name != "sqlite":
        drop_tables()
    reset_engine()


@pytest.fixture
def session_factory(db_engine):
    return get_session_factory()


@pytest.fixture
def session(session_factory):
    """
    A plain session for service-level tests.

    Services only flush; the test decides whether to commit.  Do not mix
    this session with ``ops`` calls in the same test on SQLite: the open
    write transaction blocks every other connection.
    """
    s = session_factory()
    yield s
    s.rollback()
    s.close()


# =============================================================================
# Kernel collaborators
# =============================================================================


@pytest.fixture
def test_actor_id():
    return TEST_ACTOR_ID


@pytest.fixture
def approver_id():
    return TEST_APPROVER_ID


@pytest.fixture
def deterministic_clock() -> DeterministicClock:
    return DeterministicClock()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def ops(session_factory, notifier, deterministic_clock) -> BudgetOperations:
    return BudgetOperations(
        session_factory,
        notifier=notifier,
        clock=deterministic_clock,
    )


# =============================================================================
# Data factories (all go through the facade)
# =============================================================================


@pytest.fixture
def create_pool(ops):
    def _create(pool_code=DEFAULT_POOL, ceiling="100000", fiscal_year=2024, name=None):
        result = ops.create_pool(
            CreatePool(
                pool_code=pool_code,
                name=name or f"{pool_code} budget",
                ceiling=ceiling,
                fiscal_year=fiscal_year,
                actor_id=TEST_ACTOR_ID,
            )
        )
        assert result.is_success, result.message
        return result.value

    return _create


@pytest.fixture
def open_wallet(ops):
    def _open(vendor_id=None, vendor_name="Acme Supplies", daily_withdrawal_limit=None):
        result = ops.open_wallet(
            OpenWallet(
                vendor_id=vendor_id or uuid4(),
                vendor_name=vendor_name,
                actor_id=TEST_ACTOR_ID,
                daily_withdrawal_limit=daily_withdrawal_limit,
            )
        )
        assert result.is_success, result.message
        return result.value

    return _open


@pytest.fixture
def submit_request(ops):
    def _submit(amount="50000", department=DEFAULT_POOL, project="Lab refresh", **kwargs):
        result = ops.submit_request(
            BudgetRequestSubmission(
                requester_id=kwargs.pop("requester_id", TEST_ACTOR_ID),
                amount=amount,
                department=department,
                project=project,
                description=kwargs.pop("description", "Replace lab workstations"),
                **kwargs,
            )
        )
        assert result.is_success, result.message
        return result.value

    return _submit


@pytest.fixture
def approved_request(ops, submit_request):
    def _approved(amount="50000", **kwargs):
        request = submit_request(amount=amount, **kwargs)
        result = ops.approve_request(
            ApproveRequest(request_id=request.request_id, approver_id=TEST_APPROVER_ID)
        )
        assert result.is_success, result.message
        return result.value

    return _approved


@pytest.fixture
def allocated_request(ops, approved_request):
    """Approved request funded into ``vendor_id``; returns the FundsMovement."""

    def _allocated(vendor_id, amount="50000", allocation=None, **kwargs):
        request = approved_request(amount=amount, **kwargs)
        result = ops.allocate_funds(
            AllocateFunds(
                request_id=request.request_id,
                vendor_id=vendor_id,
                actor_id=TEST_APPROVER_ID,
                amount=allocation,
            )
        )
        assert result.is_success, result.message
        return result.value

    return _allocated
