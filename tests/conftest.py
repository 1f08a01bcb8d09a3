"""
Pytest fixtures for the blood kernel test suite.

Provides:
- A file-backed SQLite database per test (tables, triggers, ORM listeners)
- Session, session factory and BloodBankService fixtures
- Unit factories and a deterministic clock
- Captured structured logs

Every test that touches the database gets its own file under ``tmp_path``,
so tests never share state and concurrency tests see real commits.
"""

import json
import logging
from collections.abc import Callable, Generator
from datetime import date, datetime, timedelta, timezone
from io import StringIO
from uuid import UUID

import pytest
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from blood_config.schema import AuditFailureMode
from blood_kernel.db.engine import (
    create_tables,
    get_session_factory,
    init_engine_from_url,
    reset_engine,
)
from blood_kernel.db.immutability import (
    register_immutability_listeners,
    unregister_immutability_listeners,
)
from blood_kernel.domain.clock import DeterministicClock
from blood_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from blood_kernel.services.auditor_service import AuditorService
from blood_kernel.services.inventory_service import InventoryService
from blood_services.bank_service import BloodBankService

TEST_PEPPER = "test-pepper"
TEST_DONOR_ID = "123456789"
TEST_DONOR_NAME = "Test Donor"
BASE_DATE = date(2024, 1, 1)
BASE_TIME = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


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
    Capture blood_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, bank):
            bank.issue_emergency_o_neg()
            logs = captured_logs()
            assert any(r["message"] == "emergency_o_neg_unavailable" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("blood_kernel")
    previous_level = root.level
    root.setLevel(logging.DEBUG)
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)
    root.setLevel(previous_level)


# =============================================================================
# Database fixtures
# =============================================================================


@pytest.fixture
def database_url(tmp_path) -> str:
    return f"sqlite:///{tmp_path / 'blood_bank.db'}"


@pytest.fixture
def db_engine(database_url) -> Generator[Engine, None, None]:
    """Fresh database with tables, immutability triggers and ORM listeners."""
    engine = init_engine_from_url(database_url, busy_timeout_seconds=30.0)
    create_tables()
    register_immutability_listeners()
    yield engine
    register_immutability_listeners()
    reset_engine()


@pytest.fixture
def session_factory(db_engine) -> sessionmaker[Session]:
    return get_session_factory()


@pytest.fixture
def session(session_factory) -> Generator[Session, None, None]:
    """
    A session for direct kernel-service tests.

    Holds the SQLite write lock from its first statement until it commits
    or rolls back; do not mix it with BloodBankService calls that need to
    write before this session is finished.
    """
    sess = session_factory()
    try:
        yield sess
    finally:
        sess.rollback()
        sess.close()


@pytest.fixture
def deterministic_clock() -> DeterministicClock:
    return DeterministicClock(BASE_TIME)


@pytest.fixture
def bank(session_factory, deterministic_clock) -> BloodBankService:
    """BloodBankService in the default fail-open audit mode."""
    return BloodBankService(
        session_factory,
        pepper=TEST_PEPPER,
        clock=deterministic_clock,
    )


@pytest.fixture
def fail_closed_bank(session_factory, deterministic_clock) -> BloodBankService:
    return BloodBankService(
        session_factory,
        pepper=TEST_PEPPER,
        failure_mode=AuditFailureMode.FAIL_CLOSED,
        clock=deterministic_clock,
    )


@pytest.fixture
def inventory_service(session, deterministic_clock) -> InventoryService:
    return InventoryService(session, clock=deterministic_clock)


@pytest.fixture
def auditor_service(session, deterministic_clock) -> AuditorService:
    return AuditorService(session, TEST_PEPPER, clock=deterministic_clock)


@pytest.fixture
def add_unit(inventory_service) -> Callable[..., UUID]:
    """
    Add a unit through InventoryService on the test ``session``.

    Usage::

        unit_id = add_unit("A+", days_old=3)
    """

    def _add(
        blood_type: str,
        days_old: int = 0,
        donor_id: str = TEST_DONOR_ID,
        donor_name: str = TEST_DONOR_NAME,
        donation_date: date | None = None,
    ) -> UUID:
        when = donation_date or BASE_DATE - timedelta(days=days_old)
        return inventory_service.add_unit(blood_type, when, donor_id, donor_name)

    return _add


@pytest.fixture
def seed_units(bank) -> Callable[..., list[UUID]]:
    """
    Commit units through BloodBankService; returns their ids in order.

    Usage::

        ids = seed_units(("A+", 2), ("O-", 5))   # (type, days_old)
    """

    def _seed(*specs: tuple[str, int]) -> list[UUID]:
        ids = []
        for blood_type, days_old in specs:
            unit = bank.add_donation(
                blood_type,
                BASE_DATE - timedelta(days=days_old),
                TEST_DONOR_ID,
                TEST_DONOR_NAME,
            )
            ids.append(unit.id)
        return ids

    return _seed


@pytest.fixture
def without_immutability(db_engine):
    """
    Disable ORM listeners and database triggers for the duration of a test.

    Use this only to simulate tampering with stored rows.
    """
    from blood_kernel.db.triggers import (
        install_immutability_triggers,
        uninstall_immutability_triggers,
    )

    unregister_immutability_listeners()
    uninstall_immutability_triggers(db_engine)
    yield db_engine
    install_immutability_triggers(db_engine)
    register_immutability_listeners()
