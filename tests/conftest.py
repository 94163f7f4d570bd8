"""
Pytest fixtures for the workshop ledger test suite.

Provides:
- Structured logging configured for the whole session
- A ``captured_logs`` fixture returning parsed JSON log records
- A deterministic clock and default settings
"""

import json
import logging
from datetime import datetime, timezone
from io import StringIO

import pytest

from ledger_config import LedgerSettings
from ledger_kernel.domain.clock import DeterministicClock
from ledger_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)


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
    Capture ledger_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs):
            apply_payment(...)
            logs = captured_logs()
            assert any(r["message"] == "ledger_payment_applied" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("ledger_kernel")
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
# Domain fixtures
# =============================================================================


@pytest.fixture
def deterministic_clock():
    """Provide a deterministic clock for testing."""
    return DeterministicClock(datetime(2024, 3, 1, 9, 0, tzinfo=timezone.utc))


@pytest.fixture
def ledger_settings():
    """Shipped defaults: SYP, UTC, 08:00 business day, 30 on-time days."""
    return LedgerSettings()
