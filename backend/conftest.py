"""Root conftest: load test environment variables and configure structlog for tests."""

from pathlib import Path

import pytest
import structlog
from dotenv import load_dotenv

from shared.logging import setup_logging

load_dotenv(Path(__file__).resolve().parent.parent / ".env.tests")

# Route structlog through the stdlib root logger so caplog sees battle events.
setup_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Runner tasks bind battle_id; keep it from leaking into the next test."""
    structlog.contextvars.clear_contextvars()
    yield
    structlog.contextvars.clear_contextvars()
