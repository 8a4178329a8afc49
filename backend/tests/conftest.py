import os
from pathlib import Path
from unittest.mock import Mock

from dotenv import load_dotenv
import pytest

# Load environment variables for tests before any app module reads settings
load_dotenv(Path(__file__).resolve().parents[1] / '.env.test')
os.environ.setdefault("PYTEST_RUN", "1")

from app.utils import rate_limit  # noqa: E402


# Patch SMS notifications for all tests
@pytest.fixture(autouse=True)
def patch_status_notifications(monkeypatch):
    """Replace notify_status_change with a Mock so no SMS job is queued."""
    mock = Mock(return_value="task-id")
    monkeypatch.setattr("app.utils.notifications.notify_status_change", mock)
    return mock


@pytest.fixture(autouse=True)
def fresh_rate_limits():
    """Give every test its own in-memory rate-limit counters."""
    rate_limit.set_counter_store(rate_limit.InMemoryCounterStore())
    yield
    rate_limit.set_counter_store(None)


@pytest.fixture(autouse=True)
def clear_dependency_overrides():
    yield
    from app.main import app

    app.dependency_overrides.clear()
