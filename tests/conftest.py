"""
Pytest Configuration and Fixtures.

This file configures pytest and provides shared fixtures for all tests.
"""
import pytest
import sys
from datetime import date, timedelta
from pathlib import Path

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from src.scheduling import (  # noqa: E402
    HistoryEntry,
    InMemoryHistoryStore,
    ItemOwner,
    PracticeItem,
    RetentionModel,
    ScheduleStore,
    SessionClock,
    SpacedRepetitionScheduler,
    StabilityModel,
)
from src.scheduling.models import SessionOutcome  # noqa: E402

TODAY = date(2025, 3, 10)


def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "smoke: Smoke tests for CLI commands")
    config.addinivalue_line("markers", "slow: Slow tests")


def pytest_collection_modifyitems(config, items):
    """Automatically mark tests based on their location."""
    for item in items:
        # Mark based on test file location
        if "unit" in str(item.fspath):
            item.add_marker(pytest.mark.unit)
        elif "smoke" in str(item.fspath):
            item.add_marker(pytest.mark.smoke)


@pytest.fixture(scope="session")
def project_root():
    """Return the project root directory."""
    return PROJECT_ROOT


@pytest.fixture
def today():
    """Fixed session date used across tests."""
    return TODAY


@pytest.fixture
def clock(today):
    """Clock pinned to the test session date."""
    return SessionClock(fixed_today=today)


@pytest.fixture
def retention():
    return RetentionModel()


@pytest.fixture
def owner():
    """Provide a sample owner (a piece being learned)."""
    return ItemOwner(id="owner-1", title="Chopin Nocturne Op. 9 No. 2")


@pytest.fixture
def make_item():
    """Factory for practice items owned by ``owner-1``."""

    def _make(item_id="item-1", **kwargs):
        kwargs.setdefault("owner_id", "owner-1")
        kwargs.setdefault("label", f"Bars for {item_id}")
        return PracticeItem(id=item_id, **kwargs)

    return _make


@pytest.fixture
def make_entry(today):
    """Factory for history entries; ``days_ago`` counts back from the session date."""

    def _make(item_id="item-1", days_ago=0, score=5.0, reps=0, **kwargs):
        kwargs.setdefault("owner_id", "owner-1")
        return HistoryEntry(
            item_id=item_id,
            date=today - timedelta(days=days_ago),
            performance_score=score,
            repetitions=reps,
            **kwargs,
        )

    return _make


@pytest.fixture
def success_entry(make_entry):
    """A completed session with repetitions and TargetReached."""

    def _make(item_id="item-1", days_ago=0, score=7.0, reps=3):
        return make_entry(
            item_id,
            days_ago=days_ago,
            score=score,
            reps=reps,
            duration=timedelta(minutes=5),
            session_outcome=SessionOutcome.TARGET_REACHED,
        )

    return _make


@pytest.fixture
def history_store():
    return InMemoryHistoryStore()


@pytest.fixture
def stability_model(clock):
    """In-memory stability model (no backing file)."""
    return StabilityModel(clock=clock)


@pytest.fixture
def scheduler(retention, stability_model, clock):
    return SpacedRepetitionScheduler(retention, stability=stability_model, clock=clock)


@pytest.fixture
def store(scheduler, clock):
    """In-memory schedule store."""
    return ScheduleStore(scheduler=scheduler, clock=clock)
