"""
Pytest Configuration and Fixtures.

This file configures pytest and provides shared fixtures for all tests.
"""
import pytest
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from config import Settings  # noqa: E402
from srp.practice.items import load_pool  # noqa: E402


def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "integration: Integration tests (ingest service)")
    config.addinivalue_line("markers", "smoke: Smoke tests for CLI commands")
    config.addinivalue_line("markers", "slow: Slow tests")


def pytest_collection_modifyitems(config, items):
    """Automatically mark tests based on their location."""
    for item in items:
        if "unit" in str(item.fspath):
            item.add_marker(pytest.mark.unit)
        elif "integration" in str(item.fspath):
            item.add_marker(pytest.mark.integration)
        elif "smoke" in str(item.fspath):
            item.add_marker(pytest.mark.smoke)


@pytest.fixture(scope="session")
def project_root():
    """Return the project root directory."""
    return PROJECT_ROOT


class FakeClock:
    """Deterministic clock advancing one second per call."""

    def __init__(self, start: datetime | None = None):
        self.now = start or datetime(2025, 3, 3, 9, 0, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        moment = self.now
        self.now = self.now + timedelta(seconds=1)
        return moment


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def settings(tmp_path):
    """Settings isolated from the environment and the working directory."""
    return Settings(
        _env_file=None,
        item_source=str(tmp_path / "items.csv"),
        results_database_url="sqlite://",
        pending_dir=tmp_path / "pending",
        feedback_ms=0,
    )


@pytest.fixture
def sample_rows():
    """Item rows as read from the item CSV."""
    return [
        {"id": "o1", "topic": "organic", "week": "6", "image": "img/o1.png",
         "answers": "ethanol||ethyl alcohol", "q_type": "standard", "unfilled_template": ""},
        {"id": "o2", "topic": "organic", "week": "6", "image": "img/o2.png",
         "answers": "propan-2-ol", "q_type": "", "unfilled_template": ""},
        {"id": "u1", "topic": "units", "week": "6", "image": "Speed of light units?",
         "answers": "m s^-1", "q_type": "fill-blank", "unfilled_template": "3.00 x 10^8 ___"},
        {"id": "i1", "topic": "inorganic", "week": "12", "image": "img/i1.png",
         "answers": "sodium chloride", "q_type": "", "unfilled_template": ""},
        {"id": "i2", "topic": "inorganic", "week": "12", "image": "img/i2.png",
         "answers": "iron(III) oxide", "q_type": "", "unfilled_template": ""},
        {"id": "u1", "topic": "units", "week": "7", "image": "Speed of light units?",
         "answers": "m s^-1", "q_type": "fill-blank", "unfilled_template": "3.00 x 10^8 ___"},
    ]


@pytest.fixture
def sample_pool(sample_rows):
    return load_pool(sample_rows)


@pytest.fixture
def sample_csv():
    """Item CSV text with a BOM, quoted fields and a blank trailing line."""
    return (
        "\ufeffid,topic,week,image,answers,q_type,unfilled_template\n"
        'o1,Organic,6,img/o1.png,"ethanol||ethyl alcohol",standard,\n'
        'u1,units,6,"Speed, in SI units",m/s,fill-blank,"3.00 x 10^8 ___"\n'
        "\n"
    )
