import os
import sys
from datetime import datetime, timedelta
from pathlib import Path

import pytest

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

# Keep tests away from the real data directory.
os.environ.setdefault("PLANNER_DATA_DIR", str(PROJECT_ROOT / ".pytest_data"))

from planner.store import PlannerStore  # noqa: E402
from planner.triggers import load_default_triggers  # noqa: E402


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: datetime):
        self.current = start

    def __call__(self) -> datetime:
        return self.current

    def advance(self, **kwargs) -> datetime:
        self.current += timedelta(**kwargs)
        return self.current


@pytest.fixture
def clock():
    return FakeClock(datetime(2026, 3, 10, 10, 0))


@pytest.fixture
def default_triggers():
    return load_default_triggers()


@pytest.fixture
def store(clock, default_triggers):
    return PlannerStore(clock=clock, default_triggers=default_triggers)
