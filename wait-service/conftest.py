"""Shared fixtures: in-memory data source, fixed clock and controllable jitter."""
from datetime import datetime, timezone

import pytest

from config import Settings
from errors import UpstreamUnavailable
from estimator import WaitTimeEstimator
from schemas import (
    AlternativeAttraction,
    Attraction,
    AttractionStatus,
    AttractionType,
)

# Wednesday 12:45 UTC, so a 15 minute window lands in the 13:00 peak hour
WEDNESDAY_1245 = datetime(2026, 10, 14, 12, 45, tzinfo=timezone.utc)
# Saturday 12:45 UTC
SATURDAY_1245 = datetime(2026, 10, 17, 12, 45, tzinfo=timezone.utc)


class FixedRandom:
    """Random source that always returns the same draw (0.5 means no jitter)"""

    def __init__(self, value: float = 0.5):
        self.value = value

    def random(self) -> float:
        return self.value


class FakeSource:
    """In-memory stand-in for the database collaborator"""

    def __init__(self):
        self.attractions = {}
        self.observations = {}
        self.weather = {}
        self.forecast = {}
        self.failing = set()
        self.history_calls = []

    def add(self, attraction: Attraction) -> Attraction:
        self.attractions[attraction.id] = attraction
        return attraction

    def _check(self, name: str):
        if name in self.failing:
            raise UpstreamUnavailable(name, RuntimeError("connection refused"))

    def get_attraction(self, attraction_id):
        self._check("attractions")
        return self.attractions.get(attraction_id)

    def get_recent_observations(self, attraction_id, since):
        self._check("history")
        self.history_calls.append((attraction_id, since))
        return list(self.observations.get(attraction_id, []))

    def get_latest_weather(self, park_id):
        self._check("weather")
        return self.weather.get(park_id)

    def get_hourly_forecast(self, park_id):
        self._check("forecast")
        return list(self.forecast.get(park_id, []))

    def list_open_attractions_of_type(self, park_id, attraction_type):
        self._check("alternatives")
        candidates = [
            AlternativeAttraction(id=a.id, current_wait=a.current_wait)
            for a in self.attractions.values()
            if a.park_id == park_id
            and a.type == attraction_type
            and a.status == AttractionStatus.OPEN
            and a.current_wait is not None
        ]
        return sorted(candidates, key=lambda c: (c.current_wait, c.id))

    def list_open_attraction_ids(self, park_id):
        self._check("attractions")
        return sorted(
            a.id for a in self.attractions.values()
            if a.park_id == park_id and a.status == AttractionStatus.OPEN
        )


@pytest.fixture
def settings():
    """Settings pinned to UTC so hours in tests read as written"""
    return Settings(PARK_TIMEZONE="UTC")


@pytest.fixture
def source():
    return FakeSource()


@pytest.fixture
def make_attraction(source):
    """Create and register an attraction"""
    def _make(
        attraction_id="coaster",
        current_wait=40,
        thrill_level=5,
        attraction_type=AttractionType.ROLLER_COASTER,
        park_id="park-1",
        status=AttractionStatus.OPEN,
    ):
        return source.add(Attraction(
            id=attraction_id,
            park_id=park_id,
            name=attraction_id.replace("-", " ").title(),
            type=attraction_type,
            thrill_level=thrill_level,
            current_wait=current_wait,
            status=status,
        ))
    return _make


@pytest.fixture
def make_estimator(source, settings):
    """Build an estimator with a fixed clock and fixed jitter draw"""
    def _make(now=WEDNESDAY_1245, draw=0.5, rng=None, settings_override=None):
        return WaitTimeEstimator(
            source,
            settings=settings_override or settings,
            clock=lambda: now,
            rng=rng or FixedRandom(draw),
        )
    return _make
