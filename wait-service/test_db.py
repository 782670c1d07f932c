"""Tests for the database queries against an in-memory SQLite database."""
import json
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import create_engine, text
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import db
from conftest import WEDNESDAY_1245, FixedRandom
from config import Settings
from errors import UpstreamUnavailable
from estimator import WaitTimeEstimator
from schemas import AttractionStatus, AttractionType, WaitTrend

SCHEMA = [
    """
    CREATE TABLE attractions (
        id TEXT PRIMARY KEY,
        park_id TEXT NOT NULL,
        name TEXT NOT NULL,
        type TEXT,
        details TEXT,
        current_status TEXT DEFAULT 'open',
        wait_time INTEGER
    )
    """,
    """
    CREATE TABLE wait_times (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        attraction_id TEXT NOT NULL,
        wait_minutes INTEGER NOT NULL,
        timestamp TEXT NOT NULL,
        confidence REAL DEFAULT 1.0,
        factors TEXT DEFAULT '[]',
        trend TEXT DEFAULT 'stable'
    )
    """,
    """
    CREATE TABLE weather_data (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        park_id TEXT NOT NULL,
        timestamp TEXT NOT NULL,
        current_conditions TEXT NOT NULL,
        forecast TEXT NOT NULL
    )
    """,
]

ATTRACTIONS = [
    ("coaster", "park-1", "Big Coaster", "roller_coaster", {"thrill_level": 5}, "open", 40),
    ("wild", "park-1", "Wild Mouse", "roller_coaster", {"thrill_level": 4}, "open", 15),
    ("kiddie", "park-1", "Kiddie Coaster", "roller_coaster", {"thrill_level": 1}, "open", 5),
    ("broken", "park-1", "Broken Coaster", "roller_coaster", {}, "down", 1),
    ("unknown", "park-1", "Unknown Wait", "roller_coaster", None, "open", None),
    ("mansion", "park-1", "Haunted Mansion", "dark_ride", {"thrill_level": 9}, "open", 2),
    ("carousel", "park-1", "Carousel", "carousel", {}, "open", 10),
    ("elsewhere", "park-2", "Other Park Coaster", "roller_coaster", {}, "open", 3),
]


def iso(moment: datetime) -> str:
    return moment.astimezone(timezone.utc).isoformat()


def seed(engine):
    with engine.begin() as conn:
        for statement in SCHEMA:
            conn.execute(text(statement))

        for attraction_id, park_id, name, kind, details, status, wait in ATTRACTIONS:
            conn.execute(
                text("""
                    INSERT INTO attractions (id, park_id, name, type, details, current_status, wait_time)
                    VALUES (:id, :park_id, :name, :type, :details, :status, :wait)
                """),
                {
                    "id": attraction_id,
                    "park_id": park_id,
                    "name": name,
                    "type": kind,
                    "details": None if details is None else json.dumps(details),
                    "status": status,
                    "wait": wait,
                },
            )

        observations = [
            ("coaster", 35, WEDNESDAY_1245 - timedelta(hours=1), 0.9, ["time_of_day"], "increasing"),
            ("coaster", 25, WEDNESDAY_1245 - timedelta(days=1), 1.0, [], "stable"),
            ("coaster", 60, WEDNESDAY_1245 - timedelta(days=10), 1.0, [], "decreasing"),
            ("wild", 15, WEDNESDAY_1245 - timedelta(hours=2), 1.0, [], "stable"),
        ]
        for attraction_id, wait, moment, confidence, factors, trend in observations:
            conn.execute(
                text("""
                    INSERT INTO wait_times (attraction_id, wait_minutes, timestamp, confidence, factors, trend)
                    VALUES (:attraction_id, :wait, :timestamp, :confidence, :factors, :trend)
                """),
                {
                    "attraction_id": attraction_id,
                    "wait": wait,
                    "timestamp": iso(moment),
                    "confidence": confidence,
                    "factors": json.dumps(factors),
                    "trend": trend,
                },
            )

        weather = [
            (WEDNESDAY_1245 - timedelta(hours=3), {"temperature": 12.0, "precipitation": 0.0}, {"hourly": []}),
            (
                WEDNESDAY_1245 - timedelta(minutes=5),
                {
                    "temperature": 24.5,
                    "humidity": 55,
                    "precipitation": 1.2,
                    "wind_speed": 18.0,
                    "weather_code": 61,
                    "comfort_index": 100,
                },
                {
                    "hourly": [
                        {"time": "2026-10-14T13:00:00+00:00", "temperature": 24.0, "precipitation": 0.8},
                        {"time": "2026-10-14T14:00:00+00:00", "temperature": 23.0, "precipitation": 0.0},
                    ]
                },
            ),
        ]
        for moment, current, forecast in weather:
            conn.execute(
                text("""
                    INSERT INTO weather_data (park_id, timestamp, current_conditions, forecast)
                    VALUES ('park-1', :timestamp, :current, :forecast)
                """),
                {"timestamp": iso(moment), "current": json.dumps(current), "forecast": json.dumps(forecast)},
            )


def sqlite_engine():
    return create_engine(
        "sqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )


def bind(monkeypatch, engine):
    monkeypatch.setattr(db, "_engine", engine)
    monkeypatch.setattr(db, "SessionLocal", sessionmaker(autocommit=False, autoflush=False, bind=engine))


@pytest.fixture
def database(monkeypatch):
    engine = sqlite_engine()
    seed(engine)
    bind(monkeypatch, engine)
    yield engine
    engine.dispose()


@pytest.fixture
def empty_database(monkeypatch):
    """Database without any tables, every query fails"""
    engine = sqlite_engine()
    bind(monkeypatch, engine)
    yield engine
    engine.dispose()


class TestConnection:
    def test_database_url_wins(self, monkeypatch):
        monkeypatch.setattr(db, "settings", Settings(DATABASE_URL="sqlite:///parks.db"))
        assert db.get_db_url() == "sqlite:///parks.db"

    def test_postgres_url_from_parts(self, monkeypatch):
        monkeypatch.setattr(db, "settings", Settings(
            DATABASE_URL=None, DB_HOST="db", DB_PORT=5433, DB_NAME="parks", DB_USER="u", DB_PASSWORD="p",
        ))
        assert db.get_db_url() == "postgresql://u:p@db:5433/parks"

    def test_set_engine(self, monkeypatch):
        monkeypatch.setattr(db, "_engine", None)
        monkeypatch.setattr(db, "SessionLocal", None)
        engine = sqlite_engine()

        db.set_engine(engine)

        assert db.get_engine() is engine
        with db.get_db() as session:
            assert session.execute(text("SELECT 1")).scalar() == 1

    def test_to_utc(self):
        assert db.to_utc("2026-10-14T14:45:00+02:00") == WEDNESDAY_1245
        assert db.to_utc(datetime(2026, 10, 14, 12, 45)) == WEDNESDAY_1245


class TestFetchAttraction:
    def test_found(self, database):
        attraction = db.fetch_attraction("coaster")

        assert attraction.park_id == "park-1"
        assert attraction.name == "Big Coaster"
        assert attraction.type == AttractionType.ROLLER_COASTER
        assert attraction.thrill_level == 5
        assert attraction.current_wait == 40
        assert attraction.status == AttractionStatus.OPEN

    def test_missing(self, database):
        assert db.fetch_attraction("nope") is None

    def test_unknown_type_becomes_other(self, database):
        assert db.fetch_attraction("carousel").type == AttractionType.OTHER

    def test_out_of_range_thrill_level_is_dropped(self, database):
        assert db.fetch_attraction("mansion").thrill_level is None

    def test_missing_details_and_wait(self, database):
        attraction = db.fetch_attraction("unknown")

        assert attraction.thrill_level is None
        assert attraction.current_wait is None

    def test_upstream_failure(self, empty_database):
        with pytest.raises(UpstreamUnavailable) as exc_info:
            db.fetch_attraction("coaster")
        assert exc_info.value.source == "attractions"


class TestFetchRecentObservations:
    def test_newest_first_within_window(self, database):
        since = WEDNESDAY_1245 - timedelta(days=7)
        observations = db.fetch_recent_observations("coaster", since)

        assert [o.wait_minutes for o in observations] == [35, 25]
        assert observations[0].timestamp == WEDNESDAY_1245 - timedelta(hours=1)
        assert observations[0].timestamp.tzinfo is not None
        assert observations[0].confidence == 0.9
        assert observations[0].factors == ["time_of_day"]
        assert observations[0].trend == WaitTrend.INCREASING

    def test_limit(self, database):
        since = WEDNESDAY_1245 - timedelta(days=30)
        assert len(db.fetch_recent_observations("coaster", since, limit=1)) == 1

    def test_no_observations(self, database):
        assert db.fetch_recent_observations("kiddie", WEDNESDAY_1245 - timedelta(days=7)) == []

    def test_upstream_failure(self, empty_database):
        with pytest.raises(UpstreamUnavailable) as exc_info:
            db.fetch_recent_observations("coaster", WEDNESDAY_1245)
        assert exc_info.value.source == "wait_times"


class TestFetchWeather:
    def test_latest_snapshot(self, database):
        snapshot = db.fetch_latest_weather("park-1")

        assert snapshot.timestamp == WEDNESDAY_1245 - timedelta(minutes=5)
        assert snapshot.temperature == 24.5
        assert snapshot.humidity == 55
        assert snapshot.precipitation == 1.2
        assert snapshot.wind_speed == 18.0
        assert snapshot.weather_code == 61
        assert snapshot.is_fresh(WEDNESDAY_1245, timedelta(minutes=10))

    def test_latest_forecast(self, database):
        hourly = db.fetch_latest_forecast("park-1")

        assert [h.precipitation for h in hourly] == [0.8, 0.0]
        assert hourly[0].time == datetime(2026, 10, 14, 13, 0, tzinfo=timezone.utc)

    def test_no_weather(self, database):
        assert db.fetch_latest_weather("park-2") is None
        assert db.fetch_latest_forecast("park-2") == []

    def test_upstream_failure(self, empty_database):
        with pytest.raises(UpstreamUnavailable):
            db.fetch_latest_weather("park-1")


class TestAttractionLists:
    def test_open_attractions_of_type(self, database):
        candidates = db.fetch_open_attractions_of_type("park-1", AttractionType.ROLLER_COASTER)

        assert [(c.id, c.current_wait) for c in candidates] == [
            ("kiddie", 5),
            ("wild", 15),
            ("coaster", 40),
        ]

    def test_open_attraction_ids(self, database):
        assert db.fetch_open_attraction_ids("park-1") == [
            "carousel", "coaster", "kiddie", "mansion", "unknown", "wild",
        ]

    def test_upstream_failure(self, empty_database):
        with pytest.raises(UpstreamUnavailable):
            db.fetch_open_attraction_ids("park-1")


class TestDatabaseSource:
    def test_estimate_from_database(self, database):
        estimator = WaitTimeEstimator(
            db.DatabaseSource(),
            settings=Settings(PARK_TIMEZONE="UTC"),
            clock=lambda: WEDNESDAY_1245,
            rng=FixedRandom(),
        )

        prediction = estimator.predict_wait_time("coaster", [15])

        assert prediction.current_wait == 40
        assert prediction.alternative_attractions == ["kiddie", "wild"]
        assert "precipitation" in prediction.factors
        # 40 x 1.3 x 1.1 x 0.6 rain = 34.32, blended with yesterday's 12:45
        # observation (the 11:45 one is two hours off): 0.7 x 34.32 + 0.3 x 25 = 31.524
        assert prediction.predictions[15].predicted_wait == 32
        # 0.8 x 0.8 rain x 1.1 history
        assert prediction.predictions[15].confidence == 0.7

    def test_missing_attraction(self, database):
        assert db.DatabaseSource().get_attraction("nope") is None

    def test_attraction_outage_propagates(self, empty_database):
        estimator = WaitTimeEstimator(db.DatabaseSource(), settings=Settings(PARK_TIMEZONE="UTC"))

        with pytest.raises(UpstreamUnavailable):
            estimator.predict_wait_time("coaster", [15])
