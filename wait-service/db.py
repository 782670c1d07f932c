"""
Database connection and read-only queries for wait time estimation
"""
from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker
from contextlib import contextmanager
from typing import Any, Dict, Generator, List, Optional
import datetime
import decimal
import json
import logging
import uuid

import pandas as pd

from config import get_settings
from errors import UpstreamUnavailable
from schemas import (
    AlternativeAttraction,
    Attraction,
    AttractionStatus,
    AttractionType,
    HourlyWeather,
    WaitObservation,
    WaitTrend,
    WeatherSnapshot,
)

settings = get_settings()
logger = logging.getLogger(__name__)


def convert_df_types(df: pd.DataFrame) -> pd.DataFrame:
    """
    Convert driver-specific column types to plain Python/pandas types.
    - decimal.Decimal -> float
    - uuid.UUID -> str
    - datetime.date/datetime.datetime -> pd.to_datetime (UTC)
    """
    if df.empty:
        return df

    for col in df.columns:
        if df[col].dtype == "object":
            sample = df[col].dropna()
            if sample.empty:
                continue

            first_val = sample.iloc[0]

            if isinstance(first_val, decimal.Decimal):
                df[col] = df[col].astype(float)
            elif isinstance(first_val, uuid.UUID):
                df[col] = df[col].astype(str)
            elif isinstance(first_val, (datetime.date, datetime.datetime)):
                df[col] = pd.to_datetime(df[col], utc=True)

    return df


def get_db_url() -> str:
    """Build database connection URL (DATABASE_URL wins over DB_* settings)"""
    if settings.DATABASE_URL:
        return settings.DATABASE_URL
    return (
        f"postgresql://{settings.DB_USER}:{settings.DB_PASSWORD}"
        f"@{settings.DB_HOST}:{settings.DB_PORT}/{settings.DB_NAME}"
    )


_engine: Optional[Engine] = None
SessionLocal: Optional[sessionmaker] = None


def set_engine(engine: Engine) -> None:
    """Bind the module to an engine (scripts and tests bring their own)"""
    global _engine, SessionLocal
    _engine = engine
    SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_engine() -> Engine:
    """Get the shared engine, created on first use"""
    if _engine is None:
        set_engine(create_engine(get_db_url(), pool_pre_ping=True, pool_size=10))
    return _engine


@contextmanager
def get_db() -> Generator:
    """Get database session context manager"""
    get_engine()
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def to_utc(value: Any) -> datetime.datetime:
    """Normalize a driver timestamp (datetime or ISO string) to an aware UTC datetime"""
    ts = pd.Timestamp(value)
    if ts.tzinfo is None:
        ts = ts.tz_localize("UTC")
    else:
        ts = ts.tz_convert("UTC")
    return ts.to_pydatetime()


def _parse_json(value: Any, default: Any) -> Any:
    """JSON columns arrive decoded from PostgreSQL and as text from SQLite"""
    if value is None:
        return default
    if isinstance(value, str):
        try:
            return json.loads(value)
        except ValueError:
            logger.warning(f"Ignoring malformed JSON column value: {value[:80]!r}")
            return default
    return value


def _optional_int(value: Any) -> Optional[int]:
    if value is None or pd.isna(value):
        return None
    return int(value)


def _optional_float(value: Any) -> Optional[float]:
    if value is None or pd.isna(value):
        return None
    return float(value)


def _thrill_level(details: Dict[str, Any]) -> Optional[int]:
    level = _optional_int(details.get("thrill_level"))
    if level is None or not 1 <= level <= 5:
        return None
    return level


def fetch_attraction(attraction_id: str) -> Optional[Attraction]:
    """
    Fetch an attraction's static attributes and current observed wait

    Returns:
        Attraction, or None if the id does not exist
    """
    query = text("""
        SELECT
            id,
            park_id,
            name,
            type,
            details,
            current_status,
            wait_time
        FROM attractions
        WHERE id = :attraction_id
    """)

    try:
        with get_db() as db:
            row = db.execute(query, {"attraction_id": attraction_id}).mappings().fetchone()
    except SQLAlchemyError as e:
        raise UpstreamUnavailable("attractions", e) from e

    if row is None:
        return None

    details = _parse_json(row["details"], {})
    return Attraction(
        id=str(row["id"]),
        park_id=str(row["park_id"]),
        name=row["name"],
        type=AttractionType.parse(row["type"]),
        thrill_level=_thrill_level(details),
        current_wait=_optional_int(row["wait_time"]),
        status=AttractionStatus(row["current_status"] or AttractionStatus.OPEN.value),
    )


def fetch_recent_observations(
    attraction_id: str,
    since: datetime.datetime,
    limit: int = None
) -> List[WaitObservation]:
    """
    Fetch the most recent wait observations for an attraction

    Args:
        attraction_id: Attraction to fetch
        since: Oldest timestamp to include
        limit: Maximum rows (defaults to settings.HISTORY_LIMIT)

    Returns:
        Observations ordered newest first (possibly empty)
    """
    query = text("""
        SELECT
            attraction_id,
            wait_minutes,
            timestamp,
            confidence,
            factors,
            trend
        FROM wait_times
        WHERE attraction_id = :attraction_id
            AND timestamp >= :since
        ORDER BY timestamp DESC
        LIMIT :limit
    """)

    try:
        with get_db() as db:
            result = db.execute(query, {
                "attraction_id": attraction_id,
                "since": since.isoformat(),
                "limit": limit or settings.HISTORY_LIMIT,
            })
            df = pd.DataFrame(result.fetchall(), columns=result.keys())
    except SQLAlchemyError as e:
        raise UpstreamUnavailable("wait_times", e) from e

    if df.empty:
        return []

    df = convert_df_types(df)
    df["timestamp"] = pd.to_datetime(df["timestamp"], utc=True, format="ISO8601")

    observations = []
    for row in df.itertuples(index=False):
        confidence = _optional_float(row.confidence)
        observations.append(WaitObservation(
            attraction_id=str(row.attraction_id),
            wait_minutes=int(row.wait_minutes),
            timestamp=row.timestamp.to_pydatetime(),
            confidence=1.0 if confidence is None else confidence,
            factors=list(_parse_json(row.factors, [])),
            trend=WaitTrend(row.trend or WaitTrend.STABLE.value),
        ))
    return observations


def _fetch_latest_weather_row(park_id: str):
    query = text("""
        SELECT
            park_id,
            timestamp,
            current_conditions,
            forecast
        FROM weather_data
        WHERE park_id = :park_id
        ORDER BY timestamp DESC
        LIMIT 1
    """)

    try:
        with get_db() as db:
            return db.execute(query, {"park_id": park_id}).mappings().fetchone()
    except SQLAlchemyError as e:
        raise UpstreamUnavailable("weather_data", e) from e


def fetch_latest_weather(park_id: str) -> Optional[WeatherSnapshot]:
    """
    Fetch the latest stored weather snapshot for a park

    Freshness is not checked here; callers decide what is too old.
    """
    row = _fetch_latest_weather_row(park_id)
    if row is None:
        return None

    current = _parse_json(row["current_conditions"], {})
    return WeatherSnapshot(
        park_id=str(row["park_id"]),
        timestamp=to_utc(row["timestamp"]),
        temperature=_optional_float(current.get("temperature")),
        humidity=_optional_float(current.get("humidity")),
        precipitation=_optional_float(current.get("precipitation")),
        wind_speed=_optional_float(current.get("wind_speed")),
        weather_code=_optional_int(current.get("weather_code")),
        comfort_index=_optional_int(current.get("comfort_index")),
    )


def fetch_latest_forecast(park_id: str) -> List[HourlyWeather]:
    """Fetch the hourly forecast stored alongside the latest snapshot"""
    row = _fetch_latest_weather_row(park_id)
    if row is None:
        return []

    forecast = _parse_json(row["forecast"], {})
    return [HourlyWeather(**hour) for hour in forecast.get("hourly", [])]


def fetch_open_attractions_of_type(
    park_id: str,
    attraction_type: AttractionType
) -> List[AlternativeAttraction]:
    """
    Fetch open attractions of one type in a park, shortest wait first

    Attractions without a current wait are left out.
    """
    query = text("""
        SELECT
            id,
            wait_time
        FROM attractions
        WHERE park_id = :park_id
            AND type = :attraction_type
            AND current_status = 'open'
            AND wait_time IS NOT NULL
        ORDER BY wait_time ASC, id ASC
    """)

    try:
        with get_db() as db:
            rows = db.execute(query, {
                "park_id": park_id,
                "attraction_type": attraction_type.value,
            }).fetchall()
    except SQLAlchemyError as e:
        raise UpstreamUnavailable("attractions", e) from e

    return [AlternativeAttraction(id=str(row[0]), current_wait=int(row[1])) for row in rows]


def fetch_open_attraction_ids(park_id: str) -> List[str]:
    """Fetch ids of all open attractions in a park"""
    query = text("""
        SELECT id
        FROM attractions
        WHERE park_id = :park_id
            AND current_status = 'open'
        ORDER BY id
    """)

    try:
        with get_db() as db:
            rows = db.execute(query, {"park_id": park_id}).fetchall()
    except SQLAlchemyError as e:
        raise UpstreamUnavailable("attractions", e) from e

    return [str(row[0]) for row in rows]


class DatabaseSource:
    """Data-access collaborator for WaitTimeEstimator backed by the database"""

    def get_attraction(self, attraction_id: str) -> Optional[Attraction]:
        return fetch_attraction(attraction_id)

    def get_recent_observations(self, attraction_id: str, since: datetime.datetime) -> List[WaitObservation]:
        return fetch_recent_observations(attraction_id, since, settings.HISTORY_LIMIT)

    def get_latest_weather(self, park_id: str) -> Optional[WeatherSnapshot]:
        return fetch_latest_weather(park_id)

    def get_hourly_forecast(self, park_id: str) -> List[HourlyWeather]:
        return fetch_latest_forecast(park_id)

    def list_open_attractions_of_type(
        self,
        park_id: str,
        attraction_type: AttractionType
    ) -> List[AlternativeAttraction]:
        return fetch_open_attractions_of_type(park_id, attraction_type)

    def list_open_attraction_ids(self, park_id: str) -> List[str]:
        return fetch_open_attraction_ids(park_id)
