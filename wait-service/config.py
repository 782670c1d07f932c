"""
Configuration for the Wait Service
"""

from typing import List, Optional

from pydantic_settings import BaseSettings
from functools import lru_cache


class Settings(BaseSettings):
    """Application settings"""

    # Database
    DB_HOST: str = "postgres"
    DB_PORT: int = 5432
    DB_NAME: str = "parkplanner"
    DB_USER: str = "postgres"
    DB_PASSWORD: str = "postgres"
    DATABASE_URL: Optional[str] = None  # Full SQLAlchemy URL, overrides DB_* when set

    # Service
    SERVICE_VERSION: str = "1.0.0"
    LOG_LEVEL: str = "INFO"
    PARK_TIMEZONE: str = "UTC"  # Hour-of-day / day-of-week are derived in this zone
    BATCH_MAX_WORKERS: int = 8

    # Lookups
    DEFAULT_WINDOWS: List[int] = [15, 30, 60, 120]
    MAX_WINDOW_MINUTES: int = 1440  # Look-ahead windows beyond one day are rejected
    HISTORY_LOOKBACK_DAYS: int = 7
    HISTORY_LIMIT: int = 168  # One week of hourly observations
    ALTERNATIVES_LIMIT: int = 3
    WEATHER_FRESHNESS_MINUTES: int = 10
    CONFIDENCE_INTERVAL_TEXT: str = "±10 minutes"

    # Estimator: starting point and bounds
    BASE_CONFIDENCE: float = 0.8
    MIN_WAIT: int = 0
    MAX_WAIT: int = 180
    MIN_CONFIDENCE: float = 0.3
    MAX_CONFIDENCE: float = 1.0

    # Estimator: time of day (inclusive hour bands, first match wins)
    PEAK_START_HOUR: int = 11
    PEAK_END_HOUR: int = 15
    PEAK_MULTIPLIER: float = 1.3
    EVENING_START_HOUR: int = 16
    EVENING_END_HOUR: int = 20
    EVENING_MULTIPLIER: float = 1.1
    EARLY_END_HOUR: int = 9  # hour <= 9
    LATE_START_HOUR: int = 21  # hour >= 21
    OFF_PEAK_MULTIPLIER: float = 0.7

    # Estimator: day of week and attraction
    WEEKEND_MULTIPLIER: float = 1.2
    HIGH_THRILL_LEVEL: int = 4
    HIGH_THRILL_MULTIPLIER: float = 1.1
    DEFAULT_THRILL_LEVEL: int = 3

    # Estimator: weather
    HOT_TEMPERATURE_C: float = 30.0
    COLD_TEMPERATURE_C: float = 10.0  # Only used for the "temperature_extreme" factor
    DEFAULT_TEMPERATURE_C: float = 25.0  # Snapshot present but temperature missing
    HEAT_SHELTERED_MULTIPLIER: float = 1.2
    HEAT_EXPOSED_MULTIPLIER: float = 0.9
    RAIN_SHELTERED_MULTIPLIER: float = 1.5
    RAIN_SHELTERED_CONFIDENCE: float = 0.9
    RAIN_EXPOSED_MULTIPLIER: float = 0.6
    RAIN_EXPOSED_CONFIDENCE: float = 0.8

    # Estimator: historical blending
    HISTORY_HOUR_TOLERANCE: int = 1
    HISTORY_WEIGHT: float = 0.3  # base = (1 - w) * base + w * historical_mean
    HISTORY_CONFIDENCE_BOOST: float = 1.1
    NO_HISTORY_CONFIDENCE_PENALTY: float = 0.9

    # Estimator: natural variation (total spread, i.e. 0.1 = +/-5%)
    JITTER_SPREAD: float = 0.1

    # Weather impact scoring (Fahrenheit unless noted)
    COMFORT_TEMP_LOW_F: float = 60.0
    COMFORT_TEMP_HIGH_F: float = 90.0
    COMFORT_TEMP_OPTIMAL_F: float = 75.0
    COMFORT_TEMP_PENALTY: float = 2.0
    COMFORT_HUMIDITY_LOW: float = 30.0
    COMFORT_HUMIDITY_HIGH: float = 70.0
    COMFORT_HUMIDITY_OPTIMAL: float = 50.0
    COMFORT_HUMIDITY_PENALTY: float = 0.5
    COMFORT_WIND_THRESHOLD: float = 5.0  # km/h
    COMFORT_WIND_FACTOR: float = 0.02
    COMFORT_WIND_FLOOR: float = 0.9

    CLOSURE_WIND_SPEED: float = 35.0  # km/h
    RAIN_PRECIPITATION: float = 0.5  # mm
    RAIN_CROWD_MULTIPLIER: float = 0.7
    HOT_TEMP_F: float = 95.0
    HOT_CROWD_MULTIPLIER: float = 0.8
    COLD_TEMP_F: float = 40.0
    COLD_CROWD_MULTIPLIER: float = 0.6
    PLEASANT_TEMP_LOW_F: float = 70.0
    PLEASANT_TEMP_HIGH_F: float = 85.0
    PLEASANT_CROWD_MULTIPLIER: float = 1.2

    WIND_ALERT_SPEED: float = 30.0
    WIND_ALERT_HIGH_SPEED: float = 40.0
    WIND_ALERT_DURATION: int = 60  # minutes
    RAIN_ALERT_LOOKAHEAD_HOURS: int = 2
    RAIN_ALERT_DURATION: int = 120  # minutes

    class Config:
        env_file = ".env"
        case_sensitive = True
        extra = "ignore"  # Ignore extra fields from .env


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()
