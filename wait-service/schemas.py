"""
Entities read and produced by the wait service
"""
import logging
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)


class AttractionType(str, Enum):
    """Closed set of attraction categories"""
    ROLLER_COASTER = "roller_coaster"
    DARK_RIDE = "dark_ride"
    WATER_RIDE = "water_ride"
    SHOW = "show"
    RESTAURANT = "restaurant"
    SHOP = "shop"
    OTHER = "other"

    @classmethod
    def parse(cls, value: Optional[str]) -> "AttractionType":
        """Map a stored type string onto the enum, unknown values become OTHER"""
        if isinstance(value, cls):
            return value
        try:
            return cls((value or "").strip().lower())
        except ValueError:
            logger.warning(f"Unknown attraction type {value!r}, treating as '{cls.OTHER.value}'")
            return cls.OTHER

    @property
    def shelters_from_heat(self) -> bool:
        """Air-conditioned indoor rides draw guests on hot days"""
        return self is AttractionType.DARK_RIDE

    @property
    def shelters_from_rain(self) -> bool:
        """Covered attractions draw guests when it rains"""
        return self in (AttractionType.DARK_RIDE, AttractionType.SHOW)


class AttractionStatus(str, Enum):
    OPEN = "open"
    CLOSED = "closed"
    DOWN = "down"
    DELAYED = "delayed"


class WaitTrend(str, Enum):
    INCREASING = "increasing"
    DECREASING = "decreasing"
    STABLE = "stable"


class Attraction(BaseModel):
    """Static attributes plus the current observed wait"""
    id: str
    park_id: str
    name: Optional[str] = None
    type: AttractionType = AttractionType.OTHER
    thrill_level: Optional[int] = Field(default=None, ge=1, le=5)
    current_wait: Optional[int] = Field(default=None, ge=0)
    status: AttractionStatus = AttractionStatus.OPEN


class WaitObservation(BaseModel):
    """Single row of the append-only wait time log"""
    attraction_id: str
    wait_minutes: int
    timestamp: datetime
    confidence: float = Field(default=1.0, ge=0.0, le=1.0)
    factors: List[str] = Field(default_factory=list)
    trend: WaitTrend = WaitTrend.STABLE


class WeatherSnapshot(BaseModel):
    """Latest current conditions for a park"""
    park_id: str
    timestamp: datetime
    temperature: Optional[float] = None  # Celsius
    humidity: Optional[float] = None  # Percent
    precipitation: Optional[float] = None  # mm
    wind_speed: Optional[float] = None  # km/h
    weather_code: Optional[int] = None
    comfort_index: Optional[int] = None

    def is_fresh(self, now: datetime, max_age: timedelta) -> bool:
        return now - self.timestamp < max_age


class HourlyWeather(BaseModel):
    """Hourly forecast entry"""
    time: Optional[datetime] = None
    temperature: Optional[float] = None
    precipitation_probability: Optional[float] = None
    precipitation: Optional[float] = None
    wind_speed: Optional[float] = None
    weather_code: Optional[int] = None


class AlternativeAttraction(BaseModel):
    id: str
    current_wait: int


class WindowPrediction(BaseModel):
    predicted_wait: int
    confidence: float


class Prediction(BaseModel):
    """Estimate for one attraction across the requested look-ahead windows"""
    attraction_id: str
    current_wait: int
    predictions: Dict[int, WindowPrediction]
    factors: List[str]
    alternative_attractions: List[str]
    last_updated: datetime
    confidence_interval: str
    rejected_windows: List[Any] = Field(default_factory=list)


class WeatherAlert(BaseModel):
    type: str
    severity: str
    title: str
    message: str
    action: Optional[str] = None
    duration: int  # minutes


class WeatherImpact(BaseModel):
    attraction_closures: List[str]
    crowd_impact: float
    recommendations: List[str]


class WeatherImpactReport(BaseModel):
    """Full output of the weather impact scorer"""
    comfort_index: int
    crowd_impact: float
    recommendations: List[str]
    closures: List[str]
    alerts: List[WeatherAlert]
