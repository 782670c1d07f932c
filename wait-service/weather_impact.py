"""
Weather impact scoring for park visits

Turns the current conditions and the next hours of forecast into:
- comfort index (0-100, how pleasant it is outside)
- crowd impact multiplier (centered on 1.0)
- visitor recommendations and attraction closure warnings
- timed alerts (wind advisory, incoming rain)

All rules are independent: every rule that matches fires and crowd
multipliers compound.
"""
import math
from typing import List, Optional, Sequence

from config import Settings, get_settings
from estimator import round_half_up
from schemas import (
    HourlyWeather,
    WeatherAlert,
    WeatherImpact,
    WeatherImpactReport,
    WeatherSnapshot,
)


def celsius_to_fahrenheit(temperature_c: float) -> float:
    return temperature_c * 9 / 5 + 32


def _value(value: Optional[float]) -> float:
    return 0.0 if value is None else float(value)


def _temperature(current: WeatherSnapshot, settings: Settings) -> float:
    if current.temperature is None:
        return settings.DEFAULT_TEMPERATURE_C
    return float(current.temperature)


def calculate_comfort_index(
    temperature_c: float,
    humidity: float,
    wind_speed: float,
    settings: Settings = None
) -> int:
    """
    Calculate comfort index from temperature, humidity and wind

    Starts at 100 and only penalizes conditions outside the comfortable
    bands (60-90°F, 30-70% humidity). Wind above 5 km/h scales the score
    down by 2% per km/h, never by more than 10%.

    Args:
        temperature_c: Temperature in Celsius
        humidity: Relative humidity in percent
        wind_speed: Wind speed in km/h

    Returns:
        Integer comfort index clamped to [0, 100]

    Examples:
        >>> calculate_comfort_index(23.9, 50, 0)
        100
        >>> calculate_comfort_index(35, 50, 0)
        60
    """
    settings = settings or get_settings()
    temp_f = celsius_to_fahrenheit(temperature_c)

    comfort = 100.0

    if temp_f < settings.COMFORT_TEMP_LOW_F or temp_f > settings.COMFORT_TEMP_HIGH_F:
        comfort -= abs(settings.COMFORT_TEMP_OPTIMAL_F - temp_f) * settings.COMFORT_TEMP_PENALTY

    if humidity < settings.COMFORT_HUMIDITY_LOW or humidity > settings.COMFORT_HUMIDITY_HIGH:
        comfort -= abs(settings.COMFORT_HUMIDITY_OPTIMAL - humidity) * settings.COMFORT_HUMIDITY_PENALTY

    if wind_speed > settings.COMFORT_WIND_THRESHOLD:
        comfort *= max(settings.COMFORT_WIND_FLOOR, 1 - wind_speed * settings.COMFORT_WIND_FACTOR)

    return int(max(0, min(100, math.floor(comfort + 0.5))))


def analyze_weather_impact(current: WeatherSnapshot, settings: Settings = None) -> WeatherImpact:
    """Estimate closures, crowd shift and recommendations from current conditions"""
    settings = settings or get_settings()

    closures: List[str] = []
    recommendations: List[str] = []
    crowd_impact = 1.0

    wind_speed = _value(current.wind_speed)
    precipitation = _value(current.precipitation)
    temp_f = celsius_to_fahrenheit(_temperature(current, settings))

    if wind_speed > settings.CLOSURE_WIND_SPEED:
        closures.append("Outdoor roller coasters may close due to high winds")
        recommendations.append("Consider indoor attractions")

    if precipitation > settings.RAIN_PRECIPITATION:
        closures.append("Water rides may be temporarily closed")
        recommendations.append("Bring rain gear or head to covered areas")
        crowd_impact *= settings.RAIN_CROWD_MULTIPLIER

    if temp_f > settings.HOT_TEMP_F:
        recommendations.append("Stay hydrated and take frequent shade breaks")
        crowd_impact *= settings.HOT_CROWD_MULTIPLIER

    if temp_f < settings.COLD_TEMP_F:
        closures.append("Some outdoor attractions may close due to cold")
        crowd_impact *= settings.COLD_CROWD_MULTIPLIER

    # Pleasant and dry days draw bigger crowds
    if settings.PLEASANT_TEMP_LOW_F <= temp_f <= settings.PLEASANT_TEMP_HIGH_F and precipitation == 0:
        crowd_impact *= settings.PLEASANT_CROWD_MULTIPLIER
        recommendations.append("Perfect weather - expect higher crowds")

    return WeatherImpact(
        attraction_closures=closures,
        crowd_impact=crowd_impact,
        recommendations=recommendations,
    )


def generate_weather_alerts(
    current: WeatherSnapshot,
    hourly: Sequence[HourlyWeather],
    settings: Settings = None
) -> List[WeatherAlert]:
    """Build timed alerts from current wind and near-term precipitation"""
    settings = settings or get_settings()
    alerts: List[WeatherAlert] = []

    wind_speed = _value(current.wind_speed)
    if wind_speed > settings.WIND_ALERT_SPEED:
        alerts.append(WeatherAlert(
            type="wind_advisory",
            severity="high" if wind_speed > settings.WIND_ALERT_HIGH_SPEED else "medium",
            title="High Wind Advisory",
            message=f"Strong winds at {int(round_half_up(wind_speed))} km/h may affect outdoor attractions.",
            action="Consider indoor attractions",
            duration=settings.WIND_ALERT_DURATION,
        ))

    upcoming = hourly[:settings.RAIN_ALERT_LOOKAHEAD_HOURS] if hourly else []
    if any(_value(hour.precipitation) > settings.RAIN_PRECIPITATION for hour in upcoming):
        alerts.append(WeatherAlert(
            type="heavy_rain",
            severity="medium",
            title="Rain Expected",
            message=f"Rain expected in the next {settings.RAIN_ALERT_LOOKAHEAD_HOURS} hours. Plan accordingly.",
            action="Find covered areas",
            duration=settings.RAIN_ALERT_DURATION,
        ))

    return alerts


def score_weather_impact(
    current: WeatherSnapshot,
    hourly: Sequence[HourlyWeather] = (),
    settings: Settings = None
) -> WeatherImpactReport:
    """
    Score the impact of current weather and the upcoming forecast

    Args:
        current: Latest weather snapshot for the park
        hourly: Hourly forecast starting at the current hour

    Returns:
        WeatherImpactReport with comfort index, crowd impact,
        recommendations, closures and alerts
    """
    settings = settings or get_settings()

    impact = analyze_weather_impact(current, settings)
    comfort_index = calculate_comfort_index(
        _temperature(current, settings),
        settings.COMFORT_HUMIDITY_OPTIMAL if current.humidity is None else current.humidity,
        _value(current.wind_speed),
        settings,
    )

    return WeatherImpactReport(
        comfort_index=comfort_index,
        crowd_impact=impact.crowd_impact,
        recommendations=impact.recommendations,
        closures=impact.attraction_closures,
        alerts=generate_weather_alerts(current, list(hourly or []), settings),
    )
