"""
FastAPI Wait Service for wait time predictions and weather impact
"""
from fastapi import Depends, FastAPI
from fastapi.responses import JSONResponse
from typing import Any, Dict, List, Optional
from datetime import timedelta
from functools import lru_cache
import logging
import uuid

from config import get_settings
from db import DatabaseSource
from errors import AttractionNotFound, UpstreamUnavailable
from estimator import WaitTimeEstimator, utc_now
from weather_impact import score_weather_impact

settings = get_settings()

# Setup logging
logging.basicConfig(level=settings.LOG_LEVEL)
logger = logging.getLogger(__name__)

# Initialize FastAPI
app = FastAPI(
    title="Park Planner Wait Service",
    description="Wait time estimation and weather impact scoring",
    version=settings.SERVICE_VERSION
)


@lru_cache()
def get_estimator() -> WaitTimeEstimator:
    """Shared estimator backed by the database"""
    return WaitTimeEstimator(DatabaseSource(), settings)


def _meta(**extra: Any) -> Dict[str, Any]:
    return {
        "timestamp": utc_now().isoformat(),
        "version": settings.SERVICE_VERSION,
        "request_id": str(uuid.uuid4()),
        **extra,
    }


def _error(status_code: int, code: str, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={
            "success": False,
            "error": {"code": code, "message": message},
            "meta": _meta(),
        },
    )


def parse_windows(raw: Optional[str]) -> List[int]:
    """
    Parse a comma separated window list ("15,30,60")

    Non-positive values are passed through; the estimator rejects them
    one by one.

    Raises:
        ValueError: a value is not an integer
    """
    if not raw:
        return list(settings.DEFAULT_WINDOWS)
    return [int(part) for part in raw.split(",") if part.strip()]


# Endpoints
@app.get("/health")
def health():
    """Health check"""
    return {
        "service": "park planner wait service",
        "status": "healthy",
        "version": settings.SERVICE_VERSION,
    }


@app.get("/predictions")
def get_predictions(
    attraction_id: Optional[str] = None,
    park_id: Optional[str] = None,
    time_windows: Optional[str] = None,
    estimator: WaitTimeEstimator = Depends(get_estimator)
):
    """
    Predict wait times for one attraction or every open attraction of a park

    Args:
        attraction_id: Single attraction to predict
        park_id: Park whose open attractions are predicted (used when attraction_id is absent)
        time_windows: Comma separated look-ahead windows in minutes

    Returns:
        Envelope with a list of predictions (empty if the attraction is unknown)
    """
    if not attraction_id and not park_id:
        return _error(400, "VALIDATION_ERROR", "Either attraction_id or park_id must be provided")

    try:
        windows = parse_windows(time_windows)
    except ValueError:
        return _error(400, "VALIDATION_ERROR", f"Invalid time_windows: {time_windows!r}")

    try:
        if attraction_id:
            try:
                predictions = [estimator.predict_wait_time(attraction_id, windows)]
            except AttractionNotFound as e:
                logger.info(str(e))
                predictions = []
        else:
            predictions = estimator.predict_for_park(park_id, windows)
    except UpstreamUnavailable as e:
        logger.error(f"Prediction data source error: {e}")
        return _error(503, "UPSTREAM_UNAVAILABLE", "Attraction data is temporarily unavailable")
    except Exception as e:
        logger.error(f"Prediction error: {e}")
        return _error(500, "INTERNAL_ERROR", "An unexpected error occurred")

    return {
        "success": True,
        "data": [p.model_dump(mode="json") for p in predictions],
        "meta": _meta(time_windows=windows),
    }


@app.get("/weather/{park_id}/impact")
def get_weather_impact(
    park_id: str,
    estimator: WaitTimeEstimator = Depends(get_estimator)
):
    """
    Score the latest stored weather of a park

    Returns:
        Envelope with current conditions, impact report and a staleness flag
    """
    source = estimator.source
    try:
        current = source.get_latest_weather(park_id)
    except UpstreamUnavailable as e:
        logger.error(f"Weather data source error: {e}")
        return _error(503, "UPSTREAM_UNAVAILABLE", "Weather data is temporarily unavailable")

    if current is None:
        return _error(404, "WEATHER_NOT_FOUND", f"No weather data for park '{park_id}'")

    try:
        hourly = source.get_hourly_forecast(park_id)
    except UpstreamUnavailable as e:
        logger.warning(f"Hourly forecast unavailable for park {park_id}: {e}")
        hourly = []

    report = score_weather_impact(current, hourly, estimator.settings)
    max_age = timedelta(minutes=settings.WEATHER_FRESHNESS_MINUTES)

    return {
        "success": True,
        "data": {
            "park_id": park_id,
            "current": current.model_dump(mode="json"),
            "impact": report.model_dump(mode="json"),
            "stale": not current.is_fresh(estimator.clock(), max_age),
            "last_updated": current.timestamp.isoformat(),
        },
        "meta": _meta(),
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
