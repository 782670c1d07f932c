"""
Wait time estimation for attractions

Heuristic estimate per look-ahead window, starting from the current
observed wait and applying, in order:
1. time of day multiplier (peak / evening / off-peak)
2. weekend multiplier
3. high thrill multiplier
4. weather multipliers (heat and rain, sheltered vs exposed attractions)
5. blend with the mean wait of the same hours (+/-1h) over the last 7 days
6. natural variation (+/-5% jitter)

Clock and random source are injected so estimates are reproducible.
"""
import logging
import math
import random
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Iterable, List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd
import pytz

from config import Settings, get_settings
from errors import AttractionNotFound, InvalidWindow
from schemas import (
    Attraction,
    AttractionType,
    Prediction,
    WaitObservation,
    WeatherSnapshot,
    WindowPrediction,
)

logger = logging.getLogger(__name__)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def round_half_up(value: float, digits: int = 0) -> float:
    """
    Round halves away from zero for non-negative values

    Python's round() uses banker's rounding (round(56.5) == 56), which
    would make 0.5 boundaries depend on parity.

    Examples:
        >>> round_half_up(56.5)
        57.0
        >>> round_half_up(0.875, 2)
        0.88
    """
    factor = 10 ** digits
    return math.floor(value * factor + 0.5) / factor


def validate_window(minutes: Any, max_minutes: int = None) -> int:
    """
    Return the window as int minutes

    Raises:
        InvalidWindow: not a positive whole number, or longer than max_minutes
    """
    if isinstance(minutes, bool):
        raise InvalidWindow(minutes)
    try:
        value = int(minutes)
    except (TypeError, ValueError, OverflowError):
        raise InvalidWindow(minutes)
    if value != minutes or value <= 0:
        raise InvalidWindow(minutes)
    if max_minutes is not None and value > max_minutes:
        raise InvalidWindow(minutes)
    return value


class _PresetDraws:
    """Replays jitter draws taken from the shared generator before a batch starts"""

    def __init__(self, draws: Sequence[float]):
        self._draws = iter(draws)

    def random(self) -> float:
        return next(self._draws)


class WaitTimeEstimator:
    """
    Estimate future wait times for attractions

    The source is the data-access collaborator and must provide:
    - get_attraction(attraction_id) -> Attraction | None
    - get_recent_observations(attraction_id, since) -> list of WaitObservation
    - get_latest_weather(park_id) -> WeatherSnapshot | None
    - list_open_attractions_of_type(park_id, attraction_type) -> list of AlternativeAttraction
    - list_open_attraction_ids(park_id) -> list of ids (park-wide batches only)

    Only the attraction lookup can stop an estimate. History, weather and
    alternative lookups that fail are logged and treated as absent.
    """

    def __init__(
        self,
        source,
        settings: Settings = None,
        clock: Callable[[], datetime] = None,
        rng: random.Random = None
    ):
        """
        Args:
            source: Data-access collaborator (see class docstring)
            settings: Tuning constants, defaults to get_settings()
            clock: Zero-arg callable returning an aware UTC datetime
            rng: Object with random() -> float in [0, 1), e.g. random.Random(seed)
        """
        self.source = source
        self.settings = settings or get_settings()
        self.clock = clock or utc_now
        self.rng = rng or random.Random()
        self.timezone = pytz.timezone(self.settings.PARK_TIMEZONE)

    def _local(self, moment: datetime) -> datetime:
        return moment.astimezone(self.timezone)

    def _thrill_level(self, attraction: Attraction) -> int:
        if attraction.thrill_level is None:
            return self.settings.DEFAULT_THRILL_LEVEL
        return attraction.thrill_level

    # Inputs

    def _load_history(self, attraction: Attraction, now: datetime) -> pd.DataFrame:
        """Recent observations as a frame with local hour-of-day, empty when unavailable"""
        since = now - timedelta(days=self.settings.HISTORY_LOOKBACK_DAYS)
        try:
            observations = self.source.get_recent_observations(attraction.id, since)
        except Exception as e:
            logger.warning(f"History unavailable for attraction {attraction.id}, estimating without it: {e}")
            observations = []

        return self.history_frame(observations, since)

    def history_frame(self, observations: Sequence[WaitObservation], since: datetime) -> pd.DataFrame:
        """Build the history frame (timestamp, wait_minutes, hour), newest first"""
        frame = pd.DataFrame(
            [{"timestamp": o.timestamp, "wait_minutes": o.wait_minutes} for o in observations],
            columns=["timestamp", "wait_minutes"],
        )
        if frame.empty:
            frame["hour"] = pd.Series(dtype=int)
            return frame

        frame["timestamp"] = pd.to_datetime(frame["timestamp"], utc=True)
        frame = frame[frame["timestamp"] >= pd.Timestamp(since)]
        frame = frame.sort_values("timestamp", ascending=False).head(self.settings.HISTORY_LIMIT)
        frame["hour"] = frame["timestamp"].dt.tz_convert(self.timezone).dt.hour
        return frame.reset_index(drop=True)

    def _load_weather(self, attraction: Attraction) -> Optional[WeatherSnapshot]:
        try:
            return self.source.get_latest_weather(attraction.park_id)
        except Exception as e:
            logger.warning(f"Weather unavailable for park {attraction.park_id}, estimating without it: {e}")
            return None

    # Multipliers

    def time_of_day_multiplier(self, hour: int) -> float:
        s = self.settings
        if s.PEAK_START_HOUR <= hour <= s.PEAK_END_HOUR:
            return s.PEAK_MULTIPLIER
        if s.EVENING_START_HOUR <= hour <= s.EVENING_END_HOUR:
            return s.EVENING_MULTIPLIER
        if hour <= s.EARLY_END_HOUR or hour >= s.LATE_START_HOUR:
            return s.OFF_PEAK_MULTIPLIER
        return 1.0

    def weather_adjustment(
        self,
        attraction_type: AttractionType,
        weather: WeatherSnapshot
    ) -> Tuple[float, float]:
        """
        Weather effect on wait and confidence

        Returns:
            (wait multiplier, confidence multiplier); heat and rain compound
        """
        s = self.settings
        temperature = s.DEFAULT_TEMPERATURE_C if weather.temperature is None else weather.temperature
        precipitation = weather.precipitation or 0.0

        multiplier = 1.0
        confidence = 1.0

        if temperature > s.HOT_TEMPERATURE_C:
            if attraction_type.shelters_from_heat:
                multiplier *= s.HEAT_SHELTERED_MULTIPLIER
            else:
                multiplier *= s.HEAT_EXPOSED_MULTIPLIER

        if precipitation > 0:
            if attraction_type.shelters_from_rain:
                multiplier *= s.RAIN_SHELTERED_MULTIPLIER
                confidence *= s.RAIN_SHELTERED_CONFIDENCE
            else:
                multiplier *= s.RAIN_EXPOSED_MULTIPLIER
                confidence *= s.RAIN_EXPOSED_CONFIDENCE

        return multiplier, confidence

    def historical_mean(self, history: pd.DataFrame, hour: int) -> Optional[float]:
        """Mean observed wait within +/- tolerance hours of the given hour, None if nothing matches"""
        if history.empty:
            return None
        # No wrap-around at midnight: 23 and 0 are 23 hours apart
        mask = (history["hour"] - hour).abs() <= self.settings.HISTORY_HOUR_TOLERANCE
        if not mask.any():
            return None
        return float(history.loc[mask, "wait_minutes"].mean())

    # Estimation

    def estimate_window(
        self,
        attraction: Attraction,
        minutes: int,
        now: datetime,
        history: pd.DataFrame,
        weather: Optional[WeatherSnapshot],
        rng=None
    ) -> WindowPrediction:
        """Estimate the wait `minutes` from `now`, drawing jitter from rng (defaults to self.rng)"""
        s = self.settings
        rng = rng or self.rng
        projected = self._local(now + timedelta(minutes=minutes))

        base = float(attraction.current_wait or 0)
        confidence = s.BASE_CONFIDENCE

        base *= self.time_of_day_multiplier(projected.hour)

        if projected.weekday() >= 5:
            base *= s.WEEKEND_MULTIPLIER

        if self._thrill_level(attraction) >= s.HIGH_THRILL_LEVEL:
            base *= s.HIGH_THRILL_MULTIPLIER

        if weather is not None:
            wait_factor, confidence_factor = self.weather_adjustment(attraction.type, weather)
            base *= wait_factor
            confidence *= confidence_factor

        historical = self.historical_mean(history, projected.hour)
        if historical is None:
            confidence *= s.NO_HISTORY_CONFIDENCE_PENALTY
        else:
            base = base * (1 - s.HISTORY_WEIGHT) + historical * s.HISTORY_WEIGHT
            confidence *= s.HISTORY_CONFIDENCE_BOOST

        base *= 1 + (rng.random() - 0.5) * s.JITTER_SPREAD

        predicted_wait = int(round_half_up(float(np.clip(base, s.MIN_WAIT, s.MAX_WAIT))))
        confidence = round_half_up(float(np.clip(confidence, s.MIN_CONFIDENCE, s.MAX_CONFIDENCE)), 2)

        return WindowPrediction(predicted_wait=predicted_wait, confidence=confidence)

    def explain_factors(
        self,
        attraction: Attraction,
        weather: Optional[WeatherSnapshot],
        now: datetime
    ) -> List[str]:
        """Contributing factor tags; weekend and peak hours refer to now, not the projected time"""
        s = self.settings
        factors = ["historical_patterns", "time_of_day"]

        if weather is not None:
            factors.append("weather_conditions")

            if (weather.precipitation or 0) > 0:
                factors.append("precipitation")

            temperature = weather.temperature
            if temperature is not None and (
                temperature > s.HOT_TEMPERATURE_C or temperature < s.COLD_TEMPERATURE_C
            ):
                factors.append("temperature_extreme")

        if self._thrill_level(attraction) >= s.HIGH_THRILL_LEVEL:
            factors.append("high_thrill_attraction")

        local_now = self._local(now)
        if local_now.weekday() >= 5:
            factors.append("weekend")

        if s.PEAK_START_HOUR <= local_now.hour <= s.PEAK_END_HOUR:
            factors.append("peak_hours")

        return factors

    def find_alternatives(self, attraction: Attraction) -> List[str]:
        """Open attractions of the same type in the same park with a shorter current wait"""
        current_wait = attraction.current_wait or 0
        try:
            candidates = self.source.list_open_attractions_of_type(attraction.park_id, attraction.type)
        except Exception as e:
            logger.warning(f"Alternatives unavailable for attraction {attraction.id}: {e}")
            return []

        eligible = [
            c for c in candidates
            if c.id != attraction.id and c.current_wait < current_wait
        ]
        eligible.sort(key=lambda c: (c.current_wait, c.id))
        return [c.id for c in eligible[:self.settings.ALTERNATIVES_LIMIT]]

    def predict_wait_time(
        self,
        attraction_id: str,
        windows: Iterable[int] = None,
        rng=None
    ) -> Prediction:
        """
        Predict wait times for one attraction

        Args:
            attraction_id: Attraction to estimate
            windows: Look-ahead windows in minutes (defaults to settings.DEFAULT_WINDOWS).
                     Non-positive windows and windows above settings.MAX_WINDOW_MINUTES
                     are skipped and reported in rejected_windows.
            rng: Jitter source for this call (defaults to self.rng)

        Returns:
            Prediction with one entry per accepted window

        Raises:
            AttractionNotFound: the id does not resolve
        """
        attraction = self.source.get_attraction(attraction_id)
        if attraction is None:
            raise AttractionNotFound(attraction_id)

        now = self.clock()
        history = self._load_history(attraction, now)
        weather = self._load_weather(attraction)

        if windows is None:
            windows = self.settings.DEFAULT_WINDOWS

        predictions = {}
        rejected = []
        for minutes in windows:
            try:
                window = validate_window(minutes, self.settings.MAX_WINDOW_MINUTES)
            except InvalidWindow as e:
                logger.warning(f"Attraction {attraction_id}: {e}")
                rejected.append(minutes)
                continue
            predictions[window] = self.estimate_window(attraction, window, now, history, weather, rng)

        return Prediction(
            attraction_id=attraction.id,
            current_wait=attraction.current_wait or 0,
            predictions=predictions,
            factors=self.explain_factors(attraction, weather, now),
            alternative_attractions=self.find_alternatives(attraction),
            last_updated=now,
            confidence_interval=self.settings.CONFIDENCE_INTERVAL_TEXT,
            rejected_windows=rejected,
        )

    # Batches

    def _safe_predict(
        self,
        attraction_id: str,
        windows: Optional[List[int]],
        rng: _PresetDraws
    ) -> Optional[Prediction]:
        try:
            return self.predict_wait_time(attraction_id, windows, rng)
        except AttractionNotFound as e:
            logger.warning(f"Skipping attraction in batch: {e}")
        except Exception as e:
            logger.error(f"Prediction failed for attraction {attraction_id}: {e}")
        return None

    def predict_many(self, attraction_ids: Iterable[str], windows: Iterable[int] = None) -> List[Prediction]:
        """
        Predict several attractions independently

        Failures are logged and skipped; the result keeps input order.
        Jitter is drawn from self.rng up front, one draw per window in input
        order, so a seeded generator gives the same batch regardless of
        thread scheduling.
        """
        ids = list(attraction_ids)
        if not ids:
            return []
        window_list = list(self.settings.DEFAULT_WINDOWS if windows is None else windows)
        draws = [_PresetDraws([self.rng.random() for _ in window_list]) for _ in ids]

        workers = max(1, min(self.settings.BATCH_MAX_WORKERS, len(ids)))
        with ThreadPoolExecutor(max_workers=workers) as executor:
            results = list(executor.map(
                lambda aid, rng: self._safe_predict(aid, window_list, rng), ids, draws
            ))

        predictions = [p for p in results if p is not None]
        if len(predictions) < len(ids):
            logger.info(f"Batch estimate: {len(predictions)}/{len(ids)} attractions predicted")
        return predictions

    def predict_for_park(self, park_id: str, windows: Iterable[int] = None) -> List[Prediction]:
        """Predict all open attractions in a park"""
        attraction_ids = self.source.list_open_attraction_ids(park_id)
        return self.predict_many(attraction_ids, windows)
