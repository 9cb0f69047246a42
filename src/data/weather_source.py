"""
Historical Weather Source

Wraps a caller-supplied fetcher (an API client, a mock generator, a CSV
reader...) behind a cache keyed by (region, start, end).

The cache is an explicit object: whoever constructs the source decides its
lifetime and may share one WeatherCache between several sources.
"""
import logging
import threading
from dataclasses import dataclass, replace
from datetime import date
from typing import Callable, Dict, Any, List, Optional, Tuple

from src.core.error_taxonomy import AnalysisError, DataSourceError, InvalidParameterError
from src.core.period_calendar import DateLike, parse_date

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class WeatherObservation:
    """Daily weather for one region."""
    date: date
    temperature: Optional[float] = None
    humidity: Optional[float] = None
    precipitation: Optional[float] = None
    region: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "date": self.date.isoformat(),
            "temperature": self.temperature,
            "humidity": self.humidity,
            "precipitation": self.precipitation,
            "region": self.region,
        }


CacheKey = Tuple[str, date, date]
WeatherFetcher = Callable[[str, date, date], List[WeatherObservation]]


class WeatherCache:
    """Thread-safe in-memory cache of weather ranges."""

    def __init__(self):
        self._entries: Dict[CacheKey, List[WeatherObservation]] = {}
        self._lock = threading.Lock()

    def get(self, region: str, start: date, end: date) -> Optional[List[WeatherObservation]]:
        with self._lock:
            entry = self._entries.get((region, start, end))
        return list(entry) if entry is not None else None

    def set(self, region: str, start: date, end: date, observations: List[WeatherObservation]) -> None:
        with self._lock:
            self._entries[(region, start, end)] = list(observations)

    def invalidate(self, region: str, start: date, end: date) -> bool:
        with self._lock:
            return self._entries.pop((region, start, end), None) is not None

    def clear(self) -> int:
        with self._lock:
            count = len(self._entries)
            self._entries.clear()
        return count

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


class HistoricalWeatherSource:
    """Cached access to historical daily weather."""

    def __init__(self, fetcher: WeatherFetcher, cache: Optional[WeatherCache] = None):
        self.fetcher = fetcher
        self.cache = cache if cache is not None else WeatherCache()

    def get_historical_weather(self, region: str, start: DateLike, end: DateLike) -> List[WeatherObservation]:
        """
        Observations for region in [start, end], sorted by date.

        Raises:
            InvalidParameterError: start is after end
            DataSourceError: the fetcher failed
        """
        start_date = parse_date(start)
        end_date = parse_date(end)
        if start_date > end_date:
            raise InvalidParameterError(
                f"start date {start_date} is after end date {end_date}",
                context={"region": region},
            )

        cached = self.cache.get(region, start_date, end_date)
        if cached is not None:
            logger.debug(f"Weather cache hit: {region} {start_date}..{end_date} ({len(cached)} rows)")
            return cached

        logger.info(f"Fetching weather: {region} {start_date}..{end_date}")
        try:
            fetched = self.fetcher(region, start_date, end_date)
        except AnalysisError:
            raise
        except Exception as e:
            raise DataSourceError(
                f"Weather fetch failed for {region}: {e}",
                context={"region": region, "start": start_date.isoformat(), "end": end_date.isoformat()},
            ) from e

        observations = sorted(
            (obs if obs.region else replace(obs, region=region) for obs in fetched),
            key=lambda obs: obs.date,
        )
        self.cache.set(region, start_date, end_date, observations)
        logger.debug(f"Cached {len(observations)} weather rows for {region}")
        return list(observations)
