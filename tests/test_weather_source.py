"""
Tests for the cached historical weather source.
"""
from datetime import date, timedelta

import pytest

from src.core.error_taxonomy import DataSourceError, InsufficientDataError, InvalidParameterError
from src.data.weather_source import HistoricalWeatherSource, WeatherCache, WeatherObservation


class CountingFetcher:
    """Returns one observation per day, newest first, and counts calls."""

    def __init__(self):
        self.calls = []

    def __call__(self, region, start, end):
        self.calls.append((region, start, end))
        days = (end - start).days + 1
        return [
            WeatherObservation(date=start + timedelta(days=i), temperature=10.0 + i)
            for i in reversed(range(days))
        ]


class TestWeatherCache:
    """Tests for the explicit cache object."""

    def test_set_get_invalidate(self):
        cache = WeatherCache()
        obs = [WeatherObservation(date(2024, 1, 1), 5.0)]
        cache.set("tokyo", date(2024, 1, 1), date(2024, 1, 1), obs)

        assert len(cache) == 1
        assert cache.get("tokyo", date(2024, 1, 1), date(2024, 1, 1)) == obs
        assert cache.get("osaka", date(2024, 1, 1), date(2024, 1, 1)) is None
        assert cache.invalidate("tokyo", date(2024, 1, 1), date(2024, 1, 1))
        assert not cache.invalidate("tokyo", date(2024, 1, 1), date(2024, 1, 1))

    def test_clear(self):
        cache = WeatherCache()
        cache.set("a", date(2024, 1, 1), date(2024, 1, 2), [])
        cache.set("b", date(2024, 1, 1), date(2024, 1, 2), [])
        assert cache.clear() == 2
        assert len(cache) == 0

    def test_returned_list_is_a_copy(self):
        cache = WeatherCache()
        cache.set("a", date(2024, 1, 1), date(2024, 1, 1), [WeatherObservation(date(2024, 1, 1))])
        cache.get("a", date(2024, 1, 1), date(2024, 1, 1)).clear()
        assert len(cache.get("a", date(2024, 1, 1), date(2024, 1, 1))) == 1


class TestHistoricalWeatherSource:
    """Tests for fetching through the cache."""

    def test_sorted_and_region_filled(self):
        source = HistoricalWeatherSource(CountingFetcher())
        observations = source.get_historical_weather("tokyo", "2024-01-01", "2024-01-05")

        assert [o.date for o in observations] == [date(2024, 1, d) for d in range(1, 6)]
        assert all(o.region == "tokyo" for o in observations)
        assert observations[0].to_dict()["date"] == "2024-01-01"

    def test_second_call_hits_cache(self):
        fetcher = CountingFetcher()
        source = HistoricalWeatherSource(fetcher)

        first = source.get_historical_weather("tokyo", date(2024, 1, 1), date(2024, 1, 3))
        second = source.get_historical_weather("tokyo", "2024-01-01", "2024-01-03")

        assert first == second
        assert len(fetcher.calls) == 1

    def test_shared_cache_between_sources(self):
        cache = WeatherCache()
        fetcher_a = CountingFetcher()
        fetcher_b = CountingFetcher()
        HistoricalWeatherSource(fetcher_a, cache).get_historical_weather("tokyo", "2024-01-01", "2024-01-02")
        HistoricalWeatherSource(fetcher_b, cache).get_historical_weather("tokyo", "2024-01-01", "2024-01-02")
        assert len(fetcher_b.calls) == 0

    def test_start_after_end(self):
        source = HistoricalWeatherSource(CountingFetcher())
        with pytest.raises(InvalidParameterError):
            source.get_historical_weather("tokyo", "2024-02-01", "2024-01-01")

    def test_fetcher_failure_wrapped(self):
        def broken(region, start, end):
            raise ConnectionError("timeout")

        source = HistoricalWeatherSource(broken)
        with pytest.raises(DataSourceError) as excinfo:
            source.get_historical_weather("tokyo", "2024-01-01", "2024-01-02")
        assert excinfo.value.context["region"] == "tokyo"
        assert isinstance(excinfo.value.__cause__, ConnectionError)

    def test_analysis_errors_pass_through(self):
        def empty(region, start, end):
            raise InsufficientDataError("no station data", required=1, actual=0)

        source = HistoricalWeatherSource(empty)
        with pytest.raises(InsufficientDataError):
            source.get_historical_weather("tokyo", "2024-01-01", "2024-01-02")
