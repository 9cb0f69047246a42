"""
Historical Economic Data Source

Loads daily market/economic series (index levels, FX rates, commodity
prices) from CSV exports and serves them as contiguous daily series.

CSV handling:
- Header names are matched case-insensitively after stripping a UTF-8 BOM
- Date column: Date / 年月日 / 日付 / データ日付
- Value column preference: Adj Close, Adj_Close, AdjClose, Close, Price,
  Value, 終値; otherwise the first header containing close/price/終値
- Values keep only digits, '.' and '-' ("35,000円" -> 35000)
- Rows are sorted by date; for duplicate dates the last row wins
"""
import io
import logging
import threading
from dataclasses import dataclass
from datetime import date
from pathlib import Path
from typing import Dict, Any, List, Optional, Union

import pandas as pd

from src.core.error_taxonomy import DataSourceError, InvalidParameterError
from src.core.period_calendar import DateLike, parse_date

logger = logging.getLogger(__name__)

DATE_COLUMNS = ["date", "年月日", "日付", "データ日付"]
VALUE_COLUMNS = ["adj close", "adj_close", "adjclose", "close", "price", "value", "終値"]
VALUE_COLUMN_HINTS = ["close", "price", "終値"]


@dataclass(frozen=True)
class SeriesPoint:
    date: date
    value: float

    def to_dict(self) -> Dict[str, Any]:
        return {"date": self.date.isoformat(), "value": self.value}


def _normalize_header(name) -> str:
    return str(name).lstrip("\ufeff").strip().lower()


def _pick_column(columns: List[str], candidates: List[str]) -> Optional[str]:
    for candidate in candidates:
        if candidate in columns:
            return candidate
    return None


def parse_series_frame(raw: pd.DataFrame) -> pd.Series:
    """
    Turn a raw CSV frame into a date-indexed float Series.

    Raises:
        DataSourceError: missing date/value column or no valid rows
    """
    frame = raw.rename(columns=_normalize_header)
    columns = list(frame.columns)

    date_col = _pick_column(columns, DATE_COLUMNS)
    if date_col is None:
        raise DataSourceError("CSV date column not found", context={"columns": columns})

    value_col = _pick_column(columns, VALUE_COLUMNS)
    if value_col is None:
        value_col = next((c for c in columns if any(h in c for h in VALUE_COLUMN_HINTS)), None)
    if value_col is None:
        raise DataSourceError(
            "CSV value column (Close/Adj Close/Price/Value/終値) not found",
            context={"columns": columns},
        )

    dates = pd.to_datetime(
        frame[date_col].astype(str).str.strip().str.split(r"[ T]", n=1, regex=True).str[0],
        errors="coerce",
        format="mixed",
    )
    values = pd.to_numeric(
        frame[value_col].astype(str).str.replace(r"[^0-9.\-]", "", regex=True),
        errors="coerce",
    )

    series = pd.Series(values.to_numpy(), index=dates.dt.normalize())
    series = series[series.index.notna() & series.notna().to_numpy()]
    if series.empty:
        raise DataSourceError("CSV contained no valid rows")

    series = series.sort_index(kind="mergesort")
    series = series[~series.index.duplicated(keep="last")]
    return series.astype(float)


class EconomicDataSource:
    """CSV-backed economic series with a per-symbol cache."""

    def __init__(self, base_dir: Union[str, Path, None] = None, symbol_to_file: Dict[str, str] = None):
        self.base_dir = Path(base_dir) if base_dir else None
        self.symbol_to_file = {k.upper(): v for k, v in (symbol_to_file or {}).items()}
        self._cache: Dict[str, pd.Series] = {}
        self._lock = threading.Lock()

    def register_symbol(self, symbol: str, file_path: str) -> None:
        """Add or override a symbol mapping; drops any cached series for it."""
        key = symbol.strip().upper()
        with self._lock:
            self.symbol_to_file[key] = file_path
            self._cache.pop(key, None)

    @property
    def symbols(self) -> List[str]:
        return sorted(self.symbol_to_file)

    def _resolve_path(self, file_path: str) -> Path:
        path = Path(file_path)
        if not path.is_absolute() and self.base_dir is not None:
            path = self.base_dir / path
        return path

    def _get_or_load(self, symbol: str) -> pd.Series:
        with self._lock:
            if symbol in self._cache:
                return self._cache[symbol]

            file_path = self.symbol_to_file.get(symbol)
            if not file_path:
                raise DataSourceError(f"No CSV mapping for symbol: {symbol}", context={"symbol": symbol})
            path = self._resolve_path(file_path)

            try:
                raw = pd.read_csv(path, dtype=str, encoding="utf-8-sig")
            except (OSError, pd.errors.ParserError, pd.errors.EmptyDataError) as e:
                raise DataSourceError(
                    f"Failed to load CSV for {symbol}: {e}",
                    context={"symbol": symbol, "path": str(path)},
                ) from e

            series = parse_series_frame(raw)
            self._cache[symbol] = series
            logger.info(f"Loaded {len(series)} rows for {symbol} from {path}")
            return series

    def parse_csv_bytes(self, data: bytes) -> List[SeriesPoint]:
        """Parse CSV content into a sorted, de-duplicated series."""
        try:
            raw = pd.read_csv(io.BytesIO(data), dtype=str, encoding="utf-8-sig")
        except (pd.errors.ParserError, pd.errors.EmptyDataError, UnicodeDecodeError) as e:
            raise DataSourceError(f"Invalid CSV content: {e}") from e
        return _to_points(parse_series_frame(raw))

    def get_market_series(self, symbol: str, start: DateLike, end: DateLike) -> List[SeriesPoint]:
        """
        Daily series for symbol in [start, end] with forward fill.

        The series starts at the first in-range observation.

        Raises:
            InvalidParameterError: start is after end
            DataSourceError: unknown symbol, unreadable file or no data in range
        """
        start_date = parse_date(start)
        end_date = parse_date(end)
        if start_date > end_date:
            raise InvalidParameterError(f"start after end: {start_date} > {end_date}")

        key = symbol.strip().upper()
        series = self._get_or_load(key)
        cut = series[(series.index >= pd.Timestamp(start_date)) & (series.index <= pd.Timestamp(end_date))]
        if cut.empty:
            raise DataSourceError(
                f"No data for {key} in range {start_date}..{end_date}",
                context={"symbol": key},
            )

        daily_index = pd.date_range(cut.index[0], end_date, freq="D")
        daily = cut.reindex(daily_index).ffill()
        return _to_points(daily)

    def get_pct_change(self, symbol: str, start: DateLike, end: DateLike) -> List[SeriesPoint]:
        """Daily fractional change; 0 where the previous value is 0."""
        daily = self.get_market_series(symbol, start, end)
        changes: List[SeriesPoint] = []
        for prev, cur in zip(daily, daily[1:]):
            pct = (cur.value - prev.value) / prev.value if prev.value != 0 else 0.0
            changes.append(SeriesPoint(date=cur.date, value=pct))
        return changes


def _to_points(series: pd.Series) -> List[SeriesPoint]:
    return [SeriesPoint(date=ts.date(), value=float(v)) for ts, v in series.items()]
