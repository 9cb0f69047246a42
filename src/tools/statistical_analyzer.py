"""
Sales Statistical Analyzer

Entry points that combine the collaborator sources (weather, economic data,
question generation) with the deterministic engines in this package.

Key Features:
- Sales vs weather lag correlation (temperature, humidity)
- Sales vs economic indicator lag correlation, one symbol at a time
- Statistical summary, temperature regression and recommendations
  bundled into an AnalysisReport
- Anomaly detection with follow-up questions
- Periodic summaries and demand forecasts

Partial success: the aggregate methods catch AnalysisError per factor or
per symbol, log the classified error and continue with what succeeded.

Follows Accuracy-First Framework:
- All calculations are deterministic
- Results include p-values and sample sizes
"""
import logging
import uuid
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import List, Dict, Any, Optional, Sequence, Tuple

from config.settings import AppConfig, get_config
from src.core.error_taxonomy import (
    AnalysisError,
    InsufficientDataError,
    classify_error,
)
from src.core.period_calendar import DateLike
from src.data.economic_source import EconomicDataSource
from src.data.weather_source import HistoricalWeatherSource, WeatherObservation
from src.tools.anomaly_detector import AnomalyRecord, detect_anomalies
from src.tools.anomaly_questions import AnomalyQuestion, AnomalyQuestionService, QuestionGenerator
from src.tools.correlation import CorrelationResult, lagged_correlation, top_correlations
from src.tools.forecaster import ProductForecast, forecast_product_demand
from src.tools.numeric import mean, median, stddev
from src.tools.periodic_analyzer import PeriodicAnalysis, SalesDataPoint, analyze_periodic_sales
from src.tools.regression import RegressionModel, linear_regression

logger = logging.getLogger(__name__)

# Lagged findings used for the "leading indicator" recommendation
LEAD_LAG_MIN_ABS_COEFFICIENT = 0.4
# Same-day findings used for factor-specific recommendations
FACTOR_MIN_ABS_COEFFICIENT = 0.5
REGRESSION_MIN_R_SQUARED = 0.3


@dataclass
class StatisticalSummary:
    """Descriptive statistics of a sales series."""
    count: int
    mean: float
    median: float
    std_dev: float
    minimum: float
    maximum: float
    total: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "count": self.count,
            "mean": self.mean,
            "median": self.median,
            "std_dev": self.std_dev,
            "minimum": self.minimum,
            "maximum": self.maximum,
            "total": self.total,
        }

    def format(self) -> str:
        return "\n".join([
            "Statistical summary:",
            f"- Data points: {self.count}",
            f"- Mean sales: {self.mean:.2f}",
            f"- Median: {self.median:.2f}",
            f"- Standard deviation: {self.std_dev:.2f}",
            f"- Minimum: {self.minimum:.2f}",
            f"- Maximum: {self.maximum:.2f}",
            f"- Total sales: {self.total:.2f}",
        ])


@dataclass
class AnalysisReport:
    """Combined analysis of one uploaded sales file."""
    report_id: str
    file_name: str
    analysis_date: datetime
    data_points: int
    start_date: Optional[date]
    end_date: Optional[date]
    weather_matches: int
    summary: Optional[StatisticalSummary]
    correlations: List[CorrelationResult] = field(default_factory=list)
    regression: Optional[RegressionModel] = None
    ai_insights: str = ""
    recommendations: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "report_id": self.report_id,
            "file_name": self.file_name,
            "analysis_date": self.analysis_date.isoformat(),
            "data_points": self.data_points,
            "start_date": self.start_date.isoformat() if self.start_date else None,
            "end_date": self.end_date.isoformat() if self.end_date else None,
            "weather_matches": self.weather_matches,
            "summary": self.summary.to_dict() if self.summary else None,
            "correlations": [c.to_dict() for c in self.correlations],
            "regression": self.regression.to_dict() if self.regression else None,
            "ai_insights": self.ai_insights,
            "recommendations": list(self.recommendations),
        }


class StatisticalAnalyzer:
    """
    Sales analysis over injected collaborators.

    All collaborators are optional; a missing source makes the matching
    analysis return an empty result rather than fail.
    """

    def __init__(
        self,
        weather_source: Optional[HistoricalWeatherSource] = None,
        economic_source: Optional[EconomicDataSource] = None,
        question_generator: Optional[QuestionGenerator] = None,
        config: Optional[AppConfig] = None,
    ):
        self.weather_source = weather_source
        self.economic_source = economic_source
        self.question_service = AnomalyQuestionService(question_generator)
        self.config = config or get_config()

    # ===================
    # HELPERS
    # ===================

    @staticmethod
    def _date_range(sales: Sequence[SalesDataPoint]) -> Tuple[date, date]:
        dates = [p.date for p in sales]
        return min(dates), max(dates)

    def _is_notable(self, result: CorrelationResult) -> bool:
        cfg = self.config.correlation
        return result.p_value < cfg.significance_level or abs(result.coefficient) >= cfg.min_abs_coefficient

    def _scan_factor(
        self,
        prefix: str,
        sales: Sequence[SalesDataPoint],
        factor_dates: List[date],
        factor_values: List[float],
        max_lag_days: int,
    ) -> List[CorrelationResult]:
        """Lag scan one factor; failures are logged and yield no results."""
        try:
            results = lagged_correlation(
                [p.date for p in sales],
                [p.sales for p in sales],
                factor_dates,
                factor_values,
                max_lag_days,
            )
        except AnalysisError as e:
            classified = classify_error(e, pipeline_phase="correlation", context={"factor": prefix})
            logger.warning(f"Skipping {prefix} correlation ({classified.category.name}): {e}")
            return []

        notable = [r.with_label(f"{prefix}: {r.label}") for r in results if self._is_notable(r)]
        logger.info(f"{prefix} lag scan: {len(notable)} notable of {len(results)} lags")
        return notable

    # ===================
    # CORRELATION
    # ===================

    def analyze_sales_weather_correlation(
        self,
        sales: Sequence[SalesDataPoint],
        region: str,
    ) -> List[CorrelationResult]:
        """
        Lag-correlate sales with temperature and humidity for the sales date range.

        Keeps lags that are significant or at least moderately strong, then
        the top N by |r| across both factors.

        Raises:
            InsufficientDataError: no sales data
            DataSourceError: the weather source failed
        """
        if not sales:
            raise InsufficientDataError("Sales data is empty", required=1, actual=0)
        if self.weather_source is None:
            logger.warning("No weather source configured; skipping weather correlation")
            return []

        start, end = self._date_range(sales)
        weather = self.weather_source.get_historical_weather(region, start, end)
        if not weather:
            logger.warning(f"No weather data for {region} {start}..{end}")
            return []

        max_lag = self.config.correlation.weather_max_lag_days
        results: List[CorrelationResult] = []
        for prefix, attribute in (("temperature", "temperature"), ("humidity", "humidity")):
            observed = [w for w in weather if getattr(w, attribute) is not None]
            results.extend(self._scan_factor(
                prefix,
                sales,
                [w.date for w in observed],
                [getattr(w, attribute) for w in observed],
                max_lag,
            ))

        return top_correlations(results, self.config.correlation.top_n)

    def analyze_sales_economic_correlation(
        self,
        sales: Sequence[SalesDataPoint],
        symbols: Optional[List[str]] = None,
        max_lag_days: Optional[int] = None,
    ) -> List[CorrelationResult]:
        """
        Lag-correlate sales with each economic symbol.

        A symbol whose series cannot be loaded or correlated is logged and
        skipped; the rest still contribute.
        """
        if not sales:
            raise InsufficientDataError("Sales data is empty", required=1, actual=0)
        if self.economic_source is None:
            logger.warning("No economic source configured; skipping economic correlation")
            return []

        cfg = self.config.correlation
        symbols = symbols or cfg.economic_symbols
        max_lag = max_lag_days or cfg.economic_max_lag_days
        start, end = self._date_range(sales)

        results: List[CorrelationResult] = []
        for symbol in symbols:
            try:
                series = self.economic_source.get_market_series(symbol, start, end)
            except AnalysisError as e:
                classified = classify_error(e, pipeline_phase="economic_data", context={"symbol": symbol})
                logger.warning(f"Skipping {symbol} ({classified.category.name}): {e}")
                continue

            results.extend(self._scan_factor(
                symbol,
                sales,
                [p.date for p in series],
                [p.value for p in series],
                max_lag,
            ))

        return top_correlations(results, cfg.top_n)

    # ===================
    # SUMMARY & REPORT
    # ===================

    def generate_statistical_summary(self, sales: Sequence[SalesDataPoint]) -> StatisticalSummary:
        if not sales:
            raise InsufficientDataError("Sales data is empty", required=1, actual=0)
        values = [float(p.sales) for p in sales]
        return StatisticalSummary(
            count=len(values),
            mean=mean(values),
            median=median(values),
            std_dev=stddev(values),
            minimum=min(values),
            maximum=max(values),
            total=sum(values),
        )

    def _temperature_regression(
        self,
        sales: Sequence[SalesDataPoint],
        weather: List[WeatherObservation],
    ) -> Tuple[Optional[RegressionModel], int]:
        """Same-day sales-on-temperature regression and the matched day count."""
        temperature_by_date = {w.date: w.temperature for w in weather if w.temperature is not None}
        temperatures: List[float] = []
        matched_sales: List[float] = []
        for point in sales:
            if point.date in temperature_by_date:
                temperatures.append(temperature_by_date[point.date])
                matched_sales.append(point.sales)

        logger.info(f"Matched {len(temperatures)} of {len(sales)} sales days with weather")
        if len(temperatures) < 2:
            return None, len(temperatures)
        try:
            return linear_regression(temperatures, matched_sales), len(temperatures)
        except AnalysisError as e:
            logger.info(f"Temperature regression skipped: {e}")
            return None, len(temperatures)

    def create_analysis_report(
        self,
        file_name: str,
        sales: Sequence[SalesDataPoint],
        region: str,
        ai_insights: str = "",
    ) -> AnalysisReport:
        """
        Full report: weather + economic correlations, summary, temperature
        regression and recommendations. Every section degrades to empty on
        failure.
        """
        correlations: List[CorrelationResult] = []
        for phase, analysis in (
            ("weather_correlation", lambda: self.analyze_sales_weather_correlation(sales, region)),
            ("economic_correlation", lambda: self.analyze_sales_economic_correlation(sales)),
        ):
            try:
                correlations.extend(analysis())
            except AnalysisError as e:
                classified = classify_error(e, pipeline_phase=phase)
                logger.warning(f"{phase} failed ({classified.category.name}): {e}")

        summary = None
        regression = None
        weather_matches = 0
        start = end = None
        if sales:
            summary = self.generate_statistical_summary(sales)
            start, end = self._date_range(sales)
            if self.weather_source is not None:
                try:
                    weather = self.weather_source.get_historical_weather(region, start, end)
                    regression, weather_matches = self._temperature_regression(sales, weather)
                except AnalysisError as e:
                    classified = classify_error(e, pipeline_phase="regression")
                    logger.warning(f"Weather regression failed ({classified.category.name}): {e}")

        return AnalysisReport(
            report_id=str(uuid.uuid4()),
            file_name=file_name,
            analysis_date=datetime.now(),
            data_points=len(sales),
            start_date=start,
            end_date=end,
            weather_matches=weather_matches,
            summary=summary,
            correlations=correlations,
            regression=regression,
            ai_insights=ai_insights,
            recommendations=self.generate_recommendations(correlations, regression),
        )

    def generate_recommendations(
        self,
        correlations: Sequence[CorrelationResult],
        regression: Optional[RegressionModel],
    ) -> List[str]:
        """Plain-language recommendations from correlation and regression results."""
        recommendations: List[str] = []
        significance = self.config.correlation.significance_level

        for corr in correlations:
            if corr.lag_days != 0:
                continue
            if abs(corr.coefficient) <= FACTOR_MIN_ABS_COEFFICIENT or corr.p_value >= significance:
                continue
            factor = corr.label.split(":", 1)[0]
            if factor == "temperature":
                if corr.coefficient > 0:
                    recommendations.append(
                        "Sales rise with temperature. Consider building stock ahead of the warm season."
                    )
                else:
                    recommendations.append(
                        "Sales rise as temperature falls. Consider building stock ahead of the cold season."
                    )
            elif factor == "humidity":
                recommendations.append(
                    "Humidity is significantly related to sales. Consider inventory planning tied to the weather forecast."
                )
            elif factor == "NIKKEI":
                if corr.coefficient > 0:
                    recommendations.append(
                        f"Positive correlation with the Nikkei average (r = {corr.coefficient:.2f}). "
                        f"Stock market moves may help demand forecasting."
                    )
                else:
                    recommendations.append(
                        f"Negative correlation with the Nikkei average (r = {corr.coefficient:.2f}). "
                        f"Demand may rise in downturns."
                    )
            elif factor == "USDJPY":
                recommendations.append(
                    f"Correlation with the USD/JPY rate (r = {corr.coefficient:.2f}). "
                    f"Consider imported material costs and inbound tourist demand."
                )
            elif factor == "WTI":
                recommendations.append(
                    f"Correlation with crude oil prices (r = {corr.coefficient:.2f}). "
                    f"Monitor transport costs and consumer sentiment."
                )

        for corr in correlations:
            if corr.lag_days != 0 and abs(corr.coefficient) > LEAD_LAG_MIN_ABS_COEFFICIENT and corr.p_value < significance:
                recommendations.append(
                    f"⏱️ Time lag detected: {corr.label} (r = {corr.coefficient:.2f}). "
                    f"Usable as a leading indicator."
                )

        if regression is not None and regression.r_squared > REGRESSION_MIN_R_SQUARED:
            recommendations.append(
                f"The temperature regression explains {regression.r_squared * 100:.1f}% of sales variance. "
                f"Weather-based demand forecasting is effective."
            )

        if not correlations:
            recommendations.append(
                "⚠️ No external data matched the sales dates. Check the date format (YYYY-MM-DD)."
            )

        if not recommendations:
            recommendations.append("More accumulated data will allow a more precise analysis.")
            recommendations.append("Consider a multivariate analysis including seasonality and weekday effects.")

        return recommendations

    # ===================
    # ANOMALIES, PERIODS, FORECASTS
    # ===================

    def detect_anomalies(
        self,
        values: Sequence[float],
        dates: Sequence[DateLike],
        product_id: str = "",
        product_name: str = "",
        granularity: Optional[str] = None,
    ) -> List[AnomalyRecord]:
        return detect_anomalies(
            values,
            dates,
            product_id=product_id,
            product_name=product_name,
            granularity=granularity or self.config.anomaly.default_granularity,
        )

    def build_anomaly_questions(self, anomalies: Sequence[AnomalyRecord]) -> List[AnomalyQuestion]:
        return self.question_service.build_questions(list(anomalies))

    def analyze_periodic_sales(
        self,
        product_id: str,
        product_name: str,
        data: Sequence[SalesDataPoint],
        start_date: Optional[DateLike] = None,
        end_date: Optional[DateLike] = None,
        granularity: Optional[str] = None,
    ) -> PeriodicAnalysis:
        return analyze_periodic_sales(
            product_id,
            product_name,
            data,
            start_date=start_date,
            end_date=end_date,
            granularity=granularity or "weekly",
        )

    def forecast_demand(
        self,
        product_id: str,
        product_name: str,
        history: Sequence[SalesDataPoint],
        horizon: Optional[str] = None,
    ) -> Optional[ProductForecast]:
        """Product forecast, or None when the history is too short."""
        try:
            return forecast_product_demand(
                product_id,
                product_name,
                history,
                horizon=horizon or self.config.forecast.default_horizon,
            )
        except InsufficientDataError as e:
            logger.info(f"[{product_name or product_id}] Forecast skipped: {e}")
            return None

    def format_correlations(self, correlations: Sequence[CorrelationResult]) -> str:
        """Markdown listing of correlation findings."""
        if not correlations:
            return "No notable correlations found."
        parts = ["## Correlation Analysis Results"]
        for i, corr in enumerate(correlations, 1):
            sig = "***" if corr.is_significant else ""
            parts.append(
                f"{i}. {corr.label}: r={corr.coefficient:.3f}{sig} "
                f"(p={corr.p_value:.4f}, n={corr.sample_size}) - {corr.interpretation}"
            )
        parts.append("")
        parts.append("Note: *** indicates statistical significance at p<0.05")
        return "\n".join(parts)


# Singleton pattern
_analyzer_instance = None

def get_statistical_analyzer() -> StatisticalAnalyzer:
    """Get singleton StatisticalAnalyzer instance (no collaborators attached)."""
    global _analyzer_instance
    if _analyzer_instance is None:
        _analyzer_instance = StatisticalAnalyzer()
    return _analyzer_instance
