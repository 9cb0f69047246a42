"""
Golden Dataset for Regression Testing

Fixed scenarios with hand-verified expected outcomes. The engine tests
import these so a change in any core computation shows up as a golden
mismatch rather than a silently shifted number.

Usage:
    from tests.golden_dataset import REGRESSION_SCENARIO, ExpectedCalculation
"""
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import List, Dict, Any


@dataclass
class ExpectedCalculation:
    """Expected calculation result with tolerance."""
    metric_name: str
    expected_value: float
    tolerance_percent: float = 1.0  # Default 1% tolerance

    def matches(self, actual_value: float) -> bool:
        """Check if actual value is within tolerance."""
        if self.expected_value == 0:
            return abs(actual_value) < 1e-9
        deviation = abs((actual_value - self.expected_value) / self.expected_value)
        return deviation <= (self.tolerance_percent / 100)


@dataclass
class GoldenScenario:
    """Inputs plus the calculations they must reproduce."""
    scenario_id: str
    description: str
    inputs: Dict[str, Any]
    expected: List[ExpectedCalculation] = field(default_factory=list)

    def expected_value(self, metric_name: str) -> float:
        for calc in self.expected:
            if calc.metric_name == metric_name:
                return calc.expected_value
        raise KeyError(metric_name)


def _weekly_mondays(start: date, count: int) -> List[date]:
    return [start + timedelta(weeks=i) for i in range(count)]


REGRESSION_SCENARIO = GoldenScenario(
    scenario_id="regression-perfect-line",
    description="Perfectly linear sales against temperature",
    inputs={
        "x": [10.0, 20.0, 30.0, 40.0, 50.0],
        "y": [100.0, 150.0, 200.0, 250.0, 300.0],
    },
    expected=[
        ExpectedCalculation("slope", 5.0, tolerance_percent=0.001),
        ExpectedCalculation("intercept", 50.0, tolerance_percent=0.001),
        ExpectedCalculation("r_squared", 1.0, tolerance_percent=0.001),
        ExpectedCalculation("prediction", 300.0, tolerance_percent=0.001),
    ],
)

# 2024-01-01 is a Monday in ISO week 2024-W01; one observation per week
WEEKLY_SPIKE_SCENARIO = GoldenScenario(
    scenario_id="weekly-spike",
    description="Four steady weeks followed by a 45% jump",
    inputs={
        "values": [1000.0, 1020.0, 980.0, 1000.0, 1450.0],
        "dates": _weekly_mondays(date(2024, 1, 1), 5),
        "period_key": "2024-W05",
    },
    expected=[
        ExpectedCalculation("expected_value", 1000.0, tolerance_percent=0.001),
        ExpectedCalculation("actual_value", 1450.0, tolerance_percent=0.001),
        ExpectedCalculation("deviation", 450.0, tolerance_percent=0.001),
        # window std = sqrt(200)
        ExpectedCalculation("z_score", 450.0 / 200 ** 0.5, tolerance_percent=0.01),
    ],
)

SHORT_WEEKLY_SCENARIO = GoldenScenario(
    scenario_id="weekly-short-history",
    description="Three weekly buckets are fewer than the 4-week window",
    inputs={
        "values": [1000.0, 1100.0, 2000.0],
        "dates": _weekly_mondays(date(2024, 1, 1), 3),
    },
)

BH_SCENARIO = GoldenScenario(
    scenario_id="benjamini-hochberg",
    description="BH adjustment of five p-values",
    inputs={"pvalues": [0.01, 0.02, 0.03, 0.20, 0.50]},
    expected=[
        ExpectedCalculation("adjusted_0", 0.05),
        ExpectedCalculation("adjusted_1", 0.05),
        ExpectedCalculation("adjusted_2", 0.05),
        ExpectedCalculation("adjusted_3", 0.25),
        ExpectedCalculation("adjusted_4", 0.50),
    ],
)