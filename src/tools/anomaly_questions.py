"""
Anomaly Question Service

Turns AnomalyRecords into a follow-up question plus answer choices for the
person who knows what happened that period.

An injected QuestionGenerator (e.g. backed by a language model) is tried
first; its output is validated with a Pydantic schema. Any failure, or no
generator at all, falls back to the template, which is always available.
"""
import logging
from dataclasses import dataclass, field
from typing import List, Dict, Any, Optional, Protocol

from src.core.error_taxonomy import classify_error
from src.core.output_schemas import safe_parse_anomaly_question
from src.core.period_calendar import format_period_for_display
from src.tools.anomaly_detector import AnomalyRecord, DIRECTION_INCREASE

logger = logging.getLogger(__name__)

SOURCE_GENERATOR = "generator"
SOURCE_TEMPLATE = "template"

DEFAULT_CHOICES = [
    "Campaign or promotion",
    "Weather impact",
    "Competitor activity",
    "Nothing in particular comes to mind",
    "Other (free text)",
]


class QuestionGenerator(Protocol):
    """Anything that can draft a question for an anomaly."""

    def generate_question(self, anomaly: AnomalyRecord, period_label: str) -> Any:
        """Return a JSON string, dict or object with `question` and `choices`."""
        ...


@dataclass
class AnomalyQuestion:
    """Question and answer choices for one anomaly."""
    question: str
    choices: List[str] = field(default_factory=list)
    source: str = SOURCE_TEMPLATE

    def to_dict(self) -> Dict[str, Any]:
        return {
            "question": self.question,
            "choices": list(self.choices),
            "source": self.source,
        }


class TemplateQuestionGenerator:
    """Fixed wording keyed on anomaly direction."""

    def build(self, anomaly: AnomalyRecord, period_label: str) -> AnomalyQuestion:
        name = anomaly.display_name
        if anomaly.direction == DIRECTION_INCREASE:
            question = (
                f"📈 Sales of \"{name}\" in {period_label} were {anomaly.deviation:.0f} above normal "
                f"(expected {anomaly.expected_value:.0f} -> actual {anomaly.actual_value:.0f}). "
                f"Was there a special event, campaign or other external factor at the time?"
            )
        else:
            question = (
                f"📉 Sales of \"{name}\" in {period_label} were {anomaly.deviation:.0f} below normal "
                f"(expected {anomaly.expected_value:.0f} -> actual {anomaly.actual_value:.0f}). "
                f"Did something drive the drop, such as weather, competitors or stock-outs?"
            )
        return AnomalyQuestion(question=question, choices=list(DEFAULT_CHOICES), source=SOURCE_TEMPLATE)


class AnomalyQuestionService:
    """Builds questions for anomalies with generator-then-template fallback."""

    def __init__(self, generator: Optional[QuestionGenerator] = None):
        self.generator = generator
        self.template = TemplateQuestionGenerator()

    def build_question(self, anomaly: AnomalyRecord) -> AnomalyQuestion:
        period_label = format_period_for_display(anomaly.period_key)

        if self.generator is not None:
            try:
                raw = self.generator.generate_question(anomaly, period_label)
                parsed, errors = safe_parse_anomaly_question(raw)
                if parsed is not None:
                    return AnomalyQuestion(
                        question=parsed.question,
                        choices=list(parsed.choices),
                        source=SOURCE_GENERATOR,
                    )
                logger.warning(f"Generated question rejected, using template: {errors}")
            except Exception as e:
                classified = classify_error(e, pipeline_phase="question_generation")
                logger.warning(
                    f"Question generator failed ({classified.category.name}), using template: {e}"
                )

        return self.template.build(anomaly, period_label)

    def build_questions(self, anomalies: List[AnomalyRecord]) -> List[AnomalyQuestion]:
        return [self.build_question(a) for a in anomalies]
