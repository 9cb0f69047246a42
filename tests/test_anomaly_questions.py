"""
Tests for anomaly follow-up questions and generator output validation.
"""
import json
from types import SimpleNamespace

import pytest

from src.core.output_schemas import (
    AnomalyQuestionSchema,
    safe_parse_anomaly_question,
    validate_generator_output,
)
from src.tools.anomaly_detector import AnomalyRecord
from src.tools.anomaly_questions import (
    DEFAULT_CHOICES,
    SOURCE_GENERATOR,
    SOURCE_TEMPLATE,
    AnomalyQuestionService,
    TemplateQuestionGenerator,
)


@pytest.fixture
def spike():
    return AnomalyRecord(
        period_key="2024-W05",
        actual_value=1450.0,
        expected_value=1000.0,
        deviation=450.0,
        z_score=31.8,
        direction="increase",
        severity="critical",
        product_id="P-1",
        product_name="Iced Tea",
    )


@pytest.fixture
def drop():
    return AnomalyRecord(
        period_key="2024-03",
        actual_value=500.0,
        expected_value=1000.0,
        deviation=500.0,
        z_score=0.0,
        direction="decrease",
        severity="low",
        product_id="P-2",
    )


class StaticGenerator:
    def __init__(self, response):
        self.response = response
        self.calls = []

    def generate_question(self, anomaly, period_label):
        self.calls.append((anomaly.period_key, period_label))
        return self.response


class FailingGenerator:
    def generate_question(self, anomaly, period_label):
        raise RuntimeError("model unavailable")


class TestSchemaValidation:
    """Tests for validate_generator_output."""

    def test_json_string(self):
        raw = json.dumps({"question": "What happened that week?", "choices": ["Sale", "Weather"]})
        is_valid, parsed, errors = validate_generator_output(raw, AnomalyQuestionSchema)
        assert is_valid
        assert parsed.choices == ["Sale", "Weather"]
        assert errors == []

    def test_code_fenced_json(self):
        raw = '```json\n{"question": "What happened?", "choices": ["A", "B"]}\n```'
        parsed, errors = safe_parse_anomaly_question(raw)
        assert parsed is not None
        assert parsed.question == "What happened?"

    def test_object_attributes(self):
        raw = SimpleNamespace(question="  Any campaign running?  ", choices=[" Yes ", "No"])
        parsed, _ = safe_parse_anomaly_question(raw)
        assert parsed.question == "Any campaign running?"
        assert parsed.choices == ["Yes", "No"]

    def test_invalid_json(self):
        is_valid, parsed, errors = validate_generator_output("{not json", AnomalyQuestionSchema)
        assert not is_valid
        assert parsed is None
        assert errors[0].startswith("Invalid JSON")

    def test_non_object_json(self):
        is_valid, _, errors = validate_generator_output("[1, 2]", AnomalyQuestionSchema)
        assert not is_valid
        assert "Expected an object" in errors[0]

    @pytest.mark.parametrize("payload", [
        {"question": "Why?", "choices": ["A", "B"]},
        {"question": "What happened?", "choices": ["Only one"]},
        {"question": "What happened?", "choices": ["A", "a", "b", "c", "d", "e", "f", "g", "h"]},
        {"question": "What happened?", "choices": ["A", "  "]},
        {"question": "What happened?", "choices": ["A", "A"]},
        {"choices": ["A", "B"]},
    ])
    def test_rejected_payloads(self, payload):
        parsed, errors = safe_parse_anomaly_question(payload)
        assert parsed is None
        assert errors


class TestTemplateQuestions:
    """Tests for the fixed wording."""

    def test_increase_wording(self, spike):
        question = TemplateQuestionGenerator().build(spike, "2024 week 05")
        assert question.question.startswith(
            '📈 Sales of "Iced Tea" in 2024 week 05 were 450 above normal'
        )
        assert "expected 1000 -> actual 1450" in question.question
        assert question.choices == DEFAULT_CHOICES
        assert question.source == SOURCE_TEMPLATE

    def test_decrease_wording_falls_back_to_product_id(self, drop):
        question = TemplateQuestionGenerator().build(drop, "March 2024")
        assert question.question.startswith('📉 Sales of "P-2" in March 2024 were 500 below normal')


class TestAnomalyQuestionService:
    """Tests for generator-then-template selection."""

    def test_without_generator_uses_template(self, spike):
        question = AnomalyQuestionService().build_question(spike)
        assert question.source == SOURCE_TEMPLATE
        assert "2024 week 05" in question.question

    def test_valid_generator_output_is_used(self, spike):
        generator = StaticGenerator({"question": "Was there a heatwave?", "choices": ["Yes", "No"]})
        question = AnomalyQuestionService(generator).build_question(spike)

        assert question.source == SOURCE_GENERATOR
        assert question.question == "Was there a heatwave?"
        assert generator.calls == [("2024-W05", "2024 week 05")]

    def test_invalid_generator_output_falls_back(self, drop):
        generator = StaticGenerator({"question": "?", "choices": []})
        question = AnomalyQuestionService(generator).build_question(drop)
        assert question.source == SOURCE_TEMPLATE
        assert "March 2024" in question.question

    def test_generator_exception_falls_back(self, spike):
        question = AnomalyQuestionService(FailingGenerator()).build_question(spike)
        assert question.source == SOURCE_TEMPLATE

    def test_build_questions_preserves_order(self, spike, drop):
        questions = AnomalyQuestionService().build_questions([drop, spike])
        assert questions[0].question.startswith("📉")
        assert questions[1].question.startswith("📈")
        assert questions[1].to_dict()["choices"] == DEFAULT_CHOICES
