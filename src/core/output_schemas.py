"""
Structured Output Schemas for Collaborator Responses

Provides Pydantic models for validating output produced by injected
collaborators (e.g. a question generator backed by a language model) so a
malformed response falls back cleanly instead of leaking into results.
"""
from typing import List, Optional, Any, Tuple, Type, Union
import json
import logging

from pydantic import BaseModel, Field, ValidationError, field_validator

logger = logging.getLogger(__name__)

MIN_CHOICES = 2
MAX_CHOICES = 8


class AnomalyQuestionSchema(BaseModel):
    """Schema for a generated follow-up question about an anomaly."""
    question: str = Field(..., min_length=5, max_length=1000)
    choices: List[str] = Field(..., min_length=MIN_CHOICES, max_length=MAX_CHOICES)

    @field_validator('question')
    @classmethod
    def strip_question(cls, v):
        v = v.strip()
        if not v:
            raise ValueError("question must not be blank")
        return v

    @field_validator('choices')
    @classmethod
    def validate_choices(cls, v):
        cleaned = [c.strip() for c in v]
        if any(not c for c in cleaned):
            raise ValueError("choices must not contain blank entries")
        if len(set(cleaned)) != len(cleaned):
            raise ValueError("choices must be unique")
        return cleaned


def _strip_code_fence(raw_output: str) -> str:
    cleaned = raw_output.strip()
    if cleaned.startswith("```json"):
        cleaned = cleaned[7:]
    if cleaned.startswith("```"):
        cleaned = cleaned[3:]
    if cleaned.endswith("```"):
        cleaned = cleaned[:-3]
    return cleaned.strip()


def validate_generator_output(
    raw_output: Union[str, dict, Any],
    schema: Type[BaseModel],
) -> Tuple[bool, Any, List[str]]:
    """
    Validate collaborator output against a Pydantic schema.

    Accepts a JSON string (optionally wrapped in a markdown code block), a
    dict, or an object exposing the schema's fields as attributes.

    Returns:
        Tuple of (is_valid, parsed_object_or_none, list_of_errors)
    """
    errors = []

    if isinstance(raw_output, str):
        try:
            data = json.loads(_strip_code_fence(raw_output))
        except json.JSONDecodeError as e:
            errors.append(f"Invalid JSON: {str(e)}")
            logger.warning(f"Failed to parse generator output as JSON: {e}")
            return False, None, errors
    elif isinstance(raw_output, dict):
        data = raw_output
    else:
        data = {name: getattr(raw_output, name, None) for name in schema.model_fields}

    if not isinstance(data, dict):
        errors.append(f"Expected an object, got {type(data).__name__}")
        return False, None, errors

    try:
        validated = schema.model_validate(data)
        return True, validated, []
    except ValidationError as e:
        errors.append(f"Schema validation failed: {str(e)}")
        logger.warning(f"Schema validation failed: {e}")
        return False, None, errors


def safe_parse_anomaly_question(raw_output) -> Tuple[Optional[AnomalyQuestionSchema], List[str]]:
    """Safely parse a generated anomaly question with fallback."""
    is_valid, parsed, errors = validate_generator_output(raw_output, AnomalyQuestionSchema)
    return parsed if is_valid else None, errors
