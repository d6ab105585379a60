"""EstimateResult parsing and validation.

Completed estimates reach the learning engine as raw dicts from the
pricing side. This module deserializes them into typed Pydantic models.

LENIENT MODE (default): malformed material/service lines are dropped
with a warning so one bad line does not discard the whole estimate.
STRICT MODE: any schema error rejects the payload. Enable it with
STRICT_ESTIMATE_VALIDATION=true or by passing strict=True.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from pydantic import ValidationError as PydanticValidationError
import structlog

from config.errors import ValidationError
from config.settings import settings
from models.estimate import EstimateMaterial, EstimateResult, EstimateService

logger = structlog.get_logger(__name__)

LINE_MODELS = {
    "materials": EstimateMaterial,
    "services": EstimateService,
}


@dataclass
class ValidationResult:
    """Result of EstimateResult validation."""
    is_valid: bool = True
    errors: List[str] = field(default_factory=list)
    parsed: Optional[EstimateResult] = None
    raw_data: Any = None
    dropped_lines: List[str] = field(default_factory=list)


def _format_errors(error: PydanticValidationError, prefix: str = "") -> List[str]:
    errors = []
    for err in error.errors():
        location = ".".join(str(part) for part in err["loc"])
        errors.append(f"{prefix}{location}: {err['msg']}")
    return errors


def _valid_lines(data: Dict[str, Any], section: str, dropped: List[str]) -> List[Dict[str, Any]]:
    """Keep the lines of a section that validate on their own."""
    lines = data.get(section) or []
    if not isinstance(lines, list):
        dropped.append(f"{section}: expected a list")
        return []

    model = LINE_MODELS[section]
    kept = []
    for index, line in enumerate(lines):
        try:
            model.model_validate(line)
            kept.append(line)
        except PydanticValidationError as e:
            dropped.extend(_format_errors(e, prefix=f"{section}.{index}."))
    return kept


def validate_estimate_payload(data: Any, strict: Optional[bool] = None) -> ValidationResult:
    """Validate an estimate payload and return the result.

    In LENIENT mode:
    - Invalid material/service lines are dropped and listed in dropped_lines
    - Top-level fields (costs, summary) must still validate

    In STRICT mode:
    - Full Pydantic validation against the EstimateResult schema

    Args:
        data: Raw estimate dictionary (camelCase or snake_case keys)
        strict: Override for settings.strict_estimate_validation

    Returns:
        ValidationResult with is_valid, errors, and parsed object
    """
    if strict is None:
        strict = settings.strict_estimate_validation

    if not isinstance(data, dict):
        return ValidationResult(
            is_valid=False,
            errors=["estimate must be a dictionary"],
            parsed=None,
            raw_data=data
        )

    if strict:
        try:
            parsed = EstimateResult.model_validate(data)
            return ValidationResult(is_valid=True, errors=[], parsed=parsed, raw_data=data)
        except PydanticValidationError as e:
            return ValidationResult(is_valid=False, errors=_format_errors(e), parsed=None, raw_data=data)

    dropped: List[str] = []
    cleaned = dict(data)
    for section in LINE_MODELS:
        cleaned[section] = _valid_lines(data, section, dropped)

    if dropped:
        logger.warning(
            "estimate_lines_dropped",
            dropped=dropped,
            keys=list(data.keys())
        )

    try:
        parsed = EstimateResult.model_validate(cleaned)
    except PydanticValidationError as e:
        errors = _format_errors(e)
        logger.warning("estimate_validation_failed", errors=errors)
        return ValidationResult(is_valid=False, errors=errors, parsed=None, raw_data=data, dropped_lines=dropped)

    return ValidationResult(is_valid=True, errors=[], parsed=parsed, raw_data=data, dropped_lines=dropped)


def parse_estimate_result(data: Any, strict: Optional[bool] = None) -> EstimateResult:
    """Parse a raw estimate payload into a typed EstimateResult.

    Args:
        data: Raw estimate dictionary
        strict: Override for settings.strict_estimate_validation

    Returns:
        Typed EstimateResult object

    Raises:
        ValidationError: If the payload cannot be validated.
    """
    result = validate_estimate_payload(data, strict=strict)
    if not result.is_valid:
        raise ValidationError(
            message="Invalid estimate payload",
            field="estimate",
            details={"errors": result.errors}
        )
    return result.parsed
