"""PricingInput parsing and validation.

Deserializes a caller's attribute bag into a typed PricingInput. Unknown
keys are ignored and empty values fall back to "not specified"; only values
of the wrong shape (e.g. ``stories="many"``) are rejected.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional

from pydantic import ValidationError as PydanticValidationError
import structlog

from config.errors import ErrorCode, ValidationError
from models.pricing import PricingInput

logger = structlog.get_logger(__name__)


@dataclass
class ValidationResult:
    """Result of PricingInput validation."""
    is_valid: bool = True
    errors: List[str] = field(default_factory=list)
    parsed: Optional[PricingInput] = None


def _format_errors(e: PydanticValidationError) -> List[str]:
    return [f"{'.'.join(str(part) for part in err['loc'])}: {err['msg']}" for err in e.errors()]


def parse_pricing_input(data: Any) -> PricingInput:
    """Parse a raw attribute mapping into a PricingInput.

    Args:
        data: Raw mapping from the caller (None is treated as empty).

    Returns:
        Typed PricingInput.

    Raises:
        ValidationError: If the data is not a mapping or has malformed values.
    """
    if data is None:
        return PricingInput()
    if not isinstance(data, Mapping):
        raise ValidationError(
            message="Pricing input must be a dictionary",
            details={"type": type(data).__name__},
            code=ErrorCode.INVALID_INPUT
        )
    try:
        return PricingInput.model_validate(dict(data))
    except PydanticValidationError as e:
        errors = _format_errors(e)
        logger.warning("pricing_input_invalid", errors=errors, keys=list(data.keys()))
        raise ValidationError(
            message=f"Invalid pricing input: {'; '.join(errors)}",
            details={"errors": errors},
            code=ErrorCode.INVALID_INPUT
        )


def validate_pricing_input(data: Dict[str, Any]) -> ValidationResult:
    """Validate a raw attribute mapping without raising.

    Returns:
        ValidationResult with is_valid, errors, and parsed object.
    """
    try:
        parsed = parse_pricing_input(data)
    except ValidationError as e:
        return ValidationResult(is_valid=False, errors=e.details.get("errors") or [e.message])
    return ValidationResult(is_valid=True, errors=[], parsed=parsed)
