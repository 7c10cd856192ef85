"""
Validation Engine - per-group constraint checking

Responsibilities:
- Check the fields of the active group against their declared constraints
- Produce a fresh ErrorMap (field id -> message) on every call

Rules, checked in this fixed order (first failure supplies the message):
1. required  - blank (None or whitespace-only) answer
2. range     - numeric answer below min_value or above max_value
3. pattern   - answer does not match regex
4. option    - Dropdown answer not among the declared options

A blank answer on an optional field skips rules 2-4.

Design principles:
- Stateless: never mutates the data store, only reads values
- Only the fields passed in are validated (never the whole schema)
"""

import logging
from dataclasses import dataclass, field as dataclass_field
from typing import Any, Dict, Iterable, List, Mapping, Optional

from formengine.contracts import (
    DropdownField,
    Field,
    TextBoxField,
    UnrecognizedField,
    ValidationError,
)
from formengine.utils.helpers import is_blank, to_number

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ValidationResult:
    """
    Outcome of validating one group.

    Attributes:
        errors: ErrorMap, field id -> message (only failing fields present)
        is_valid: True iff errors is empty
    """
    errors: Dict[str, str] = dataclass_field(default_factory=dict)

    @property
    def is_valid(self) -> bool:
        return not self.errors

    def as_records(self) -> List[ValidationError]:
        return [ValidationError(field_id=k, reason=v) for k, v in self.errors.items()]


class ValidationEngine:
    """Stateless validator for a group's fields."""

    REQUIRED_MESSAGE = "This field is required"
    MIN_MESSAGE = "Value must be at least {bound}"
    MAX_MESSAGE = "Value must be at most {bound}"
    PATTERN_MESSAGE = "Value does not match the expected format"
    OPTION_MESSAGE = "Please select one of the listed options"

    def validate(self, fields: Iterable[Field], values: Mapping[str, Any]) -> ValidationResult:
        """
        Validate the given fields against current values.

        Args:
            fields: Fields of the active group
            values: Current store snapshot (field id -> value)

        Returns:
            ValidationResult with the recomputed ErrorMap
        """
        errors = {}
        for field in fields:
            message = self.check_field(field, values.get(field.id))
            if message is not None:
                errors[field.id] = message

        if errors:
            logger.debug(f"Validation failed for {sorted(errors)}")
        return ValidationResult(errors=errors)

    def check_field(self, field: Field, value: Any) -> Optional[str]:
        """Return the message of the first failing rule, or None."""
        if is_blank(value):
            return self.REQUIRED_MESSAGE if field.required else None

        failures = [
            self._check_range(field, value),
            self._check_pattern(field, value),
            self._check_kind(field, value),
        ]
        for message in failures:
            if message is not None:
                return message
        return None

    def _check_range(self, field: Field, value: Any) -> Optional[str]:
        number = to_number(value)
        if number is None:
            return None
        if field.min_value is not None and number < field.min_value:
            return self.MIN_MESSAGE.format(bound=_format_bound(field.min_value))
        if field.max_value is not None and number > field.max_value:
            return self.MAX_MESSAGE.format(bound=_format_bound(field.max_value))
        return None

    def _check_pattern(self, field: Field, value: Any) -> Optional[str]:
        if field.pattern is None:
            return None
        # RegExp.test() semantics: anchors must be written in the pattern
        if field.pattern.search(str(value)) is None:
            return self.PATTERN_MESSAGE
        return None

    def _check_kind(self, field: Field, value: Any) -> Optional[str]:
        if isinstance(field, DropdownField):
            if field.options and not field.accepts(value):
                return self.OPTION_MESSAGE
            return None
        if isinstance(field, (TextBoxField, UnrecognizedField)):
            return None
        raise TypeError(f"Unhandled field variant: {type(field).__name__}")


def _format_bound(bound: float) -> str:
    return str(int(bound)) if float(bound).is_integer() else str(bound)
