"""
Semantic contracts for the survey form engine.

This module defines the immutable data structures shared between the
parser, formula engine, validation engine and navigation controller.
These are NOT validators - they define shape and semantics only.

Design principles:
- Frozen dataclasses (immutable after creation)
- Field kinds are a closed set of variants (TextBox, Dropdown, Unrecognized)
- Only DropdownField carries options
- Diagnostics (warnings, evaluation/validation problems) are plain records,
  not exceptions, so callers can collect and assert on them

Contents:
- FieldKind: string enum of supported field kinds
- ChoiceOption: one Dropdown option
- Field / TextBoxField / DropdownField / UnrecognizedField
- Group, FormSchema, FieldRegistry
- ParseWarning, EvaluationError, ValidationError

Usage:
    from formengine.contracts import FormSchema, FieldRegistry, TextBoxField
"""

import re
from dataclasses import dataclass, field as dataclass_field
from enum import Enum
from types import MappingProxyType
from collections.abc import Mapping
from typing import Any, Dict, Iterator, List, Optional, Tuple


class FieldKind(str, Enum):
    """Closed set of field kinds understood by the engine."""
    TEXT_BOX = "TextBox"
    DROPDOWN = "Dropdown"
    UNRECOGNIZED = "Unrecognized"


@dataclass(frozen=True)
class ChoiceOption:
    """
    One selectable option of a Dropdown field.

    Attributes:
        label: Text shown to the user
        value: Value stored when the option is chosen (defaults to label)
    """
    label: str
    value: Any


@dataclass(frozen=True)
class Field:
    """
    Common attributes of every question.

    Never instantiated directly - use one of the variants below.

    Attributes:
        id: Globally unique field identifier (questionId)
        label: Question text (question)
        required: Whether a non-blank answer is needed to leave the group
        min_value: Optional inclusive numeric lower bound
        max_value: Optional inclusive numeric upper bound
        regex: Optional pattern source string
        pattern: Compiled form of regex (None if absent or invalid)
        parent_id: Id of the controlling field. Stored only; no visibility
                   rule is attached to it.
        calculation_expr: Formula source, kept even when compilation failed
        formula: Compiled formula, None for non-calculated fields
    """
    id: str
    label: str
    required: bool = False
    min_value: Optional[float] = None
    max_value: Optional[float] = None
    regex: Optional[str] = None
    pattern: Optional[re.Pattern] = dataclass_field(default=None, compare=False, repr=False)
    parent_id: Optional[str] = None
    calculation_expr: Optional[str] = None
    formula: Optional[Any] = dataclass_field(default=None, compare=False, repr=False)

    kind = None  # set by each variant

    @property
    def is_calculated(self) -> bool:
        return self.formula is not None

    @property
    def type_tag(self) -> str:
        return self.kind.value


@dataclass(frozen=True)
class TextBoxField(Field):
    """Free-text answer."""
    kind = FieldKind.TEXT_BOX


@dataclass(frozen=True)
class DropdownField(Field):
    """Single choice among an ordered tuple of options."""
    options: Tuple[ChoiceOption, ...] = ()

    kind = FieldKind.DROPDOWN

    def accepts(self, value: Any) -> bool:
        """True if value is one of the option values or labels."""
        for option in self.options:
            if value == option.value or value == option.label:
                return True
        return False


@dataclass(frozen=True)
class UnrecognizedField(Field):
    """
    Field whose questionType the engine has no widget for.

    Kept so that formulas and dependency references to it still resolve.
    raw_type preserves the tag from the schema.
    """
    raw_type: str = ""

    kind = FieldKind.UNRECOGNIZED

    @property
    def type_tag(self) -> str:
        return self.raw_type


@dataclass(frozen=True)
class Group:
    """Ordered page of fields shown together."""
    id: str
    name: str
    fields: Tuple[Field, ...] = ()

    @property
    def field_ids(self) -> List[str]:
        return [f.id for f in self.fields]


@dataclass(frozen=True)
class FormSchema:
    """Ordered groups; navigation order equals schema order."""
    groups: Tuple[Group, ...] = ()

    @property
    def group_count(self) -> int:
        return len(self.groups)

    def group_at(self, index: int) -> Group:
        return self.groups[index]


class FieldRegistry(Mapping):
    """
    Read-only mapping of field id -> Field.

    Built once by the schema parser. Iteration follows schema order.
    """

    def __init__(self, fields: Dict[str, Field]):
        self._fields = MappingProxyType(dict(fields))

    def __getitem__(self, field_id: str) -> Field:
        return self._fields[field_id]

    def __iter__(self) -> Iterator[str]:
        return iter(self._fields)

    def __len__(self) -> int:
        return len(self._fields)

    def __repr__(self) -> str:
        return f"FieldRegistry({list(self._fields)})"

    def calculated_fields(self) -> List[Field]:
        """All fields with a compiled formula, in schema order."""
        return [f for f in self._fields.values() if f.is_calculated]


# =========================================================================
# Diagnostic records
# =========================================================================

@dataclass(frozen=True)
class ParseWarning:
    """
    Non-fatal schema problem.

    Attributes:
        field_context: Where the problem is (e.g. "group 'g1' field #2 (q7)")
        reason: Human-readable explanation
    """
    field_context: str
    reason: str


@dataclass(frozen=True)
class EvaluationError:
    """A calculated field could not be evaluated; its previous value was kept."""
    field_id: str
    reason: str


@dataclass(frozen=True)
class ValidationError:
    """A field in the active group failed one of its constraints."""
    field_id: str
    reason: str
