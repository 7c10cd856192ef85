"""
Exception types for the survey form engine.

Only conditions that abort an operation are exceptions. Recoverable,
field-level problems are records in formengine.contracts
(ParseWarning, EvaluationError, ValidationError).
"""

from typing import Iterable


class FormEngineError(Exception):
    """Base class for all engine exceptions."""
    pass


class SchemaParseError(FormEngineError):
    """Schema is structurally unusable. Fatal to load."""

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Invalid form schema: {reason}")


class CycleDetectedError(FormEngineError):
    """Calculated fields depend on each other in a loop. Fatal to load."""

    def __init__(self, cycle_field_ids: Iterable[str]):
        self.cycle_field_ids = frozenset(cycle_field_ids)
        names = ", ".join(sorted(self.cycle_field_ids))
        super().__init__(f"Circular calculation between fields: {names}")


class UnknownFieldError(FormEngineError):
    """A field id that is not in the loaded schema was written."""

    def __init__(self, field_id: str):
        self.field_id = field_id
        super().__init__(f"Unknown field '{field_id}'")


class IllegalTransitionError(FormEngineError):
    """Navigation command not accepted in the current state."""

    def __init__(self, command_type: str, reason: str):
        self.command_type = command_type
        self.reason = reason
        super().__init__(f"{command_type}: {reason}")


class FormulaSyntaxError(FormEngineError):
    """Formula source could not be compiled."""

    def __init__(self, message: str, position: int = -1):
        self.position = position
        if position >= 0:
            message = f"{message} (at position {position})"
        super().__init__(message)


class FormulaEvaluationError(FormEngineError):
    """Compiled formula could not produce a value for the current snapshot."""
    pass
