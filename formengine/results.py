"""
Result types returned by FormSession commands.

These are the ONLY return types from the command methods; fatal load
problems and unknown field writes are raised as formengine.errors types.
"""

from dataclasses import dataclass
from typing import Dict, Tuple

from formengine.commands import FormSnapshot
from formengine.contracts import EvaluationError, ParseWarning
from formengine.core.navigation_controller import NavigationState


@dataclass(frozen=True)
class CommandResult:
    """
    Successful command outcome.

    Attributes:
        state: Navigation state after the command
        snapshot: Consistent store snapshot after the command
        errors: ErrorMap of the active group (field id -> message)
        warnings: ParseWarnings of the currently loaded schema
        evaluation_errors: Calculation failures from this command's
                           recompute pass (internal diagnostics)
        available_actions: Commands the UI may offer next
    """
    state: NavigationState
    snapshot: FormSnapshot
    errors: Dict[str, str]
    warnings: Tuple[ParseWarning, ...] = ()
    evaluation_errors: Tuple[EvaluationError, ...] = ()
    available_actions: Tuple[str, ...] = ()

    @property
    def is_valid(self) -> bool:
        return not self.errors


@dataclass(frozen=True)
class IllegalCommand:
    """
    Command rejected by the navigation controller (invalid transition).

    Examples:
    - select_group before a schema is loaded
    - next while on the group list
    - select_group with an out-of-range index

    Attributes:
        reason: Human-readable explanation
        command_type: Name of rejected command
        state: Unchanged navigation state
    """
    reason: str
    command_type: str
    state: NavigationState
