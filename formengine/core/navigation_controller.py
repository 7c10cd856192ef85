"""
Navigation Controller - state machine over the form's groups

States:
    Unloaded -> GroupSelect -> GroupActive(i)

Transitions:
    load(schema)        any state -> GroupSelect (ErrorMap cleared)
    select_group(i)     GroupSelect -> GroupActive(i)
    back()              GroupActive(_) -> GroupSelect
    next(values)        GroupActive(i): validate group i
                          invalid          -> stay, ErrorMap updated
                          valid, not last  -> GroupActive(i + 1)
                          valid, last      -> no-op (never offered)
    previous()          GroupActive(i) -> GroupActive(i - 1) if i > 0, else no-op
                        never validated

A command issued in a state that does not accept it raises
IllegalTransitionError and leaves the state unchanged.

The ErrorMap belongs to the active group: it is cleared whenever the active
group changes.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional

from formengine.contracts import FormSchema, Group
from formengine.core.validation_engine import ValidationEngine, ValidationResult
from formengine.errors import IllegalTransitionError
from formengine.utils.navigation_modes import NavigationMode

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class NavigationState:
    """
    Current position in the form.

    Attributes:
        mode: UNLOADED, GROUP_SELECT or GROUP_ACTIVE
        group_index: Active group index (GROUP_ACTIVE only, else None)
    """
    mode: NavigationMode = NavigationMode.UNLOADED
    group_index: Optional[int] = None

    def to_json(self) -> dict:
        return {'mode': self.mode.value, 'group_index': self.group_index}


UNLOADED = NavigationState()
GROUP_SELECT = NavigationState(mode=NavigationMode.GROUP_SELECT)


class NavigationController:
    """Owns NavigationState and the active group's ErrorMap."""

    # Command names, in the order the UI should present them
    LOAD_SCHEMA = "load_schema"
    SELECT_GROUP = "select_group"
    SET_FIELD = "set_field"
    BACK = "back"
    PREVIOUS = "previous"
    NEXT = "next"

    def __init__(self, validation_engine: Optional[ValidationEngine] = None):
        self.validation_engine = validation_engine or ValidationEngine()
        self.schema: Optional[FormSchema] = None
        self.state: NavigationState = UNLOADED
        self.error_map: Dict[str, str] = {}

    # =========================================================================
    # Queries
    # =========================================================================

    @property
    def group_count(self) -> int:
        return self.schema.group_count if self.schema is not None else 0

    def active_group(self) -> Optional[Group]:
        if self.state.mode != NavigationMode.GROUP_ACTIVE:
            return None
        return self.schema.group_at(self.state.group_index)

    def is_last_group(self) -> bool:
        return (self.state.mode == NavigationMode.GROUP_ACTIVE
                and self.state.group_index == self.group_count - 1)

    def available_actions(self) -> List[str]:
        """Commands the UI may offer right now."""
        mode = self.state.mode
        if mode == NavigationMode.UNLOADED:
            return [self.LOAD_SCHEMA]

        actions = [self.LOAD_SCHEMA, self.SET_FIELD]
        if mode == NavigationMode.GROUP_SELECT:
            if self.group_count > 0:
                actions.append(self.SELECT_GROUP)
            return actions

        actions.append(self.BACK)
        if self.state.group_index > 0:
            actions.append(self.PREVIOUS)
        if not self.is_last_group():
            actions.append(self.NEXT)
        return actions

    # =========================================================================
    # Transitions
    # =========================================================================

    def load(self, schema: FormSchema) -> NavigationState:
        """Install a schema; always lands on group selection."""
        self.schema = schema
        self.error_map = {}
        self.state = GROUP_SELECT
        logger.info(f"Navigation reset: {schema.group_count} groups")
        return self.state

    def select_group(self, index: int) -> NavigationState:
        self._require(self.SELECT_GROUP, NavigationMode.GROUP_SELECT)
        if isinstance(index, bool) or not isinstance(index, int) or not 0 <= index < self.group_count:
            raise IllegalTransitionError(
                self.SELECT_GROUP, f"Group index {index!r} out of range (0..{self.group_count - 1})"
            )
        self._activate(index)
        return self.state

    def back(self) -> NavigationState:
        self._require(self.BACK, NavigationMode.GROUP_ACTIVE)
        self.error_map = {}
        self.state = GROUP_SELECT
        logger.debug("Back to group selection")
        return self.state

    def previous(self) -> NavigationState:
        self._require(self.PREVIOUS, NavigationMode.GROUP_ACTIVE)
        if self.state.group_index > 0:
            self._activate(self.state.group_index - 1)
        return self.state

    def next(self, values: Mapping[str, Any]) -> ValidationResult:
        """
        Validate the active group and advance if it passes.

        Args:
            values: Current store snapshot

        Returns:
            ValidationResult of the active group (state may have moved)
        """
        self._require(self.NEXT, NavigationMode.GROUP_ACTIVE)
        group = self.active_group()

        result = self.validation_engine.validate(group.fields, values)
        self.error_map = dict(result.errors)

        if not result.is_valid:
            logger.info(f"Group '{group.id}' has {len(result.errors)} invalid field(s); staying")
            return result

        if not self.is_last_group():
            self._activate(self.state.group_index + 1)
        return result

    # =========================================================================
    # Helpers
    # =========================================================================

    def _require(self, command_type: str, mode: NavigationMode) -> None:
        if self.state.mode != mode:
            raise IllegalTransitionError(
                command_type, f"not allowed while in {self.state.mode.value}"
            )

    def _activate(self, index: int) -> None:
        self.error_map = {}
        self.state = NavigationState(mode=NavigationMode.GROUP_ACTIVE, group_index=index)
        logger.debug(f"Active group: {index} ({self.schema.group_at(index).id})")
