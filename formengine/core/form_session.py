"""
Form Session - orchestration of one form-filling session

Responsibilities:
- Load schemas (parse -> build formula engine -> new store -> reset navigation)
- Expose the collaborator interface used by UI layers
- Dispatch command objects to the matching operation
- Turn rejected navigation into IllegalCommand results

Design principles:
- Thin orchestration layer (logic lives in parser, engine, validator,
  controller and store)
- All-or-nothing load: every load-time structure is built before anything
  is installed, so a failed load leaves the previous session untouched
- Synchronous: each command runs to completion before returning
"""

import logging
from dataclasses import dataclass
from typing import Any, List, Optional, Tuple, Union

from formengine.commands import (
    EMPTY_SNAPSHOT,
    Back,
    Command,
    FormSnapshot,
    LoadSchema,
    Next,
    Previous,
    SelectGroup,
    SetField,
)
from formengine.contracts import EvaluationError, Field, FieldRegistry, FormSchema, ParseWarning
from formengine.core.form_data_store import FormDataStore
from formengine.core.formula_engine import FormulaEngine
from formengine.core.navigation_controller import NavigationController, NavigationState
from formengine.core.schema_parser import SchemaParser
from formengine.core.validation_engine import ValidationEngine
from formengine.errors import IllegalTransitionError, UnknownFieldError
from formengine.results import CommandResult, IllegalCommand
from formengine.utils.helpers import generate_session_id

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FieldView:
    """
    One field of the active group as the UI should render it.

    Attributes:
        field: Typed field definition
        value: Current answer (or derived value)
        error: Validation message, None if the field is valid
    """
    field: Field
    value: Any
    error: Optional[str]


@dataclass(frozen=True)
class GroupSummary:
    """Entry of the group list."""
    index: int
    id: str
    name: str


class FormSession:
    """
    Owns the loaded schema, its formula engine, the data store and the
    navigation controller for one user's session.
    """

    def __init__(self, parser: Optional[SchemaParser] = None,
                 validation_engine: Optional[ValidationEngine] = None):
        """
        Args:
            parser: Schema parser (default SchemaParser())
            validation_engine: Validator used by navigation (default ValidationEngine())
        """
        self.parser = parser or SchemaParser()
        self.navigation = NavigationController(validation_engine or ValidationEngine())
        self.session_id = generate_session_id()

        self.schema: Optional[FormSchema] = None
        self.registry: Optional[FieldRegistry] = None
        self.formula_engine: Optional[FormulaEngine] = None
        self.store: Optional[FormDataStore] = None
        self.warnings: Tuple[ParseWarning, ...] = ()

        logger.info(f"Form session {self.session_id} created")

    # =========================================================================
    # Queries
    # =========================================================================

    def current_state(self) -> NavigationState:
        return self.navigation.state

    def available_actions(self) -> List[str]:
        return self.navigation.available_actions()

    def group_list(self) -> List[GroupSummary]:
        if self.schema is None:
            return []
        return [GroupSummary(index=i, id=g.id, name=g.name) for i, g in enumerate(self.schema.groups)]

    def active_group_fields(self) -> List[FieldView]:
        """Fields of the active group with value and error attached (empty if none active)."""
        group = self.navigation.active_group()
        if group is None:
            return []
        return [
            FieldView(field=f, value=self.field_value(f.id), error=self.field_error(f.id))
            for f in group.fields
        ]

    def field_value(self, field_id: str) -> Any:
        if self.store is None:
            return None
        return self.store.get(field_id)

    def field_error(self, field_id: str) -> Optional[str]:
        return self.navigation.error_map.get(field_id)

    def snapshot(self) -> FormSnapshot:
        return self.store.snapshot() if self.store is not None else EMPTY_SNAPSHOT

    # =========================================================================
    # Commands
    # =========================================================================

    def handle(self, command: Command) -> Union[CommandResult, IllegalCommand]:
        """
        Dispatch a command object.

        Raises:
            TypeError: If command is not one of the Command types
        """
        if isinstance(command, LoadSchema):
            return self.load_schema(command.raw)
        if isinstance(command, SelectGroup):
            return self.select_group(command.index)
        if isinstance(command, SetField):
            return self.set_field(command.field_id, command.value)
        if isinstance(command, Next):
            return self.next()
        if isinstance(command, Previous):
            return self.previous()
        if isinstance(command, Back):
            return self.back()
        raise TypeError(f"Unknown command: {command!r}")

    def load_schema(self, raw: Any) -> CommandResult:
        """
        Parse, build and install a schema; resets answers and navigation.

        Raises:
            SchemaParseError: Structurally invalid schema
            CycleDetectedError: Circular calculated fields
        """
        parsed = self.parser.parse(raw)
        engine = FormulaEngine.build(parsed.registry)
        store = FormDataStore(parsed.registry, engine)

        # Everything built; install
        self.schema = parsed.schema
        self.registry = parsed.registry
        self.formula_engine = engine
        self.store = store
        self.warnings = parsed.warnings
        self.navigation.load(parsed.schema)

        logger.info(f"Session {self.session_id}: schema loaded "
                    f"({parsed.schema.group_count} groups, {len(parsed.warnings)} warnings)")
        return self._result(evaluation_errors=store.last_evaluation_errors)

    def select_group(self, index: int) -> Union[CommandResult, IllegalCommand]:
        return self._navigate(SelectGroup.__name__, lambda: self.navigation.select_group(index))

    def back(self) -> Union[CommandResult, IllegalCommand]:
        return self._navigate(Back.__name__, self.navigation.back)

    def previous(self) -> Union[CommandResult, IllegalCommand]:
        return self._navigate(Previous.__name__, self.navigation.previous)

    def next(self) -> Union[CommandResult, IllegalCommand]:
        return self._navigate(Next.__name__, lambda: self.navigation.next(self.snapshot().values))

    def set_field(self, field_id: str, value: Any) -> CommandResult:
        """
        Write an answer.

        Raises:
            UnknownFieldError: No schema loaded, or field_id not in it
        """
        if self.store is None:
            raise UnknownFieldError(field_id)
        self.store.set_field(field_id, value)
        return self._result(evaluation_errors=self.store.last_evaluation_errors)

    # =========================================================================
    # Helpers
    # =========================================================================

    def _navigate(self, command_type: str, transition) -> Union[CommandResult, IllegalCommand]:
        try:
            transition()
        except IllegalTransitionError as e:
            logger.warning(f"Rejected {command_type}: {e.reason}")
            return IllegalCommand(reason=e.reason, command_type=command_type,
                                  state=self.navigation.state)
        return self._result()

    def _result(self, evaluation_errors: Tuple[EvaluationError, ...] = ()) -> CommandResult:
        return CommandResult(
            state=self.navigation.state,
            snapshot=self.snapshot(),
            errors=dict(self.navigation.error_map),
            warnings=self.warnings,
            evaluation_errors=evaluation_errors,
            available_actions=tuple(self.navigation.available_actions()),
        )
