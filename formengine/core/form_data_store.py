"""
Form Data Store - the single mutable field id -> value mapping

Responsibilities:
- Hold the current answer of every field in the registry
- Provide the only write path (set_field), which recomputes derived fields
- Hand out read-only snapshots

Design principles:
- Dumb container plus one rule: after every write the calculated fields
  are consistent with their dependencies
- Recompute runs on a working copy; the store swaps it in only when the
  pass is finished, so readers never see a half-updated mapping
"""

import logging
from typing import Any, Dict, Optional, Tuple

from formengine.commands import FormSnapshot
from formengine.contracts import EvaluationError, FieldRegistry
from formengine.core.formula_engine import FormulaEngine
from formengine.errors import UnknownFieldError

logger = logging.getLogger(__name__)


class FormDataStore:
    """Answers for one form-filling session."""

    def __init__(self, registry: FieldRegistry, formula_engine: FormulaEngine):
        """
        Create a store with every field unset, then run the initial
        recompute so formulas without inputs get their value.

        Args:
            registry: Field registry of the loaded schema
            formula_engine: Engine built from the same registry
        """
        self.registry = registry
        self.formula_engine = formula_engine
        self._values: Dict[str, Any] = {}
        self.last_evaluation_errors: Tuple[EvaluationError, ...] = ()
        self.reset()

    def reset(self) -> FormSnapshot:
        """Discard all answers and recompute from scratch."""
        self._commit({field_id: None for field_id in self.registry}, changed_field_id=None)
        logger.info(f"Data store reset: {len(self._values)} fields")
        return self.snapshot()

    def set_field(self, field_id: str, raw_value: Any) -> FormSnapshot:
        """
        Write one answer and bring derived fields up to date.

        Args:
            field_id: Field to write
            raw_value: New raw value (string, number, bool or None)

        Returns:
            Consistent post-recompute snapshot

        Raises:
            UnknownFieldError: If field_id is not in the registry
        """
        if field_id not in self.registry:
            raise UnknownFieldError(field_id)

        working = dict(self._values)
        working[field_id] = raw_value
        self._commit(working, changed_field_id=field_id)

        logger.debug(f"Set {field_id} = {raw_value!r}")
        return self.snapshot()

    def get(self, field_id: str, default: Any = None) -> Any:
        return self._values.get(field_id, default)

    def snapshot(self) -> FormSnapshot:
        return FormSnapshot(_values=self._values)

    def _commit(self, working: Dict[str, Any], changed_field_id: Optional[str]) -> None:
        result = self.formula_engine.recompute(working, changed_field_id)
        self._values = result.values
        self.last_evaluation_errors = result.evaluation_errors
