"""
Formula Engine - dependency graph and recompute of calculated fields

Responsibilities:
- Build a directed graph (dependency -> calculated field) from the registry
- Reject cyclic derivations at load time (CycleDetectedError)
- Compute the topological evaluation order once
- Recompute every calculated field in that order on each raw change

Design principles:
- Built once per schema load, immutable afterwards
- recompute() is pure: values in, new values out; the caller swaps them in
- One failing formula never blocks the others: its previous value is kept
  and an EvaluationError record is returned
- Single pass: a dependency is always evaluated before any field reading it,
  so one pass leaves the snapshot fully consistent
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Tuple

import networkx as nx

from formengine.contracts import EvaluationError, FieldRegistry
from formengine.errors import CycleDetectedError, FormulaEvaluationError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RecomputeResult:
    """
    Outcome of one recompute pass.

    Attributes:
        values: Complete post-recompute mapping of field id -> value
        evaluation_errors: One record per calculated field that failed
                           (its previous value is still in values)
    """
    values: Dict[str, Any]
    evaluation_errors: Tuple[EvaluationError, ...] = ()


class FormulaEngine:
    """
    Dependency graph plus topological evaluation of calculated fields.

    Use FormulaEngine.build(registry) rather than the constructor.
    """

    def __init__(self, registry: FieldRegistry, graph: nx.DiGraph, order: List[str]):
        self.registry = registry
        self.graph = graph
        self.order: Tuple[str, ...] = tuple(order)

    # =========================================================================
    # Construction
    # =========================================================================

    @classmethod
    def build(cls, registry: FieldRegistry) -> "FormulaEngine":
        """
        Derive the dependency graph and evaluation order.

        Args:
            registry: Field registry from the schema parser

        Returns:
            FormulaEngine ready for recompute()

        Raises:
            CycleDetectedError: If calculated fields depend on each other in a
                                loop (self references included)
        """
        graph = nx.DiGraph()
        calculated_ids = []

        for field in registry.calculated_fields():
            calculated_ids.append(field.id)
            graph.add_node(field.id)
            for dependency_id in sorted(field.formula.references):
                graph.add_edge(dependency_id, field.id)

        if not nx.is_directed_acyclic_graph(graph):
            cycle_ids = set()
            for component in nx.strongly_connected_components(graph):
                if len(component) > 1:
                    cycle_ids.update(component)
            cycle_ids.update(node for node, _ in nx.selfloop_edges(graph))
            logger.error(f"Dependency cycle between calculated fields: {sorted(cycle_ids)}")
            raise CycleDetectedError(cycle_ids)

        # Lexicographic tie-break keeps the order deterministic across loads
        calculated = set(calculated_ids)
        order = [node for node in nx.lexicographical_topological_sort(graph) if node in calculated]

        logger.info(f"Formula engine built: {len(order)} calculated fields, "
                    f"{graph.number_of_edges()} dependency edges")
        return cls(registry, graph, order)

    # =========================================================================
    # Queries
    # =========================================================================

    def dependencies_of(self, field_id: str) -> frozenset:
        """Field ids read by field_id's formula (empty for raw fields)."""
        field = self.registry.get(field_id)
        if field is None or not field.is_calculated:
            return frozenset()
        return field.formula.references

    def dependents_of(self, field_id: str) -> List[str]:
        """Calculated fields whose value depends on field_id, directly or not."""
        if field_id not in self.graph:
            return []
        downstream = nx.descendants(self.graph, field_id)
        return [f for f in self.order if f in downstream]

    # =========================================================================
    # Recompute
    # =========================================================================

    def recompute(self, values: Mapping[str, Any], changed_field_id: Optional[str] = None) -> RecomputeResult:
        """
        Re-evaluate every calculated field in topological order.

        Each formula sees the changed raw value plus every value computed
        earlier in the same pass.

        Args:
            values: Current snapshot, already containing the new raw value
            changed_field_id: Field that triggered the pass (None for the
                              initial pass after a load); used for logging

        Returns:
            RecomputeResult with the new snapshot and any evaluation errors
        """
        working = dict(values)
        errors = []

        for field_id in self.order:
            formula = self.registry[field_id].formula
            try:
                working[field_id] = formula.evaluate(working)
            except FormulaEvaluationError as e:
                # Previous value stays in working
                errors.append(EvaluationError(field_id=field_id, reason=str(e)))
                logger.warning(f"Calculation error for {field_id}: {e}")

        logger.debug(f"Recomputed {len(self.order)} calculated fields "
                     f"(trigger: {changed_field_id or 'load'}, errors: {len(errors)})")
        return RecomputeResult(values=working, evaluation_errors=tuple(errors))
