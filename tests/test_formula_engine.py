"""
Test Formula Engine - dependency graph, cycle detection, recompute

Run with: pytest tests/test_formula_engine.py -v
"""

import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import pytest

from formengine.core.formula_engine import FormulaEngine
from formengine.core.schema_parser import SchemaParser
from formengine.errors import CycleDetectedError


def build_registry(formulas, raw_ids=()):
    """Single-group schema: raw TextBoxes plus calculated fields"""
    fields = [{"questionId": f, "question": f, "questionType": "TextBox"} for f in raw_ids]
    for field_id, source in formulas.items():
        fields.append({"questionId": field_id, "question": field_id,
                       "questionType": "TextBox", "questionCalculation": source})
    schema = [{"groupId": "g", "groupName": "G", "lstViewQuestionModel": fields}]
    return SchemaParser().parse(schema).registry


def test_two_field_cycle_rejected():
    registry = build_registry({"x": "y + 1", "y": "x + 1"})
    with pytest.raises(CycleDetectedError) as excinfo:
        FormulaEngine.build(registry)
    assert excinfo.value.cycle_field_ids == {"x", "y"}


def test_self_reference_rejected():
    registry = build_registry({"x": "x + 1"})
    with pytest.raises(CycleDetectedError) as excinfo:
        FormulaEngine.build(registry)
    assert excinfo.value.cycle_field_ids == {"x"}


def test_cycle_report_excludes_acyclic_fields():
    registry = build_registry(
        {"p": "q * 2", "q": "r - 1", "r": "p + 1", "ok": "a + 1"},
        raw_ids=["a"],
    )
    with pytest.raises(CycleDetectedError) as excinfo:
        FormulaEngine.build(registry)
    assert excinfo.value.cycle_field_ids == {"p", "q", "r"}


def test_topological_order_puts_dependencies_first():
    # Declared in reverse order on purpose
    registry = build_registry(
        {"grand": "total * 2", "total": "a + b"},
        raw_ids=["a", "b"],
    )
    engine = FormulaEngine.build(registry)

    assert engine.order == ("total", "grand")
    assert engine.dependencies_of("grand") == frozenset({"total"})
    assert engine.dependencies_of("a") == frozenset()
    assert engine.dependents_of("a") == ["total", "grand"]


def test_single_pass_chain_convergence():
    """A chain is fully up to date after one recompute"""
    registry = build_registry(
        {"c3": "c2 + 1", "c2": "c1 + 1", "c1": "a + 1"},
        raw_ids=["a"],
    )
    engine = FormulaEngine.build(registry)
    values = {field_id: None for field_id in registry}
    values["a"] = "1"

    result = engine.recompute(values, "a")

    assert result.values["c1"] == 2
    assert result.values["c2"] == 3
    assert result.values["c3"] == 4
    assert result.evaluation_errors == ()


def test_evaluation_error_keeps_previous_value_and_continues():
    registry = build_registry(
        {"total": "a + b", "double_a": "a * 2"},
        raw_ids=["a", "b"],
    )
    engine = FormulaEngine.build(registry)
    values = {"a": "3", "b": "oops", "total": 99, "double_a": None}

    result = engine.recompute(values, "b")

    assert result.values["total"] == 99, "Failed field keeps its old value"
    assert result.values["double_a"] == 6, "Other fields are still evaluated"
    assert [e.field_id for e in result.evaluation_errors] == ["total"]
    assert "not numeric" in result.evaluation_errors[0].reason


def test_recompute_is_idempotent():
    registry = build_registry({"total": "a + b", "half": "total / 2"}, raw_ids=["a", "b"])
    engine = FormulaEngine.build(registry)
    values = {"a": 4, "b": "6", "total": None, "half": None}

    first = engine.recompute(values, "a")
    second = engine.recompute(first.values, None)

    assert first.values == second.values
    assert second.values["half"] == 5


def test_recompute_does_not_mutate_input():
    registry = build_registry({"total": "a + 1"}, raw_ids=["a"])
    engine = FormulaEngine.build(registry)
    values = {"a": 1, "total": None}

    engine.recompute(values, "a")

    assert values == {"a": 1, "total": None}


def test_schema_without_formulas():
    registry = build_registry({}, raw_ids=["a", "b"])
    engine = FormulaEngine.build(registry)

    assert engine.order == ()
    result = engine.recompute({"a": 1, "b": 2}, "a")
    assert result.values == {"a": 1, "b": 2}
