"""
Test Validation Engine - per-group constraint checks

Run with: pytest tests/test_validation_engine.py -v
"""

import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import re

from formengine.contracts import ChoiceOption, DropdownField, TextBoxField, UnrecognizedField
from formengine.core.validation_engine import ValidationEngine


def test_required_blank_values():
    """None, empty and whitespace-only answers fail a required field"""
    engine = ValidationEngine()
    age = TextBoxField(id="age", label="Age", required=True)

    for blank in (None, "", "   \t"):
        result = engine.validate([age], {"age": blank})
        assert result.is_valid is False
        assert result.errors == {"age": "This field is required"}

    assert engine.validate([age], {}).errors == {"age": "This field is required"}
    assert engine.validate([age], {"age": "30"}).is_valid
    assert engine.validate([age], {"age": 0}).is_valid, "Zero is an answer"

    print("✓ Required rule test passed")


def test_optional_blank_skips_other_rules():
    field = TextBoxField(id="code", label="Code", min_value=5, regex=r"^\d+$",
                         pattern=re.compile(r"^\d+$"))
    assert ValidationEngine().validate([field], {"code": ""}).is_valid


def test_range_rules():
    engine = ValidationEngine()
    age = TextBoxField(id="age", label="Age", min_value=0, max_value=120)

    assert engine.validate([age], {"age": "-1"}).errors == {"age": "Value must be at least 0"}
    assert engine.validate([age], {"age": 121}).errors == {"age": "Value must be at most 120"}
    assert engine.validate([age], {"age": "120"}).is_valid
    assert engine.validate([age], {"age": "abc"}).is_valid, "Range only applies to numeric values"


def test_fractional_bound_message():
    field = TextBoxField(id="w", label="Weight", min_value=0.5)
    assert ValidationEngine().validate([field], {"w": "0.1"}).errors == {
        "w": "Value must be at least 0.5"
    }


def test_pattern_rule():
    engine = ValidationEngine()
    phone = TextBoxField(id="phone", label="Phone", regex=r"^\d{10}$",
                         pattern=re.compile(r"^\d{10}$"))

    assert engine.validate([phone], {"phone": "12345"}).errors == {
        "phone": "Value does not match the expected format"
    }
    assert engine.validate([phone], {"phone": "0123456789"}).is_valid


def test_unanchored_pattern_searches():
    field = TextBoxField(id="email", label="Email", regex="@", pattern=re.compile("@"))
    assert ValidationEngine().validate([field], {"email": "a@b.c"}).is_valid


def test_rule_order_is_deterministic():
    """Range is reported before pattern when both fail"""
    field = TextBoxField(id="n", label="N", max_value=10, regex=r"^\d$",
                         pattern=re.compile(r"^\d$"))
    result = ValidationEngine().validate([field], {"n": "99"})
    assert result.errors == {"n": "Value must be at most 10"}


def test_dropdown_option_rule():
    engine = ValidationEngine()
    sex = DropdownField(id="sex", label="Sex", options=(
        ChoiceOption(label="Male", value="m"),
        ChoiceOption(label="Female", value="Female"),
    ))

    assert engine.validate([sex], {"sex": "m"}).is_valid
    assert engine.validate([sex], {"sex": "Male"}).is_valid, "Labels are accepted too"
    assert engine.validate([sex], {"sex": "x"}).errors == {
        "sex": "Please select one of the listed options"
    }


def test_unrecognized_field_uses_common_rules_only():
    field = UnrecognizedField(id="d", label="Date", required=True, raw_type="DatePicker")
    engine = ValidationEngine()
    assert not engine.validate([field], {"d": None}).is_valid
    assert engine.validate([field], {"d": "2024-01-01"}).is_valid


def test_only_given_fields_are_validated():
    engine = ValidationEngine()
    a = TextBoxField(id="a", label="A", required=True)
    b = TextBoxField(id="b", label="B", required=True)

    result = engine.validate([a], {"a": "x", "b": None})
    assert result.is_valid
    assert "b" not in result.errors


def test_validation_does_not_mutate_values():
    values = {"a": "  "}
    ValidationEngine().validate([TextBoxField(id="a", label="A", required=True)], values)
    assert values == {"a": "  "}


def test_error_records():
    a = TextBoxField(id="a", label="A", required=True)
    records = ValidationEngine().validate([a], {}).as_records()
    assert len(records) == 1
    assert records[0].field_id == "a"
    assert records[0].reason == "This field is required"
