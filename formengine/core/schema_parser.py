"""
Schema Parser - turns raw ODK-style JSON into typed groups and fields

Responsibilities:
- Validate top-level structure (sequence of group records with id/name)
- Build typed Field variants from field records
- Compile calculation formulas
- Build the global FieldRegistry (ids unique across the whole schema)

Design principles:
- Fail fast on structural problems (SchemaParseError)
- Partial success on field problems: a bad field is dropped, or loses the
  broken attribute, and a ParseWarning is recorded; parsing continues
- Stateless: parse() holds nothing between calls

Wire format:
    [
      {
        "groupId": "g1",
        "groupName": "Household",
        "lstViewQuestionModel": [
          {"questionId": "age", "question": "Age", "questionType": "TextBox",
           "required": true, "minValue": 0, "maxValue": 120},
          {"questionId": "total", "question": "Total", "questionType": "TextBox",
           "questionCalculation": "a + b"}
        ]
      }
    ]
"""

import json
import logging
import math
import re
from dataclasses import dataclass, replace
from typing import Any, Dict, List, Optional, Tuple

from formengine.contracts import (
    ChoiceOption,
    DropdownField,
    Field,
    FieldKind,
    FieldRegistry,
    FormSchema,
    Group,
    ParseWarning,
    TextBoxField,
    UnrecognizedField,
)
from formengine.core.formula import compile_formula
from formengine.errors import FormulaSyntaxError, SchemaParseError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ParsedSchema:
    """
    Everything produced by one successful parse.

    Attributes:
        schema: Ordered groups with their typed fields
        registry: Global field id -> Field mapping
        warnings: Non-fatal problems, in schema order
    """
    schema: FormSchema
    registry: FieldRegistry
    warnings: Tuple[ParseWarning, ...] = ()


class SchemaParser:
    """
    Stateless parser for the group/field wire format.
    """

    # Wire-format keys
    GROUP_ID_KEY = "groupId"
    GROUP_NAME_KEY = "groupName"
    GROUP_FIELDS_KEY = "lstViewQuestionModel"

    FIELD_ID_KEY = "questionId"
    FIELD_LABEL_KEY = "question"
    FIELD_TYPE_KEY = "questionType"
    REQUIRED_FIELD_KEYS = (FIELD_ID_KEY, FIELD_LABEL_KEY, FIELD_TYPE_KEY)

    def parse(self, raw: Any) -> ParsedSchema:
        """
        Parse a raw schema.

        Args:
            raw: JSON text (str or bytes) or already-decoded list of groups

        Returns:
            ParsedSchema with schema, registry and warnings

        Raises:
            SchemaParseError: Undecodable JSON, top level not a list of group
                              records, group without id/name, duplicate
                              field id
        """
        data = self._decode(raw)

        if not isinstance(data, list):
            raise SchemaParseError(
                f"Top level must be a list of groups, got {type(data).__name__}"
            )

        warnings: List[ParseWarning] = []
        groups: List[Group] = []
        fields_by_id: Dict[str, Field] = {}

        for group_index, group_record in enumerate(data):
            group = self._parse_group(group_index, group_record, fields_by_id, warnings)
            groups.append(group)

        # Formulas may only read fields that exist somewhere in the schema
        self._disable_dangling_formulas(groups, fields_by_id, warnings)

        for warning in warnings:
            logger.warning(f"Schema warning [{warning.field_context}]: {warning.reason}")

        registry = FieldRegistry(fields_by_id)
        logger.info(
            f"Schema parsed: {len(groups)} groups, {len(registry)} fields, "
            f"{len(registry.calculated_fields())} calculated, {len(warnings)} warnings"
        )
        return ParsedSchema(
            schema=FormSchema(groups=tuple(groups)),
            registry=registry,
            warnings=tuple(warnings),
        )

    # =========================================================================
    # Groups
    # =========================================================================

    def _decode(self, raw: Any) -> Any:
        if isinstance(raw, (bytes, bytearray)):
            try:
                raw = raw.decode("utf-8")
            except UnicodeDecodeError as e:
                raise SchemaParseError(f"Schema is not UTF-8 text: {e}")
        if isinstance(raw, str):
            try:
                return json.loads(raw)
            except json.JSONDecodeError as e:
                raise SchemaParseError(f"Invalid JSON: {e}")
        return raw

    def _parse_group(self, group_index: int, record: Any,
                     fields_by_id: Dict[str, Field], warnings: List[ParseWarning]) -> Group:
        if not isinstance(record, dict):
            raise SchemaParseError(
                f"Group #{group_index} must be an object, got {type(record).__name__}"
            )

        group_id = _as_text(record.get(self.GROUP_ID_KEY))
        group_name = _as_text(record.get(self.GROUP_NAME_KEY))
        if not group_id:
            raise SchemaParseError(f"Group #{group_index} is missing '{self.GROUP_ID_KEY}'")
        if not group_name:
            raise SchemaParseError(f"Group '{group_id}' is missing '{self.GROUP_NAME_KEY}'")

        field_records = record.get(self.GROUP_FIELDS_KEY)
        if field_records is None:
            field_records = []
        if not isinstance(field_records, list):
            raise SchemaParseError(
                f"Group '{group_id}' has a non-list '{self.GROUP_FIELDS_KEY}'"
            )

        fields = []
        for field_index, field_record in enumerate(field_records):
            context = f"group '{group_id}' field #{field_index}"
            field = self._parse_field(context, field_record, warnings)
            if field is None:
                continue

            if field.id in fields_by_id:
                raise SchemaParseError(f"Duplicate field id '{field.id}' ({context})")

            fields_by_id[field.id] = field
            fields.append(field)

        return Group(id=group_id, name=group_name, fields=tuple(fields))

    # =========================================================================
    # Fields
    # =========================================================================

    def _parse_field(self, context: str, record: Any,
                     warnings: List[ParseWarning]) -> Optional[Field]:
        """Build one Field variant, or return None if the record is dropped."""
        if not isinstance(record, dict):
            warnings.append(ParseWarning(context, "Field record is not an object; dropped"))
            return None

        missing = [key for key in self.REQUIRED_FIELD_KEYS if _as_text(record.get(key)) is None]
        if missing:
            field_id = _as_text(record.get(self.FIELD_ID_KEY))
            if field_id:
                context = f"{context} ({field_id})"
            warnings.append(ParseWarning(
                context, f"Missing required key(s) {', '.join(missing)}; dropped"
            ))
            return None

        field_id = _as_text(record[self.FIELD_ID_KEY])
        context = f"{context} ({field_id})"
        type_tag = _as_text(record[self.FIELD_TYPE_KEY])

        common = {
            'id': field_id,
            'label': _as_text(record[self.FIELD_LABEL_KEY]),
            'required': _as_bool(record.get("required")),
            'min_value': self._parse_bound(context, record, "minValue", warnings),
            'max_value': self._parse_bound(context, record, "maxValue", warnings),
            'parent_id': _as_text(record.get("parentQuestionId")),
        }
        common.update(self._parse_regex(context, record.get("regex"), warnings))
        common.update(self._parse_calculation(context, record.get("questionCalculation"), warnings))

        if (common['min_value'] is not None and common['max_value'] is not None
                and common['min_value'] > common['max_value']):
            warnings.append(ParseWarning(
                context, f"minValue {common['min_value']} exceeds maxValue {common['max_value']}"
            ))

        if type_tag == FieldKind.TEXT_BOX.value:
            return TextBoxField(**common)

        if type_tag == FieldKind.DROPDOWN.value:
            options = self._parse_options(context, record.get("controlValue"), warnings)
            return DropdownField(options=options, **common)

        warnings.append(ParseWarning(
            context, f"Unsupported questionType '{type_tag}'; kept without a widget"
        ))
        return UnrecognizedField(raw_type=type_tag, **common)

    def _parse_bound(self, context: str, record: dict, key: str,
                     warnings: List[ParseWarning]) -> Optional[float]:
        raw = record.get(key)
        if raw is None or (isinstance(raw, str) and not raw.strip()):
            return None
        if isinstance(raw, bool):
            number = None
        else:
            try:
                number = float(raw)
                if not math.isfinite(number):
                    number = None
            except (TypeError, ValueError):
                number = None
        if number is None:
            warnings.append(ParseWarning(context, f"{key} {raw!r} is not numeric; ignored"))
        return number

    def _parse_regex(self, context: str, raw: Any, warnings: List[ParseWarning]) -> dict:
        regex = _as_text(raw)
        if regex is None:
            return {}
        try:
            return {'regex': regex, 'pattern': re.compile(regex)}
        except re.error as e:
            warnings.append(ParseWarning(context, f"Invalid regex {regex!r}: {e}; ignored"))
            return {}

    def _parse_calculation(self, context: str, raw: Any, warnings: List[ParseWarning]) -> dict:
        source = _as_text(raw)
        if source is None:
            return {}
        try:
            return {'calculation_expr': source, 'formula': compile_formula(source)}
        except FormulaSyntaxError as e:
            warnings.append(ParseWarning(
                context, f"Formula {source!r} could not be compiled ({e}); treated as a plain field"
            ))
            return {'calculation_expr': source}

    def _parse_options(self, context: str, raw: Any,
                       warnings: List[ParseWarning]) -> Tuple[ChoiceOption, ...]:
        if raw is None:
            return ()
        if not isinstance(raw, list):
            warnings.append(ParseWarning(context, "controlValue is not a list; no options"))
            return ()

        options = []
        for index, item in enumerate(raw):
            label = _as_text(item.get("label")) if isinstance(item, dict) else None
            if label is None:
                warnings.append(ParseWarning(context, f"Option #{index} has no label; skipped"))
                continue
            value = item.get("value")
            options.append(ChoiceOption(label=label, value=label if value is None else value))
        return tuple(options)

    def _disable_dangling_formulas(self, groups: List[Group], fields_by_id: Dict[str, Field],
                                   warnings: List[ParseWarning]) -> None:
        """Strip formulas that read unknown ids, rebuilding affected groups in place."""
        replaced: Dict[str, Field] = {}
        for field_id, field in fields_by_id.items():
            if not field.is_calculated:
                continue
            unknown = sorted(ref for ref in field.formula.references if ref not in fields_by_id)
            if not unknown:
                continue
            warnings.append(ParseWarning(
                f"field '{field_id}'",
                f"Formula references unknown field(s) {', '.join(unknown)}; treated as a plain field",
            ))
            replaced[field_id] = replace(field, formula=None)

        if not replaced:
            return

        fields_by_id.update(replaced)
        for index, group in enumerate(groups):
            if any(f.id in replaced for f in group.fields):
                groups[index] = replace(
                    group, fields=tuple(replaced.get(f.id, f) for f in group.fields)
                )


def _as_text(value: Any) -> Optional[str]:
    """Normalize ids/labels: numbers become strings, blanks become None."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return str(value)
    if isinstance(value, str):
        return value if value.strip() else None
    return None


def _as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("true", "1", "yes")
    return bool(value)
