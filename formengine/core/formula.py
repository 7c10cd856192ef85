"""
Formula compiler - restricted expression language for calculated fields

Responsibilities:
- Translate the JavaScript-style formula syntax found in ODK exports into a
  Python expression and parse it once
- Report the set of field ids an expression reads (for the dependency graph)
- Evaluate the expression against a read-only snapshot of field values

Design principles:
- Sandboxed: evaluation goes through simpleeval with no functions and an
  operator table limited to arithmetic, comparison and boolean operators.
  The parsed tree is checked against a node whitelist at compile time, so
  calls, attribute access and indexing never reach the evaluator.
- Bounded: nesting depth is capped, so hostile input fails to compile
  instead of exhausting the interpreter stack
- Stateless: a CompiledFormula never holds values between evaluations

Supported syntax:
    literals     12  3.5  'text'  "text"  true  false  null
    references   any identifier, resolved as a field id
    unary        -x  +x  !x
    arithmetic   *  /  %  +  -
    comparison   <  <=  >  >=  ==  !=  ===  !==
    logical      &&  ||
    conditional  cond ? a : b
    grouping     ( ... )

Usage:
    formula = compile_formula("a + b")
    formula.references        # frozenset({'a', 'b'})
    formula.evaluate({'a': '2', 'b': 3})   # 5
"""

import ast
import keyword
import math
import operator
import re
from dataclasses import dataclass
from typing import Any, FrozenSet, List, Mapping, Union

from simpleeval import NameNotDefined, SimpleEval

from formengine.errors import FormulaEvaluationError, FormulaSyntaxError
from formengine.utils.helpers import is_blank, normalize_number, to_number


MAX_FORMULA_LENGTH = 2000
MAX_NESTING_DEPTH = 150

# JavaScript token -> Python token
TOKEN_MAP = {
    '&&': 'and',
    '||': 'or',
    '!': '~',       # Invert keeps the unary precedence of JS `!`; evaluated as logical not
    '===': '==',
    '!==': '!=',
    'true': 'True',
    'false': 'False',
    'null': 'None',
    'undefined': 'None',
}

_TOKEN_RE = re.compile(r"""
    (?P<ws>\s+)
  | (?P<number>(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?)
  | (?P<string>'(?:[^'\\]|\\.)*'|"(?:[^"\\]|\\.)*")
  | (?P<ident>[A-Za-z_][A-Za-z0-9_]*)
  | (?P<op>===|!==|==|!=|<=|>=|&&|\|\||[-+*/%<>!?:()])
""", re.VERBOSE)

_ESCAPE_RE = re.compile(r"\\(.)")

ALLOWED_NODES = (
    ast.Expression, ast.BinOp, ast.UnaryOp, ast.BoolOp, ast.Compare, ast.IfExp,
    ast.Name, ast.Constant, ast.Load,
    ast.Add, ast.Sub, ast.Mult, ast.Div, ast.Mod,
    ast.UAdd, ast.USub, ast.Invert, ast.And, ast.Or,
    ast.Eq, ast.NotEq, ast.Lt, ast.LtE, ast.Gt, ast.GtE,
)


@dataclass(frozen=True)
class _Token:
    kind: str
    text: str
    position: int


class _NonNumericOperand(Exception):
    def __init__(self, value: Any):
        self.value = value


# =========================================================================
# Translation
# =========================================================================

def _tokenize(source: str) -> List[_Token]:
    tokens = []
    position = 0
    while position < len(source):
        match = _TOKEN_RE.match(source, position)
        if match is None:
            raise FormulaSyntaxError(f"Unexpected character {source[position]!r}", position)
        kind, text = match.lastgroup, match.group()
        if kind != 'ws':
            tokens.append(_Token(kind, _translate(kind, text, position), position))
        position = match.end()
    return tokens


def _translate(kind: str, text: str, position: int) -> str:
    if kind == 'number':
        if not any(ch in text for ch in '.eE'):
            return str(int(text))
        number = float(text)
        if not math.isfinite(number):
            raise FormulaSyntaxError(f"Number {text} is out of range", position)
        return repr(normalize_number(number))
    if kind == 'string':
        return repr(_ESCAPE_RE.sub(r"\1", text[1:-1]))
    if text in TOKEN_MAP:
        return TOKEN_MAP[text]
    if kind == 'ident' and keyword.iskeyword(text):
        raise FormulaSyntaxError(f"'{text}' cannot be used as a field name in formulas", position)
    return text


def _to_python(tokens: List[_Token], depth: int = 0) -> str:
    """Rebuild the expression, translating parenthesised groups recursively."""
    if depth > MAX_NESTING_DEPTH:
        raise FormulaSyntaxError("Formula is nested too deeply", tokens[0].position if tokens else -1)

    pieces: List[Union[_Token, str]] = []
    index = 0
    unary_run = 0
    while index < len(tokens):
        token = tokens[index]
        if token.kind == 'op' and token.text == ')':
            raise FormulaSyntaxError("Unexpected ')'", token.position)

        # Each prefix operator is one more level of nesting
        unary_run = unary_run + 1 if token.kind == 'op' and token.text in ('~', '-', '+') else 0
        if unary_run > MAX_NESTING_DEPTH:
            raise FormulaSyntaxError("Formula is nested too deeply", token.position)

        if token.kind != 'op' or token.text != '(':
            pieces.append(token)
            index += 1
            continue

        level, end = 1, index + 1
        while end < len(tokens) and level:
            if tokens[end].kind == 'op':
                level += {'(': 1, ')': -1}.get(tokens[end].text, 0)
            end += 1
        if level:
            raise FormulaSyntaxError("Unbalanced '('", token.position)
        pieces.append(f"({_to_python(tokens[index + 1:end - 1], depth + 1)})")
        index = end

    return _join_conditional(pieces)


def _join_conditional(pieces: List[Union[_Token, str]]) -> str:
    """`test ? then : otherwise` -> `(then) if (test) else (otherwise)`, right-associative."""
    marks = [i for i, p in enumerate(pieces) if isinstance(p, _Token) and p.kind == 'op' and p.text == '?']
    if not marks:
        return " ".join(p.text if isinstance(p, _Token) else p for p in pieces)

    question = marks[0]
    pending = 0
    for colon in range(question + 1, len(pieces)):
        piece = pieces[colon]
        if not isinstance(piece, _Token) or piece.kind != 'op':
            continue
        if piece.text == '?':
            pending += 1
        elif piece.text == ':':
            if pending == 0:
                break
            pending -= 1
    else:
        raise FormulaSyntaxError("Expected ':' in conditional", pieces[question].position)

    test, then, otherwise = pieces[:question], pieces[question + 1:colon], pieces[colon + 1:]
    if not (test and then and otherwise):
        raise FormulaSyntaxError("Incomplete conditional", pieces[question].position)
    return (f"({_join_conditional(then)}) if ({_join_conditional(test)}) "
            f"else ({_join_conditional(otherwise)})")


def _check_tree(node: ast.AST, depth: int = 0) -> None:
    if depth > MAX_NESTING_DEPTH:
        raise FormulaSyntaxError("Formula is nested too deeply")
    if not isinstance(node, ALLOWED_NODES):
        raise FormulaSyntaxError(f"Unsupported syntax: {type(node).__name__}")
    if isinstance(node, ast.Compare) and len(node.ops) > 1:
        raise FormulaSyntaxError("Chained comparisons need parentheses")
    for child in ast.iter_child_nodes(node):
        _check_tree(child, depth + 1)


# =========================================================================
# Operators
# =========================================================================

def _numeric(value: Any) -> Any:
    number = to_number(value)
    if number is None:
        raise _NonNumericOperand(value)
    return number


def _arithmetic(op):
    def apply(left, right):
        left, right = _numeric(left), _numeric(right)
        if op in (operator.truediv, math.fmod) and right == 0:
            raise FormulaEvaluationError("Division by zero")
        result = op(left, right)
        if isinstance(result, float) and not math.isfinite(result):
            raise FormulaEvaluationError("Result is out of numeric range")
        return normalize_number(result)
    return apply


def _comparison(op):
    def apply(left, right):
        left_number, right_number = to_number(left), to_number(right)
        if left_number is not None and right_number is not None:
            return op(left_number, right_number)
        if isinstance(left, str) and isinstance(right, str):
            return op(left, right)
        raise FormulaEvaluationError(f"Cannot compare {left!r} with {right!r}")
    return apply


def _equals(left: Any, right: Any) -> bool:
    left_number, right_number = to_number(left), to_number(right)
    if left_number is not None and right_number is not None:
        return left_number == right_number
    return left == right


def _truthy(value: Any) -> bool:
    if isinstance(value, float) and math.isnan(value):
        return False
    return bool(value)


OPERATORS = {
    ast.Add: _arithmetic(operator.add),
    ast.Sub: _arithmetic(operator.sub),
    ast.Mult: _arithmetic(operator.mul),
    ast.Div: _arithmetic(operator.truediv),
    # % keeps the sign of the dividend
    ast.Mod: _arithmetic(math.fmod),
    ast.USub: lambda value: normalize_number(-_numeric(value)),
    ast.UAdd: _numeric,
    ast.Invert: lambda value: not _truthy(value),
    ast.Eq: _equals,
    ast.NotEq: lambda left, right: not _equals(left, right),
    ast.Lt: _comparison(operator.lt),
    ast.LtE: _comparison(operator.le),
    ast.Gt: _comparison(operator.gt),
    ast.GtE: _comparison(operator.ge),
}


# =========================================================================
# Compiled formula
# =========================================================================

class CompiledFormula:
    """
    Executable form of a formula source string.

    Attributes:
        source: Original formula text
        expression: Translated Python expression
        references: Field ids read by the expression (static, both branches
                    of a conditional included)
    """

    def __init__(self, source: str, expression: str, tree: ast.Expression):
        self.source = source
        self.expression = expression
        self.tree = tree
        self.references: FrozenSet[str] = frozenset(
            node.id for node in ast.walk(tree) if isinstance(node, ast.Name)
        )

    def __repr__(self) -> str:
        return f"CompiledFormula({self.source!r})"

    def evaluate(self, values: Mapping[str, Any]) -> Any:
        """
        Evaluate against a snapshot of field values.

        Args:
            values: field id -> current value (missing ids read as unset)

        Returns:
            Computed value (number, string, bool or None)

        Raises:
            FormulaEvaluationError: Non-numeric operand, division by zero,
                                    incomparable operands
        """
        names = {field_id: values.get(field_id) for field_id in self.references}
        evaluator = SimpleEval(operators=OPERATORS, functions={}, names=names)
        try:
            return evaluator.eval(self.expression, previously_parsed=self.tree.body)
        except _NonNumericOperand as e:
            raise FormulaEvaluationError(self._describe_operand(e.value, names)) from None
        except NameNotDefined as e:
            raise FormulaEvaluationError(str(e)) from None
        except RecursionError:
            raise FormulaEvaluationError("Formula is nested too deeply") from None

    def _describe_operand(self, value: Any, names: Mapping[str, Any]) -> str:
        for field_id in sorted(names):
            if names[field_id] is value:
                if is_blank(value):
                    return f"Field '{field_id}' has no value"
                return f"Field '{field_id}' is not numeric (value {value!r})"
        return f"Expected a number, got {value!r}"


def compile_formula(source: str) -> CompiledFormula:
    """
    Compile formula source into a CompiledFormula.

    Raises:
        FormulaSyntaxError: Empty, oversized, too deeply nested or malformed formula
    """
    if not isinstance(source, str) or not source.strip():
        raise FormulaSyntaxError("Formula is empty")
    if len(source) > MAX_FORMULA_LENGTH:
        raise FormulaSyntaxError(f"Formula longer than {MAX_FORMULA_LENGTH} characters")

    try:
        expression = _to_python(_tokenize(source))
        tree = ast.parse(expression, mode='eval')
        _check_tree(tree)
    except SyntaxError as e:
        raise FormulaSyntaxError(f"Malformed formula: {e.msg}") from None
    except (RecursionError, MemoryError):
        raise FormulaSyntaxError("Formula is nested too deeply") from None

    return CompiledFormula(source, expression, tree)
