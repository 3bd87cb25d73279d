"""Restricted formula evaluation for derived fields.

Formulas reference parent fields by id. Parent values are substituted into the
text as literals, after which the text is handled in one of three ways:

- the age shorthand (single date parent, formula mentions ``age``) returns the
  number of calendar years between the parent date and today;
- pure arithmetic (digits, whitespace, ``+ - * / ( ) .``) is evaluated by
  walking a Python AST restricted to numbers and the four operators;
- ``+`` chains of string and numeric literals are concatenated.

Everything else is returned as display text. Nothing is ever executed as code.
"""

import ast
import json
import logging
import math
import re
from datetime import date, datetime
from typing import Any, Mapping, Optional, Union

from app.errors import FormulaError

logger = logging.getLogger(__name__)

ARITHMETIC_PATTERN = re.compile(r"[0-9\s+\-*/().]+")
LEADING_ZEROS_PATTERN = re.compile(r"(?<![0-9.])0+(?=[0-9])")
MAX_FORMULA_LENGTH = 2000

Number = Union[int, float]


class _Unsupported(Exception):
    """The expression uses syntax outside the formula grammar."""


def format_number(value: Number) -> str:
    """Render a number the way the editor displays it (``14`` not ``14.0``)."""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int):
        return str(value)
    if value.is_integer() and abs(value) < 1e21:
        return str(int(value))
    return repr(value)


def _literal(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        text = format_number(value)
        return f"({text})" if value < 0 else text
    return json.dumps(value, ensure_ascii=False)


def substitute_fields(formula: str, parent_values: Mapping[str, Any]) -> str:
    """Replace whole-token field ids in ``formula`` with literal values."""
    if not parent_values:
        return formula
    field_ids = sorted((key for key in parent_values if key), key=len, reverse=True)
    if not field_ids:
        return formula
    pattern = re.compile(
        r"(?<!\w)(" + "|".join(re.escape(field_id) for field_id in field_ids) + r")(?!\w)"
    )
    return pattern.sub(lambda match: _literal(parent_values[match.group(1)]), formula)


def _parse_date(value: Any) -> Optional[date]:
    if isinstance(value, date):
        return value
    if not isinstance(value, str) or not value.strip():
        return None
    try:
        return datetime.fromisoformat(value.strip()).date()
    except ValueError:
        return None


def _is_age_formula(
    formula: str,
    parent_values: Mapping[str, Any],
    parent_types: Optional[Mapping[str, str]],
) -> bool:
    if len(parent_values) != 1 or "age" not in formula.lower():
        return False
    parent_id, value = next(iter(parent_values.items()))
    if parent_types is not None:
        return parent_types.get(parent_id) == "date"
    return _parse_date(value) is not None


def _compute_age(value: Any, today: date) -> str:
    if value is None or (isinstance(value, str) and not value.strip()):
        return ""
    born = _parse_date(value)
    if born is None:
        raise FormulaError("invalid date")
    return str(today.year - born.year)


def _binary(op: ast.operator, left: Any, right: Any) -> Any:
    if isinstance(left, str) or isinstance(right, str):
        if not isinstance(op, ast.Add):
            raise _Unsupported("only + applies to text")
        left_text = left if isinstance(left, str) else format_number(left)
        right_text = right if isinstance(right, str) else format_number(right)
        return left_text + right_text
    if isinstance(op, ast.Add):
        return left + right
    if isinstance(op, ast.Sub):
        return left - right
    if isinstance(op, ast.Mult):
        return left * right
    if isinstance(op, ast.Div):
        if right == 0:
            raise FormulaError("invalid expression")
        return left / right
    raise _Unsupported(type(op).__name__)


def _eval_node(node: ast.AST, allow_text: bool) -> Any:
    if isinstance(node, ast.Expression):
        return _eval_node(node.body, allow_text)

    if isinstance(node, ast.Constant):
        if isinstance(node.value, bool):
            raise _Unsupported("boolean literal")
        if isinstance(node.value, (int, float)):
            return node.value
        if allow_text and isinstance(node.value, str):
            return node.value
        raise _Unsupported(type(node.value).__name__)

    if isinstance(node, ast.UnaryOp) and isinstance(node.op, (ast.UAdd, ast.USub)):
        operand = _eval_node(node.operand, allow_text)
        if isinstance(operand, str):
            raise _Unsupported("unary operator on text")
        return operand if isinstance(node.op, ast.UAdd) else -operand

    if isinstance(node, ast.BinOp):
        left = _eval_node(node.left, allow_text)
        right = _eval_node(node.right, allow_text)
        result = _binary(node.op, left, right)
        if isinstance(result, float) and not math.isfinite(result):
            raise FormulaError("invalid expression")
        return result

    raise _Unsupported(type(node).__name__)


def _parse(text: str) -> ast.Expression:
    return ast.parse(text.strip(), mode="eval")


def evaluate_arithmetic(expression: str) -> str:
    """Evaluate an arithmetic-only expression and return the stringified result."""
    normalized = LEADING_ZEROS_PATTERN.sub("", " ".join(expression.split()))
    try:
        tree = _parse(normalized)
        return format_number(_eval_node(tree, allow_text=False))
    except (SyntaxError, ValueError, OverflowError, RecursionError, MemoryError, _Unsupported) as exc:
        raise FormulaError("invalid expression") from exc


def _try_concatenation(expression: str) -> Optional[str]:
    try:
        tree = _parse(expression)
        result = _eval_node(tree, allow_text=True)
    except (SyntaxError, ValueError, OverflowError, RecursionError, MemoryError, _Unsupported):
        return None
    return result if isinstance(result, str) else None


def evaluate(
    formula: str,
    parent_values: Mapping[str, Any],
    parent_types: Optional[Mapping[str, str]] = None,
    today: Optional[date] = None,
) -> str:
    """Evaluate ``formula`` against the current values of its parent fields.

    ``parent_types`` maps parent ids to field types; when omitted, a parent
    counts as a date if its value parses as an ISO date. Raises
    :class:`FormulaError` for malformed arithmetic or an unreadable date.
    """
    if not formula or not formula.strip():
        return ""
    if len(formula) > MAX_FORMULA_LENGTH:
        raise FormulaError("formula too long")

    if _is_age_formula(formula, parent_values, parent_types):
        value = next(iter(parent_values.values()))
        return _compute_age(value, today or date.today())

    expression = substitute_fields(formula, parent_values)

    if ARITHMETIC_PATTERN.fullmatch(expression):
        return evaluate_arithmetic(expression)

    concatenated = _try_concatenation(expression)
    if concatenated is not None:
        return concatenated

    logger.debug("Formula %r is not computable; returning it as display text", formula)
    return expression
