"""Placeholder templates and guard conditions evaluated against an execution context.

Two tiny languages live here:

- Parameter templates: strings with ``{{name}}`` markers. A string is parsed into
  ``Literal`` and ``ContextReference`` parts and rendered against the context.
  A reference to a name missing from the context renders as the original marker
  text, so an unresolved value stays visible in tool input and logs.
- Guard conditions: exactly three whitespace-separated tokens,
  ``<name> <operator> <literal>``. Conditions are parsed once into a
  ``Comparison``; malformed conditions fail open unless strict mode is on.
"""

from __future__ import annotations

import json
import math
import re
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

_MARKER_PATTERN = re.compile(r"\{\{(\w+)\}\}")

OPERATORS: tuple[str, ...] = (">", "<", ">=", "<=", "==", "===", "!=", "!==")


class ConditionError(ValueError):
    """Raised for a malformed guard condition when strict parsing is requested."""


@dataclass(frozen=True, slots=True)
class Literal:
    """Verbatim template text."""

    text: str


@dataclass(frozen=True, slots=True)
class ContextReference:
    """Reference to a context value by name."""

    name: str

    @property
    def marker(self) -> str:
        return "{{" + self.name + "}}"


TemplatePart = Literal | ContextReference


def parse_template(text: str) -> tuple[TemplatePart, ...]:
    """Split a parameter string into literal and context-reference parts."""

    parts: list[TemplatePart] = []
    cursor = 0
    for match in _MARKER_PATTERN.finditer(text):
        if match.start() > cursor:
            parts.append(Literal(text[cursor : match.start()]))
        parts.append(ContextReference(match.group(1)))
        cursor = match.end()
    if cursor < len(text):
        parts.append(Literal(text[cursor:]))
    return tuple(parts)


def render_template(parts: tuple[TemplatePart, ...], context: Mapping[str, Any]) -> str:
    """Render parsed template parts to text against the context."""

    chunks: list[str] = []
    for part in parts:
        if isinstance(part, Literal):
            chunks.append(part.text)
        elif part.name in context:
            chunks.append(_to_text(context[part.name]))
        else:
            chunks.append(part.marker)
    return "".join(chunks)


def resolve_value(value: Any, context: Mapping[str, Any]) -> Any:
    """Resolve one parameter value; non-strings pass through unchanged."""

    if not isinstance(value, str):
        return value
    parts = parse_template(value)
    if not any(isinstance(part, ContextReference) for part in parts):
        return value
    return render_template(parts, context)


def resolve_params(params: Mapping[str, Any], context: Mapping[str, Any]) -> dict[str, Any]:
    """Resolve every parameter of a step against the context."""

    return {key: resolve_value(value, context) for key, value in params.items()}


@dataclass(frozen=True, slots=True)
class Comparison:
    """Parsed ``<name> <operator> <literal>`` guard."""

    left: str
    operator: str
    right: int | float | str

    def evaluate(self, context: Mapping[str, Any]) -> bool:
        """Compare the context value named by ``left`` against the literal."""

        actual = context.get(self.left)
        if self.operator == "==":
            return _loose_equals(actual, self.right)
        if self.operator == "!=":
            return not _loose_equals(actual, self.right)
        if self.operator == "===":
            return _strict_equals(actual, self.right)
        if self.operator == "!==":
            return not _strict_equals(actual, self.right)
        return _ordered(actual, self.operator, self.right)

    def __str__(self) -> str:
        return f"{self.left} {self.operator} {self.right}"


def parse_condition(expression: str, *, strict: bool = False) -> Comparison | None:
    """Parse a guard expression.

    Returns ``None`` for a malformed expression, which callers treat as an
    absent guard. With ``strict=True`` a malformed expression raises
    ``ConditionError`` instead.
    """

    tokens = expression.split()
    if len(tokens) != 3:
        if strict:
            raise ConditionError(
                f"Condition must have exactly 3 tokens '<name> <operator> <literal>': "
                f"{expression!r}",
            )
        return None

    name, operator, literal = tokens
    if operator not in OPERATORS:
        if strict:
            raise ConditionError(f"Unsupported operator {operator!r} in condition {expression!r}")
        return None
    return Comparison(left=name, operator=operator, right=parse_literal(literal))


def evaluate_condition(
    expression: str,
    context: Mapping[str, Any],
    *,
    strict: bool = False,
) -> bool:
    """Evaluate a guard expression; malformed expressions are true unless strict."""

    comparison = parse_condition(expression, strict=strict)
    if comparison is None:
        return True
    return comparison.evaluate(context)


def parse_literal(token: str) -> int | float | str:
    """Parse a numeric literal when it parses cleanly, else keep the string."""

    try:
        return int(token)
    except ValueError:
        pass
    try:
        number = float(token)
    except ValueError:
        return token
    if math.isnan(number):
        return token
    return number


def _to_text(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, (dict, list)):
        return json.dumps(value, ensure_ascii=False, default=str)
    return str(value)


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _as_number(value: Any) -> float | None:
    if isinstance(value, bool):
        return float(value)
    if _is_number(value):
        return float(value)
    if isinstance(value, str):
        try:
            number = float(value.strip() or "0")
        except ValueError:
            return None
        return None if math.isnan(number) else number
    return None


def _loose_equals(actual: Any, expected: Any) -> bool:
    if actual is None:
        return False
    if isinstance(actual, str) and isinstance(expected, str):
        return actual == expected
    if _is_number(expected) or _is_number(actual) or isinstance(actual, bool):
        left = _as_number(actual)
        right = _as_number(expected)
        return left is not None and right is not None and left == right
    return actual == expected


def _strict_equals(actual: Any, expected: Any) -> bool:
    if _is_number(actual) and _is_number(expected):
        return actual == expected
    return type(actual) is type(expected) and actual == expected


def _ordered(actual: Any, operator: str, expected: Any) -> bool:
    if isinstance(actual, str) and isinstance(expected, str):
        return _compare(actual, operator, expected)
    left = _as_number(actual)
    right = _as_number(expected)
    if left is None or right is None:
        return False
    return _compare(left, operator, right)


def _compare(left: Any, operator: str, right: Any) -> bool:
    if operator == ">":
        return left > right
    if operator == "<":
        return left < right
    if operator == ">=":
        return left >= right
    return left <= right
