"""Single-comparison condition expressions.

Grammar::

    <identifier> <op> <literal>
    op      := == | != | > | >= | < | <= | in
    literal := number | 'string' | "string" | bare-word
             | [item, item, ...]            (only with ``in``)

There are no boolean connectives. Numeric comparison is used when both sides
parse as numbers, string comparison otherwise. An identifier missing from the
inputs, or an expression that does not parse, evaluates to ``False`` so that
a transition falls through to its default.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Mapping
from dataclasses import dataclass

logger = logging.getLogger(__name__)

OPERATORS: tuple[str, ...] = ("==", "!=", ">=", "<=", ">", "<", "in")

_EXPRESSION = re.compile(
    r"^\s*(?P<field>[A-Za-z_][\w.]*)\s*(?:(?P<op>==|!=|>=|<=|>|<)|\s(?P<in>in)\s)\s*(?P<literal>.+?)\s*$"
)
_QUOTED = re.compile(r"""^(?:'(?P<single>[^']*)'|"(?P<double>[^"]*)")$""")
_BARE = re.compile(r"""^[^\s'"=<>!,\[\]()]+$""")


@dataclass(frozen=True, slots=True)
class Condition:
    """Parsed form of one comparison: ``{left, op, right}``."""

    field: str
    op: str
    value: str | tuple[str, ...]

    def evaluate(self, inputs: Mapping[str, object]) -> bool:
        try:
            actual = _lookup(inputs, self.field)
            if actual is None:
                return False
            if self.op == "in":
                return any(_compare(actual, "==", item) for item in self.value)
            if not isinstance(self.value, str):
                return False
            return _compare(actual, self.op, self.value)
        except Exception as e:  # noqa: BLE001 (evaluation must never raise)
            logger.debug("Condition evaluation failed", extra={"field": self.field, "error": str(e)})
            return False

    def __str__(self) -> str:
        if isinstance(self.value, tuple):
            return f"{self.field} in [{', '.join(self.value)}]"
        return f"{self.field} {self.op} {self.value}"


def _parse_scalar(text: str) -> str | None:
    text = text.strip()
    quoted = _QUOTED.match(text)
    if quoted:
        single = quoted.group("single")
        return single if single is not None else quoted.group("double")
    if _BARE.match(text):
        return text
    return None


def _parse_list(text: str) -> tuple[str, ...] | None:
    text = text.strip()
    if text[:1] in "[(" and text[-1:] in "])":
        text = text[1:-1]
    if not text.strip():
        return ()
    items: list[str] = []
    for raw in text.split(","):
        item = _parse_scalar(raw)
        if item is None:
            return None
        items.append(item)
    return tuple(items)


def parse_condition(expression: str) -> Condition | None:
    """Parse an expression, returning ``None`` when it is not in the grammar."""

    if not isinstance(expression, str):
        return None
    match = _EXPRESSION.match(expression)
    if match is None:
        return None

    field = match.group("field")
    literal = match.group("literal")
    if match.group("in"):
        items = _parse_list(literal)
        return None if items is None else Condition(field=field, op="in", value=items)

    value = _parse_scalar(literal)
    if value is None:
        return None
    return Condition(field=field, op=match.group("op"), value=value)


def evaluate(expression: str, inputs: Mapping[str, object]) -> bool:
    """Evaluate an expression against collected inputs. Never raises."""

    condition = parse_condition(expression)
    if condition is None:
        logger.debug("Unparsable condition evaluates to false", extra={"expression": expression})
        return False
    return condition.evaluate(inputs)


def _lookup(inputs: Mapping[str, object], field: str) -> object:
    if field in inputs:
        return inputs[field]
    value: object = inputs
    for part in field.split("."):
        if not isinstance(value, Mapping) or part not in value:
            return None
        value = value[part]
    return value


def _as_number(value: object) -> float | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value.strip())
        except ValueError:
            return None
    return None


def _as_text(value: object) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _compare(actual: object, op: str, expected: str) -> bool:
    left_num = _as_number(actual)
    right_num = _as_number(expected)
    if left_num is not None and right_num is not None:
        left: float | str = left_num
        right: float | str = right_num
    else:
        left = _as_text(actual)
        right = expected

    if op == "==":
        return left == right
    if op == "!=":
        return left != right
    if op == ">":
        return left > right  # type: ignore[operator]
    if op == ">=":
        return left >= right  # type: ignore[operator]
    if op == "<":
        return left < right  # type: ignore[operator]
    if op == "<=":
        return left <= right  # type: ignore[operator]
    return False
