"""
ProtoFlow Kernel — Expression Evaluator

Pure function: (expression, context) → value

Recognized tags, checked in this order:
  {"$state": "/path/to/value"}                           read state
  {"$cond": expr, "eq": v, "$then": a, "$else": b}       conditional
  {"$template": "Hello ${/user/name}"}                   string interpolation
  {"$computed": "formatCurrency", "$args": [expr, ...]}  named function call
  {"$bindState": "/form/phone"}                          two-way binding marker

Any other mapping is evaluated key by key into a new mapping; sequences are
evaluated element by element; everything else is returned unchanged.

Evaluation never raises. Unresolvable paths and failing computed functions
degrade to None and are logged.
"""

from __future__ import annotations

import json
import logging
import re
from collections.abc import Callable
from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Any

from protoflow.kernel.paths import get_path, strict_equals
from protoflow.kernel.types import COMPARISON_OPS, EvaluationContext

logger = logging.getLogger(__name__)

TEMPLATE_PATTERN = re.compile(r"\$\{([^}]+)\}")

CURRENCY_SYMBOLS: dict[str, str] = {
    "CNY": "¥",
    "JPY": "¥",
    "USD": "$",
    "EUR": "€",
    "GBP": "£",
}


# ---------------------------------------------------------------------------
# Comparison
# ---------------------------------------------------------------------------


def has_comparison(condition: Any) -> bool:
    return isinstance(condition, dict) and any(op in condition for op in COMPARISON_OPS)


def compare(value: Any, condition: dict[str, Any]) -> bool:
    """
    Test `value` against the first comparison operator present in
    `condition`. Without an operator, fall back to truthiness.

    Ordering against an incomparable value (None, mixed types) is False.
    """
    for op in COMPARISON_OPS:
        if op not in condition:
            continue
        expected = condition[op]
        if op == "eq":
            return strict_equals(value, expected)
        if op == "not":
            return not strict_equals(value, expected)
        try:
            if op == "gt":
                return value > expected
            if op == "gte":
                return value >= expected
            if op == "lt":
                return value < expected
            return value <= expected
        except TypeError:
            return False
    return bool(value)


def stringify(value: Any) -> str:
    """Render a resolved value for template interpolation."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, (dict, list)):
        return json.dumps(value, ensure_ascii=False, separators=(",", ":"))
    return str(value)


# ---------------------------------------------------------------------------
# Default computed functions
# ---------------------------------------------------------------------------


def _round(value: Any, decimals: int) -> str:
    quantum = Decimal(1).scaleb(-int(decimals))
    return str(Decimal(str(float(value))).quantize(quantum, rounding=ROUND_HALF_UP))


def format_currency(value: Any, currency: str = "CNY") -> str:
    amount = _round(value, 2)
    sign = ""
    if amount.startswith("-"):
        sign, amount = "-", amount[1:]
    whole, _, frac = amount.partition(".")
    whole = f"{int(whole):,}"
    symbol = CURRENCY_SYMBOLS.get(currency, f"{currency} ")
    return f"{sign}{symbol}{whole}.{frac}"


def format_date(value: Any, format: str = "YYYY-MM-DD") -> Any:
    if isinstance(value, datetime):
        moment = value
    elif isinstance(value, date):
        moment = datetime(value.year, value.month, value.day)
    elif isinstance(value, str):
        try:
            moment = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return value
    elif isinstance(value, (int, float)) and not isinstance(value, bool):
        # Epoch milliseconds
        moment = datetime.fromtimestamp(value / 1000)
    else:
        return value

    return (
        format.replace("YYYY", f"{moment.year:04d}")
        .replace("MM", f"{moment.month:02d}")
        .replace("DD", f"{moment.day:02d}")
        .replace("HH", f"{moment.hour:02d}")
        .replace("mm", f"{moment.minute:02d}")
        .replace("ss", f"{moment.second:02d}")
    )


def format_number(value: Any, decimals: int = 2) -> str:
    return _round(value, decimals)


def format_percent(value: Any, decimals: int = 2) -> str:
    return f"{_round(float(value) * 100, decimals)}%"


def truncate(text: Any, max_length: int = 50) -> str:
    text = stringify(text)
    if len(text) <= max_length:
        return text
    return text[:max_length] + "..."


def join(array: Any, separator: str = ", ") -> str:
    if isinstance(array, list):
        return separator.join(stringify(item) for item in array)
    return stringify(array)


DEFAULT_COMPUTED_FUNCTIONS: dict[str, Callable[..., Any]] = {
    "formatCurrency": format_currency,
    "formatDate": format_date,
    "formatNumber": format_number,
    "formatPercent": format_percent,
    "truncate": truncate,
    "join": join,
}


# ---------------------------------------------------------------------------
# Evaluator
# ---------------------------------------------------------------------------


class ExpressionEvaluator:
    """
    Resolves declarative expressions against a state tree.

    Holds only the registry of computed functions; safe to share between
    components of one runtime.
    """

    def __init__(self, computed_functions: dict[str, Callable[..., Any]] | None = None) -> None:
        self.computed_functions: dict[str, Callable[..., Any]] = dict(DEFAULT_COMPUTED_FUNCTIONS)
        if computed_functions:
            self.computed_functions.update(computed_functions)

    def register_computed_function(self, name: str, fn: Callable[..., Any]) -> None:
        """Add or override a computed function."""
        self.computed_functions[name] = fn

    def evaluate(self, expr: Any, context: EvaluationContext | dict[str, Any] | None = None) -> Any:
        ctx = _as_context(context)
        return self._evaluate(expr, ctx)

    def resolve_state(self, path: Any, context: EvaluationContext | dict[str, Any] | None = None) -> Any:
        """Shortcut for evaluate({"$state": path}, context)."""
        return self._evaluate_state(path, _as_context(context))

    # -- internals ---------------------------------------------------------

    def _evaluate(self, expr: Any, ctx: EvaluationContext) -> Any:
        if isinstance(expr, list):
            return [self._evaluate(item, ctx) for item in expr]
        if not isinstance(expr, dict):
            return expr

        for tag, handler in _TAGS:
            if tag in expr:
                return handler(self, expr, ctx)

        return {key: self._evaluate(value, ctx) for key, value in expr.items()}

    def _evaluate_state(self, path: Any, ctx: EvaluationContext) -> Any:
        if not isinstance(path, str):
            logger.warning("ExpressionEvaluator: $state path must be a string, got %r", path)
            return None
        return get_path(ctx.state, path)

    def _eval_state_tag(self, expr: dict, ctx: EvaluationContext) -> Any:
        return self._evaluate_state(expr["$state"], ctx)

    def _eval_cond(self, expr: dict, ctx: EvaluationContext) -> Any:
        value = self._evaluate(expr["$cond"], ctx)
        if compare(value, expr):
            return self._evaluate(expr.get("$then"), ctx)
        if "$else" in expr:
            return self._evaluate(expr["$else"], ctx)
        return None

    def _eval_template(self, expr: dict, ctx: EvaluationContext) -> str:
        template = expr["$template"]
        if not isinstance(template, str):
            logger.warning("ExpressionEvaluator: $template must be a string, got %r", template)
            return ""
        return TEMPLATE_PATTERN.sub(lambda m: stringify(get_path(ctx.state, m.group(1).strip())), template)

    def _eval_computed(self, expr: dict, ctx: EvaluationContext) -> Any:
        name = expr["$computed"]
        if not isinstance(name, str):
            logger.warning("ExpressionEvaluator: $computed name must be a string, got %r", name)
            return None
        raw_args = expr.get("$args")
        if raw_args is None:
            args: list[Any] = []
        elif isinstance(raw_args, dict):
            args = [self._evaluate(value, ctx) for value in raw_args.values()]
        elif isinstance(raw_args, list):
            args = [self._evaluate(value, ctx) for value in raw_args]
        else:
            args = [self._evaluate(raw_args, ctx)]

        fn = ctx.computed_functions.get(name) or self.computed_functions.get(name)
        if fn is None:
            logger.warning("ExpressionEvaluator: computed function not found: %s", name)
            return None
        try:
            return fn(*args)
        except Exception:
            logger.exception("ExpressionEvaluator: computed function %s failed", name)
            return None

    def _eval_bind_state(self, expr: dict, ctx: EvaluationContext) -> str:
        path = expr["$bindState"]
        if not isinstance(path, str):
            logger.warning("ExpressionEvaluator: $bindState path must be a string, got %r", path)
            return ""
        return path


_TAGS: tuple[tuple[str, Callable[[ExpressionEvaluator, dict, EvaluationContext], Any]], ...] = (
    ("$state", ExpressionEvaluator._eval_state_tag),
    ("$cond", ExpressionEvaluator._eval_cond),
    ("$template", ExpressionEvaluator._eval_template),
    ("$computed", ExpressionEvaluator._eval_computed),
    ("$bindState", ExpressionEvaluator._eval_bind_state),
)


def _as_context(context: EvaluationContext | dict[str, Any] | None) -> EvaluationContext:
    if context is None:
        return EvaluationContext()
    if isinstance(context, EvaluationContext):
        return context
    return EvaluationContext(
        state=context.get("state") or {},
        computed_functions=context.get("computed_functions") or context.get("computedFunctions") or {},
    )
