"""
ProtoFlow Kernel — Visibility Checker

Decides whether a node is eligible to render.

  visible: [{"$state": "/user/loggedIn", "eq": true}, ...]   all must hold
  hidden:  {"$state": "/app/maintenance", "eq": true}         any excludes

Final visibility = (all visible conditions hold) AND NOT (any hidden holds).
Both keys accept a single condition or a list.
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any, TypeVar

from protoflow.kernel.expressions import ExpressionEvaluator, compare
from protoflow.kernel.types import EvaluationContext

T = TypeVar("T")


def _conditions(rule: Any) -> list[Any]:
    if rule is None:
        return []
    if isinstance(rule, list):
        return rule
    return [rule]


class VisibilityChecker:
    def __init__(self, evaluator: ExpressionEvaluator | None = None) -> None:
        self.evaluator = evaluator or ExpressionEvaluator()

    def is_visible(self, node: dict[str, Any], context: EvaluationContext) -> bool:
        """True unless some `visible` condition fails."""
        return all(self.check_condition(c, context) for c in _conditions(node.get("visible")))

    def is_hidden(self, node: dict[str, Any], context: EvaluationContext) -> bool:
        """True if any `hidden` condition holds."""
        return any(self.check_condition(c, context) for c in _conditions(node.get("hidden")))

    def check_visibility(self, node: Any, context: EvaluationContext) -> bool:
        if not isinstance(node, dict):
            return True
        return self.is_visible(node, context) and not self.is_hidden(node, context)

    def check_condition(self, condition: Any, context: EvaluationContext) -> bool:
        if not isinstance(condition, dict):
            return bool(condition)
        if "$state" in condition:
            value = self.evaluator.resolve_state(condition["$state"], context)
        else:
            value = condition
        return compare(value, condition)

    def filter_visible(self, items: Iterable[T], context: EvaluationContext) -> list[T]:
        """Eligible items only, original order preserved."""
        return [item for item in items if self.check_visibility(item, context)]
