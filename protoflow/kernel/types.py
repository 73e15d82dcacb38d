"""
ProtoFlow Kernel — Shared Types

Data classes and constants used across the evaluator, page manager, watcher,
action executor and stream compiler. These are the contracts that bind the
runtime together.

Actions arrive as camelCase JSON mappings and are parsed into frozen
`Action` records. Everything else (state, expressions, node trees) stays
plain data.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

# ---------------------------------------------------------------------------
# Closed vocabularies
# ---------------------------------------------------------------------------

ACTION_TYPES: frozenset[str] = frozenset(
    {
        # Navigation
        "navigateTo",
        "navigateBack",
        "switchTab",
        "redirectTo",
        "reLaunch",
        # Presentation
        "showModal",
        "hideModal",
        "showToast",
        "hideToast",
        "showActionSheet",
        "hideActionSheet",
        # Data
        "request",
        "updateState",
        "delay",
    }
)

PATCH_OPS: frozenset[str] = frozenset({"add", "remove", "replace", "move", "copy", "test"})

# Checked in this order; the first key present wins.
COMPARISON_OPS: tuple[str, ...] = ("eq", "not", "gt", "gte", "lt", "lte")

PAGE_EVENT_TYPES: frozenset[str] = frozenset({"push", "pop", "replace", "clear"})

TAB_INDEX_KEY = "tabBarSelectedIndex"

# camelCase wire key → Action attribute
_ACTION_FIELDS: dict[str, str] = {
    "type": "type",
    "pageId": "page_id",
    "params": "params",
    "tabIndex": "tab_index",
    "modalId": "modal_id",
    "modal": "modal",
    "toast": "toast",
    "actionSheetId": "action_sheet_id",
    "actionSheet": "action_sheet",
    "url": "url",
    "method": "method",
    "data": "data",
    "headers": "headers",
    "statePath": "state_path",
    "stateValue": "state_value",
    "duration": "duration",
}

_NESTED_ACTION_FIELDS: dict[str, str] = {
    "successAction": "success_action",
    "errorAction": "error_action",
    "nextAction": "next_action",
}


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class ProtoFlowError(Exception):
    """Base class for errors raised by the runtime."""

    pass


class PatchError(ProtoFlowError):
    """A patch is malformed or its path cannot be resolved."""

    pass


class PatchTestFailed(PatchError):
    """A `test` patch found a different value at its path."""

    def __init__(self, path: str, expected: Any, actual: Any) -> None:
        super().__init__(f"Test failed at {path!r}: expected {expected!r}, got {actual!r}")
        self.path = path
        self.expected = expected
        self.actual = actual


class StatePathError(ProtoFlowError):
    """A state path cannot be written: bad sequence index or the root."""

    pass


class TransportError(ProtoFlowError):
    """The transport could not complete a request."""

    pass


# ---------------------------------------------------------------------------
# Actions
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Action:
    """
    A declarative side effect. Immutable; chained actions are Actions too.

    `extra` keeps unrecognized keys so that `to_dict` round-trips whatever
    the configuration carried.
    """

    type: str | None
    page_id: str | None = None
    params: dict[str, Any] | None = None
    tab_index: int | None = None
    modal_id: str | None = None
    modal: dict[str, Any] | None = None
    toast: dict[str, Any] | None = None
    action_sheet_id: str | None = None
    action_sheet: dict[str, Any] | None = None
    url: str | None = None
    method: str | None = None
    data: Any = None
    headers: dict[str, str] | None = None
    state_path: str | None = None
    state_value: Any = None
    duration: int | float | None = None
    success_action: Action | None = None
    error_action: Action | None = None
    next_action: Action | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> Action:
        kwargs: dict[str, Any] = {}
        extra: dict[str, Any] = {}
        for key, value in d.items():
            if key in _ACTION_FIELDS:
                kwargs[_ACTION_FIELDS[key]] = value
            elif key in _NESTED_ACTION_FIELDS:
                kwargs[_NESTED_ACTION_FIELDS[key]] = coerce_action(value)
            else:
                extra[key] = value
        kwargs.setdefault("type", None)
        return cls(extra=extra, **kwargs)

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {}
        for wire_key, attr in _ACTION_FIELDS.items():
            value = getattr(self, attr)
            if value is not None:
                d[wire_key] = value
        for wire_key, attr in _NESTED_ACTION_FIELDS.items():
            nested = getattr(self, attr)
            if nested is not None:
                d[wire_key] = nested.to_dict()
        d.update(self.extra)
        return d


def coerce_action(value: Any) -> Action | None:
    """Accept an Action, a mapping, or None."""
    if value is None or isinstance(value, Action):
        return value
    if isinstance(value, dict):
        return Action.from_dict(value)
    return None


@dataclass
class ActionOutcome:
    """
    Result of executing one action.
    The executor never raises — it always returns one of these.
    """

    action_type: str | None
    applied: bool
    error: str | None = None


# ---------------------------------------------------------------------------
# Evaluation
# ---------------------------------------------------------------------------


@dataclass
class EvaluationContext:
    """State tree plus optional computed functions for one evaluation."""

    state: dict[str, Any] = field(default_factory=dict)
    computed_functions: dict[str, Callable[..., Any]] = field(default_factory=dict)

    def with_state(self, state: dict[str, Any]) -> EvaluationContext:
        return EvaluationContext(state=state, computed_functions=self.computed_functions)


# ---------------------------------------------------------------------------
# Navigation
# ---------------------------------------------------------------------------


@dataclass
class PageStackEntry:
    page_id: str
    timestamp: float = field(default_factory=lambda: time.time() * 1000)
    params: dict[str, Any] | None = None


@dataclass
class PageChangeEvent:
    """Emitted by the page manager after every mutating operation."""

    type: str  # push | pop | replace | clear
    page_id: str
    stack_size: int
    params: dict[str, Any] | None = None


@dataclass
class StackResult:
    """Result of one page-stack operation. Rejections carry an error code."""

    applied: bool
    error: str | None = None


# ---------------------------------------------------------------------------
# Watchers
# ---------------------------------------------------------------------------


@dataclass(eq=False)
class WatcherConfig:
    """
    One watcher registration. Identity matters: `remove_watcher` removes
    the exact instance that was added.
    """

    action: Any
    condition: Any = None
    debounce: int | float | None = None
    throttle: int | float | None = None
    immediate: bool = False
    once: bool = False

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> WatcherConfig:
        return cls(
            action=d.get("action"),
            condition=d.get("condition"),
            debounce=d.get("debounce"),
            throttle=d.get("throttle"),
            immediate=bool(d.get("immediate", False)),
            once=bool(d.get("once", False)),
        )

    @property
    def action_type(self) -> str:
        action = self.action
        if isinstance(action, Action):
            return action.type or "unknown"
        if isinstance(action, dict):
            return action.get("type") or "unknown"
        if isinstance(action, str):
            return action
        return "unknown"


@dataclass
class WatcherTrigger:
    path: str
    old_value: Any
    new_value: Any
    watcher: WatcherConfig


# ---------------------------------------------------------------------------
# Patches / streaming
# ---------------------------------------------------------------------------


@dataclass
class Patch:
    """A single structural edit, JSON-Patch style."""

    op: str
    path: str
    value: Any = None
    from_: str | None = None

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {"op": self.op, "path": self.path}
        if self.op in ("add", "replace", "test"):
            d["value"] = self.value
        if self.from_ is not None:
            d["from"] = self.from_
        return d

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> Patch:
        return cls(op=d["op"], path=d.get("path", ""), value=d.get("value"), from_=d.get("from"))


@dataclass
class CompileResult:
    """Outcome of one `SpecStreamCompiler.push` call."""

    result: Any
    new_patches: list[Patch]
    is_complete: bool
    error: Exception | None = None


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def error_code(code: str, msg: str) -> str:
    return f"{code}: {msg}"
