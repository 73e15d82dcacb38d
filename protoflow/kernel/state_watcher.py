"""
ProtoFlow Kernel — State Watcher

Runs actions when watched state paths change.

Component config:

  "watch": {
    "/user/premium": {"action": {"type": "navigateTo", "pageId": "vip"}},
    "/cart/*":       {"action": {"type": "request", "url": "/api/total"}, "debounce": 300},
    "/form/phone":   {"action": {...}, "condition": {"$value": {"$state": "value"}, "eq": "13800138000"},
                      "once": true}
  }

The watcher does not execute actions itself. Firing calls the executor
callback supplied at construction with a WatcherTrigger and the evaluation
context; the callback decides what to do with `trigger.watcher.action`.

Timing (debounce/throttle values are milliseconds):
  debounce  — restart a per-key timer on every change, fire after the quiet period
  throttle  — fire at most once per cooldown, drop changes inside it
  neither   — fire synchronously inside `notify`

Timer keys are "<watch path>:<action type>". Debounce needs a running asyncio
loop; outside one the watcher fires immediately.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from protoflow.kernel.expressions import ExpressionEvaluator, compare, has_comparison
from protoflow.kernel.paths import matches_pattern, split_path
from protoflow.kernel.types import EvaluationContext, WatcherConfig, WatcherTrigger

logger = logging.getLogger(__name__)

WatcherCallback = Callable[[WatcherTrigger, EvaluationContext], None]


@dataclass
class _Match:
    path: str  # the registered (possibly wildcard) path
    watcher: WatcherConfig


class StateWatcher:
    def __init__(
        self,
        executor: WatcherCallback,
        evaluator: ExpressionEvaluator | None = None,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._executor = executor
        self.evaluator = evaluator or ExpressionEvaluator()
        self._clock = clock
        self._watchers: dict[str, list[WatcherConfig]] = {}
        self._debounce_timers: dict[str, asyncio.TimerHandle] = {}
        self._last_trigger: dict[str, float] = {}
        self._once_fired: set[str] = set()

    # -- registration ------------------------------------------------------

    def add_watcher(self, path: str, watcher: WatcherConfig | dict[str, Any]) -> WatcherConfig:
        if isinstance(watcher, dict):
            watcher = WatcherConfig.from_dict(watcher)
        self._watchers.setdefault(path, []).append(watcher)
        logger.debug("StateWatcher: watching %s (%s)", path, watcher.action_type)

        if watcher.immediate:
            self._fire(path, path, None, None, watcher, EvaluationContext())
        return watcher

    def remove_watcher(self, path: str, watcher: WatcherConfig | None = None) -> None:
        """Remove one watcher instance, or every watcher on `path`."""
        if watcher is None:
            self._watchers.pop(path, None)
            return

        watchers = self._watchers.get(path)
        if not watchers:
            return
        if watcher in watchers:
            watchers.remove(watcher)
        if not watchers:
            del self._watchers[path]

    def watcher_info(self) -> list[dict[str, Any]]:
        return [{"path": path, "count": len(watchers)} for path, watchers in self._watchers.items()]

    # -- notification ------------------------------------------------------

    def notify(
        self,
        path: str,
        new_value: Any,
        old_value: Any = None,
        context: EvaluationContext | None = None,
    ) -> None:
        matches = self._matched_watchers(path)
        if not matches:
            return

        ctx = context or EvaluationContext()

        for match in matches:
            watcher = match.watcher
            key = self._trigger_key(match.path, watcher)

            if watcher.once and key in self._once_fired:
                continue

            if watcher.condition is not None and not self._check_condition(
                watcher.condition, new_value, old_value, ctx
            ):
                continue

            if watcher.debounce:
                self._debounce(key, watcher.debounce, match.path, path, old_value, new_value, watcher, ctx)
            elif watcher.throttle:
                self._throttle(key, watcher.throttle, match.path, path, old_value, new_value, watcher, ctx)
            else:
                self._fire(match.path, path, old_value, new_value, watcher, ctx)

    def _matched_watchers(self, path: str) -> list[_Match]:
        exact: list[_Match] = []
        wildcard: list[_Match] = []
        segments = split_path(path)
        for watch_path, watchers in self._watchers.items():
            watch_segments = split_path(watch_path)
            if watch_segments == segments:
                exact.extend(_Match(watch_path, w) for w in watchers)
            elif "*" in watch_segments and matches_pattern(watch_path, path):
                wildcard.extend(_Match(watch_path, w) for w in watchers)
        return exact + wildcard

    @staticmethod
    def _trigger_key(watch_path: str, watcher: WatcherConfig) -> str:
        return f"{watch_path}:{watcher.action_type}"

    # -- conditions --------------------------------------------------------

    def _check_condition(self, condition: Any, new_value: Any, old_value: Any, ctx: EvaluationContext) -> bool:
        if not isinstance(condition, dict):
            return bool(condition)

        injected = {**ctx.state, "newValue": new_value, "oldValue": old_value, "value": new_value}

        if "$value" in condition:
            value = self.evaluator.evaluate(condition["$value"], ctx.with_state(injected))
        elif "$oldValue" in condition:
            value = self.evaluator.evaluate(condition["$oldValue"], ctx.with_state({**injected, "value": old_value}))
        elif "$state" in condition:
            value = self.evaluator.resolve_state(condition["$state"], ctx.with_state(injected))
        else:
            return bool(self.evaluator.evaluate(condition, ctx.with_state(injected)))

        if "exists" in condition and not has_comparison(condition):
            return (value is not None) == bool(condition["exists"])
        return compare(value, condition)

    # -- timing ------------------------------------------------------------

    def _debounce(
        self,
        key: str,
        delay_ms: float,
        watch_path: str,
        path: str,
        old_value: Any,
        new_value: Any,
        watcher: WatcherConfig,
        ctx: EvaluationContext,
    ) -> None:
        pending = self._debounce_timers.pop(key, None)
        if pending is not None:
            pending.cancel()

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.warning("StateWatcher: no running event loop, firing %s without debounce", key)
            self._fire(watch_path, path, old_value, new_value, watcher, ctx)
            return

        def fire() -> None:
            self._debounce_timers.pop(key, None)
            # A `once` watcher may have fired through another path meanwhile
            if watcher.once and key in self._once_fired:
                return
            self._fire(watch_path, path, old_value, new_value, watcher, ctx)

        self._debounce_timers[key] = loop.call_later(delay_ms / 1000, fire)

    def _throttle(
        self,
        key: str,
        cooldown_ms: float,
        watch_path: str,
        path: str,
        old_value: Any,
        new_value: Any,
        watcher: WatcherConfig,
        ctx: EvaluationContext,
    ) -> None:
        now = self._clock() * 1000
        last = self._last_trigger.get(key)
        if last is not None and now - last < cooldown_ms:
            logger.debug("StateWatcher: throttled %s", key)
            return
        self._last_trigger[key] = now
        self._fire(watch_path, path, old_value, new_value, watcher, ctx)

    # -- firing ------------------------------------------------------------

    def _fire(
        self,
        watch_path: str,
        path: str,
        old_value: Any,
        new_value: Any,
        watcher: WatcherConfig,
        ctx: EvaluationContext,
    ) -> None:
        if watcher.once:
            self._once_fired.add(self._trigger_key(watch_path, watcher))

        trigger = WatcherTrigger(path=path, old_value=old_value, new_value=new_value, watcher=watcher)
        logger.debug("StateWatcher: firing %s for %s", watcher.action_type, path)
        try:
            self._executor(trigger, ctx)
        except Exception:
            logger.exception("StateWatcher: executor failed for %s", path)

    # -- teardown ----------------------------------------------------------

    def clear(self) -> None:
        self._watchers.clear()
        for timer in self._debounce_timers.values():
            timer.cancel()
        self._debounce_timers.clear()
        self._last_trigger.clear()
        self._once_fired.clear()

    def clear_path(self, path: str) -> None:
        self._watchers.pop(path, None)
        prefix = f"{path}:"
        for key in [k for k in self._debounce_timers if k.startswith(prefix)]:
            self._debounce_timers.pop(key).cancel()
        for key in [k for k in self._last_trigger if k.startswith(prefix)]:
            del self._last_trigger[key]
        self._once_fired = {k for k in self._once_fired if not k.startswith(prefix)}

    @property
    def pending_timers(self) -> int:
        return len(self._debounce_timers)
