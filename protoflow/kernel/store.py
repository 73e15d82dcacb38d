"""
ProtoFlow Kernel — Global State Store

The single mutable state tree of one runtime, plus the cache of request
responses keyed by URL. All access goes through path operations.

Writers are the action executor and the runtime's `set_state`. Every write
notifies subscribers with (path, new_value, old_value); the runtime uses this
to drive the state watcher.
"""

from __future__ import annotations

import copy
import logging
from collections.abc import Callable
from typing import Any

from protoflow.kernel.paths import get_path, join_path, set_path, split_path

logger = logging.getLogger(__name__)

StateListener = Callable[[str, Any, Any], None]


class AppStateStore:
    def __init__(self, initial: dict[str, Any] | None = None) -> None:
        self._state: dict[str, Any] = copy.deepcopy(initial) if initial else {}
        self._request_results: dict[str, Any] = {}
        self._listeners: list[StateListener] = []

    @property
    def state(self) -> dict[str, Any]:
        """The live tree. Treat as read-only; write through `set`."""
        return self._state

    def snapshot(self) -> dict[str, Any]:
        return copy.deepcopy(self._state)

    def get(self, path: str) -> Any:
        return get_path(self._state, split_path(path, allow_dots=True))

    def set(self, path: str, value: Any) -> Any:
        """
        Set a leaf, creating intermediate mappings. `path` may be slash or
        dot delimited. Returns the previous value.
        """
        segments = split_path(path, allow_dots=True)
        old = set_path(self._state, segments, value)
        self._notify(join_path(segments), value, old)
        return old

    def update(self, updates: dict[str, Any]) -> None:
        """Shallow merge of top-level keys, one notification per key."""
        for key, value in updates.items():
            self.set(key, value)

    # -- request results ---------------------------------------------------

    def set_request_result(self, url: str, result: Any) -> None:
        self._request_results[url] = result

    def get_request_result(self, url: str) -> Any:
        return self._request_results.get(url)

    def clear_request_results(self) -> None:
        self._request_results.clear()

    # -- subscribers -------------------------------------------------------

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self, path: str, new_value: Any, old_value: Any) -> None:
        for listener in list(self._listeners):
            try:
                listener(path, new_value, old_value)
            except Exception:
                logger.exception("AppStateStore: listener failed for %s", path)

    def reset(self, initial: dict[str, Any] | None = None) -> None:
        self._state = copy.deepcopy(initial) if initial else {}
        self._request_results.clear()
