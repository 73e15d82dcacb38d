"""
ProtoFlow Kernel — Page Manager

Owns the navigation history: a bounded, ordered stack of PageStackEntry with
a current index. The current index always points at the last pushed or
replaced entry and is None only when the stack is empty.

Operations never raise across the public boundary. Rejections are logged and
returned as StackResult(applied=False, error="CODE: ...") with the stack left
untouched.

Every applied mutation notifies listeners synchronously, in registration
order. A failing listener is logged and does not stop the others.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

from protoflow.config import settings
from protoflow.kernel.types import PageChangeEvent, PageStackEntry, StackResult, error_code
from protoflow.models.app import AppConfig, Page

logger = logging.getLogger(__name__)

PageChangeListener = Callable[[PageChangeEvent], None]


class PageManager:
    def __init__(self, app: AppConfig, max_stack_size: int | None = None) -> None:
        self._app = app
        self._stack: list[PageStackEntry] = []
        self._current_index: int | None = None
        self._listeners: list[PageChangeListener] = []
        self.max_stack_size = max(1, max_stack_size or app.router.history_limit or settings.MAX_STACK_SIZE)
        self.push(app.router.initial_page_id)

    # -- listeners ---------------------------------------------------------

    def add_listener(self, listener: PageChangeListener) -> Callable[[], None]:
        """Subscribe to page changes. Returns an unsubscribe function."""
        if listener not in self._listeners:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self, event: PageChangeEvent) -> None:
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                logger.exception("PageManager: listener failed for %s event", event.type)

    # -- mutations ---------------------------------------------------------

    def push(self, page_id: str, params: dict[str, Any] | None = None) -> StackResult:
        if self.find_page(page_id) is None:
            return self._reject("PAGE_NOT_FOUND", f"Page not found: {page_id}")

        if len(self._stack) >= self.max_stack_size:
            evicted = self._stack.pop(0)
            logger.debug("PageManager: stack full, evicted %s", evicted.page_id)

        self._stack.append(PageStackEntry(page_id=page_id, params=params))
        self._current_index = len(self._stack) - 1

        self._notify(PageChangeEvent(type="push", page_id=page_id, params=params, stack_size=len(self._stack)))
        return StackResult(applied=True)

    def pop(self, depth: int = 1) -> StackResult:
        if depth <= 0:
            return StackResult(applied=False)

        if len(self._stack) <= 1:
            logger.warning("PageManager: cannot pop, stack has %d page(s)", len(self._stack))
            return StackResult(applied=False, error=error_code("STACK_FLOOR", "Cannot pop the last page"))

        actual = min(depth, len(self._stack) - 1)
        del self._stack[-actual:]
        self._current_index = len(self._stack) - 1

        self._notify(
            PageChangeEvent(
                type="pop",
                page_id=self.current_page_id,
                params=self.current_params,
                stack_size=len(self._stack),
            )
        )
        return StackResult(applied=True)

    def pop_to(self, page_id: str) -> StackResult:
        for index, entry in enumerate(self._stack):
            if entry.page_id == page_id:
                break
        else:
            return self._reject("PAGE_NOT_IN_STACK", f"Page not in stack: {page_id}")

        del self._stack[index + 1 :]
        self._current_index = index

        self._notify(
            PageChangeEvent(type="pop", page_id=page_id, params=self.current_params, stack_size=len(self._stack))
        )
        return StackResult(applied=True)

    def replace(self, page_id: str, params: dict[str, Any] | None = None) -> StackResult:
        if not self._stack or self._current_index is None:
            return self._reject("STACK_EMPTY", "Cannot replace on an empty stack")
        if self.find_page(page_id) is None:
            return self._reject("PAGE_NOT_FOUND", f"Page not found: {page_id}")

        self._stack[self._current_index] = PageStackEntry(page_id=page_id, params=params)

        self._notify(PageChangeEvent(type="replace", page_id=page_id, params=params, stack_size=len(self._stack)))
        return StackResult(applied=True)

    def clear(self) -> StackResult:
        self._stack = []
        self._current_index = None
        self._notify(PageChangeEvent(type="clear", page_id="", stack_size=0))
        return StackResult(applied=True)

    def _reject(self, code: str, msg: str) -> StackResult:
        logger.warning("PageManager: %s", msg)
        return StackResult(applied=False, error=error_code(code, msg))

    # -- queries -----------------------------------------------------------

    @property
    def app(self) -> AppConfig:
        return self._app

    def set_app(self, app: AppConfig) -> None:
        """Swap the application definition. The stack is left as is."""
        self._app = app

    def find_page(self, page_id: str | None) -> Page | None:
        if not page_id:
            return None
        return self._app.find_page(page_id)

    @property
    def current_index(self) -> int | None:
        return self._current_index

    @property
    def current_entry(self) -> PageStackEntry | None:
        if self._current_index is None:
            return None
        return self._stack[self._current_index]

    @property
    def current_page(self) -> Page | None:
        entry = self.current_entry
        return self.find_page(entry.page_id) if entry else None

    @property
    def current_page_id(self) -> str:
        entry = self.current_entry
        return entry.page_id if entry else ""

    @property
    def current_params(self) -> dict[str, Any] | None:
        entry = self.current_entry
        return entry.params if entry else None

    @property
    def stack(self) -> list[PageStackEntry]:
        return list(self._stack)

    @property
    def stack_size(self) -> int:
        return len(self._stack)

    def can_go_back(self) -> bool:
        return len(self._stack) > 1

    def destroy(self) -> None:
        self._listeners.clear()
        self._stack = []
        self._current_index = None
