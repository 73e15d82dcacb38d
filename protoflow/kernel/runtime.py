"""
ProtoFlow Kernel — Runtime

Composition root for one running mockup. Builds and wires:

  AppStateStore ──notify──▶ StateWatcher ──fire──▶ GlobalActionExecutor
        ▲                                                │
        └──────────── updateState / switchTab ◀──────────┘

plus the ExpressionEvaluator, VisibilityChecker and PageManager the renderer
reads from. Nothing here is global; any number of runtimes may coexist.

Watcher-triggered actions are scheduled as tasks on the running loop. They
inherit the action-chain depth of whatever caused the state change, so a
watcher loop ends at settings.MAX_ACTION_DEPTH.

Actions fired while no loop is running (immediate watchers of a runtime built
synchronously) are held until the first `dispatch` or `settle`.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Iterator
from typing import Any

from pydantic import ValidationError

from protoflow.config import Settings, settings as default_settings
from protoflow.kernel.actions import ActionCallbacks, GlobalActionExecutor
from protoflow.kernel.expressions import ExpressionEvaluator
from protoflow.kernel.page_manager import PageManager
from protoflow.kernel.state_watcher import StateWatcher
from protoflow.kernel.store import AppStateStore
from protoflow.kernel.stream_compiler import SpecStreamCompiler
from protoflow.kernel.types import (
    ACTION_TYPES,
    TAB_INDEX_KEY,
    Action,
    ActionOutcome,
    CompileResult,
    EvaluationContext,
    WatcherTrigger,
    coerce_action,
)
from protoflow.kernel.visibility import VisibilityChecker
from protoflow.models.app import AppConfig, load_app

logger = logging.getLogger(__name__)

# Node keys that are structure or behavior, not renderable props
_STRUCTURAL_KEYS = frozenset({"watch", "visible", "hidden", "children", "items"})


def iter_nodes(node: Any) -> Iterator[dict[str, Any]]:
    """Depth-first walk over a component tree (`children` and `items`)."""
    if isinstance(node, list):
        for child in node:
            yield from iter_nodes(child)
        return
    if not isinstance(node, dict):
        return
    yield node
    yield from iter_nodes(node.get("children"))
    items = node.get("items")
    if isinstance(items, list):
        yield from iter_nodes([item for item in items if isinstance(item, dict)])


def collect_watchers(app: AppConfig) -> list[tuple[str, dict[str, Any]]]:
    """Every (path, watcher config) declared under `watch` in any page."""
    found: list[tuple[str, dict[str, Any]]] = []
    for page in app.pages:
        for node in iter_nodes(page.component_tree):
            watch = node.get("watch")
            if not isinstance(watch, dict):
                continue
            for path, config in watch.items():
                if isinstance(config, dict) and config.get("action") is not None:
                    found.append((path, config))
                else:
                    logger.warning("Runtime: ignoring watcher on %s in page %s without action", path, page.id)
    return found


def is_action_value(key: str, value: Any) -> bool:
    """True for props that hold an action (onTap, onChange, ...) rather than display data."""
    if isinstance(value, dict) and value.get("type") in ACTION_TYPES:
        return True
    return key.startswith("on") and key[2:3].isupper()


class ProtoFlowRuntime:
    def __init__(
        self,
        app: AppConfig | dict[str, Any],
        *,
        transport: Any = None,
        callbacks: ActionCallbacks | None = None,
        settings: Settings | None = None,
        computed_functions: dict[str, Callable[..., Any]] | None = None,
    ) -> None:
        if transport is None:
            from protoflow.services.transport import MockTransport

            transport = MockTransport()

        self.app = load_app(app)
        self.settings = settings or default_settings
        self._tasks: set[asyncio.Task[Any]] = set()
        self._deferred: list[Action] = []

        self.store = AppStateStore(self._initial_state(self.app))
        self.evaluator = ExpressionEvaluator(computed_functions)
        self.visibility = VisibilityChecker(self.evaluator)
        self.page_manager = PageManager(
            self.app, max_stack_size=self.app.router.history_limit or self.settings.MAX_STACK_SIZE
        )
        self.executor = GlobalActionExecutor(self.store, transport, settings=self.settings)
        self.executor.init(self.page_manager, callbacks)
        self.watcher = StateWatcher(self._on_watcher_fired, self.evaluator)
        self.compiler = SpecStreamCompiler()

        self._unsubscribe = self.store.subscribe(self._on_state_changed)
        self._register_watchers()
        logger.info("Runtime: started %s on page %s", self.app.id, self.page_manager.current_page_id)

    @staticmethod
    def _initial_state(app: AppConfig) -> dict[str, Any]:
        state = dict(app.state)
        state.setdefault(TAB_INDEX_KEY, app.tab_bar.selected_index if app.tab_bar else 0)
        return state

    def _register_watchers(self) -> None:
        for path, config in collect_watchers(self.app):
            self.watcher.add_watcher(path, config)

    # -- state -------------------------------------------------------------

    def context(self) -> EvaluationContext:
        return EvaluationContext(state=self.store.state)

    def get_state(self, path: str) -> Any:
        return self.store.get(path)

    def set_state(self, path: str, value: Any) -> Any:
        return self.store.set(path, value)

    def _on_state_changed(self, path: str, new_value: Any, old_value: Any) -> None:
        self.watcher.notify(path, new_value, old_value, self.context())

    def _on_watcher_fired(self, trigger: WatcherTrigger, ctx: EvaluationContext) -> None:
        # Always against the live store; immediate watchers fire with an empty context
        injected = {**self.store.state, "newValue": trigger.new_value, "oldValue": trigger.old_value}
        action = coerce_action(self.evaluator.evaluate(trigger.watcher.action, ctx.with_state(injected)))
        if action is None:
            logger.warning("Runtime: watcher on %s produced no action", trigger.path)
            return

        try:
            asyncio.get_running_loop()
        except RuntimeError:
            logger.info("Runtime: no running event loop, deferring %s from watcher on %s", action.type, trigger.path)
            self._deferred.append(action)
            return

        self._schedule(action)

    def _schedule(self, action: Action) -> None:
        task = asyncio.get_running_loop().create_task(self.executor.execute(action))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def _start_deferred(self) -> None:
        deferred, self._deferred = self._deferred, []
        for action in deferred:
            self._schedule(action)

    # -- actions -----------------------------------------------------------

    async def dispatch(self, action: Action | dict[str, Any]) -> ActionOutcome:
        """Evaluate expressions inside a raw action against current state, then execute it."""
        self._start_deferred()
        if isinstance(action, dict):
            action = self.evaluator.evaluate(action, self.context())
        return await self.executor.execute(action)

    async def settle(self) -> None:
        """
        Wait until watcher-triggered actions scheduled so far have finished,
        including those deferred because the runtime was built outside a loop.
        """
        self._start_deferred()
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    # -- rendering ---------------------------------------------------------

    def is_visible(self, node: Any) -> bool:
        return self.visibility.check_visibility(node, self.context())

    def resolve_node(self, node: Any, context: EvaluationContext | None = None) -> dict[str, Any] | None:
        """
        The node as the renderer should see it, or None if it is not visible.

        Props are evaluated against state; invisible children and items are
        dropped; watch configs and actions are passed through untouched.
        """
        if not isinstance(node, dict):
            return node
        ctx = context or self.context()
        if not self.visibility.check_visibility(node, ctx):
            return None

        resolved: dict[str, Any] = {}
        for key, value in node.items():
            if key in ("visible", "hidden"):
                continue
            if key == "watch" or is_action_value(key, value):
                resolved[key] = value
            elif key in ("children", "items"):
                resolved[key] = self._resolve_children(value, ctx)
            else:
                resolved[key] = self.evaluator.evaluate(value, ctx)
        return resolved

    def _resolve_children(self, children: Any, ctx: EvaluationContext) -> Any:
        if isinstance(children, list):
            out = []
            for child in children:
                if isinstance(child, dict):
                    child = self.resolve_node(child, ctx)
                    if child is None:
                        continue
                else:
                    child = self.evaluator.evaluate(child, ctx)
                out.append(child)
            return out
        if isinstance(children, dict):
            return self.resolve_node(children, ctx)
        return self.evaluator.evaluate(children, ctx)

    def current_tree(self) -> dict[str, Any] | None:
        page = self.page_manager.current_page
        if page is None:
            return None
        return self.resolve_node(page.component_tree)

    # -- live spec ---------------------------------------------------------

    def feed_spec(self, chunk: str) -> CompileResult:
        """
        Stream an app document. When a chunk completes it, the runtime
        switches to the new definition.
        """
        result = self.compiler.push(chunk)
        if not result.is_complete:
            return result

        try:
            app = load_app(result.result)
        except (ValidationError, TypeError) as e:
            logger.warning("Runtime: streamed spec is not a valid app: %s", e)
            return result

        self._reload(app)
        return result

    def _reload(self, app: AppConfig) -> None:
        self.app = app
        self.page_manager.set_app(app)

        self.watcher.clear()
        for key, value in self._initial_state(app).items():
            if self.store.get(key) is None:
                self.store.set(key, value)
        self._register_watchers()

        missing = [e.page_id for e in self.page_manager.stack if app.find_page(e.page_id) is None]
        if missing or self.page_manager.stack_size == 0:
            logger.info("Runtime: pages %s gone after reload, relaunching", missing)
            self.page_manager.clear()
            self.page_manager.push(app.router.initial_page_id)
            self.store.set(TAB_INDEX_KEY, 0)

    # -- teardown ----------------------------------------------------------

    def destroy(self) -> None:
        for task in list(self._tasks):
            task.cancel()
        self._tasks.clear()
        self._deferred.clear()
        self._unsubscribe()
        self.watcher.clear()
        self.executor.destroy()
        self.page_manager.destroy()
        logger.info("Runtime: destroyed %s", self.app.id)
