"""
ProtoFlow Kernel — Global Action Executor

The single point of truth for "what happens when an Action runs".

  execute(action) → ActionOutcome        (async, never raises)

One handler per action type in ACTION_TYPES. Navigation goes through the
PageManager, state writes through the AppStateStore, network calls through
the injected Transport, and everything the user would see goes out through
ActionCallbacks.

Failure model:
  - configuration problems (unknown page/modal/tab, missing field) are logged
    and returned as a rejected outcome;
  - any exception raised inside a handler is caught here; the action's
    errorAction runs if it has one;
  - transport failures are routed to the request's errorAction only.

Chained actions (successAction, errorAction, nextAction) and actions
dispatched by watchers while another action runs share one causal chain.
Its depth is capped at settings.MAX_ACTION_DEPTH.
"""

from __future__ import annotations

import asyncio
import dataclasses
import inspect
import logging
from collections.abc import Awaitable, Callable
from contextvars import ContextVar
from dataclasses import dataclass
from typing import Any

from protoflow.config import Settings, settings as default_settings
from protoflow.kernel.page_manager import PageManager
from protoflow.kernel.store import AppStateStore
from protoflow.kernel.types import (
    ACTION_TYPES,
    TAB_INDEX_KEY,
    Action,
    ActionOutcome,
    StatePathError,
    coerce_action,
    error_code,
)

logger = logging.getLogger(__name__)

# Depth of the action chain the current task belongs to. Tasks spawned while
# an action runs inherit it through their copied context.
_chain_depth: ContextVar[int] = ContextVar("protoflow_action_chain_depth", default=0)

DEFAULT_TOAST_TYPE = "info"
DEFAULT_TOAST_POSITION = "center"


@dataclass
class ActionCallbacks:
    """
    Hooks into the presentation layer. Each may be a plain function or a
    coroutine function; unset hooks are skipped.
    """

    on_navigate: Callable[[str, dict[str, Any] | None], Any] | None = None
    on_navigate_back: Callable[[int], Any] | None = None
    on_switch_tab: Callable[[int], Any] | None = None
    on_show_toast: Callable[[dict[str, Any]], Any] | None = None
    on_hide_toast: Callable[[], Any] | None = None
    on_show_modal: Callable[[dict[str, Any]], Any] | None = None
    on_hide_modal: Callable[[], Any] | None = None
    on_show_action_sheet: Callable[[dict[str, Any]], Any] | None = None
    on_hide_action_sheet: Callable[[], Any] | None = None
    on_state_update: Callable[[str, Any], Any] | None = None
    on_refresh: Callable[[], Any] | None = None

    def merged(self, other: ActionCallbacks) -> ActionCallbacks:
        """Copy of self with every hook that `other` sets taken from `other`."""
        updates = {f.name: getattr(other, f.name) for f in dataclasses.fields(other) if getattr(other, f.name)}
        return dataclasses.replace(self, **updates)


class GlobalActionExecutor:
    def __init__(
        self,
        store: AppStateStore,
        transport: Any = None,
        *,
        settings: Settings | None = None,
    ) -> None:
        self.store = store
        self.transport = transport
        self.settings = settings or default_settings
        self._page_manager: PageManager | None = None
        self._callbacks = ActionCallbacks()
        self._active = False
        self._toast_timer: asyncio.TimerHandle | None = None
        self._delays: dict[asyncio.TimerHandle, asyncio.Future[bool]] = {}
        self._tasks: set[asyncio.Future[Any]] = set()

    # -- wiring ------------------------------------------------------------

    def init(self, page_manager: PageManager, callbacks: ActionCallbacks | None = None) -> None:
        self._page_manager = page_manager
        if callbacks is not None:
            self._callbacks = callbacks
        self._active = True

    def set_callbacks(self, callbacks: ActionCallbacks | None = None, **hooks: Any) -> None:
        """Merge hooks into the current callbacks."""
        if callbacks is not None:
            self._callbacks = self._callbacks.merged(callbacks)
        if hooks:
            self._callbacks = self._callbacks.merged(ActionCallbacks(**hooks))

    @property
    def is_active(self) -> bool:
        return self._active

    @property
    def page_manager(self) -> PageManager | None:
        return self._page_manager

    # -- entry point -------------------------------------------------------

    async def execute(self, action: Action | dict[str, Any] | None) -> ActionOutcome:
        action = coerce_action(action)
        if action is None or not action.type:
            logger.warning("ActionExecutor: invalid action, missing type")
            return ActionOutcome(
                action_type=None, applied=False, error=error_code("MISSING_TYPE", "action has no type")
            )

        depth = _chain_depth.get()
        if depth >= self.settings.MAX_ACTION_DEPTH:
            logger.error(
                "ActionExecutor: refusing %s, action chain depth %d reached the limit", action.type, depth
            )
            return ActionOutcome(
                action_type=action.type,
                applied=False,
                error=error_code("ACTION_DEPTH_EXCEEDED", f"chain depth {depth}"),
            )

        token = _chain_depth.set(depth + 1)
        try:
            return await self._dispatch(action)
        finally:
            _chain_depth.reset(token)

    async def _dispatch(self, action: Action) -> ActionOutcome:
        if not self._active or self._page_manager is None:
            logger.warning("ActionExecutor: not initialized, dropping %s", action.type)
            return self._rejected(action, "EXECUTOR_INACTIVE", "executor is not initialized")

        handler = _HANDLERS.get(action.type)
        if handler is None:
            logger.warning("ActionExecutor: unknown action type: %s", action.type)
            return self._rejected(action, "UNKNOWN_ACTION", action.type)

        logger.debug("ActionExecutor: executing %s", action.type)
        try:
            return await handler(self, action)
        except Exception as e:
            logger.exception("ActionExecutor: error executing %s", action.type)
            if action.error_action is not None:
                await self.execute(action.error_action)
            return self._rejected(action, "EXECUTION_FAILED", str(e))

    # -- helpers -----------------------------------------------------------

    @staticmethod
    def _ok(action: Action) -> ActionOutcome:
        return ActionOutcome(action_type=action.type, applied=True)

    @staticmethod
    def _rejected(action: Action, code: str, msg: str) -> ActionOutcome:
        return ActionOutcome(action_type=action.type, applied=False, error=error_code(code, msg))

    def _config_error(self, action: Action, code: str, msg: str) -> ActionOutcome:
        logger.warning("ActionExecutor: %s: %s", action.type, msg)
        return self._rejected(action, code, msg)

    async def _call(self, hook: str, *args: Any) -> None:
        fn = getattr(self._callbacks, hook)
        if fn is None:
            return
        result = fn(*args)
        if inspect.isawaitable(result):
            await result

    def _track(self, awaitable: Awaitable[Any]) -> None:
        task = asyncio.ensure_future(awaitable)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    @property
    def _pages(self) -> PageManager:
        assert self._page_manager is not None
        return self._page_manager

    # -- navigation --------------------------------------------------------

    async def _navigate_to(self, action: Action) -> ActionOutcome:
        if not action.page_id:
            return self._config_error(action, "MISSING_FIELD", "missing pageId")
        if self._pages.find_page(action.page_id) is None:
            return self._config_error(action, "PAGE_NOT_FOUND", f"page not found: {action.page_id}")

        result = self._pages.push(action.page_id, action.params)
        if not result.applied:
            return ActionOutcome(action_type=action.type, applied=False, error=result.error)

        await self._call("on_navigate", action.page_id, action.params)
        return self._ok(action)

    async def _navigate_back(self, action: Action) -> ActionOutcome:
        depth = (action.params or {}).get("depth", 1)
        if not isinstance(depth, int) or isinstance(depth, bool):
            depth = 1

        result = self._pages.pop(depth)
        await self._call("on_navigate_back", depth)
        return ActionOutcome(action_type=action.type, applied=result.applied, error=result.error)

    async def _switch_tab(self, action: Action) -> ActionOutcome:
        app = self._pages.app
        items = app.tab_bar.items if app.tab_bar else []

        index = action.tab_index
        if isinstance(index, bool) or (index is not None and not isinstance(index, int)):
            index = None
        page_id = action.page_id

        if page_id is not None and index is None:
            index = next((i for i, item in enumerate(items) if item.page_id == page_id), None)
        elif index is not None and page_id is None and 0 <= index < len(items):
            page_id = items[index].page_id

        if index is None or page_id is None:
            msg = f"no tab for index={action.tab_index} pageId={action.page_id}"
            return self._config_error(action, "TAB_NOT_FOUND", msg)
        if self._pages.find_page(page_id) is None:
            return self._config_error(action, "PAGE_NOT_FOUND", f"page not found: {page_id}")

        self.store.set(TAB_INDEX_KEY, index)
        self._pages.clear()
        self._pages.push(page_id)

        await self._call("on_switch_tab", index)
        return self._ok(action)

    async def _redirect_to(self, action: Action) -> ActionOutcome:
        if not action.page_id:
            return self._config_error(action, "MISSING_FIELD", "missing pageId")

        result = self._pages.replace(action.page_id, action.params)
        if not result.applied:
            return ActionOutcome(action_type=action.type, applied=False, error=result.error)

        await self._call("on_navigate", action.page_id, action.params)
        return self._ok(action)

    async def _relaunch(self, action: Action) -> ActionOutcome:
        target = action.page_id or self._pages.app.router.initial_page_id
        if self._pages.find_page(target) is None:
            return self._config_error(action, "PAGE_NOT_FOUND", f"page not found: {target}")

        self._pages.clear()
        self._pages.push(target, action.params)
        self.store.set(TAB_INDEX_KEY, 0)

        await self._call("on_navigate", target, action.params)
        return self._ok(action)

    # -- presentation ------------------------------------------------------

    async def _show_modal(self, action: Action) -> ActionOutcome:
        config: dict[str, Any] | None = None
        if action.modal_id:
            modal = self._pages.app.modals.get(action.modal_id)
            if modal is not None:
                config = modal.to_config()
            elif action.modal is None:
                return self._config_error(action, "MODAL_NOT_FOUND", f"modal not found: {action.modal_id}")
        if action.modal is not None:
            config = action.modal

        if config is None:
            return self._config_error(action, "MISSING_FIELD", "missing modal configuration")

        await self._call("on_show_modal", config)
        return self._ok(action)

    async def _hide_modal(self, action: Action) -> ActionOutcome:
        await self._call("on_hide_modal")
        return self._ok(action)

    async def _show_toast(self, action: Action) -> ActionOutcome:
        if not action.toast:
            return self._config_error(action, "MISSING_FIELD", "missing toast configuration")

        self._cancel_toast_timer()

        toast = action.toast
        config = {
            "message": toast.get("message", ""),
            "duration": toast.get("duration") or self.settings.TOAST_DURATION_MS,
            "type": toast.get("type") or DEFAULT_TOAST_TYPE,
            "position": toast.get("position") or DEFAULT_TOAST_POSITION,
        }

        await self._call("on_show_toast", config)

        # Another toast may have started its timer while the callback ran
        self._cancel_toast_timer()
        loop = asyncio.get_running_loop()
        self._toast_timer = loop.call_later(config["duration"] / 1000, self._auto_hide_toast)
        return self._ok(action)

    def _auto_hide_toast(self) -> None:
        self._toast_timer = None
        fn = self._callbacks.on_hide_toast
        if fn is None:
            return
        try:
            result = fn()
            if inspect.isawaitable(result):
                self._track(result)
        except Exception:
            logger.exception("ActionExecutor: toast auto-hide failed")

    def _cancel_toast_timer(self) -> None:
        if self._toast_timer is not None:
            self._toast_timer.cancel()
            self._toast_timer = None

    async def _hide_toast(self, action: Action) -> ActionOutcome:
        self._cancel_toast_timer()
        await self._call("on_hide_toast")
        return self._ok(action)

    async def _show_action_sheet(self, action: Action) -> ActionOutcome:
        config: dict[str, Any] | None = None
        if action.action_sheet_id:
            sheet = self._pages.app.action_sheets.get(action.action_sheet_id)
            if sheet is not None:
                config = sheet.to_config()
            elif action.action_sheet is None:
                return self._config_error(
                    action, "ACTION_SHEET_NOT_FOUND", f"action sheet not found: {action.action_sheet_id}"
                )
        if action.action_sheet is not None:
            config = action.action_sheet

        if config is None:
            return self._config_error(action, "MISSING_FIELD", "missing actionSheet configuration")

        await self._call("on_show_action_sheet", config)
        return self._ok(action)

    async def _hide_action_sheet(self, action: Action) -> ActionOutcome:
        await self._call("on_hide_action_sheet")
        return self._ok(action)

    # -- data --------------------------------------------------------------

    async def _request(self, action: Action) -> ActionOutcome:
        if not action.url:
            return self._config_error(action, "MISSING_FIELD", "missing url")

        method = (action.method or "GET").upper()
        try:
            if self.transport is None:
                raise RuntimeError("No transport configured")
            response = await self.transport.request(action.url, method, action.data, action.headers)
        except Exception as e:
            message = str(e) or "Request failed"
            logger.warning("ActionExecutor: request %s %s failed: %s", method, action.url, message)
            if action.error_action is not None:
                await self.execute(_with_params(action.error_action, error=message))
            return self._rejected(action, "REQUEST_FAILED", message)

        self.store.set_request_result(action.url, response)

        if action.success_action is not None:
            await self.execute(_with_params(action.success_action, response=response))
        return self._ok(action)

    async def _update_state(self, action: Action) -> ActionOutcome:
        if not action.state_path:
            return self._config_error(action, "MISSING_FIELD", "missing statePath")

        try:
            self.store.set(action.state_path, action.state_value)
        except StatePathError as e:
            return self._config_error(action, "INVALID_PATH", str(e))
        await self._call("on_state_update", action.state_path, action.state_value)
        return self._ok(action)

    async def _delay(self, action: Action) -> ActionOutcome:
        duration = action.duration
        if not isinstance(duration, (int, float)) or isinstance(duration, bool) or duration < 0:
            duration = self.settings.DELAY_DURATION_MS

        loop = asyncio.get_running_loop()
        waiter: asyncio.Future[bool] = loop.create_future()

        def wake() -> None:
            if not waiter.done():
                waiter.set_result(True)

        handle = loop.call_later(duration / 1000, wake)
        self._delays[handle] = waiter
        try:
            completed = await waiter
        finally:
            self._delays.pop(handle, None)
            handle.cancel()

        if not completed:
            logger.debug("ActionExecutor: delay aborted by destroy")
            return self._rejected(action, "EXECUTOR_INACTIVE", "delay aborted")

        if action.next_action is not None:
            await self.execute(action.next_action)
        return self._ok(action)

    # -- teardown ----------------------------------------------------------

    def destroy(self) -> None:
        """Cancel timers and pending delays, drop wiring. Inert until init()."""
        self._cancel_toast_timer()
        for handle, waiter in list(self._delays.items()):
            handle.cancel()
            if not waiter.done():
                waiter.set_result(False)
        self._delays.clear()
        for task in list(self._tasks):
            task.cancel()
        self._tasks.clear()
        self._page_manager = None
        self._callbacks = ActionCallbacks()
        self._active = False


def _with_params(action: Action, **params: Any) -> Action:
    return dataclasses.replace(action, params={**(action.params or {}), **params})


_Handler = Callable[[GlobalActionExecutor, Action], Awaitable[ActionOutcome]]

_HANDLERS: dict[str, _Handler] = {
    "navigateTo": GlobalActionExecutor._navigate_to,
    "navigateBack": GlobalActionExecutor._navigate_back,
    "switchTab": GlobalActionExecutor._switch_tab,
    "redirectTo": GlobalActionExecutor._redirect_to,
    "reLaunch": GlobalActionExecutor._relaunch,
    "showModal": GlobalActionExecutor._show_modal,
    "hideModal": GlobalActionExecutor._hide_modal,
    "showToast": GlobalActionExecutor._show_toast,
    "hideToast": GlobalActionExecutor._hide_toast,
    "showActionSheet": GlobalActionExecutor._show_action_sheet,
    "hideActionSheet": GlobalActionExecutor._hide_action_sheet,
    "request": GlobalActionExecutor._request,
    "updateState": GlobalActionExecutor._update_state,
    "delay": GlobalActionExecutor._delay,
}

if set(_HANDLERS) != ACTION_TYPES:
    raise RuntimeError(f"Action handlers out of sync: {sorted(set(_HANDLERS) ^ ACTION_TYPES)}")
