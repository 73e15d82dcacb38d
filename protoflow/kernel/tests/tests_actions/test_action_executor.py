"""
ProtoFlow Global Action Executor — Tests

One class per action family. Every test checks the returned ActionOutcome
plus the observable effect (stack, state, callbacks).
"""

import asyncio

import pytest

from protoflow.config import Settings
from protoflow.kernel.actions import ActionCallbacks, GlobalActionExecutor
from protoflow.kernel.page_manager import PageManager
from protoflow.kernel.store import AppStateStore
from protoflow.kernel.types import TAB_INDEX_KEY, Action
from protoflow.services.transport import MockTransport

pytestmark = pytest.mark.asyncio


class Recorder:
    """Collects every presentation callback as (name, args)."""

    def __init__(self):
        self.calls = []

    def hook(self, name):
        def record(*args):
            self.calls.append((name, args))

        return record

    def callbacks(self):
        return ActionCallbacks(
            on_navigate=self.hook("navigate"),
            on_navigate_back=self.hook("navigate_back"),
            on_switch_tab=self.hook("switch_tab"),
            on_show_toast=self.hook("show_toast"),
            on_hide_toast=self.hook("hide_toast"),
            on_show_modal=self.hook("show_modal"),
            on_hide_modal=self.hook("hide_modal"),
            on_show_action_sheet=self.hook("show_action_sheet"),
            on_hide_action_sheet=self.hook("hide_action_sheet"),
            on_state_update=self.hook("state_update"),
        )

    def names(self):
        return [name for name, _ in self.calls]


@pytest.fixture
def fast_settings():
    s = Settings()
    s.TOAST_DURATION_MS = 20
    s.DELAY_DURATION_MS = 20
    return s


@pytest.fixture
def recorder():
    return Recorder()


@pytest.fixture
def store(app):
    return AppStateStore(app.state)


@pytest.fixture
def transport():
    return MockTransport(failures={"/api/broken": "503 Service Unavailable"})


@pytest.fixture
def pages(app):
    return PageManager(app)


@pytest.fixture
def executor(store, transport, pages, recorder, fast_settings):
    ex = GlobalActionExecutor(store, transport, settings=fast_settings)
    ex.init(pages, recorder.callbacks())
    yield ex
    ex.destroy()


# ============================================================================
# Dispatch basics
# ============================================================================


class TestDispatch:
    async def test_missing_type(self, executor):
        outcome = await executor.execute({"pageId": "details"})
        assert not outcome.applied
        assert "MISSING_TYPE" in outcome.error

    async def test_none_action(self, executor):
        outcome = await executor.execute(None)
        assert "MISSING_TYPE" in outcome.error

    async def test_unknown_type(self, executor):
        outcome = await executor.execute({"type": "teleport"})
        assert not outcome.applied
        assert "UNKNOWN_ACTION" in outcome.error

    async def test_accepts_action_records(self, executor, pages):
        outcome = await executor.execute(Action(type="navigateTo", page_id="details"))
        assert outcome.applied
        assert pages.current_page_id == "details"

    async def test_not_initialized(self, store):
        ex = GlobalActionExecutor(store, MockTransport())
        outcome = await ex.execute({"type": "hideToast"})
        assert not outcome.applied
        assert "EXECUTOR_INACTIVE" in outcome.error

    async def test_callback_exception_runs_error_action(self, executor, store, recorder):
        def broken(config):
            raise RuntimeError("renderer bug")

        executor.set_callbacks(on_show_modal=broken)
        outcome = await executor.execute(
            {
                "type": "showModal",
                "modalId": "confirm",
                "errorAction": {"type": "updateState", "statePath": "/failed", "stateValue": True},
            }
        )
        assert not outcome.applied
        assert "EXECUTION_FAILED" in outcome.error
        assert store.get("/failed") is True

    async def test_async_callbacks_are_awaited(self, executor):
        seen = []

        async def on_navigate(page_id, params):
            await asyncio.sleep(0)
            seen.append(page_id)

        executor.set_callbacks(on_navigate=on_navigate)
        await executor.execute({"type": "navigateTo", "pageId": "details"})
        assert seen == ["details"]

    async def test_set_callbacks_merges(self, executor, recorder):
        extra = []
        executor.set_callbacks(ActionCallbacks(on_refresh=lambda: extra.append(1)))
        await executor.execute({"type": "hideModal"})
        assert recorder.names() == ["hide_modal"]


# ============================================================================
# Navigation
# ============================================================================


class TestNavigation:
    async def test_navigate_to_known_page(self, executor, pages, recorder):
        outcome = await executor.execute({"type": "navigateTo", "pageId": "details", "params": {"id": 7}})
        assert outcome.applied
        assert pages.current_page_id == "details"
        assert pages.stack_size == 2
        assert recorder.calls == [("navigate", ("details", {"id": 7}))]

    async def test_navigate_to_unknown_page(self, executor, pages, recorder):
        outcome = await executor.execute({"type": "navigateTo", "pageId": "nowhere"})
        assert not outcome.applied
        assert "PAGE_NOT_FOUND" in outcome.error
        assert pages.stack_size == 1
        assert recorder.calls == []

    async def test_navigate_back(self, executor, pages, recorder):
        await executor.execute({"type": "navigateTo", "pageId": "details"})
        await executor.execute({"type": "navigateTo", "pageId": "profile"})
        outcome = await executor.execute({"type": "navigateBack", "params": {"depth": 2}})
        assert outcome.applied
        assert pages.current_page_id == "home"
        assert recorder.calls[-1] == ("navigate_back", (2,))

    async def test_navigate_back_at_floor(self, executor, pages):
        outcome = await executor.execute({"type": "navigateBack"})
        assert not outcome.applied
        assert "STACK_FLOOR" in outcome.error
        assert pages.stack_size == 1

    async def test_switch_tab_by_index(self, executor, pages, store, recorder):
        await executor.execute({"type": "navigateTo", "pageId": "details"})
        outcome = await executor.execute({"type": "switchTab", "tabIndex": 1})
        assert outcome.applied
        assert [e.page_id for e in pages.stack] == ["profile"]
        assert store.get(TAB_INDEX_KEY) == 1
        assert recorder.calls[-1] == ("switch_tab", (1,))

    async def test_switch_tab_by_page(self, executor, store):
        outcome = await executor.execute({"type": "switchTab", "pageId": "profile"})
        assert outcome.applied
        assert store.get(TAB_INDEX_KEY) == 1

    async def test_switch_tab_unknown(self, executor, pages):
        outcome = await executor.execute({"type": "switchTab", "tabIndex": 5})
        assert not outcome.applied
        assert "TAB_NOT_FOUND" in outcome.error
        assert pages.current_page_id == "home"

    async def test_redirect_to(self, executor, pages):
        await executor.execute({"type": "navigateTo", "pageId": "details"})
        outcome = await executor.execute({"type": "redirectTo", "pageId": "profile"})
        assert outcome.applied
        assert [e.page_id for e in pages.stack] == ["home", "profile"]

    async def test_relaunch_defaults_to_initial_page(self, executor, pages, store):
        await executor.execute({"type": "switchTab", "tabIndex": 1})
        await executor.execute({"type": "navigateTo", "pageId": "details"})
        outcome = await executor.execute({"type": "reLaunch"})
        assert outcome.applied
        assert [e.page_id for e in pages.stack] == ["home"]
        assert store.get(TAB_INDEX_KEY) == 0

    async def test_relaunch_unknown_page_keeps_stack(self, executor, pages):
        await executor.execute({"type": "navigateTo", "pageId": "details"})
        outcome = await executor.execute({"type": "reLaunch", "pageId": "nowhere"})
        assert "PAGE_NOT_FOUND" in outcome.error
        assert pages.stack_size == 2


# ============================================================================
# Presentation
# ============================================================================


class TestPresentation:
    async def test_show_modal_from_registry(self, executor, recorder):
        outcome = await executor.execute({"type": "showModal", "modalId": "confirm"})
        assert outcome.applied
        name, (config,) = recorder.calls[-1]
        assert name == "show_modal"
        assert config["title"] == "Confirm"
        assert config["buttons"][0]["text"] == "OK"

    async def test_show_modal_inline(self, executor, recorder):
        await executor.execute({"type": "showModal", "modal": {"title": "Inline"}})
        assert recorder.calls[-1] == ("show_modal", ({"title": "Inline"},))

    async def test_show_modal_unknown_id(self, executor, recorder):
        outcome = await executor.execute({"type": "showModal", "modalId": "missing"})
        assert "MODAL_NOT_FOUND" in outcome.error
        assert recorder.calls == []

    async def test_hide_modal(self, executor, recorder):
        outcome = await executor.execute({"type": "hideModal"})
        assert outcome.applied
        assert recorder.names() == ["hide_modal"]

    async def test_action_sheet(self, executor, recorder):
        outcome = await executor.execute({"type": "showActionSheet", "actionSheetId": "share"})
        assert outcome.applied
        _, (config,) = recorder.calls[-1]
        assert config["cancelText"] == "Cancel"
        await executor.execute({"type": "hideActionSheet"})
        assert recorder.names()[-1] == "hide_action_sheet"

    async def test_action_sheet_unknown_id(self, executor):
        outcome = await executor.execute({"type": "showActionSheet", "actionSheetId": "missing"})
        assert "ACTION_SHEET_NOT_FOUND" in outcome.error


class TestToast:
    async def test_config_is_normalized(self, executor, recorder):
        await executor.execute({"type": "showToast", "toast": {"message": "Saved"}})
        assert recorder.calls[0] == (
            "show_toast",
            ({"message": "Saved", "duration": 20, "type": "info", "position": "center"},),
        )

    async def test_auto_hide(self, executor, recorder):
        await executor.execute({"type": "showToast", "toast": {"message": "Saved"}})
        await asyncio.sleep(0.05)
        assert recorder.names() == ["show_toast", "hide_toast"]

    async def test_new_toast_cancels_pending_hide(self, executor, recorder):
        await executor.execute({"type": "showToast", "toast": {"message": "one", "duration": 40}})
        await asyncio.sleep(0.01)
        await executor.execute({"type": "showToast", "toast": {"message": "two", "duration": 200}})
        await asyncio.sleep(0.06)
        assert recorder.names() == ["show_toast", "show_toast"]
        await asyncio.sleep(0.2)
        assert recorder.names() == ["show_toast", "show_toast", "hide_toast"]

    async def test_overlapping_async_toasts_keep_one_timer(self, executor):
        hides = []

        async def slow_show(config):
            await asyncio.sleep(0.01)

        executor.set_callbacks(ActionCallbacks(on_show_toast=slow_show, on_hide_toast=lambda: hides.append(1)))
        await asyncio.gather(
            executor.execute({"type": "showToast", "toast": {"message": "one", "duration": 50}}),
            executor.execute({"type": "showToast", "toast": {"message": "two", "duration": 300}}),
        )
        await asyncio.sleep(0.12)
        assert hides == []
        await asyncio.sleep(0.3)
        assert hides == [1]

    async def test_missing_config(self, executor):
        outcome = await executor.execute({"type": "showToast"})
        assert "MISSING_FIELD" in outcome.error


# ============================================================================
# Data
# ============================================================================


class TestRequest:
    async def test_success_runs_success_action_with_response(self, executor, store, transport):
        outcome = await executor.execute(
            {
                "type": "request",
                "url": "/api/user/info",
                "successAction": {"type": "updateState", "statePath": "/loaded", "stateValue": True},
            }
        )
        assert outcome.applied
        assert store.get("/loaded") is True
        assert store.get_request_result("/api/user/info")["data"]["name"] == "Test User"
        assert transport.calls[0]["method"] == "GET"

    async def test_success_action_receives_response_param(self, executor, recorder):
        await executor.execute(
            {
                "type": "request",
                "url": "/api/echo",
                "method": "post",
                "data": {"x": 1},
                "successAction": {"type": "navigateTo", "pageId": "details"},
            }
        )
        name, (page_id, params) = recorder.calls[-1]
        assert name == "navigate"
        assert params["response"] == {"code": 0, "message": "success", "data": {"x": 1}}

    async def test_failure_runs_error_action_with_message(self, executor, recorder):
        outcome = await executor.execute(
            {
                "type": "request",
                "url": "/api/broken",
                "errorAction": {"type": "navigateTo", "pageId": "details"},
            }
        )
        assert not outcome.applied
        assert "REQUEST_FAILED" in outcome.error
        _, (_, params) = recorder.calls[-1]
        assert params["error"] == "503 Service Unavailable"

    async def test_missing_url(self, executor):
        outcome = await executor.execute({"type": "request"})
        assert "MISSING_FIELD" in outcome.error


class TestUpdateState:
    async def test_sets_leaf_and_notifies(self, executor, store, recorder):
        changes = []
        store.subscribe(lambda path, new, old: changes.append((path, new, old)))
        outcome = await executor.execute({"type": "updateState", "statePath": "/user/name", "stateValue": "Grace"})
        assert outcome.applied
        assert store.get("/user/name") == "Grace"
        assert changes == [("/user/name", "Grace", "Ada")]
        assert recorder.calls[-1] == ("state_update", ("/user/name", "Grace"))

    async def test_dot_path_creates_intermediates(self, executor, store):
        await executor.execute({"type": "updateState", "statePath": "form.address.city", "stateValue": "Oslo"})
        assert store.state["form"] == {"address": {"city": "Oslo"}}

    async def test_missing_path(self, executor):
        outcome = await executor.execute({"type": "updateState", "stateValue": 1})
        assert "MISSING_FIELD" in outcome.error

    @pytest.mark.parametrize("path", ["/items/9/x", "/items/foo/x", "/items/-1"])
    async def test_bad_sequence_index(self, executor, store, recorder, path):
        store.set("/items", [{"x": 1}])
        outcome = await executor.execute({"type": "updateState", "statePath": path, "stateValue": 2})
        assert not outcome.applied
        assert "INVALID_PATH" in outcome.error
        assert store.get("/items") == [{"x": 1}]
        assert "state_update" not in recorder.names()


class TestDelay:
    async def test_runs_next_action_after_duration(self, executor, pages):
        outcome = await executor.execute(
            {"type": "delay", "duration": 10, "nextAction": {"type": "navigateTo", "pageId": "details"}}
        )
        assert outcome.applied
        assert pages.current_page_id == "details"

    async def test_destroy_aborts_pending_delay(self, executor, pages):
        task = asyncio.ensure_future(
            executor.execute({"type": "delay", "duration": 1000, "nextAction": {"type": "hideModal"}})
        )
        await asyncio.sleep(0.01)
        executor.destroy()
        outcome = await task
        assert not outcome.applied
        assert "EXECUTOR_INACTIVE" in outcome.error

    async def test_destroyed_executor_is_inert(self, executor):
        executor.destroy()
        outcome = await executor.execute({"type": "hideModal"})
        assert "EXECUTOR_INACTIVE" in outcome.error


class TestChainDepth:
    async def test_runaway_chain_is_refused(self, executor, fast_settings, store):
        fast_settings.MAX_ACTION_DEPTH = 3
        action = {"type": "updateState", "statePath": "/leaf", "stateValue": "done"}
        for _ in range(5):
            action = {"type": "delay", "duration": 0, "nextAction": action}
        outcome = await executor.execute(action)
        assert outcome.applied
        assert store.get("/leaf") is None
