"""
ProtoFlow Page Manager — Tests

Bounded stack discipline, rejections with error codes, listener delivery.
"""

import pytest

from protoflow.kernel.page_manager import PageManager


@pytest.fixture
def pm(app):
    return PageManager(app)


@pytest.fixture
def events(pm):
    received = []
    pm.add_listener(received.append)
    return received


class TestConstruction:
    def test_pushes_initial_page(self, pm):
        assert pm.stack_size == 1
        assert pm.current_page_id == "home"
        assert pm.current_page.name == "Home"
        assert not pm.can_go_back()

    def test_capacity_from_router_history_limit(self, app):
        app.router.history_limit = 3
        assert PageManager(app).max_stack_size == 3

    def test_explicit_capacity_wins(self, app):
        assert PageManager(app, max_stack_size=7).max_stack_size == 7


class TestPush:
    def test_push_known_page(self, pm, events):
        r = pm.push("details", {"id": 1})
        assert r.applied
        assert pm.current_page_id == "details"
        assert pm.current_params == {"id": 1}
        assert pm.current_index == 1
        assert events[-1].type == "push"
        assert events[-1].page_id == "details"
        assert events[-1].stack_size == 2

    def test_push_unknown_page_is_rejected(self, pm, events):
        r = pm.push("nowhere")
        assert not r.applied
        assert "PAGE_NOT_FOUND" in r.error
        assert pm.stack_size == 1
        assert events == []

    def test_overflow_evicts_oldest(self, app):
        pm = PageManager(app, max_stack_size=3)
        pm.push("details")
        pm.push("profile")
        pm.push("details", {"n": 2})
        assert [e.page_id for e in pm.stack] == ["details", "profile", "details"]
        assert pm.stack_size == 3
        assert pm.current_index == 2
        assert pm.current_params == {"n": 2}


class TestPop:
    def test_pop_one(self, pm, events):
        pm.push("details")
        r = pm.pop()
        assert r.applied
        assert pm.current_page_id == "home"
        assert events[-1].type == "pop"
        assert events[-1].page_id == "home"

    def test_pop_is_clamped_to_floor(self, pm):
        pm.push("details")
        pm.push("profile")
        pm.pop(10)
        assert pm.stack_size == 1
        assert pm.current_page_id == "home"

    def test_pop_at_floor_is_rejected(self, pm, events):
        r = pm.pop()
        assert not r.applied
        assert "STACK_FLOOR" in r.error
        assert pm.stack_size == 1
        assert events == []

    def test_non_positive_depth_is_noop(self, pm):
        pm.push("details")
        r = pm.pop(0)
        assert not r.applied
        assert r.error is None
        assert pm.stack_size == 2

    def test_pop_to(self, pm, events):
        pm.push("details")
        pm.push("profile")
        pm.push("details")
        r = pm.pop_to("details")
        assert r.applied
        assert [e.page_id for e in pm.stack] == ["home", "details"]
        assert events[-1].type == "pop"

    def test_pop_to_missing_page(self, pm):
        r = pm.pop_to("profile")
        assert not r.applied
        assert "PAGE_NOT_IN_STACK" in r.error


class TestReplaceAndClear:
    def test_replace_current_entry(self, pm, events):
        pm.push("details")
        r = pm.replace("profile", {"tab": 1})
        assert r.applied
        assert [e.page_id for e in pm.stack] == ["home", "profile"]
        assert pm.current_params == {"tab": 1}
        assert events[-1].type == "replace"

    def test_replace_unknown_page(self, pm):
        r = pm.replace("nowhere")
        assert "PAGE_NOT_FOUND" in r.error
        assert pm.current_page_id == "home"

    def test_replace_on_empty_stack(self, pm):
        pm.clear()
        r = pm.replace("home")
        assert not r.applied
        assert "STACK_EMPTY" in r.error

    def test_clear(self, pm, events):
        pm.clear()
        assert pm.stack_size == 0
        assert pm.current_index is None
        assert pm.current_page is None
        assert pm.current_page_id == ""
        assert events[-1].type == "clear"


class TestListeners:
    def test_unsubscribe(self, pm):
        received = []
        unsubscribe = pm.add_listener(received.append)
        unsubscribe()
        pm.push("details")
        assert received == []

    def test_failing_listener_does_not_stop_others(self, pm):
        received = []

        def broken(event):
            raise RuntimeError("listener bug")

        pm.add_listener(broken)
        pm.add_listener(received.append)
        pm.push("details")
        assert len(received) == 1

    def test_listeners_run_in_registration_order(self, pm):
        order = []
        pm.add_listener(lambda e: order.append("first"))
        pm.add_listener(lambda e: order.append("second"))
        pm.push("details")
        assert order == ["first", "second"]

    def test_stack_is_a_copy(self, pm):
        pm.stack.clear()
        assert pm.stack_size == 1

    def test_destroy_drops_listeners_and_stack(self, pm):
        received = []
        pm.add_listener(received.append)
        pm.destroy()
        assert pm.stack_size == 0
        pm.push("details")
        assert received == []
