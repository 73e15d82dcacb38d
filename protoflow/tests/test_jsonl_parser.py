"""
Tests for protoflow/services/jsonl_parser.py
"""

from __future__ import annotations

from protoflow.services.jsonl_parser import JSONLParser


class TestParseSingleLine:
    def test_basic_action(self):
        parser = JSONLParser()
        lines = parser.feed('{"t":"navigateTo","pageId":"details"}\n')
        assert len(lines) == 1
        assert lines[0]["type"] == "navigateTo"
        assert lines[0]["pageId"] == "details"

    def test_params_and_page_id_expanded(self):
        parser = JSONLParser()
        lines = parser.feed('{"t":"navigateTo","pid":"details","p":{"id":1}}\n')
        assert lines[0] == {"type": "navigateTo", "pageId": "details", "params": {"id": 1}}

    def test_nested_actions_expanded(self):
        parser = JSONLParser()
        lines = parser.feed('{"t":"delay","duration":5,"nextAction":{"t":"hideToast"}}\n')
        assert lines[0]["nextAction"] == {"type": "hideToast"}

    def test_no_trailing_newline_returns_empty(self):
        parser = JSONLParser()
        assert parser.feed('{"t":"hideModal"}') == []

    def test_empty_and_comment_lines_skipped(self):
        parser = JSONLParser()
        assert parser.feed("\n   \n# setup\n") == []


class TestPartialBuffer:
    def test_partial_then_complete(self):
        parser = JSONLParser()
        assert parser.feed('{"t":"upd') == []
        result = parser.feed('ateState","statePath":"/a","stateValue":1}\n')
        assert result[0]["type"] == "updateState"

    def test_multiple_lines_in_one_chunk(self):
        parser = JSONLParser()
        lines = parser.feed('{"t":"hideModal"}\n{"t":"hideToast"}\n')
        assert [line["type"] for line in lines] == ["hideModal", "hideToast"]


class TestMalformed:
    def test_malformed_line_skipped(self):
        parser = JSONLParser()
        lines = parser.feed('{"t": oops}\n{"t":"hideModal"}\n')
        assert [line["type"] for line in lines] == ["hideModal"]

    def test_non_object_line_skipped(self):
        parser = JSONLParser()
        assert parser.feed("[1, 2]\n") == []


class TestFlush:
    def test_flush_returns_final_line(self):
        parser = JSONLParser()
        parser.feed('{"t":"hideModal"}')
        assert parser.flush() == [{"type": "hideModal"}]
        assert parser.buffer == ""

    def test_flush_empty(self):
        assert JSONLParser().flush() == []

    def test_flush_malformed(self):
        parser = JSONLParser()
        parser.feed('{"t":')
        assert parser.flush() == []
