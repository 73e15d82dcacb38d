"""Tests for the protoflow command line."""

from __future__ import annotations

import asyncio
import json

import pytest

from protoflow_cli.main import parse_args, read_actions, run_app, stream_spec

APP = {
    "router": {"initialPageId": "home"},
    "pages": [{"id": "home"}, {"id": "details"}],
    "state": {"user": {"name": "Ada"}},
}


@pytest.fixture
def app_file(tmp_path):
    path = tmp_path / "app.json"
    path.write_text(json.dumps(APP), encoding="utf-8")
    return path


class TestParseArgs:
    def test_run_with_actions(self):
        args = parse_args(["run", "app.json", "--actions", "flow.jsonl"])
        assert args["command"] == "run"
        assert args["path"] == "app.json"
        assert args["actions"] == "flow.jsonl"

    def test_stream_with_chunk_size(self):
        args = parse_args(["stream", "spec.json", "--chunk-size", "8"])
        assert args["command"] == "stream"
        assert args["chunk_size"] == 8

    def test_flags(self):
        assert parse_args(["-h"])["show_help"]
        assert parse_args(["--version"])["show_version"]

    def test_unknown_option_exits(self):
        with pytest.raises(SystemExit):
            parse_args(["--nope"])

    def test_bad_chunk_size_exits(self):
        with pytest.raises(SystemExit):
            parse_args(["stream", "x.json", "--chunk-size", "zero"])


class TestCommands:
    def test_read_actions(self, tmp_path):
        path = tmp_path / "flow.jsonl"
        path.write_text('{"t":"navigateTo","pid":"details"}\n{"t":"hideModal"}', encoding="utf-8")
        assert [a["type"] for a in read_actions(str(path))] == ["navigateTo", "hideModal"]

    def test_run_prints_stack_and_state(self, app_file, tmp_path, capsys):
        actions = tmp_path / "flow.jsonl"
        actions.write_text(
            '{"t":"navigateTo","pageId":"details","p":{"id":3}}\n'
            '{"t":"updateState","statePath":"/user/name","stateValue":"Grace"}\n',
            encoding="utf-8",
        )
        code = asyncio.run(run_app(str(app_file), str(actions)))
        out = capsys.readouterr().out
        assert code == 0
        assert 'details {"id": 3}' in out
        assert '"name": "Grace"' in out

    def test_run_reports_failures(self, app_file, tmp_path, capsys):
        actions = tmp_path / "flow.jsonl"
        actions.write_text('{"t":"navigateTo","pageId":"nowhere"}\n', encoding="utf-8")
        assert asyncio.run(run_app(str(app_file), str(actions))) == 1
        assert "PAGE_NOT_FOUND" in capsys.readouterr().out

    def test_stream_prints_patches(self, app_file, capsys):
        assert stream_spec(str(app_file), 16) == 0
        out = capsys.readouterr().out
        assert "complete after" in out
        assert '"op": "replace"' in out

    def test_stream_incomplete_document(self, tmp_path, capsys):
        path = tmp_path / "broken.json"
        path.write_text('{"router": ', encoding="utf-8")
        assert stream_spec(str(path), 4) == 1
