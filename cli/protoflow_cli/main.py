"""Main entry point for ProtoFlow CLI."""
from __future__ import annotations

import asyncio
import json
import logging
import sys
from pathlib import Path

from protoflow.config import settings
from protoflow.kernel.actions import ActionCallbacks
from protoflow.kernel.runtime import ProtoFlowRuntime
from protoflow.kernel.stream_compiler import SpecStreamCompiler
from protoflow.models.app import load_app
from protoflow.services.jsonl_parser import JSONLParser
from protoflow_cli import __version__

DEFAULT_CHUNK_SIZE = 64


def print_help():
    """Print help message."""
    print(f"""
ProtoFlow CLI v{__version__}

Usage:
  protoflow [options] <command> FILE

Commands:
  run APP.json          Start a runtime for the app and print its state
  stream SPEC.json      Stream a document through the spec compiler

Options:
  --actions FILE        (run) JSONL action script, one action per line
  --chunk-size N        (stream) characters per chunk (default: {DEFAULT_CHUNK_SIZE})
  -h, --help            Show this help
  -v, --version         Show version

Environment:
  PROTOFLOW_LOG_LEVEL   Logging level (default: INFO)

Examples:
  protoflow run app.json
  protoflow run app.json --actions flow.jsonl
  protoflow stream app.json --chunk-size 16

Action script lines:
  {{"t": "navigateTo", "pageId": "details", "p": {{"id": 1}}}}
  {{"t": "updateState", "statePath": "/user/name", "stateValue": "Ada"}}
""")


def parse_args(args: list[str]) -> dict:
    """
    Parse command line arguments.

    Returns dict with:
        command: str | None (run, stream)
        path: str | None
        actions: str | None
        chunk_size: int
        show_help: bool
        show_version: bool
    """
    result = {
        "command": None,
        "path": None,
        "actions": None,
        "chunk_size": DEFAULT_CHUNK_SIZE,
        "show_help": False,
        "show_version": False,
    }

    i = 0
    while i < len(args):
        arg = args[i]

        if arg in ("run", "stream") and result["command"] is None:
            result["command"] = arg
        elif arg == "--actions":
            if i + 1 < len(args):
                result["actions"] = args[i + 1]
                i += 1
            else:
                print("Error: --actions requires a file")
                sys.exit(1)
        elif arg == "--chunk-size":
            if i + 1 < len(args) and args[i + 1].isdigit() and int(args[i + 1]) > 0:
                result["chunk_size"] = int(args[i + 1])
                i += 1
            else:
                print("Error: --chunk-size requires a positive integer")
                sys.exit(1)
        elif arg in ("--help", "-h"):
            result["show_help"] = True
        elif arg in ("--version", "-v"):
            result["show_version"] = True
        elif arg.startswith("-"):
            print(f"Unknown option: {arg}")
            print("Run 'protoflow --help' for usage.")
            sys.exit(1)
        elif result["command"] is not None and result["path"] is None:
            result["path"] = arg
        else:
            print(f"Unknown command: {arg}")
            print("Run 'protoflow --help' for usage.")
            sys.exit(1)

        i += 1

    return result


def read_actions(path: str) -> list[dict]:
    """Parse a JSONL action script."""
    parser = JSONLParser()
    actions = parser.feed(Path(path).read_text(encoding="utf-8"))
    actions.extend(parser.flush())
    return actions


def printing_callbacks() -> ActionCallbacks:
    """Callbacks that echo every presentation call to stdout."""

    def show(name):
        def hook(*args):
            rendered = ", ".join(json.dumps(a, ensure_ascii=False, default=str) for a in args)
            print(f"  <- {name}({rendered})")

        return hook

    return ActionCallbacks(
        on_navigate=show("navigate"),
        on_navigate_back=show("navigateBack"),
        on_switch_tab=show("switchTab"),
        on_show_toast=show("showToast"),
        on_hide_toast=show("hideToast"),
        on_show_modal=show("showModal"),
        on_hide_modal=show("hideModal"),
        on_show_action_sheet=show("showActionSheet"),
        on_hide_action_sheet=show("hideActionSheet"),
        on_state_update=show("stateUpdate"),
    )


async def run_app(app_path: str, actions_path: str | None) -> int:
    """Execute an action script against a fresh runtime. Returns the exit code."""
    runtime = ProtoFlowRuntime(load_app(app_path), callbacks=printing_callbacks())
    failures = 0
    try:
        for action in read_actions(actions_path) if actions_path else []:
            print(f"-> {action.get('type')}")
            outcome = await runtime.dispatch(action)
            await runtime.settle()
            if not outcome.applied:
                failures += 1
                print(f"  !! {outcome.error}")

        print()
        print("Page stack:")
        for entry in runtime.page_manager.stack:
            params = f" {json.dumps(entry.params, ensure_ascii=False)}" if entry.params else ""
            print(f"  {entry.page_id}{params}")
        print()
        print("State:")
        print(json.dumps(runtime.store.state, indent=2, ensure_ascii=False, default=str))
    finally:
        runtime.destroy()

    return 1 if failures else 0


def stream_spec(spec_path: str, chunk_size: int) -> int:
    """Push a file through the compiler in fixed-size chunks and print patches."""
    text = Path(spec_path).read_text(encoding="utf-8")
    compiler = SpecStreamCompiler()

    for start in range(0, len(text), chunk_size):
        result = compiler.push(text[start:start + chunk_size])
        if result.is_complete:
            print(f"complete after {start + chunk_size} chars, {len(result.new_patches)} patch(es)")
            for patch in result.new_patches:
                print(f"  {json.dumps(patch.to_dict(), ensure_ascii=False)}")

    if not compiler.has_result:
        print("Error: stream did not produce a complete document")
        return 1
    return 0


def main():
    """Main entry point."""
    args = parse_args(sys.argv[1:])

    # Handle help and version first
    if args["show_help"]:
        print_help()
        return

    if args["show_version"]:
        print(f"protoflow {__version__}")
        return

    logging.basicConfig(
        level=settings.LOG_LEVEL.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if args["command"] is None or args["path"] is None:
        print_help()
        sys.exit(1)

    if args["command"] == "run":
        sys.exit(asyncio.run(run_app(args["path"], args["actions"])))
    else:
        sys.exit(stream_spec(args["path"], args["chunk_size"]))


if __name__ == "__main__":
    main()
