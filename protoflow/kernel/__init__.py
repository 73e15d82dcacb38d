"""
ProtoFlow Kernel — the declarative action/state runtime.

Six components:
  expressions     — (expression, context) → value
  visibility      — visible / hidden rules over the evaluator
  state_watcher   — runs actions when watched state paths change
  page_manager    — bounded navigation stack with listeners
  actions         — GlobalActionExecutor, one handler per action type
  stream_compiler — incremental JSON parse + structural diff / patch

runtime.ProtoFlowRuntime wires one of each around an AppStateStore.
"""

from protoflow.kernel.actions import ActionCallbacks, GlobalActionExecutor
from protoflow.kernel.expressions import ExpressionEvaluator
from protoflow.kernel.page_manager import PageManager
from protoflow.kernel.patches import apply_patches, compute_patches
from protoflow.kernel.runtime import ProtoFlowRuntime
from protoflow.kernel.state_watcher import StateWatcher
from protoflow.kernel.store import AppStateStore
from protoflow.kernel.stream_compiler import SpecStreamCompiler
from protoflow.kernel.visibility import VisibilityChecker

__all__ = [
    "ExpressionEvaluator",
    "VisibilityChecker",
    "StateWatcher",
    "PageManager",
    "GlobalActionExecutor",
    "ActionCallbacks",
    "AppStateStore",
    "SpecStreamCompiler",
    "compute_patches",
    "apply_patches",
    "ProtoFlowRuntime",
]
