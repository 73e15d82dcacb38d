"""
ProtoFlow Kernel — Spec Stream Compiler

Receives a JSON document as a sequence of text chunks (e.g. an app spec
streamed from a generator) and reports structural patches each time the
accumulated buffer parses into a complete document.

Chunks must arrive in order and eventually concatenate into valid JSON.
An incomplete buffer is the expected state between chunks, not a failure:
push() keeps the buffer and reports the parse error in CompileResult.error.
"""

from __future__ import annotations

import json
import logging
from typing import Any

from protoflow.kernel.patches import apply_patches, compute_patches
from protoflow.kernel.types import CompileResult, Patch

logger = logging.getLogger(__name__)


class IncompleteDocument(ValueError):
    """The buffer parsed, but not into an object or array."""

    pass


class SpecStreamCompiler:
    def __init__(self) -> None:
        self.buffer = ""
        self._result: Any = None
        self._patches: list[Patch] = []

    def push(self, chunk: str) -> CompileResult:
        """
        Feed a text chunk (may be partial).

        Returns the latest complete document, the patches produced by this
        chunk, whether this chunk completed a document, and the parse error
        if the buffer is still incomplete.
        """
        self.buffer += chunk

        try:
            parsed = self._try_parse()
        except (json.JSONDecodeError, IncompleteDocument) as e:
            return CompileResult(result=self._result, new_patches=[], is_complete=False, error=e)

        new_patches = compute_patches(self._result, parsed)
        self._result = parsed
        self._patches.extend(new_patches)
        self.buffer = ""
        logger.debug("SpecStreamCompiler: document complete, %d patch(es)", len(new_patches))

        return CompileResult(result=parsed, new_patches=new_patches, is_complete=True, error=None)

    def _try_parse(self) -> Any:
        parsed = json.loads(self.buffer)
        if not isinstance(parsed, (dict, list)):
            raise IncompleteDocument(f"Document root must be an object or array, got {type(parsed).__name__}")
        return parsed

    compute_patches = staticmethod(compute_patches)
    apply_patches = staticmethod(apply_patches)

    @property
    def result(self) -> Any:
        return self._result

    @property
    def has_result(self) -> bool:
        return self._result is not None

    @property
    def patches(self) -> list[Patch]:
        """Every patch produced since the last reset."""
        return list(self._patches)

    def reset(self) -> None:
        self.buffer = ""
        self._result = None
        self._patches = []
