"""
ProtoFlow Kernel — Structural Diff / Patch

Pure functions:
  compute_patches(old, new) → list[Patch]
  apply_patches(doc, patches) → new document

Paths are JSON Pointers: "/key/0/child", with "~" written "~0" and "/"
written "~1" inside a segment. "" is the document root.

apply_patches never mutates its input. It works on a deep copy and returns
the patched copy.
"""

from __future__ import annotations

import copy
from collections.abc import Iterable
from typing import Any

from protoflow.kernel.paths import deep_equal, is_scalar, lookup, strict_equals
from protoflow.kernel.types import PATCH_OPS, Patch, PatchError, PatchTestFailed


# ---------------------------------------------------------------------------
# Pointer segments
# ---------------------------------------------------------------------------


def escape_segment(key: Any) -> str:
    """Escape one key for a patch path: "a/b" → "a~1b", "a~b" → "a~0b"."""
    return str(key).replace("~", "~0").replace("/", "~1")


def unescape_segment(segment: str) -> str:
    return segment.replace("~1", "/").replace("~0", "~")


def split_pointer(path: str) -> list[str]:
    """
    Split a patch path into unescaped segments.

    Unlike state paths, empty segments are kept: "/" addresses the key "" and
    "/watch//user" is ["watch", "", "user"]. "" is the document root.
    """
    if not path:
        return []
    if path.startswith("/"):
        path = path[1:]
    return [unescape_segment(segment) for segment in path.split("/")]


def _child(path: str, key: Any) -> str:
    return f"{path}/{escape_segment(key)}"


# ---------------------------------------------------------------------------
# Diff
# ---------------------------------------------------------------------------


def compute_patches(old: Any, new: Any) -> list[Patch]:
    """
    Structural diff from `old` to `new`.

    With no previous document the whole new document is one root replace.
    Applying the result to `old` with apply_patches yields `new`.
    """
    if old is None:
        return [Patch(op="replace", path="", value=copy.deepcopy(new))]

    patches: list[Patch] = []
    _diff("", old, new, patches)
    return patches


def _diff(path: str, old: Any, new: Any, patches: list[Patch]) -> None:
    if isinstance(old, dict) and isinstance(new, dict):
        _diff_dicts(path, old, new, patches)
    elif isinstance(old, list) and isinstance(new, list):
        _diff_lists(path, old, new, patches)
    elif is_scalar(old) and is_scalar(new):
        if not strict_equals(old, new):
            patches.append(Patch(op="replace", path=path, value=new))
    else:
        # Container type changed
        patches.append(Patch(op="replace", path=path, value=copy.deepcopy(new)))


def _diff_dicts(path: str, old: dict, new: dict, patches: list[Patch]) -> None:
    keys = list(old.keys()) + [k for k in new.keys() if k not in old]
    for key in keys:
        child = _child(path, key)
        if key not in old:
            patches.append(Patch(op="add", path=child, value=copy.deepcopy(new[key])))
        elif key not in new:
            patches.append(Patch(op="remove", path=child))
        else:
            _diff(child, old[key], new[key], patches)


def _diff_lists(path: str, old: list, new: list, patches: list[Patch]) -> None:
    shared = min(len(old), len(new))
    for i in range(shared):
        _diff(_child(path, i), old[i], new[i], patches)
    for i in range(shared, len(new)):
        patches.append(Patch(op="add", path=_child(path, i), value=copy.deepcopy(new[i])))
    # Highest index first so earlier removals do not shift later targets
    for i in range(len(old) - 1, shared - 1, -1):
        patches.append(Patch(op="remove", path=_child(path, i)))


# ---------------------------------------------------------------------------
# Apply
# ---------------------------------------------------------------------------


def apply_patches(doc: Any, patches: Iterable[Patch | dict[str, Any]]) -> Any:
    """
    Apply patches in order to a deep copy of `doc`.

    Raises PatchTestFailed when a `test` op does not match and PatchError for
    malformed patches or unresolvable paths.
    """
    result = copy.deepcopy(doc)
    for patch in patches:
        if isinstance(patch, dict):
            patch = Patch.from_dict(patch)
        result = apply_patch(result, patch)
    return result


def apply_patch(doc: Any, patch: Patch) -> Any:
    """Apply one patch in place where possible. Returns the (possibly new) root."""
    handler = _HANDLERS.get(patch.op)
    if handler is None:
        raise PatchError(f"Unknown patch operation: {patch.op}")
    return handler(doc, patch)


def _get(doc: Any, path: str) -> Any:
    found, value = lookup(doc, split_pointer(path))
    if not found:
        raise PatchError(f"Path not found: {path!r}")
    return value


def _parent(doc: Any, segments: list[str], *, create: bool) -> Any:
    current = doc
    for segment in segments:
        if isinstance(current, dict):
            if segment not in current or current[segment] is None:
                if not create:
                    raise PatchError(f"Missing parent segment: {segment!r}")
                current[segment] = {}
            current = current[segment]
        elif isinstance(current, list):
            current = current[_index(current, segment)]
        else:
            raise PatchError(f"Cannot descend into scalar at {segment!r}")
    return current


def _index(seq: list, segment: str, *, allow_end: bool = False) -> int:
    if allow_end and segment == "-":
        return len(seq)
    try:
        index = int(segment)
    except ValueError as e:
        raise PatchError(f"Invalid sequence index: {segment!r}") from e
    upper = len(seq) if allow_end else len(seq) - 1
    if index < 0 or index > upper:
        raise PatchError(f"Sequence index out of range: {index}")
    return index


def _add(doc: Any, patch: Patch) -> Any:
    return _put(doc, patch.path, copy.deepcopy(patch.value), insert=True)


def _replace(doc: Any, patch: Patch) -> Any:
    return _put(doc, patch.path, copy.deepcopy(patch.value), insert=False)


def _put(doc: Any, path: str, value: Any, *, insert: bool) -> Any:
    segments = split_pointer(path)
    if not segments:
        return value

    parent = _parent(doc, segments[:-1], create=True)
    key = segments[-1]
    if isinstance(parent, list):
        if insert:
            parent.insert(_index(parent, key, allow_end=True), value)
        else:
            parent[_index(parent, key)] = value
    elif isinstance(parent, dict):
        parent[key] = value
    else:
        raise PatchError(f"Cannot set {path!r}: parent is a scalar")
    return doc


def _remove(doc: Any, patch: Patch) -> Any:
    segments = split_pointer(patch.path)
    if not segments:
        raise PatchError("Cannot remove the document root")

    parent = _parent(doc, segments[:-1], create=False)
    key = segments[-1]
    if isinstance(parent, list):
        del parent[_index(parent, key)]
    elif isinstance(parent, dict):
        if key not in parent:
            raise PatchError(f"Path not found: {patch.path!r}")
        del parent[key]
    else:
        raise PatchError(f"Cannot remove {patch.path!r}: parent is a scalar")
    return doc


def _move(doc: Any, patch: Patch) -> Any:
    if patch.from_ is None:
        raise PatchError("move requires 'from'")
    value = _get(doc, patch.from_)
    doc = _remove(doc, Patch(op="remove", path=patch.from_))
    return _put(doc, patch.path, value, insert=True)


def _copy(doc: Any, patch: Patch) -> Any:
    if patch.from_ is None:
        raise PatchError("copy requires 'from'")
    value = copy.deepcopy(_get(doc, patch.from_))
    return _put(doc, patch.path, value, insert=True)


def _test(doc: Any, patch: Patch) -> Any:
    found, actual = lookup(doc, split_pointer(patch.path))
    if not found or not deep_equal(actual, patch.value):
        raise PatchTestFailed(patch.path, patch.value, actual)
    return doc


_HANDLERS = {
    "add": _add,
    "remove": _remove,
    "replace": _replace,
    "move": _move,
    "copy": _copy,
    "test": _test,
}

if set(_HANDLERS) != PATCH_OPS:
    raise RuntimeError(f"Patch handlers out of sync: {sorted(set(_HANDLERS) ^ PATCH_OPS)}")
