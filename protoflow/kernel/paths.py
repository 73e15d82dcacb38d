"""
ProtoFlow Kernel — Path Addressing

Every read and write into the state tree or a spec document goes through a
slash-delimited path: "/user/profile/name", "user/profile/name" and
"/items/0/title" are all valid. A leading slash is optional and empty
segments are ignored. Sequence elements are addressed by decimal index.

Missing keys never raise on read; they resolve to None.
"""

from __future__ import annotations

from typing import Any

from protoflow.kernel.types import StatePathError

WILDCARD = "*"

_MISSING = object()


def split_path(path: str, *, allow_dots: bool = False) -> list[str]:
    """
    Split a path into segments.

      "/user/name"  → ["user", "name"]
      "user.name"   → ["user", "name"]   (only with allow_dots, and only when
                                          the path contains no slash)
      "" or "/"     → []
    """
    if not path:
        return []
    if allow_dots and "/" not in path:
        return [seg for seg in path.split(".") if seg]
    return [seg for seg in path.split("/") if seg]


def join_path(segments: list[str]) -> str:
    return "/" + "/".join(segments) if segments else ""


def _step(current: Any, segment: str) -> Any:
    if isinstance(current, dict):
        return current.get(segment, _MISSING)
    if isinstance(current, list):
        try:
            index = int(segment)
        except ValueError:
            return _MISSING
        if 0 <= index < len(current):
            return current[index]
        return _MISSING
    return _MISSING


def lookup(tree: Any, path: str | list[str]) -> tuple[bool, Any]:
    """Walk `tree` by path. Returns (found, value)."""
    segments = split_path(path) if isinstance(path, str) else path
    current = tree
    for segment in segments:
        if current is None:
            return False, None
        current = _step(current, segment)
        if current is _MISSING:
            return False, None
    return True, current


def get_path(tree: Any, path: str | list[str]) -> Any:
    """Resolve a path; None if any segment is absent."""
    _, value = lookup(tree, path)
    return value


def _list_index(seq: list, segment: str, path: Any, *, allow_append: bool) -> int:
    try:
        index = int(segment)
    except ValueError:
        raise StatePathError(f"Invalid sequence index {segment!r} in {path!r}") from None
    upper = len(seq) if allow_append else len(seq) - 1
    if index < 0 or index > upper:
        raise StatePathError(f"Sequence index {index} out of range in {path!r}")
    return index


def set_path(tree: dict[str, Any], path: str | list[str], value: Any) -> Any:
    """
    Set the leaf at `path`, creating intermediate mappings as needed.
    Existing non-container intermediates are overwritten with a mapping.
    Returns the previous leaf value (None if there was none).

    Raises StatePathError for the root path, for a non-numeric segment under a
    sequence, and for an index past the end. The leaf index may equal the
    sequence length, which appends.
    """
    segments = split_path(path) if isinstance(path, str) else path
    if not segments:
        raise StatePathError("Cannot set the root of the state tree")

    current: Any = tree
    for segment in segments[:-1]:
        if isinstance(current, list):
            index = _list_index(current, segment, path, allow_append=False)
            nxt = current[index]
            if not isinstance(nxt, (dict, list)):
                nxt = {}
                current[index] = nxt
        else:
            nxt = current.get(segment)
            if not isinstance(nxt, (dict, list)):
                nxt = {}
                current[segment] = nxt
        current = nxt

    leaf = segments[-1]
    if isinstance(current, list):
        index = _list_index(current, leaf, path, allow_append=True)
        if index == len(current):
            current.append(value)
            return None
        old = current[index]
        current[index] = value
        return old
    old = current.get(leaf)
    current[leaf] = value
    return old


def matches_pattern(pattern: str, path: str) -> bool:
    """
    True if `path` matches `pattern`. `*` matches exactly one segment;
    segment counts must be equal.

      matches_pattern("/user/*", "/user/name")       → True
      matches_pattern("/user/*", "/user/name/first") → False
    """
    pattern_parts = split_path(pattern)
    path_parts = split_path(path)
    if len(pattern_parts) != len(path_parts):
        return False
    return all(p == WILDCARD or p == s for p, s in zip(pattern_parts, path_parts))


# ---------------------------------------------------------------------------
# Value comparison
# ---------------------------------------------------------------------------


def is_scalar(value: Any) -> bool:
    return value is None or isinstance(value, (str, int, float, bool))


def strict_equals(a: Any, b: Any) -> bool:
    """Value equality that never treats True as 1 or False as 0."""
    if isinstance(a, bool) != isinstance(b, bool):
        return False
    return a == b


def deep_equal(a: Any, b: Any) -> bool:
    if isinstance(a, dict) and isinstance(b, dict):
        if a.keys() != b.keys():
            return False
        return all(deep_equal(a[k], b[k]) for k in a)
    if isinstance(a, list) and isinstance(b, list):
        if len(a) != len(b):
            return False
        return all(deep_equal(x, y) for x, y in zip(a, b))
    if isinstance(a, (dict, list)) or isinstance(b, (dict, list)):
        return False
    return strict_equals(a, b)
