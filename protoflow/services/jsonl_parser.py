"""
JSONL stream parser for action scripts.

Buffers streaming text until newlines, expands field abbreviations,
and skips malformed lines with a warning.
"""

from __future__ import annotations

import json
import logging

logger = logging.getLogger(__name__)

# Abbreviation expansion map for hand-written scripts
_ABBREV: dict[str, str] = {
    "t": "type",
    "p": "params",
    "pid": "pageId",
}


class JSONLParser:
    """
    Parses streaming JSONL, one action per line.

    Accumulates partial chunks in a buffer, emits complete parsed lines
    as they become available. Skips malformed JSON and non-object lines
    with a warning log.
    """

    def __init__(self) -> None:
        self.buffer = ""

    def feed(self, chunk: str) -> list[dict]:
        """
        Feed a text chunk (may be partial), return any complete parsed lines.

        Args:
            chunk: Raw text from the stream

        Returns:
            List of expanded action dicts for each complete JSONL line
        """
        self.buffer += chunk
        lines = []
        while "\n" in self.buffer:
            line, self.buffer = self.buffer.split("\n", 1)
            parsed = self._parse_line(line)
            if parsed is not None:
                lines.append(parsed)
        return lines

    def flush(self) -> list[dict]:
        """
        Flush any remaining content in the buffer as a final line.

        Call this after the stream ends to handle files with no trailing newline.
        """
        remainder = self.buffer
        self.buffer = ""
        parsed = self._parse_line(remainder)
        return [parsed] if parsed is not None else []

    def _parse_line(self, line: str) -> dict | None:
        stripped = line.strip()
        if not stripped or stripped.startswith("#"):
            return None
        try:
            parsed = json.loads(stripped)
        except json.JSONDecodeError:
            logger.warning("JSONLParser: skipping malformed line: %r", stripped[:200])
            return None
        if not isinstance(parsed, dict):
            logger.warning("JSONLParser: skipping non-object line: %r", stripped[:200])
            return None
        return self.expand_abbreviations(parsed)

    @staticmethod
    def expand_abbreviations(event: dict) -> dict:
        """
        Expand abbreviated field names to their full forms.

        Mappings:
          t   → type
          p   → params
          pid → pageId

        Nested successAction / errorAction / nextAction are expanded too.
        """
        expanded: dict = {}
        for key, value in event.items():
            full_key = _ABBREV.get(key, key)
            if full_key in ("successAction", "errorAction", "nextAction") and isinstance(value, dict):
                value = JSONLParser.expand_abbreviations(value)
            expanded[full_key] = value
        return expanded
