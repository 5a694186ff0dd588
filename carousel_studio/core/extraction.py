"""Best-effort extraction of a JSON object from free-form model output.

Chat models wrap their JSON in prose, markdown fences or both. Instead of a
greedy regex, the text is scanned for a balanced ``{...}`` span that decodes
as a JSON object; braces inside JSON strings are ignored.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class ExtractionResult:
    """Outcome of :func:`extract_json_object`. Never raised, always returned."""

    value: dict[str, Any] | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.value is not None


def _balanced_end(text: str, start: int) -> int | None:
    """Index just past the brace that closes the one at ``start``, or None."""
    depth = 0
    in_string = False
    escaped = False
    for i in range(start, len(text)):
        ch = text[i]
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
        elif ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                return i + 1
    return None


def extract_json_object(text: str | None) -> ExtractionResult:
    """Return the first top-level JSON object embedded in ``text``.

    Candidates that are balanced but not valid JSON (``{like this}``) are
    skipped and scanning resumes at the next opening brace.
    """
    if not text:
        return ExtractionResult(error="empty response")

    pos = text.find("{")
    if pos == -1:
        return ExtractionResult(error="no JSON object found")

    last_error = "unbalanced braces"
    while pos != -1:
        end = _balanced_end(text, pos)
        if end is not None:
            try:
                value = json.loads(text[pos:end])
            except json.JSONDecodeError as e:
                last_error = f"invalid JSON: {e.msg}"
            else:
                if isinstance(value, dict):
                    return ExtractionResult(value=value)
        pos = text.find("{", pos + 1)

    return ExtractionResult(error=last_error)
