"""Recover an Elementor element tree from free-form upstream text.

Upstream responses arrive in several shapes: bare JSON, JSON wrapped in a
human readable diagnostic preamble, markdown-fenced JSON, or a plain error
sentence with no data at all. :func:`parse_elementor_response` turns all of
them into a :class:`~elementor_mcp.models.ParsedResult`. The function is pure;
it performs no I/O and logs nothing.
"""

from __future__ import annotations

import json
import re
from typing import Any

from .models import ParsedResult

DATA_MARKERS: tuple[str, ...] = ("--- Elementor Data ---", "--- Raw Elementor Data ---")

NEGATIVE_PHRASES: tuple[str, ...] = (
    "no elementor data found",
    "does not use elementor builder",
    "failed to parse json",
)

_JSON_SPAN = re.compile(r"(\[[\s\S]*\]|\{[\s\S]*\})")
_LEADING_JSON_FENCE = re.compile(r"\A```json\s*")
_TRAILING_FENCE = re.compile(r"\s*```\Z")
_LEADING_FENCE = re.compile(r"\A```\s*")
_BLANK_LINES = re.compile(r"\n\s*\n")


def parse_elementor_response(text: str | None) -> ParsedResult:
    """Normalise ``text`` into a list of top-level elements or a failure."""

    source = text or ""
    trimmed = source.strip()

    if trimmed.startswith(("[", "{")):
        try:
            parsed = json.loads(trimmed)
        except json.JSONDecodeError as exc:
            return ParsedResult.fail(f"Direct JSON parse failed: {exc}", raw_data=source)
        return _tree_result(parsed, raw_data=source, debug_info=None)

    candidate, debug_info = _split_payload(source)
    if candidate is None:
        return ParsedResult.fail("No JSON data found in response", raw_data=source, debug_info=source)

    if not candidate.strip():
        return ParsedResult.fail("Empty JSON data in response", raw_data=candidate, debug_info=debug_info)

    lowered = debug_info.lower()
    if any(phrase in lowered for phrase in NEGATIVE_PHRASES):
        return ParsedResult.fail("No valid Elementor data available", raw_data=candidate, debug_info=debug_info)

    try:
        parsed = json.loads(candidate)
    except json.JSONDecodeError as first_error:
        cleaned = clean_json_text(candidate)
        try:
            parsed = json.loads(cleaned)
        except json.JSONDecodeError as second_error:
            return ParsedResult.fail(
                f"JSON parse failed: {first_error}. Cleaned parse also failed: {second_error}",
                raw_data=candidate,
                debug_info=debug_info,
            )

    return _tree_result(parsed, raw_data=candidate, debug_info=debug_info)


def clean_json_text(text: str) -> str:
    """Strip markdown code fences and blank lines around a JSON payload."""

    cleaned = _LEADING_JSON_FENCE.sub("", text)
    cleaned = _TRAILING_FENCE.sub("", cleaned)
    cleaned = _LEADING_FENCE.sub("", cleaned)
    cleaned = _BLANK_LINES.sub("\n", cleaned)
    return cleaned.strip()


def _split_payload(text: str) -> tuple[str | None, str]:
    """Return ``(candidate_json, debug_info)`` for a non-JSON-looking response."""

    for marker in DATA_MARKERS:
        if marker in text:
            before, _, after = text.partition(marker)
            return after.strip(), before.strip()

    match = _JSON_SPAN.search(text)
    if match is None:
        return None, text
    span = match.group(1)
    return span, text.replace(span, "", 1).strip()


def _tree_result(value: Any, *, raw_data: str, debug_info: str | None) -> ParsedResult:
    # A lone element object is wrapped; anything else is not a tree.
    if isinstance(value, list):
        return ParsedResult.ok(value, debug_info=debug_info)
    if isinstance(value, dict):
        return ParsedResult.ok([value], debug_info=debug_info)
    return ParsedResult.fail(
        f"Expected a JSON array or object, got {type(value).__name__}",
        raw_data=raw_data,
        debug_info=debug_info,
    )
