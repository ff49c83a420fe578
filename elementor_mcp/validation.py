"""Structural validation of Elementor element trees."""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any

from jsonschema import Draft202012Validator

from .models import ELEMENT_TYPES, WIDGET
from .tree import duplicate_ids

__all__ = ["ELEMENT_TREE_SCHEMA", "format_path", "validate_tree"]

ELEMENT_TREE_SCHEMA: dict[str, Any] = {
    "$schema": "https://json-schema.org/draft/2020-12/schema",
    "type": "array",
    "items": {"$ref": "#/$defs/element"},
    "$defs": {
        "element": {
            "type": "object",
            "required": ["id", "elType"],
            "properties": {
                "id": {"type": "string", "minLength": 1},
                "elType": {"enum": list(ELEMENT_TYPES)},
                "settings": {"type": ["object", "array"]},
                "elements": {"type": "array", "items": {"$ref": "#/$defs/element"}},
                "isInner": {"type": "boolean"},
            },
            "if": {"properties": {"elType": {"const": WIDGET}}, "required": ["elType"]},
            "then": {"required": ["widgetType"], "properties": {"widgetType": {"type": "string", "minLength": 1}}},
        }
    },
}

_VALIDATOR = Draft202012Validator(ELEMENT_TREE_SCHEMA)


def format_path(path: Iterable[Any]) -> str:
    """Render a JSON path as ``root[0].elements[1].settings``."""

    rendered = "root"
    for part in path:
        if isinstance(part, int):
            rendered += f"[{part}]"
        else:
            rendered += f".{part}"
    return rendered


def validate_tree(tree: Any) -> dict[str, Any]:
    """Check every node of ``tree`` and report issues without changing it.

    Elementor stores empty settings as ``[]`` so arrays are accepted there.
    Duplicate ids are listed separately; they are legal for lookups (the first
    match wins) but usually indicate a bad copy/paste upstream.
    """

    issues = [
        f"{error.message} at {format_path(error.absolute_path)}"
        for error in sorted(_VALIDATOR.iter_errors(tree), key=lambda err: [str(p) for p in err.absolute_path])
    ]
    duplicates = duplicate_ids(tree) if isinstance(tree, list) else []
    return {
        "valid": not issues,
        "issues": issues,
        "issue_count": len(issues),
        "duplicate_ids": duplicates,
    }
