"""Centralized error codes and helper utilities."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping

__all__ = [
    "NOT_CONFIGURED",
    "NOT_FOUND",
    "PARSE_ERROR",
    "UPSTREAM_ERROR",
    "PAYLOAD_TOO_LARGE",
    "TIMEOUT",
    "UNSUPPORTED_OPERATION",
    "VALIDATION_ERROR",
    "CONFIG_ERROR",
    "INTERNAL_ERROR",
    "ERROR_TYPES",
    "ElementorMcpError",
    "error_payload",
]

NOT_CONFIGURED = "NOT_CONFIGURED"
NOT_FOUND = "NOT_FOUND"
PARSE_ERROR = "PARSE_ERROR"
UPSTREAM_ERROR = "UPSTREAM_ERROR"
PAYLOAD_TOO_LARGE = "PAYLOAD_TOO_LARGE"
TIMEOUT = "TIMEOUT"
UNSUPPORTED_OPERATION = "UNSUPPORTED_OPERATION"
VALIDATION_ERROR = "VALIDATION_ERROR"
CONFIG_ERROR = "CONFIG_ERROR"
INTERNAL_ERROR = "INTERNAL_ERROR"

ERROR_TYPES: dict[str, str] = {
    NOT_CONFIGURED: "AUTHENTICATION_ERROR",
    NOT_FOUND: "NOT_FOUND",
    PARSE_ERROR: "DATA_ERROR",
    UPSTREAM_ERROR: "API_ERROR",
    PAYLOAD_TOO_LARGE: "TRANSPORT_LIMIT",
    TIMEOUT: "TRANSPORT_LIMIT",
    UNSUPPORTED_OPERATION: "FEATURE_UNAVAILABLE",
    VALIDATION_ERROR: "VALIDATION_ERROR",
    CONFIG_ERROR: "VALIDATION_ERROR",
    INTERNAL_ERROR: "OPERATION_ERROR",
}

DEFAULT_ERROR_TYPE = "OPERATION_ERROR"


@dataclass(slots=True)
class ElementorMcpError(Exception):
    """Domain-specific exception carrying an error code and message."""

    code: str
    message: str
    details: Any = None
    error_type: str | None = None

    def __str__(self) -> str:  # pragma: no cover - delegation to message
        return self.message

    def to_dict(self) -> dict[str, Any]:
        return error_payload(self.code, self.message, details=self.details, error_type=self.error_type)


def error_payload(
    code: str,
    message: str,
    *,
    details: Mapping[str, Any] | str | None = None,
    error_type: str | None = None,
) -> dict[str, Any]:
    """Build the ``data`` block of an error envelope.

    ``error_type`` falls back to the category registered for ``code`` and
    ``details`` falls back to the message itself.
    """

    payload: dict[str, Any] = {
        "message": message,
        "code": code,
        "error_type": error_type or ERROR_TYPES.get(code, DEFAULT_ERROR_TYPE),
    }
    if isinstance(details, Mapping):
        payload["details"] = dict(details)
    elif details:
        payload["details"] = details
    else:
        payload["details"] = message
    return payload
