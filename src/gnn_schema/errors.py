"""Error hierarchy for gnn_schema.

Validators never raise for bad content; they return violations. These
exceptions cover input that cannot be modelled at all, unreadable files and
payloads, and the `check_*` helpers that turn blocking violations into a
single failure.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any, Mapping, Optional


class GnnSchemaError(Exception):
    """Base exception for gnn_schema failures."""

    def __init__(
        self,
        message: str,
        *,
        user_message: Optional[str] = None,
        context: Optional[Mapping[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.user_message = message if user_message is None else user_message
        self.context = dict(context) if context else {}

    def with_context(self, **extra: Any) -> "GnnSchemaError":
        """Attach more context (file path, message type, ...) and return self."""
        self.context.update(extra)
        return self

    def log_message(self) -> str:
        if not self.context:
            return str(self)
        return f"{self}: {self.context}"


class ConfigError(GnnSchemaError):
    """Validation settings could not be loaded."""


class SchemaError(GnnSchemaError):
    """Input that cannot be represented as a schema or subgraph record."""


class WireFormatError(GnnSchemaError):
    """A protobuf payload could not be encoded or decoded."""


class ValidationError(GnnSchemaError):
    """A schema or record has blocking violations; they ride along."""

    def __init__(
        self,
        message: str,
        *,
        violations: Sequence[Any] = (),
        user_message: Optional[str] = None,
        context: Optional[Mapping[str, Any]] = None,
    ) -> None:
        super().__init__(message, user_message=user_message, context=context)
        self.violations = list(violations)

    @property
    def error_count(self) -> int:
        return sum(1 for v in self.violations if getattr(v, "is_error", True))

    @property
    def warning_count(self) -> int:
        return len(self.violations) - self.error_count


__all__ = [
    "GnnSchemaError",
    "ConfigError",
    "SchemaError",
    "WireFormatError",
    "ValidationError",
]
