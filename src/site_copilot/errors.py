from __future__ import annotations

from typing import Any, Sequence


class CopilotError(Exception):
    """Base exception for the site co-pilot."""

    def __init__(self, message: str, context: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.context = context or {}

    def __str__(self) -> str:
        if not self.context:
            return self.message
        details = ", ".join(f"{key}={value}" for key, value in self.context.items())
        return f"{self.message} ({details})"


class GateError(CopilotError):
    """Raised when a required contract or lock is missing."""

    def __init__(self, message: str, gate: str | None = None, context: dict[str, Any] | None = None) -> None:
        super().__init__(message, context)
        self.gate = gate


class SchemaViolation(CopilotError):
    """Raised when proposed or generated data fails a validator."""

    def __init__(
        self,
        message: str,
        violations: Sequence[str] = (),
        context: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, context)
        self.violations = list(violations)


class ToolPrecondition(CopilotError):
    """Raised when a mutation tool cannot run against the current site state."""

    def __init__(self, message: str, tool: str | None = None, context: dict[str, Any] | None = None) -> None:
        super().__init__(message, context)
        self.tool = tool


class NotFound(CopilotError):
    """Raised when a conversation, site or snapshot does not exist."""


class Unauthorized(CopilotError):
    """Raised when the caller may not act on a site."""


class GenerationError(CopilotError):
    """Raised when the generative service keeps failing after retries."""

    def __init__(self, message: str, attempts: int = 0, context: dict[str, Any] | None = None) -> None:
        super().__init__(message, context)
        self.attempts = attempts


__all__ = [
    "CopilotError",
    "GateError",
    "GenerationError",
    "NotFound",
    "SchemaViolation",
    "ToolPrecondition",
    "Unauthorized",
]
