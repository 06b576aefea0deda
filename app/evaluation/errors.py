"""Exceptions raised by the scoring engine."""

from __future__ import annotations

from typing import Any


class ScoringError(Exception):
    """Base class for scoring failures.

    ``component`` names the stage that failed (``registry``, ``classifier``,
    ``scorer``, ``report``) and ``details`` holds whatever is needed to
    reproduce the failure by hand (dimension, message index, position).
    """

    def __init__(
        self,
        message: str,
        *,
        component: str,
        details: dict[str, Any] | None = None,
    ) -> None:
        self.message = message
        self.component = component
        self.details = details or {}
        super().__init__(self._format_message())

    def _format_message(self) -> str:
        text = f"[{self.component}] {self.message}"
        if self.details:
            text += " | " + ", ".join(f"{k}={v!r}" for k, v in self.details.items())
        return text

    def to_dict(self) -> dict[str, Any]:
        return {
            "error": type(self).__name__,
            "message": self.message,
            "component": self.component,
            "details": self.details,
        }


class RubricConfigurationError(ScoringError):
    """The rubric registry cannot answer a lookup the engine needs."""

    def __init__(self, message: str, **details: Any) -> None:
        super().__init__(message, component="registry", details=details)


class ClassificationUnavailableError(ScoringError):
    """An injected collaborator failed or returned something unclassifiable."""

    def __init__(self, message: str, *, component: str = "classifier", **details: Any) -> None:
        super().__init__(message, component=component, details=details)
