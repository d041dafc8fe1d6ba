"""
Exception hierarchy.

All exceptions inherit from ``SpecificationError`` and provide
``to_dict()`` for structured error reporting.
"""

from __future__ import annotations

from difflib import get_close_matches
from typing import Any


class SpecificationError(Exception):
    """Base exception for all specwise errors."""

    def to_dict(self) -> dict[str, Any]:
        return {
            "error": self.__class__.__name__,
            "message": str(self),
        }


class InvalidArgumentError(SpecificationError, ValueError):
    """A required argument was None or of the wrong kind."""

    def __init__(self, message: str, argument: str | None = None) -> None:
        self.argument = argument
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        return {
            "error": "INVALID_ARGUMENT",
            "message": str(self),
            "argument": self.argument,
        }


class InvalidOperationError(SpecificationError, RuntimeError):
    """The object is not in a state that allows the requested call."""


class OperationCancelledError(SpecificationError):
    """An asynchronous evaluation was cancelled through its cancel signal."""


class ExpressionSyntaxError(SpecificationError, ValueError):
    """Rule text could not be parsed."""

    def __init__(self, message: str, position: int | None = None) -> None:
        self.position = position
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        return {
            "error": "EXPRESSION_SYNTAX_ERROR",
            "message": str(self),
            "position": self.position,
        }


class UnknownRuleError(SpecificationError, KeyError):
    """
    A rule name was not found in a registry.

    Provides fuzzy-matched suggestions for likely intended names.
    """

    def __init__(self, name: str, known_names: list[str]) -> None:
        self.name = name
        self.known_names = known_names
        self.suggestions = get_close_matches(name, known_names, n=3, cutoff=0.6)

        message = f"Unknown rule: '{name}'."
        if self.suggestions:
            message += f" Did you mean: {', '.join(self.suggestions)}?"
        super().__init__(message)

    def __str__(self) -> str:
        # KeyError would otherwise repr() the message
        return self.args[0]

    def to_dict(self) -> dict[str, Any]:
        return {
            "error": "UNKNOWN_RULE",
            "name": self.name,
            "suggestions": self.suggestions,
        }


def require(value: Any, argument: str) -> Any:
    """Return ``value`` or raise InvalidArgumentError if it is None."""
    if value is None:
        raise InvalidArgumentError(f"{argument} must not be None", argument)
    return value
