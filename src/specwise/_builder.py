"""Fluent construction of specifications."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any, Generic

from specwise._core import Specification, to_specification
from specwise._errors import InvalidOperationError
from specwise._expression import PredicateExpression
from specwise._types import T

Operand = Specification[Any] | PredicateExpression[Any] | Callable[[Any], Any]


def _operand(value: Operand) -> Specification[Any] | PredicateExpression[Any]:
    if isinstance(value, (Specification, PredicateExpression)):
        return value
    return to_specification(value)


class SpecificationBuilder(Generic[T]):
    """
    Builds a specification one step at a time.

    Example:
        spec = (
            SpecificationBuilder.create(lambda a: a.is_active)
            .and_(lambda a: a.amount > 3000)
            .not_()
            .build()
        )
    """

    def __init__(self) -> None:
        self._specification: Specification[T] | None = None

    @classmethod
    def create(
        cls, expression: PredicateExpression[T] | Callable[[Any], Any]
    ) -> SpecificationBuilder[T]:
        """Start a builder from an expression or a lambda to trace."""
        builder: SpecificationBuilder[T] = cls()
        builder._specification = to_specification(expression)
        return builder

    def _current(self) -> Specification[T]:
        if self._specification is None:
            raise InvalidOperationError("No specification has been created yet.")
        return self._specification

    def and_(self, other: Operand) -> SpecificationBuilder[T]:
        self._specification = self._current().and_(_operand(other))
        return self

    def or_(self, other: Operand) -> SpecificationBuilder[T]:
        self._specification = self._current().or_(_operand(other))
        return self

    def not_(self) -> SpecificationBuilder[T]:
        self._specification = self._current().not_()
        return self

    def build(self) -> Specification[T]:
        return self._current()
