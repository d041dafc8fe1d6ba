"""Decorators that turn plain functions into specifications."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any, Generic

from specwise._core import ExpressionSpecification
from specwise._errors import InvalidArgumentError, require
from specwise._expression import _trace, predicate
from specwise._types import T


class SpecificationFactory(Generic[T]):
    """
    A factory that creates specifications when called with arguments.

    Used for parameterized rules like `amount_above(3000)`. Each call traces
    the function again with the arguments captured as constants.
    """

    def __init__(self, fn: Callable[..., Any], name: str):
        self._fn = fn
        self._name = name
        self.__name__ = name

    def __call__(self, *args: Any, **kwargs: Any) -> ExpressionSpecification[T]:
        rendered = [repr(arg) for arg in args]
        rendered.extend(f"{key}={value!r}" for key, value in kwargs.items())
        name = f"{self._name}({', '.join(rendered)})"
        return ExpressionSpecification(_trace(self._fn, args, kwargs, name), name)

    def __repr__(self) -> str:
        return f"SpecificationFactory({self._name})"


def rule(fn: Callable[[Any], Any]) -> ExpressionSpecification[Any]:
    """
    Decorator to create a simple rule (single entity argument).

    The function body is written against the entity and traced once, so
    use ``&``, ``|`` and ``~`` rather than ``and``, ``or`` and ``not``.

    Example:
        @rule
        def is_active(account):
            return account.is_active

        is_active.is_satisfied_by(account)

    For parameterized rules, use @rule_args instead.
    """
    require(fn, "fn")
    return ExpressionSpecification(predicate(fn), fn.__name__)


def rule_args(fn: Callable[..., Any]) -> SpecificationFactory[Any]:
    """
    Decorator to create a parameterized rule factory.

    Example:
        @rule_args
        def amount_above(account, limit):
            return account.amount > limit

        big = amount_above(3000)  # Returns ExpressionSpecification
        big.is_satisfied_by(account)

    For simple rules (single argument), use @rule instead.
    """
    require(fn, "fn")
    if not callable(fn):
        raise InvalidArgumentError(f"Expected a callable, got {type(fn).__name__}", "fn")
    return SpecificationFactory(fn, fn.__name__)
