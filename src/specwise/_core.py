"""Specification base class, the leaf specification and AND / OR / NOT."""

from __future__ import annotations

import logging
import threading
from abc import ABC, abstractmethod
from collections.abc import Callable, Hashable, Iterable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Generic

from specwise._async import CancelSignal, raise_if_cancelled, run_in_worker
from specwise._compile import compile_expression
from specwise._errors import InvalidArgumentError, require
from specwise._expression import (
    AndAlso,
    Not,
    OrElse,
    PredicateExpression,
    predicate,
)
from specwise._rebind import replace_parameter
from specwise._types import T, _trace_config, _trace_hook

if TYPE_CHECKING:
    from specwise._caching import CachedSpecification

logger = logging.getLogger(__name__)


# =============================================================================
# Specification Base
# =============================================================================


class Specification(ABC, Generic[T]):
    """
    Base class for all specifications.

    A specification is a named boolean predicate over an entity, kept as an
    expression tree. Specifications can be composed using operators:
        &  = and (short-circuits on failure)
        |  = or (short-circuits on success)
        ~  = not

    The tree returned by ``as_expression()`` is built once and kept. The
    executable form is compiled from it on the first ``is_satisfied_by()``
    call and reused for every later call on the same instance.

    Subclasses implement ``_build_expression()``. Specifications that
    evaluate differently from their expression (caching, validation
    aggregates) override ``_evaluate()`` as well.

    Tracing:
        Use `with use_tracing(hook):` to trace all is_satisfied_by() calls
        within scope, or `run_traced(spec, entity, hook)` for explicit
        tracing.
    """

    # Class-level defaults let subclasses skip super().__init__()
    _expression: PredicateExpression[T] | None = None
    _compiled: Callable[[T], bool] | None = None

    def __init__(self) -> None:
        self._expression = None
        self._compiled = None
        self._lock = threading.Lock()

    def _instance_lock(self) -> threading.Lock:
        """The lock guarding this instance's lazy cells, created on first use."""
        lock = self.__dict__.get("_lock")
        if lock is None:
            lock = self.__dict__.setdefault("_lock", threading.Lock())
        return lock

    @abstractmethod
    def _build_expression(self) -> PredicateExpression[T]:
        """Build the expression tree - subclasses implement this."""
        ...

    def as_expression(self) -> PredicateExpression[T]:
        """
        Return the expression tree describing what this specification tests.

        Built on first request and memoized; every later call returns the
        same object, so the bound parameter identity is stable.
        """
        expression = self._expression
        if expression is None:
            built = self._build_expression()
            with self._instance_lock():
                if self._expression is None:
                    self._expression = built
                expression = self._expression
        return expression

    def _compiled_predicate(self) -> Callable[[T], bool]:
        compiled = self._compiled
        if compiled is None:
            candidate = compile_expression(self.as_expression())
            with self._instance_lock():
                if self._compiled is None:
                    self._compiled = candidate
                    logger.debug("Compiled %r", self)
                compiled = self._compiled
        return compiled

    def _evaluate(self, entity: T) -> bool:
        """Internal evaluation without tracing or argument checks."""
        return self._compiled_predicate()(entity)

    def _follows_expression(self) -> bool:
        """
        True when running the compiled expression gives the same answer as
        ``_evaluate()``.

        Combinators merge their operands into one compiled tree only when
        every operand follows its expression.
        """
        return type(self)._evaluate is Specification._evaluate

    def is_satisfied_by(self, entity: T) -> bool:
        """
        Evaluate the specification against ``entity``.

        If tracing is enabled via use_tracing(), this will automatically
        trace the evaluation.

        Raises:
            InvalidArgumentError: If ``entity`` is None.
        """
        require(entity, "entity")

        hook = _trace_hook.get()
        if hook is not None:
            from specwise._tracing import TraceConfig, _traced_run

            config = _trace_config.get() or TraceConfig()
            return _traced_run(self, entity, hook, config, depth=0)

        return self._evaluate(entity)

    async def is_satisfied_by_async(
        self, entity: T, cancel: CancelSignal | None = None
    ) -> bool:
        """
        Evaluate the specification in a worker thread.

        Args:
            entity: The entity to evaluate
            cancel: Optional asyncio.Event; once set, pending work is
                abandoned and OperationCancelledError is raised

        Raises:
            InvalidArgumentError: If ``entity`` is None.
            OperationCancelledError: If ``cancel`` fires before completion.
        """
        require(entity, "entity")
        return await run_in_worker(self.is_satisfied_by, entity, cancel)

    def __call__(self, entity: T) -> bool:
        """Shorthand for is_satisfied_by()."""
        return self.is_satisfied_by(entity)

    # -------------------------------------------------
    # Composition
    # -------------------------------------------------

    def __and__(self, other: Specification[T] | PredicateExpression[T]) -> Specification[T]:
        """a & b = satisfied when both are."""
        return AndSpecification(self, other)

    def __rand__(self, other: PredicateExpression[T]) -> Specification[T]:
        return AndSpecification(other, self)

    def __or__(self, other: Specification[T] | PredicateExpression[T]) -> Specification[T]:
        """a | b = satisfied when either is."""
        return OrSpecification(self, other)

    def __ror__(self, other: PredicateExpression[T]) -> Specification[T]:
        return OrSpecification(other, self)

    def __invert__(self) -> Specification[T]:
        """~a = satisfied when a is not."""
        return NotSpecification(self)

    def and_(self, other: Specification[T] | PredicateExpression[T]) -> Specification[T]:
        return AndSpecification(self, other)

    def or_(self, other: Specification[T] | PredicateExpression[T]) -> Specification[T]:
        return OrSpecification(self, other)

    def not_(self) -> Specification[T]:
        return NotSpecification(self)

    def cached(self, key_selector: Callable[[T], Hashable]) -> CachedSpecification[T]:
        """
        Wrap this specification so results are memoized per key.

        Example:
            by_id = is_eligible.cached(lambda user: user.id)
        """
        from specwise._caching import CachedSpecification

        return CachedSpecification(self, key_selector)

    # -------------------------------------------------
    # Collections
    # -------------------------------------------------

    def all(self, entities: Iterable[T]) -> bool:
        """True if every entity satisfies the specification."""
        require(entities, "entities")
        return all(self.is_satisfied_by(entity) for entity in entities)

    def any(self, entities: Iterable[T]) -> bool:
        """True if at least one entity satisfies the specification."""
        require(entities, "entities")
        return any(self.is_satisfied_by(entity) for entity in entities)

    def filter(self, entities: Iterable[T]) -> list[T]:
        """Entities that satisfy the specification, in input order."""
        require(entities, "entities")
        return [entity for entity in entities if self.is_satisfied_by(entity)]

    def first(self, entities: Iterable[T], default: T | None = None) -> T | None:
        """The first entity that satisfies the specification, else ``default``."""
        require(entities, "entities")
        return next(
            (entity for entity in entities if self.is_satisfied_by(entity)), default
        )

    def __repr__(self) -> str:
        return f"{type(self).__name__}()"


def as_specification(value: Any, argument: str = "specification") -> Specification[Any]:
    """Coerce a Specification or PredicateExpression into a Specification."""
    require(value, argument)
    if isinstance(value, Specification):
        return value
    if isinstance(value, PredicateExpression):
        return ExpressionSpecification(value)
    raise InvalidArgumentError(
        f"{argument} must be a Specification or PredicateExpression, "
        f"got {type(value).__name__}",
        argument,
    )


# =============================================================================
# Leaf Specification
# =============================================================================


class ExpressionSpecification(Specification[T]):
    """
    A specification wrapping a caller-supplied PredicateExpression.

    Example:
        is_big = ExpressionSpecification(predicate(lambda a: a.amount > 3000))
        is_big.is_satisfied_by(account)
    """

    def __init__(self, expression: PredicateExpression[T], name: str | None = None):
        super().__init__()
        require(expression, "expression")
        if not isinstance(expression, PredicateExpression):
            raise InvalidArgumentError(
                f"expression must be a PredicateExpression, got {type(expression).__name__}",
                "expression",
            )
        self.expression = expression
        self.name = name or expression.name or "expression"

    def _build_expression(self) -> PredicateExpression[T]:
        return self.expression

    def __repr__(self) -> str:
        if self.name == "<lambda>":
            return f"ExpressionSpecification({self.expression})"
        return f"ExpressionSpecification({self.name})"


def to_specification(
    expression: PredicateExpression[T] | Callable[[Any], Any], name: str | None = None
) -> ExpressionSpecification[T]:
    """
    Create a specification from an expression or a lambda to trace.

    Example:
        spec = to_specification(lambda e: e.value > 5)
    """
    return ExpressionSpecification(predicate(expression, name), name)


# =============================================================================
# Combinators
# =============================================================================


class _Combinator(Specification[T]):
    """
    Shared evaluation for AND / OR / NOT.

    When every operand follows its expression the merged tree is compiled
    and run as one predicate. Otherwise the operands are walked as objects
    so wrappers such as CachedSpecification answer the same way in sync,
    async and traced evaluation.
    """

    _follows = None

    def _operands(self) -> tuple[Specification[T], ...]:
        raise NotImplementedError

    def _walk(self, entity: T) -> bool:
        raise NotImplementedError

    def _follows_expression(self) -> bool:
        follows = self._follows
        if follows is None:
            follows = all(operand._follows_expression() for operand in self._operands())
            self._follows = follows
        return follows

    def _evaluate(self, entity: T) -> bool:
        if self._follows_expression():
            return self._compiled_predicate()(entity)
        return self._walk(entity)


@dataclass(eq=False, repr=False)
class AndSpecification(_Combinator[T]):
    """Conjunction: the right tree is rebound to the left tree's parameter."""

    left: Specification[T]
    right: Specification[T]

    def __post_init__(self) -> None:
        super().__init__()
        self.left = as_specification(self.left, "left")
        self.right = as_specification(self.right, "right")

    def _build_expression(self) -> PredicateExpression[T]:
        left = self.left.as_expression()
        right = self.right.as_expression()
        parameter = left.parameter
        body = AndAlso(left.body, replace_parameter(right, parameter))
        return PredicateExpression(parameter, body)

    def _operands(self) -> tuple[Specification[T], ...]:
        return (self.left, self.right)

    def _walk(self, entity: T) -> bool:
        return all(operand._evaluate(entity) for operand in _flatten_and_chain(self))

    async def is_satisfied_by_async(
        self, entity: T, cancel: CancelSignal | None = None
    ) -> bool:
        require(entity, "entity")
        # Flatten chain and iterate to avoid deep recursion
        for operand in _flatten_and_chain(self):
            raise_if_cancelled(cancel)
            if not await operand.is_satisfied_by_async(entity, cancel):
                return False
        return True

    def __repr__(self) -> str:
        return f"AndSpecification({self.left!r}, {self.right!r})"


@dataclass(eq=False, repr=False)
class OrSpecification(_Combinator[T]):
    """Disjunction: the right tree is rebound to the left tree's parameter."""

    left: Specification[T]
    right: Specification[T]

    def __post_init__(self) -> None:
        super().__init__()
        self.left = as_specification(self.left, "left")
        self.right = as_specification(self.right, "right")

    def _build_expression(self) -> PredicateExpression[T]:
        left = self.left.as_expression()
        right = self.right.as_expression()
        parameter = left.parameter
        body = OrElse(left.body, replace_parameter(right, parameter))
        return PredicateExpression(parameter, body)

    def _operands(self) -> tuple[Specification[T], ...]:
        return (self.left, self.right)

    def _walk(self, entity: T) -> bool:
        return any(operand._evaluate(entity) for operand in _flatten_or_chain(self))

    async def is_satisfied_by_async(
        self, entity: T, cancel: CancelSignal | None = None
    ) -> bool:
        require(entity, "entity")
        for operand in _flatten_or_chain(self):
            raise_if_cancelled(cancel)
            if await operand.is_satisfied_by_async(entity, cancel):
                return True
        return False

    def __repr__(self) -> str:
        return f"OrSpecification({self.left!r}, {self.right!r})"


@dataclass(eq=False, repr=False)
class NotSpecification(_Combinator[T]):
    """Negation: keeps the inner tree's own parameter."""

    inner: Specification[T]

    def __post_init__(self) -> None:
        super().__init__()
        self.inner = as_specification(self.inner, "inner")

    def _build_expression(self) -> PredicateExpression[T]:
        expression = self.inner.as_expression()
        return PredicateExpression(expression.parameter, Not(expression.body))

    def _operands(self) -> tuple[Specification[T], ...]:
        return (self.inner,)

    def _walk(self, entity: T) -> bool:
        inner, invert_count = _unwrap_not(self)
        ok = bool(inner._evaluate(entity))
        return not ok if invert_count % 2 == 1 else ok

    async def is_satisfied_by_async(
        self, entity: T, cancel: CancelSignal | None = None
    ) -> bool:
        require(entity, "entity")
        # Handle chained NOT (e.g., ~~~a) iteratively
        inner, invert_count = _unwrap_not(self)
        raise_if_cancelled(cancel)
        ok = await inner.is_satisfied_by_async(entity, cancel)
        # Odd number of inversions flips the result
        if invert_count % 2 == 1:
            ok = not ok
        return bool(ok)

    def __repr__(self) -> str:
        return f"NotSpecification({self.inner!r})"


def _flatten_and_chain(spec: Specification[T]) -> list[Specification[T]]:
    """Flatten nested AND specifications into a list (iteratively)."""
    result: list[Specification[T]] = []
    stack: list[Specification[T]] = [spec]
    while stack:
        current = stack.pop()
        if isinstance(current, AndSpecification):
            stack.append(current.right)
            stack.append(current.left)
        else:
            result.append(current)
    return result


def _flatten_or_chain(spec: Specification[T]) -> list[Specification[T]]:
    """Flatten nested OR specifications into a list (iteratively)."""
    result: list[Specification[T]] = []
    stack: list[Specification[T]] = [spec]
    while stack:
        current = stack.pop()
        if isinstance(current, OrSpecification):
            stack.append(current.right)
            stack.append(current.left)
        else:
            result.append(current)
    return result


def _unwrap_not(spec: Specification[T]) -> tuple[Specification[T], int]:
    """Unwrap chained NOTs and return (inner, count)."""
    count = 0
    current = spec
    while isinstance(current, NotSpecification):
        count += 1
        current = current.inner
    return current, count
