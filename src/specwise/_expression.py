"""
Expression trees for specifications.

A predicate is represented as a ``PredicateExpression``: one bound
``Parameter`` plus a boolean-valued body built from immutable nodes.
Expressions are usually built by tracing a lambda with ``predicate()``:

    expr = predicate(lambda e: (e.value > 5) & (e.name != None))

The lambda runs once against a ``Ref`` proxy, which records attribute
access, calls, comparisons, arithmetic and ``& | ~`` as nodes.
"""

from __future__ import annotations

import inspect
import re
from collections.abc import Callable
from dataclasses import dataclass, field, fields, replace
from typing import Any, Generic

from specwise._errors import InvalidArgumentError, require
from specwise._types import T

COMPARISON_OPERATORS = ("==", "!=", "<", "<=", ">", ">=")
ARITHMETIC_OPERATORS = ("+", "-", "*", "/", "//", "%")


# =============================================================================
# Nodes
# =============================================================================


def _snake_case(name: str) -> str:
    return re.sub(r"(?<!^)(?=[A-Z])", "_", name).lower()


class Node:
    """
    Base class for all expression nodes.

    Nodes describe structure only. Evaluation belongs to the compiler and
    analysis belongs to visitors.
    """

    _visit_method = "generic_visit"

    def __init_subclass__(cls, **kwargs: Any) -> None:
        super().__init_subclass__(**kwargs)
        cls._visit_method = f"visit_{_snake_case(cls.__name__)}"

    def children(self) -> tuple[Node, ...]:
        """Direct child nodes, in field order."""
        result: list[Node] = []
        for f in fields(self):  # type: ignore[arg-type]
            value = getattr(self, f.name)
            if isinstance(value, Node):
                result.append(value)
            elif isinstance(value, tuple):
                result.extend(item for item in value if isinstance(item, Node))
        return tuple(result)


@dataclass(frozen=True, eq=False)
class Parameter(Node):
    """
    The bound variable of a predicate.

    Compared by identity: two parameters with the same name are still
    different parameters.
    """

    name: str = "x"

    def __repr__(self) -> str:
        return f"Parameter({self.name!r})"


@dataclass(frozen=True)
class Constant(Node):
    value: Any


@dataclass(frozen=True)
class Member(Node):
    """Attribute access: ``target.name``."""

    target: Node
    name: str


@dataclass(frozen=True)
class Call(Node):
    """Call the value of ``target`` with evaluated ``args``."""

    target: Node
    args: tuple[Node, ...] = ()


@dataclass(frozen=True)
class Compare(Node):
    op: str
    left: Node
    right: Node

    def __post_init__(self) -> None:
        if self.op not in COMPARISON_OPERATORS:
            raise InvalidArgumentError(f"Unknown comparison operator: {self.op!r}")


@dataclass(frozen=True)
class BinaryOp(Node):
    op: str
    left: Node
    right: Node

    def __post_init__(self) -> None:
        if self.op not in ARITHMETIC_OPERATORS:
            raise InvalidArgumentError(f"Unknown arithmetic operator: {self.op!r}")


@dataclass(frozen=True)
class AndAlso(Node):
    """Short-circuiting logical AND."""

    left: Node
    right: Node


@dataclass(frozen=True)
class OrElse(Node):
    """Short-circuiting logical OR."""

    left: Node
    right: Node


@dataclass(frozen=True)
class Not(Node):
    operand: Node


# =============================================================================
# Predicate Expression
# =============================================================================


@dataclass(frozen=True)
class PredicateExpression(Generic[T]):
    """
    A single-parameter boolean function over an entity, kept as a tree.

    Attributes:
        parameter: The bound parameter the body refers to
        body: Boolean-valued expression built from ``parameter``
        name: Optional label used in reprs and traces
    """

    parameter: Parameter
    body: Node
    name: str | None = field(default=None, compare=False)

    def __post_init__(self) -> None:
        if not isinstance(self.parameter, Parameter):
            raise InvalidArgumentError(
                f"parameter must be a Parameter, got {type(self.parameter).__name__}",
                "parameter",
            )
        if not isinstance(self.body, Node):
            raise InvalidArgumentError(
                f"body must be an expression node, got {type(self.body).__name__}",
                "body",
            )

    @property
    def parameters(self) -> tuple[Parameter]:
        return (self.parameter,)

    def compile(self) -> Callable[[T], bool]:
        """Translate the tree into a plain callable."""
        from specwise._compile import compile_expression

        return compile_expression(self)

    def __str__(self) -> str:
        from specwise._explain import format_expression

        return format_expression(self)


# =============================================================================
# Tracing proxy
# =============================================================================


def _to_node(value: Any) -> Node:
    if isinstance(value, Ref):
        return value._node
    if isinstance(value, Node):
        return value
    if isinstance(value, PredicateExpression):
        raise InvalidArgumentError(
            "A PredicateExpression cannot be embedded in another expression; "
            "combine specifications instead"
        )
    return Constant(value)


class Ref:
    """
    Proxy that records operations into expression nodes.

    Python's ``and``, ``or`` and ``not`` cannot be overloaded, so use
    ``&``, ``|`` and ``~`` and parenthesize comparisons:

        (e.value > 5) & ~e.is_locked
    """

    __slots__ = ("_node",)

    def __init__(self, node: Node):
        object.__setattr__(self, "_node", node)

    def __getattr__(self, name: str) -> Ref:
        if name.startswith("__"):
            raise AttributeError(name)
        return Ref(Member(self._node, name))

    def __setattr__(self, name: str, value: Any) -> None:
        raise TypeError("Expressions are read-only")

    def __call__(self, *args: Any) -> Ref:
        return Ref(Call(self._node, tuple(_to_node(arg) for arg in args)))

    # Comparisons
    def __eq__(self, other: object) -> Ref:  # type: ignore[override]
        return Ref(Compare("==", self._node, _to_node(other)))

    def __ne__(self, other: object) -> Ref:  # type: ignore[override]
        return Ref(Compare("!=", self._node, _to_node(other)))

    def __lt__(self, other: Any) -> Ref:
        return Ref(Compare("<", self._node, _to_node(other)))

    def __le__(self, other: Any) -> Ref:
        return Ref(Compare("<=", self._node, _to_node(other)))

    def __gt__(self, other: Any) -> Ref:
        return Ref(Compare(">", self._node, _to_node(other)))

    def __ge__(self, other: Any) -> Ref:
        return Ref(Compare(">=", self._node, _to_node(other)))

    __hash__ = None  # type: ignore[assignment]

    # Arithmetic
    def _binary(self, op: str, other: Any, reflected: bool = False) -> Ref:
        if reflected:
            return Ref(BinaryOp(op, _to_node(other), self._node))
        return Ref(BinaryOp(op, self._node, _to_node(other)))

    def __add__(self, other: Any) -> Ref:
        return self._binary("+", other)

    def __radd__(self, other: Any) -> Ref:
        return self._binary("+", other, reflected=True)

    def __sub__(self, other: Any) -> Ref:
        return self._binary("-", other)

    def __rsub__(self, other: Any) -> Ref:
        return self._binary("-", other, reflected=True)

    def __mul__(self, other: Any) -> Ref:
        return self._binary("*", other)

    def __rmul__(self, other: Any) -> Ref:
        return self._binary("*", other, reflected=True)

    def __truediv__(self, other: Any) -> Ref:
        return self._binary("/", other)

    def __rtruediv__(self, other: Any) -> Ref:
        return self._binary("/", other, reflected=True)

    def __floordiv__(self, other: Any) -> Ref:
        return self._binary("//", other)

    def __rfloordiv__(self, other: Any) -> Ref:
        return self._binary("//", other, reflected=True)

    def __mod__(self, other: Any) -> Ref:
        return self._binary("%", other)

    def __rmod__(self, other: Any) -> Ref:
        return self._binary("%", other, reflected=True)

    # Logic
    def __and__(self, other: Any) -> Ref:
        return Ref(AndAlso(self._node, _to_node(other)))

    def __rand__(self, other: Any) -> Ref:
        return Ref(AndAlso(_to_node(other), self._node))

    def __or__(self, other: Any) -> Ref:
        return Ref(OrElse(self._node, _to_node(other)))

    def __ror__(self, other: Any) -> Ref:
        return Ref(OrElse(_to_node(other), self._node))

    def __invert__(self) -> Ref:
        return Ref(Not(self._node))

    def __bool__(self) -> bool:
        raise TypeError(
            "Expressions have no truth value while being traced; "
            "use & | ~ instead of and / or / not"
        )

    def __repr__(self) -> str:
        return f"Ref({self._node!r})"


def _first_parameter_name(fn: Callable[..., Any]) -> str:
    try:
        params = list(inspect.signature(fn).parameters)
    except (TypeError, ValueError):
        return "x"
    return params[0] if params else "x"


def _trace(
    fn: Callable[..., Any],
    args: tuple[Any, ...] = (),
    kwargs: dict[str, Any] | None = None,
    name: str | None = None,
) -> PredicateExpression[Any]:
    """Run ``fn`` once against a fresh parameter and capture the tree."""
    parameter = Parameter(_first_parameter_name(fn))
    result = fn(Ref(parameter), *args, **(kwargs or {}))

    if isinstance(result, bool):
        body: Node = Constant(result)
    elif isinstance(result, (Ref, Node)):
        body = _to_node(result)
    else:
        raise InvalidArgumentError(
            f"Predicate {getattr(fn, '__name__', fn)!s} must build an expression, "
            f"got {type(result).__name__}"
        )
    return PredicateExpression(parameter, body, name or getattr(fn, "__name__", None))


def predicate(
    fn: Callable[[Any], Any] | PredicateExpression[T], name: str | None = None
) -> PredicateExpression[T]:
    """
    Build a PredicateExpression by tracing a one-argument function.

    Example:
        is_big = predicate(lambda a: a.amount > 3000)
        str(is_big)  # "lambda a: a.amount > 3000"

    An existing PredicateExpression is returned unchanged.
    """
    require(fn, "fn")
    if isinstance(fn, PredicateExpression):
        return fn
    if not callable(fn):
        raise InvalidArgumentError(
            f"Expected a callable or PredicateExpression, got {type(fn).__name__}", "fn"
        )
    return _trace(fn, name=name)


# =============================================================================
# Visitors
# =============================================================================


class ExpressionVisitor:
    """
    Walks an expression tree.

    ``visit(node)`` dispatches to ``visit_<node_type>`` (for example
    ``visit_and_also`` or ``visit_member``) and falls back to
    ``generic_visit``, which visits the children in field order.
    """

    def visit(self, node: Node) -> Any:
        method = getattr(self, node._visit_method, None)
        if method is None:
            return self.generic_visit(node)
        return method(node)

    def generic_visit(self, node: Node) -> Any:
        for child in node.children():
            self.visit(child)
        return None


class ExpressionTransformer(ExpressionVisitor):
    """
    Visitor that returns a (possibly new) tree.

    Nodes whose children are unchanged are returned as-is, so a transform
    that touches nothing returns the original object.
    """

    def generic_visit(self, node: Node) -> Node:
        changes: dict[str, Any] = {}
        for f in fields(node):  # type: ignore[arg-type]
            value = getattr(node, f.name)
            if isinstance(value, Node):
                new_value = self.visit(value)
                if new_value is not value:
                    changes[f.name] = new_value
            elif isinstance(value, tuple) and any(isinstance(v, Node) for v in value):
                new_items = tuple(
                    self.visit(v) if isinstance(v, Node) else v for v in value
                )
                if any(a is not b for a, b in zip(new_items, value)):
                    changes[f.name] = new_items
        return replace(node, **changes) if changes else node  # type: ignore[type-var]
