"""Structural analysis of specification trees."""

from __future__ import annotations

from enum import Enum
from typing import Any

from specwise._core import Specification
from specwise._errors import InvalidArgumentError, require
from specwise._expression import (
    AndAlso,
    ExpressionVisitor,
    Node,
    Not,
    OrElse,
    PredicateExpression,
)


class LogicalOperator(Enum):
    AND = "and"
    OR = "or"


class SpecificationVisitor(ExpressionVisitor):
    """
    Pre-order walk over the logical structure of a specification.

    Subclasses override ``on_logical_operation`` and ``on_not_operation``.
    Both hooks fire before the operands are visited. Nothing is evaluated.

    Example:
        class Printer(SpecificationVisitor):
            def on_logical_operation(self, operator, left, right):
                print(operator.name)

        Printer().visit(is_active & has_funds)
    """

    def visit(self, target: Specification[Any] | PredicateExpression[Any] | Node) -> Any:
        require(target, "target")
        if isinstance(target, Specification):
            target = target.as_expression()
        if isinstance(target, PredicateExpression):
            target = target.body
        if not isinstance(target, Node):
            raise InvalidArgumentError(
                f"Cannot visit {type(target).__name__}; expected a Specification, "
                "PredicateExpression or expression node",
                "target",
            )
        return super().visit(target)

    def visit_and_also(self, node: AndAlso) -> None:
        self.on_logical_operation(LogicalOperator.AND, node.left, node.right)
        self.generic_visit(node)

    def visit_or_else(self, node: OrElse) -> None:
        self.on_logical_operation(LogicalOperator.OR, node.left, node.right)
        self.generic_visit(node)

    def visit_not(self, node: Not) -> None:
        self.on_not_operation(node.operand)
        self.generic_visit(node)

    def on_logical_operation(
        self, operator: LogicalOperator, left: Node, right: Node
    ) -> None:
        """Called for every AND / OR node."""

    def on_not_operation(self, operand: Node) -> None:
        """Called for every NOT node."""


class OperationCounterVisitor(SpecificationVisitor):
    """
    Counts AND, OR and NOT operations.

    Counts accumulate across ``visit`` calls until ``reset()``. Instances
    are not thread-safe.
    """

    def __init__(self) -> None:
        self._and_count = 0
        self._or_count = 0
        self._not_count = 0

    def on_logical_operation(
        self, operator: LogicalOperator, left: Node, right: Node
    ) -> None:
        if operator is LogicalOperator.AND:
            self._and_count += 1
        else:
            self._or_count += 1

    def on_not_operation(self, operand: Node) -> None:
        self._not_count += 1

    @property
    def and_count(self) -> int:
        return self._and_count

    @property
    def or_count(self) -> int:
        return self._or_count

    @property
    def not_count(self) -> int:
        return self._not_count

    @property
    def total_count(self) -> int:
        return self._and_count + self._or_count + self._not_count

    def reset(self) -> None:
        self._and_count = 0
        self._or_count = 0
        self._not_count = 0

    def __repr__(self) -> str:
        return (
            f"OperationCounterVisitor(and={self._and_count}, "
            f"or={self._or_count}, not={self._not_count})"
        )
