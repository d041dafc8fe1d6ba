"""Compile expression trees into plain Python callables."""

from __future__ import annotations

import operator
from collections.abc import Callable
from typing import Any

from specwise._errors import InvalidArgumentError, require
from specwise._expression import (
    AndAlso,
    BinaryOp,
    Call,
    Compare,
    Constant,
    ExpressionVisitor,
    Member,
    Node,
    Not,
    OrElse,
    Parameter,
    PredicateExpression,
)

_COMPARISONS: dict[str, Callable[[Any, Any], Any]] = {
    "==": operator.eq,
    "!=": operator.ne,
    "<": operator.lt,
    "<=": operator.le,
    ">": operator.gt,
    ">=": operator.ge,
}

_ARITHMETIC: dict[str, Callable[[Any, Any], Any]] = {
    "+": operator.add,
    "-": operator.sub,
    "*": operator.mul,
    "/": operator.truediv,
    "//": operator.floordiv,
    "%": operator.mod,
}

Evaluator = Callable[[Any], Any]


class _Compiler(ExpressionVisitor):
    """Turns each node into a closure taking the entity."""

    def __init__(self, parameter: Parameter):
        self.parameter = parameter

    def generic_visit(self, node: Node) -> Evaluator:
        raise InvalidArgumentError(f"Cannot compile node type {type(node).__name__}")

    def visit_parameter(self, node: Parameter) -> Evaluator:
        if node is not self.parameter:
            raise InvalidArgumentError(
                f"Free variable {node.name!r} is not the bound parameter "
                f"{self.parameter.name!r}"
            )
        return lambda entity: entity

    def visit_constant(self, node: Constant) -> Evaluator:
        value = node.value
        return lambda entity: value

    def visit_member(self, node: Member) -> Evaluator:
        target = self.visit(node.target)
        name = node.name
        return lambda entity: getattr(target(entity), name)

    def visit_call(self, node: Call) -> Evaluator:
        target = self.visit(node.target)
        args = [self.visit(arg) for arg in node.args]
        return lambda entity: target(entity)(*[arg(entity) for arg in args])

    def visit_compare(self, node: Compare) -> Evaluator:
        op = _COMPARISONS[node.op]
        left = self.visit(node.left)
        right = self.visit(node.right)
        return lambda entity: op(left(entity), right(entity))

    def visit_binary_op(self, node: BinaryOp) -> Evaluator:
        op = _ARITHMETIC[node.op]
        left = self.visit(node.left)
        right = self.visit(node.right)
        return lambda entity: op(left(entity), right(entity))

    def visit_and_also(self, node: AndAlso) -> Evaluator:
        left = self.visit(node.left)
        right = self.visit(node.right)
        return lambda entity: bool(left(entity)) and bool(right(entity))

    def visit_or_else(self, node: OrElse) -> Evaluator:
        left = self.visit(node.left)
        right = self.visit(node.right)
        return lambda entity: bool(left(entity)) or bool(right(entity))

    def visit_not(self, node: Not) -> Evaluator:
        operand = self.visit(node.operand)
        return lambda entity: not operand(entity)


def compile_expression(expression: PredicateExpression) -> Callable[[Any], bool]:
    """
    Compile a PredicateExpression into a callable returning ``bool``.

    The whole tree is translated up front, so the returned callable can be
    reused for any number of entities without touching the tree again.

    Raises:
        InvalidArgumentError: If the body references a parameter other than
            the expression's own.
    """
    require(expression, "expression")
    body = _Compiler(expression.parameter).visit(expression.body)

    def compiled(entity: Any) -> bool:
        return bool(body(entity))

    compiled.__name__ = expression.name or "compiled_predicate"
    return compiled
