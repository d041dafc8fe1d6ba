"""Parameter rebinding for merging independently built expression trees."""

from __future__ import annotations

from specwise._errors import require
from specwise._expression import (
    ExpressionTransformer,
    Node,
    Parameter,
    PredicateExpression,
)


class ParameterRebinder(ExpressionTransformer):
    """Replaces every reference to one parameter with another."""

    def __init__(self, old: Parameter, new: Parameter):
        self.old = old
        self.new = new

    def visit_parameter(self, node: Parameter) -> Node:
        return self.new if node is self.old else node


def replace_parameter(expression: PredicateExpression, target: Parameter) -> Node:
    """
    Return ``expression.body`` rewritten to refer to ``target``.

    The input expression is never mutated; when ``target`` already is the
    expression's parameter the original body is returned.
    """
    require(expression, "expression")
    require(target, "target")
    if expression.parameter is target:
        return expression.body
    return ParameterRebinder(expression.parameter, target).visit(expression.body)
