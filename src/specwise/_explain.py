"""Readable renderings of expressions and specifications."""

from __future__ import annotations

from typing import Any

from specwise._caching import CachedSpecification
from specwise._core import (
    AndSpecification,
    ExpressionSpecification,
    NotSpecification,
    OrSpecification,
    Specification,
    _flatten_and_chain,
    _flatten_or_chain,
    _unwrap_not,
)
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
from specwise._validation import (
    CompositeValidationSpecification,
    ValidationSpecification,
)

_ATOMS = (Parameter, Constant, Member, Call)


# =============================================================================
# Expression Formatting
# =============================================================================


class _Formatter(ExpressionVisitor):
    """Renders nodes as Python-like source, adding parentheses as needed."""

    def _operand(self, node: Node, bare: tuple[type, ...]) -> str:
        text = self.visit(node)
        if isinstance(node, _ATOMS + bare):
            return text
        return f"({text})"

    def generic_visit(self, node: Node) -> str:
        return repr(node)

    def visit_parameter(self, node: Parameter) -> str:
        return node.name

    def visit_constant(self, node: Constant) -> str:
        return repr(node.value)

    def visit_member(self, node: Member) -> str:
        return f"{self._operand(node.target, ())}.{node.name}"

    def visit_call(self, node: Call) -> str:
        args = ", ".join(self.visit(arg) for arg in node.args)
        return f"{self._operand(node.target, ())}({args})"

    def visit_compare(self, node: Compare) -> str:
        left = self._operand(node.left, (BinaryOp, Not))
        right = self._operand(node.right, (BinaryOp, Not))
        return f"{left} {node.op} {right}"

    def visit_binary_op(self, node: BinaryOp) -> str:
        left = self._operand(node.left, (Not,))
        right = self._operand(node.right, (Not,))
        return f"{left} {node.op} {right}"

    def visit_and_also(self, node: AndAlso) -> str:
        left = self._operand(node.left, (AndAlso, Not))
        right = self._operand(node.right, (AndAlso, Not))
        return f"{left} & {right}"

    def visit_or_else(self, node: OrElse) -> str:
        left = self._operand(node.left, (OrElse, Not))
        right = self._operand(node.right, (OrElse, Not))
        return f"{left} | {right}"

    def visit_not(self, node: Not) -> str:
        return f"~{self._operand(node.operand, (Not,))}"


def format_expression(expression: PredicateExpression[Any] | Node) -> str:
    """
    Render an expression as Python-like source.

    Example:
        format_expression(predicate(lambda e: (e.value > 5) & (e.name != None)))
        # "lambda e: (e.value > 5) & (e.name != None)"
    """
    require(expression, "expression")
    if isinstance(expression, PredicateExpression):
        body = _Formatter().visit(expression.body)
        return f"lambda {expression.parameter.name}: {body}"
    if isinstance(expression, Node):
        return _Formatter().visit(expression)
    raise InvalidArgumentError(
        f"Cannot format {type(expression).__name__}", "expression"
    )


def describe(specification: Specification[Any]) -> str:
    """Short label for a specification: its rule name or its predicate text."""
    if isinstance(specification, ExpressionSpecification):
        if specification.name in ("<lambda>", "expression"):
            return format_expression(specification.expression.body)
        return specification.name
    return type(specification).__name__


# =============================================================================
# Explain Function
# =============================================================================


def explain(specification: Specification[Any], verbose: bool = False) -> str:
    """
    Generate a plain English explanation of what a specification checks.

    Args:
        specification: The specification to explain
        verbose: If True, show the predicate text next to named rules

    Returns:
        Human-readable explanation string

    Example:
        spec = is_vip | (is_active & ~is_locked)
        print(explain(spec))

        # Output:
        # Check passes if ANY of:
        #   • Check: is_vip
        #   • ALL of:
        #     • Check: is_active
        #     • NOT: is_locked
    """
    require(specification, "specification")

    output_lines: list[str] = []

    # Process in reverse order so output is in correct order
    stack: list[tuple[Specification[Any], int]] = [(specification, 0)]

    while stack:
        spec, depth = stack.pop()
        indent = "  " * depth
        bullet = "• " if depth > 0 else ""

        if isinstance(spec, AndSpecification):
            if depth == 0:
                output_lines.append("Check passes if ALL of:")
            else:
                output_lines.append(f"{indent}{bullet}ALL of:")
            for child in reversed(_flatten_and_chain(spec)):
                stack.append((child, depth + 1))

        elif isinstance(spec, OrSpecification):
            if depth == 0:
                output_lines.append("Check passes if ANY of:")
            else:
                output_lines.append(f"{indent}{bullet}ANY of:")
            for child in reversed(_flatten_or_chain(spec)):
                stack.append((child, depth + 1))

        elif isinstance(spec, NotSpecification):
            output_lines.append(f"{indent}{bullet}NOT: {_explain_inline(spec.inner)}")

        elif isinstance(spec, CompositeValidationSpecification):
            if depth == 0:
                output_lines.append("Validate each of (collect errors):")
            else:
                output_lines.append(f"{indent}{bullet}Validate each of:")
            for child in reversed(spec.specifications):
                stack.append((child, depth + 1))

        elif isinstance(spec, ValidationSpecification):
            inner = _explain_inline(spec.specification)
            output_lines.append(f"{indent}{bullet}Validate: {inner}")

        elif isinstance(spec, CachedSpecification):
            inner = _explain_inline(spec.specification)
            output_lines.append(f"{indent}{bullet}Cached check: {inner}")

        else:
            label = describe(spec)
            if verbose and not _is_anonymous(spec):
                label = f"{label} ({format_expression(spec.as_expression())})"
            output_lines.append(f"{indent}{bullet}Check: {label}")

    return "\n".join(output_lines)


def _is_anonymous(specification: Specification[Any]) -> bool:
    return isinstance(specification, ExpressionSpecification) and specification.name in (
        "<lambda>",
        "expression",
    )


def _explain_inline(specification: Specification[Any]) -> str:
    """Get a short inline explanation for nested children."""
    if isinstance(specification, AndSpecification):
        parts = [_explain_inline(child) for child in _flatten_and_chain(specification)]
        return f"({' & '.join(parts)})"
    if isinstance(specification, OrSpecification):
        parts = [_explain_inline(child) for child in _flatten_or_chain(specification)]
        return f"({' | '.join(parts)})"
    if isinstance(specification, NotSpecification):
        inner, count = _unwrap_not(specification)
        return "~" * count + _explain_inline(inner)
    if isinstance(specification, (CachedSpecification, ValidationSpecification)):
        return _explain_inline(specification.specification)
    if isinstance(specification, CompositeValidationSpecification):
        parts = [_explain_inline(child) for child in specification.specifications]
        return f"validate({', '.join(parts)})"
    return describe(specification)
