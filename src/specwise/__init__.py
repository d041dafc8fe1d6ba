"""
Specwise - Composable Specifications over Expression Trees

A Python library for building reusable, named boolean predicates
("specifications") over domain entities. Every specification is an
inspectable expression tree with one bound parameter; combinators merge
trees, visitors analyse them, and a compiled form is built once and reused.

Operators:
    &  = "and" (short-circuits on failure)
    |  = "or" (short-circuits on success)
    ~  = "not"

Example:
    from specwise import rule, rule_args

    @rule
    def is_active(account):
        return account.is_active

    @rule_args
    def amount_above(account, limit):
        return account.amount > limit

    # Combine with operators
    big_active = is_active & amount_above(3000)

    # Use it
    big_active.is_satisfied_by(account)

    # Inspect it
    str(big_active.as_expression())
    # "lambda account: account.is_active & (account.amount > 3000)"
"""

from __future__ import annotations

__version__ = "0.1.0"
__all__ = [
    # Expressions
    "Node",
    "Parameter",
    "Constant",
    "Member",
    "Call",
    "Compare",
    "BinaryOp",
    "AndAlso",
    "OrElse",
    "Not",
    "PredicateExpression",
    "Ref",
    "predicate",
    "ExpressionVisitor",
    "ExpressionTransformer",
    "ParameterRebinder",
    "replace_parameter",
    "compile_expression",
    # Core
    "Specification",
    "ExpressionSpecification",
    "AndSpecification",
    "OrSpecification",
    "NotSpecification",
    "as_specification",
    "to_specification",
    # Async
    "CancelSignal",
    # Caching
    "CachedSpecification",
    # Visitors
    "LogicalOperator",
    "SpecificationVisitor",
    "OperationCounterVisitor",
    # Validation
    "ValidationResult",
    "ValidationSpecification",
    "CompositeValidationSpecification",
    # Builder
    "SpecificationBuilder",
    # Rules
    "rule",
    "rule_args",
    "SpecificationFactory",
    # Registry
    "Registry",
    "ExpressionParser",
    "parse_expression",
    "tokenize",
    "Token",
    "TokenType",
    # Tracing
    "TraceHook",
    "TraceConfig",
    "use_tracing",
    "run_traced",
    "PrintHook",
    "LoggingHook",
    "OpenTelemetryHook",
    # Explain
    "explain",
    "format_expression",
    # Errors
    "SpecificationError",
    "InvalidArgumentError",
    "InvalidOperationError",
    "OperationCancelledError",
    "ExpressionSyntaxError",
    "UnknownRuleError",
]

from specwise._async import CancelSignal
from specwise._builder import SpecificationBuilder
from specwise._caching import CachedSpecification
from specwise._compile import compile_expression
from specwise._core import (
    AndSpecification,
    ExpressionSpecification,
    NotSpecification,
    OrSpecification,
    Specification,
    as_specification,
    to_specification,
)
from specwise._errors import (
    ExpressionSyntaxError,
    InvalidArgumentError,
    InvalidOperationError,
    OperationCancelledError,
    SpecificationError,
    UnknownRuleError,
)
from specwise._explain import explain, format_expression
from specwise._expression import (
    AndAlso,
    BinaryOp,
    Call,
    Compare,
    Constant,
    ExpressionTransformer,
    ExpressionVisitor,
    Member,
    Node,
    Not,
    OrElse,
    Parameter,
    PredicateExpression,
    Ref,
    predicate,
)
from specwise._parser import ExpressionParser, Token, TokenType, parse_expression, tokenize
from specwise._rebind import ParameterRebinder, replace_parameter
from specwise._registry import Registry
from specwise._rules import SpecificationFactory, rule, rule_args
from specwise._tracing import (
    LoggingHook,
    OpenTelemetryHook,
    PrintHook,
    TraceConfig,
    TraceHook,
    run_traced,
    use_tracing,
)
from specwise._validation import (
    CompositeValidationSpecification,
    ValidationResult,
    ValidationSpecification,
)
from specwise._visitor import (
    LogicalOperator,
    OperationCounterVisitor,
    SpecificationVisitor,
)
