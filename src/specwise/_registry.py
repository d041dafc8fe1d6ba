"""Registry of named specifications, loadable from rule text or config."""

from __future__ import annotations

import inspect
import logging
from collections.abc import Callable
from functools import reduce
from pathlib import Path
from typing import Any, Generic

from specwise._core import (
    AndSpecification,
    ExpressionSpecification,
    NotSpecification,
    OrSpecification,
    Specification,
)
from specwise._errors import InvalidArgumentError, UnknownRuleError, require
from specwise._expression import PredicateExpression
from specwise._parser import parse_expression
from specwise._rules import SpecificationFactory
from specwise._rules import rule as _rule
from specwise._rules import rule_args as _rule_args
from specwise._types import T

logger = logging.getLogger(__name__)


class Registry(Generic[T]):
    """
    Registry for named specifications and specification factories.

    Allows loading specifications from human-readable expressions.

    Example:
        reg: Registry[Account] = Registry()

        @reg.rule
        def is_active(account):
            return account.is_active

        @reg.rule
        def amount_above(account, limit):
            return account.amount > limit

        # Load from expression
        loaded = reg.load("is_active & amount_above(3000)")

        # Also supports word syntax
        loaded = reg.load("is_active AND amount_above(3000)")
    """

    def __init__(self) -> None:
        self._rules: dict[str, Specification[T] | SpecificationFactory[T]] = {}

    def rule(
        self, fn: Callable[..., Any]
    ) -> ExpressionSpecification[T] | SpecificationFactory[T]:
        """
        Decorator to register a rule.

        For simple rules (single arg), returns ExpressionSpecification[T].
        For parameterized rules (multiple args), returns SpecificationFactory[T].
        """
        require(fn, "fn")
        params = list(inspect.signature(fn).parameters)

        entry: ExpressionSpecification[T] | SpecificationFactory[T]
        if len(params) == 1:
            entry = _rule(fn)
        else:
            entry = _rule_args(fn)
        self._rules[fn.__name__] = entry
        return entry

    def register(
        self,
        name: str,
        specification: Specification[T] | SpecificationFactory[T] | PredicateExpression[T],
    ) -> Specification[T] | SpecificationFactory[T]:
        """Register an existing specification or factory under ``name``."""
        require(name, "name")
        require(specification, "specification")
        entry: Specification[T] | SpecificationFactory[T]
        if isinstance(specification, PredicateExpression):
            entry = ExpressionSpecification(specification, name)
        elif isinstance(specification, (Specification, SpecificationFactory)):
            entry = specification
        else:
            raise InvalidArgumentError(
                "specification must be a Specification, SpecificationFactory "
                f"or PredicateExpression, got {type(specification).__name__}",
                "specification",
            )
        self._rules[name] = entry
        return entry

    def names(self) -> list[str]:
        """Registered names, sorted."""
        return sorted(self._rules)

    def __contains__(self, name: object) -> bool:
        return name in self._rules

    def __len__(self) -> int:
        return len(self._rules)

    def load(self, source: str | dict[str, Any]) -> Specification[T]:
        """
        Load a specification from a human-readable expression or config.

        Expression format:
            # Simple rules
            is_active

            # Operators (symbols or words)
            is_active & has_funds         # AND
            is_active AND has_funds       # AND (same as &)
            is_active | is_vip            # OR
            is_active OR is_vip           # OR (same as |)
            ~is_locked                    # NOT
            NOT is_locked                 # NOT (same as ~)
            !is_locked                    # NOT (same as ~)

            # Grouping with parentheses
            is_vip | (is_active & ~is_locked)

            # Parameterized rules
            amount_above(3000)
            in_region("eu", "us")

            # Comments
            is_active  # must be active
            & ~is_locked

        Config format (for rules kept as JSON or YAML data):
            {"and": ["is_active", {"not": "is_locked"}, {"amount_above": [3000]}]}

        Operator precedence (lowest to highest):
            OR  (|)  - evaluated last
            AND (&)  - evaluated second
            NOT (~)  - evaluated first
        """
        require(source, "source")
        if isinstance(source, str):
            specification = parse_expression(source, self._resolve)
        else:
            specification = self._build(source)
        logger.debug("Loaded specification %r", specification)
        return specification

    def load_file(self, path: str | Path) -> Specification[T]:
        """Load a specification from an expression file."""
        require(path, "path")
        logger.debug("Loading rules from %s", path)
        content = Path(path).read_text(encoding="utf-8")
        return self.load(content)

    def _build(self, node: Any) -> Specification[T]:
        """Build a specification from a parsed expression config."""
        # String: simple rule reference
        if isinstance(node, str):
            return self._resolve(node)

        # Dict: operator or parameterized call
        if isinstance(node, dict):
            if len(node) != 1:
                raise InvalidArgumentError(
                    f"Config node must have exactly one key: {node!r}", "config"
                )

            key, value = next(iter(node.items()))

            if key == "and":
                return reduce(AndSpecification, self._build_items(key, value))
            if key == "or":
                return reduce(OrSpecification, self._build_items(key, value))
            if key == "not":
                return NotSpecification(self._build(value))

            # Parameterized rule
            return self._resolve(key, value)

        raise InvalidArgumentError(f"Invalid config node: {node!r}", "config")

    def _build_items(self, key: str, value: Any) -> list[Specification[T]]:
        if not isinstance(value, list) or not value:
            raise InvalidArgumentError(
                f"'{key}' requires a non-empty list of operands, got {value!r}", "config"
            )
        return [self._build(item) for item in value]

    def _resolve(self, name: str, args: Any = None) -> Specification[T]:
        """Resolve a name to a specification, optionally with args."""
        if name not in self._rules:
            raise UnknownRuleError(name, self.names())

        entry = self._rules[name]
        if args is None:
            if isinstance(entry, SpecificationFactory):
                raise InvalidArgumentError(f"Rule '{name}' requires arguments", name)
            return entry

        if not isinstance(entry, SpecificationFactory):
            raise InvalidArgumentError(f"Rule '{name}' does not take arguments", name)
        if isinstance(args, list):
            return entry(*args)
        if isinstance(args, dict):
            return entry(**args)
        return entry(args)

    def __repr__(self) -> str:
        return f"Registry({', '.join(self.names())})"
