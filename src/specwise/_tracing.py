"""
Tracing: report each node of a specification tree to a hook as it is
evaluated.

Hooks receive a label per node (``AND``, ``OR``, ``NOT``,
``Specification(is_active)``, ``Cached(is_active)`` ...), the entity, and the
node's depth, and later either the result or the error. Short-circuiting
is preserved, so nodes that are never evaluated are never reported.
"""

from __future__ import annotations

import logging
import sys
import time
from collections.abc import Callable, Iterator, Mapping
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Protocol, TextIO, runtime_checkable

from specwise._caching import CachedSpecification
from specwise._core import (
    AndSpecification,
    NotSpecification,
    OrSpecification,
    Specification,
    _flatten_and_chain,
    _flatten_or_chain,
    _unwrap_not,
)
from specwise._errors import require
from specwise._explain import describe
from specwise._types import T, _trace_config, _trace_hook
from specwise._validation import (
    CompositeValidationSpecification,
    ValidationSpecification,
)

# Optional OpenTelemetry imports - only needed if using OpenTelemetryHook
try:
    from opentelemetry.trace import Status as _Status
    from opentelemetry.trace import StatusCode as _StatusCode
    from opentelemetry.trace import set_span_in_context as _set_span_in_context

    _HAS_OPENTELEMETRY = True
except ImportError:
    _HAS_OPENTELEMETRY = False
    _Status = None
    _StatusCode = None
    _set_span_in_context = None

OPERATORS = ("AND", "OR", "NOT")


# =============================================================================
# Hook Protocol & Configuration
# =============================================================================


@runtime_checkable
class TraceHook(Protocol):
    """
    Receives one enter call and one exit (or error) call per traced node.

    Whatever ``on_enter`` returns is handed back as ``span`` to the matching
    ``on_exit`` / ``on_error``, so hooks can carry timers or tracing spans
    without keeping their own bookkeeping.
    """

    def on_enter(self, name: str, entity: Any, depth: int) -> Any: ...

    def on_exit(
        self, span: Any, name: str, ok: bool, duration_ms: float, depth: int
    ) -> None: ...

    def on_error(
        self, span: Any, name: str, error: Exception, duration_ms: float, depth: int
    ) -> None: ...


@dataclass
class TraceConfig:
    """
    Which nodes get reported.

    Attributes:
        nested: Report the operands of AND / OR / NOT, not just the root
        max_depth: Deeper nodes are evaluated silently (None = no limit)
        include_leaf_only: Skip AND / OR / NOT and report only their leaves
    """

    nested: bool = True
    max_depth: int | None = None
    include_leaf_only: bool = False


@contextmanager
def use_tracing(hook: TraceHook, config: TraceConfig | None = None) -> Iterator[None]:
    """
    Trace every ``is_satisfied_by()`` call made inside the block.

    The hook is stored in a context variable, so it follows the current
    thread or task, including ``is_satisfied_by_async()`` worker threads.

    Example:
        with use_tracing(LoggingHook(logger), TraceConfig(max_depth=2)):
            spec.is_satisfied_by(account)
    """
    require(hook, "hook")
    hook_token = _trace_hook.set(hook)
    config_token = _trace_config.set(config or TraceConfig())
    try:
        yield
    finally:
        _trace_config.reset(config_token)
        _trace_hook.reset(hook_token)


def _get_specification_name(specification: Specification[Any]) -> str:
    """Label reported to hooks for one node."""
    if isinstance(specification, AndSpecification):
        return "AND"
    if isinstance(specification, OrSpecification):
        return "OR"
    if isinstance(specification, NotSpecification):
        return "NOT"
    if isinstance(specification, CachedSpecification):
        return f"Cached({describe(specification.specification)})"
    if isinstance(specification, ValidationSpecification):
        return f"Validation({describe(specification.specification)})"
    if isinstance(specification, CompositeValidationSpecification):
        return "ValidateAll"
    return f"Specification({describe(specification)})"


# =============================================================================
# Traced Evaluation
# =============================================================================


class _Tracer:
    """Walks a specification, reporting nodes to ``hook`` as allowed by ``config``."""

    def __init__(self, hook: TraceHook, config: TraceConfig):
        self.hook = hook
        self.config = config

    def run(self, specification: Specification[T], entity: T, depth: int) -> bool:
        config = self.config
        if config.max_depth is not None and depth > config.max_depth:
            return specification._evaluate(entity)

        operator = isinstance(
            specification, (AndSpecification, OrSpecification, NotSpecification)
        )
        descend = operator and config.nested
        if operator and config.include_leaf_only:
            if descend:
                return self._operands(specification, entity, depth)
            return specification._evaluate(entity)

        name = _get_specification_name(specification)
        span = self.hook.on_enter(name, entity, depth)
        started = time.perf_counter()
        try:
            if descend:
                ok = self._operands(specification, entity, depth)
            else:
                ok = specification._evaluate(entity)
        except Exception as error:
            self.hook.on_error(span, name, error, _elapsed_ms(started), depth)
            raise
        self.hook.on_exit(span, name, ok, _elapsed_ms(started), depth)
        return ok

    def _operands(self, specification: Specification[T], entity: T, depth: int) -> bool:
        # Chains are flattened so a long a & b & c ... is reported as siblings
        if isinstance(specification, AndSpecification):
            return all(
                self.run(operand, entity, depth + 1)
                for operand in _flatten_and_chain(specification)
            )
        if isinstance(specification, OrSpecification):
            return any(
                self.run(operand, entity, depth + 1)
                for operand in _flatten_or_chain(specification)
            )
        inner, invert_count = _unwrap_not(specification)
        ok = self.run(inner, entity, depth + 1)
        return not ok if invert_count % 2 == 1 else ok


def _elapsed_ms(started: float) -> float:
    return (time.perf_counter() - started) * 1000


def _traced_run(
    specification: Specification[T],
    entity: T,
    hook: TraceHook,
    config: TraceConfig,
    depth: int = 0,
) -> bool:
    return _Tracer(hook, config).run(specification, entity, depth)


def run_traced(
    specification: Specification[T],
    entity: T,
    hook: TraceHook,
    config: TraceConfig | None = None,
) -> bool:
    """
    Evaluate ``specification`` once with ``hook`` attached.

    Example:
        ok = run_traced(is_active & ~is_locked, account, PrintHook())
    """
    require(specification, "specification")
    require(entity, "entity")
    require(hook, "hook")
    return _traced_run(specification, entity, hook, config or TraceConfig())


# =============================================================================
# Built-in Trace Hooks
# =============================================================================


class PrintHook:
    """
    Writes an indented evaluation outline to a stream (stdout by default).

    Example:
        run_traced(is_active & is_vip, account, PrintHook())

        # -> AND
        #   -> Specification(is_active)
        #   <- Specification(is_active) ✔ (0.02ms)
        #   -> Specification(is_vip)
        #   <- Specification(is_vip) ✗ (0.01ms)
        # <- AND ✗ (0.05ms)
    """

    def __init__(
        self, indent: str = "  ", show_entity: bool = False, stream: TextIO | None = None
    ):
        self.indent = indent
        self.show_entity = show_entity
        self.stream = stream

    def _write(self, depth: int, text: str) -> None:
        print(f"{self.indent * depth}{text}", file=self.stream or sys.stdout)

    def on_enter(self, name: str, entity: Any, depth: int) -> None:
        suffix = f" | entity={entity}" if self.show_entity else ""
        self._write(depth, f"-> {name}{suffix}")

    def on_exit(
        self, span: None, name: str, ok: bool, duration_ms: float, depth: int
    ) -> None:
        self._write(depth, f"<- {name} {'✔' if ok else '✗'} ({duration_ms:.2f}ms)")

    def on_error(
        self, span: None, name: str, error: Exception, duration_ms: float, depth: int
    ) -> None:
        self._write(depth, f"<- {name} raised {type(error).__name__}: {error}")


class LoggingHook:
    """
    Logs each node to ``logger``; errors are always logged at ERROR.

    Example:
        with use_tracing(LoggingHook(logging.getLogger("rules"))):
            spec.is_satisfied_by(account)
    """

    def __init__(self, logger: logging.Logger, level: int = logging.DEBUG):
        self.logger = logger
        self.level = level

    def on_enter(self, name: str, entity: Any, depth: int) -> None:
        self.logger.log(self.level, "[ENTER] %s (depth=%d)", name, depth)

    def on_exit(
        self, span: None, name: str, ok: bool, duration_ms: float, depth: int
    ) -> None:
        self.logger.log(
            self.level,
            "[EXIT] %s -> %s (%.2fms)",
            name,
            "OK" if ok else "FAIL",
            duration_ms,
        )

    def on_error(
        self, span: None, name: str, error: Exception, duration_ms: float, depth: int
    ) -> None:
        self.logger.error(
            "[ERROR] %s raised %r after %.2fms", name, error, duration_ms
        )


@dataclass
class _LeafEvent:
    """Stand-in for a span when a leaf is recorded as an event on its parent."""

    parent: Any
    rule: str
    depth: int


def _node_attributes(name: str, depth: int) -> dict[str, Any]:
    """Span attributes derived from a node label."""
    attributes: dict[str, Any] = {"specwise.depth": depth}
    if name in OPERATORS:
        attributes["specwise.kind"] = "operator"
        attributes["specwise.operator"] = name
        return attributes

    kind, _, rest = name.partition("(")
    attributes["specwise.kind"] = {
        "Cached": "cached",
        "Validation": "validation",
        "ValidateAll": "validate_all",
    }.get(kind, "rule")
    if rest:
        attributes["specwise.rule"] = rest[:-1]
    return attributes


class OpenTelemetryHook:
    """
    Emits one OpenTelemetry span per traced node, nested like the tree.

    Spans carry ``specwise.kind`` (operator, rule, cached, validation,
    validate_all), ``specwise.operator`` or ``specwise.rule``, and on exit
    ``specwise.satisfied`` and ``specwise.duration_ms``. An unsatisfied
    specification is an ordinary result; only raised errors set an error
    status.

    Args:
        tracer: An ``opentelemetry.trace.Tracer``
        max_span_depth: Deeper nodes are evaluated without spans
        leaves_as_events: Record leaves as events on the parent span,
            including their result, instead of separate spans
        entity_attributes: Optional callable returning extra attributes for
            the root span, e.g. ``lambda account: {"account.id": account.id}``

    Requires: pip install opentelemetry-api
    """

    def __init__(
        self,
        tracer: Any,
        *,
        max_span_depth: int | None = None,
        leaves_as_events: bool = False,
        entity_attributes: Callable[[Any], Mapping[str, Any]] | None = None,
    ):
        if not _HAS_OPENTELEMETRY:
            raise ImportError(
                "OpenTelemetry is not installed. "
                "Install it with: pip install opentelemetry-api"
            )
        self.tracer = tracer
        self.max_span_depth = max_span_depth
        self.leaves_as_events = leaves_as_events
        self.entity_attributes = entity_attributes
        self._open_spans: list[Any] = []

    def on_enter(self, name: str, entity: Any, depth: int) -> Any:
        if self.max_span_depth is not None and depth > self.max_span_depth:
            return None

        parent = self._open_spans[-1] if self._open_spans else None
        attributes = _node_attributes(name, depth)

        if self.leaves_as_events and parent is not None and name not in OPERATORS:
            return _LeafEvent(parent, attributes.get("specwise.rule", name), depth)

        context = _set_span_in_context(parent) if parent is not None else None
        span = self.tracer.start_span(name, context=context)
        for key, value in attributes.items():
            span.set_attribute(key, value)
        if depth == 0 and self.entity_attributes is not None:
            for key, value in self.entity_attributes(entity).items():
                span.set_attribute(key, value)

        self._open_spans.append(span)
        return span

    def on_exit(
        self, span: Any, name: str, ok: bool, duration_ms: float, depth: int
    ) -> None:
        if isinstance(span, _LeafEvent):
            span.parent.add_event(
                "specwise.rule",
                {
                    "specwise.rule": span.rule,
                    "specwise.depth": span.depth,
                    "specwise.satisfied": ok,
                    "specwise.duration_ms": duration_ms,
                },
            )
            return
        if span is None:
            return

        span.set_attribute("specwise.satisfied", ok)
        span.set_attribute("specwise.duration_ms", duration_ms)
        self._close(span)

    def on_error(
        self, span: Any, name: str, error: Exception, duration_ms: float, depth: int
    ) -> None:
        if isinstance(span, _LeafEvent):
            span.parent.add_event(
                "specwise.rule",
                {
                    "specwise.rule": span.rule,
                    "specwise.depth": span.depth,
                    "specwise.error": repr(error),
                },
            )
            return
        if span is None:
            return

        span.set_attribute("specwise.duration_ms", duration_ms)
        span.record_exception(error)
        span.set_status(_Status(_StatusCode.ERROR, str(error)))
        self._close(span)

    def _close(self, span: Any) -> None:
        span.end()
        if self._open_spans and self._open_spans[-1] is span:
            self._open_spans.pop()
