"""Tests for tracing hooks, use_tracing/run_traced and explain()."""

from __future__ import annotations

import asyncio
import io
import logging
from dataclasses import dataclass
from unittest.mock import ANY, MagicMock, call

import pytest

from specwise import (
    LoggingHook,
    PrintHook,
    TraceConfig,
    TraceHook,
    explain,
    rule,
    rule_args,
    run_traced,
    to_specification,
    use_tracing,
)
from specwise._types import _trace_hook


@dataclass
class Account:
    is_active: bool = True
    is_locked: bool = False
    is_vip: bool = False
    amount: float = 0


@rule
def is_active(account):
    return account.is_active


@rule
def is_locked(account):
    return account.is_locked


@rule
def is_vip(account):
    return account.is_vip


@rule_args
def amount_above(account, limit):
    return account.amount > limit


class RecordingHook:
    def __init__(self):
        self.events: list[tuple] = []

    def on_enter(self, name, entity, depth):
        self.events.append(("enter", name, depth))
        return name

    def on_exit(self, span, name, ok, duration_ms, depth):
        self.events.append(("exit", name, ok, depth))

    def on_error(self, span, name, error, duration_ms, depth):
        self.events.append(("error", name, type(error).__name__, depth))


# =============================================================================
# Tracing Tests
# =============================================================================


class TestTracing:
    def test_recording_hook_is_trace_hook(self):
        assert isinstance(RecordingHook(), TraceHook)

    def test_use_tracing_traces_each_node(self):
        hook = RecordingHook()
        spec = is_active & ~is_locked

        with use_tracing(hook):
            assert spec.is_satisfied_by(Account()) is True

        assert hook.events == [
            ("enter", "AND", 0),
            ("enter", "Specification(is_active)", 1),
            ("exit", "Specification(is_active)", True, 1),
            ("enter", "NOT", 1),
            ("enter", "Specification(is_locked)", 2),
            ("exit", "Specification(is_locked)", False, 2),
            ("exit", "NOT", True, 1),
            ("exit", "AND", True, 0),
        ]

    def test_short_circuit_preserved(self):
        hook = RecordingHook()
        spec = is_active & is_vip & amount_above(10)
        run_traced(spec, Account(is_active=False), hook)

        names = [event[1] for event in hook.events if event[0] == "enter"]
        assert names == ["AND", "Specification(is_active)"]

    def test_or_chain_flattened(self):
        hook = RecordingHook()
        spec = is_vip | is_locked | is_active
        assert run_traced(spec, Account(), hook) is True

        depths = [event[2] for event in hook.events if event[0] == "enter"]
        assert depths == [0, 1, 1, 1]

    def test_scope_restored(self):
        with use_tracing(RecordingHook()):
            pass
        assert _trace_hook.get() is None

    def test_no_events_outside_scope(self):
        hook = RecordingHook()
        with use_tracing(hook):
            pass
        is_active.is_satisfied_by(Account())
        assert hook.events == []

    def test_leaf_only(self):
        hook = RecordingHook()
        run_traced(is_active & is_vip, Account(is_vip=True), hook, TraceConfig(include_leaf_only=True))
        names = {event[1] for event in hook.events}
        assert names == {"Specification(is_active)", "Specification(is_vip)"}

    def test_not_nested(self):
        hook = RecordingHook()
        ok = run_traced(is_active & is_vip, Account(), hook, TraceConfig(nested=False))
        assert ok is False
        assert hook.events == [("enter", "AND", 0), ("exit", "AND", False, 0)]

    def test_max_depth(self):
        hook = RecordingHook()
        run_traced(is_active & ~is_locked, Account(), hook, TraceConfig(max_depth=1))
        assert all(event[-1] <= 1 for event in hook.events)
        assert ("enter", "NOT", 1) in hook.events

    def test_error_reported_and_raised(self):
        hook = RecordingHook()
        spec = to_specification(lambda a: a.missing, "broken")
        with pytest.raises(AttributeError):
            run_traced(spec, Account(), hook)
        assert hook.events[-1] == ("error", "Specification(broken)", "AttributeError", 0)

    def test_wrapper_names(self):
        hook = RecordingHook()
        cached = is_active.cached(lambda a: a.amount)
        run_traced(cached, Account(), hook)
        assert hook.events[0] == ("enter", "Cached(is_active)", 0)

    def test_tracing_reaches_worker_thread(self):
        hook = RecordingHook()

        async def main():
            with use_tracing(hook):
                return await is_active.is_satisfied_by_async(Account())

        assert asyncio.run(main()) is True
        assert hook.events[0] == ("enter", "Specification(is_active)", 0)


class TestHooks:
    def test_print_hook(self, capsys):
        with use_tracing(PrintHook()):
            (is_active & is_vip).is_satisfied_by(Account())

        out = capsys.readouterr().out
        assert "-> AND" in out
        assert "  -> Specification(is_active)" in out
        assert "<- Specification(is_vip) ✗" in out

    def test_print_hook_show_entity(self, capsys):
        run_traced(is_active, Account(), PrintHook(show_entity=True))
        assert "entity=Account(" in capsys.readouterr().out

    def test_print_hook_stream(self):
        buffer = io.StringIO()
        run_traced(~is_locked, Account(), PrintHook(indent="..", stream=buffer))

        lines = buffer.getvalue().splitlines()
        assert lines[:2] == ["-> NOT", "..-> Specification(is_locked)"]
        assert lines[-1].startswith("<- NOT ✔")

    def test_print_hook_error(self, capsys):
        spec = to_specification(lambda a: a.missing, "broken")
        with pytest.raises(AttributeError):
            run_traced(spec, Account(), PrintHook())
        assert "<- Specification(broken) raised AttributeError" in capsys.readouterr().out

    def test_logging_hook(self, caplog):
        logger = logging.getLogger("tests.rules")
        with caplog.at_level(logging.DEBUG, logger="tests.rules"):
            with use_tracing(LoggingHook(logger)):
                is_active.is_satisfied_by(Account())

        assert "[ENTER] Specification(is_active) (depth=0)" in caplog.text
        assert "[EXIT] Specification(is_active) -> OK" in caplog.text

    def test_logging_hook_error(self, caplog):
        logger = logging.getLogger("tests.rules")
        spec = to_specification(lambda a: a.missing, "broken")
        with caplog.at_level(logging.DEBUG, logger="tests.rules"):
            with pytest.raises(AttributeError):
                run_traced(spec, Account(), LoggingHook(logger))

        assert "[ERROR] Specification(broken)" in caplog.text


class TestOpenTelemetryHook:
    @pytest.fixture(autouse=True)
    def _requires_opentelemetry(self):
        pytest.importorskip("opentelemetry.trace")

    def make_tracer(self):
        tracer = MagicMock()
        spans = []

        def start_span(name, context=None):
            span = MagicMock(name=name)
            spans.append((name, span))
            return span

        tracer.start_span.side_effect = start_span
        return tracer, spans

    def test_spans_follow_tree(self):
        from specwise import OpenTelemetryHook

        tracer, spans = self.make_tracer()
        hook = OpenTelemetryHook(tracer)
        assert run_traced(is_active & is_vip, Account(is_vip=True), hook) is True

        assert [name for name, _ in spans] == [
            "AND",
            "Specification(is_active)",
            "Specification(is_vip)",
        ]
        and_span = spans[0][1]
        and_span.set_attribute.assert_any_call("specwise.kind", "operator")
        and_span.set_attribute.assert_any_call("specwise.operator", "AND")
        and_span.set_attribute.assert_any_call("specwise.satisfied", True)
        for _, span in spans:
            span.end.assert_called_once()

    def test_leaf_spans_name_their_rule(self):
        from specwise import OpenTelemetryHook

        tracer, spans = self.make_tracer()
        spec = amount_above(10) & is_active.cached(lambda a: a.amount)
        run_traced(spec, Account(amount=50), OpenTelemetryHook(tracer))

        rule_span = spans[1][1]
        rule_span.set_attribute.assert_any_call("specwise.kind", "rule")
        rule_span.set_attribute.assert_any_call("specwise.rule", "amount_above(10)")
        cached_span = spans[2][1]
        cached_span.set_attribute.assert_any_call("specwise.kind", "cached")
        cached_span.set_attribute.assert_any_call("specwise.rule", "is_active")

    def test_unsatisfied_is_not_an_error(self):
        from specwise import OpenTelemetryHook

        tracer, spans = self.make_tracer()
        assert run_traced(is_vip, Account(), OpenTelemetryHook(tracer)) is False

        span = spans[0][1]
        span.set_attribute.assert_any_call("specwise.satisfied", False)
        span.set_status.assert_not_called()

    def test_leaves_as_events(self):
        from specwise import OpenTelemetryHook

        tracer, spans = self.make_tracer()
        hook = OpenTelemetryHook(tracer, leaves_as_events=True)
        run_traced(is_active & is_vip, Account(), hook)

        assert [name for name, _ in spans] == ["AND"]
        root = spans[0][1]
        root.add_event.assert_any_call(
            "specwise.rule",
            {
                "specwise.rule": "is_active",
                "specwise.depth": 1,
                "specwise.satisfied": True,
                "specwise.duration_ms": ANY,
            },
        )
        root.add_event.assert_any_call(
            "specwise.rule",
            {
                "specwise.rule": "is_vip",
                "specwise.depth": 1,
                "specwise.satisfied": False,
                "specwise.duration_ms": ANY,
            },
        )

    def test_entity_attributes_on_root(self):
        from specwise import OpenTelemetryHook

        tracer, spans = self.make_tracer()
        hook = OpenTelemetryHook(tracer, entity_attributes=lambda a: {"account.amount": a.amount})
        run_traced(is_active & is_vip, Account(amount=7), hook)

        spans[0][1].set_attribute.assert_any_call("account.amount", 7)
        for _, span in spans[1:]:
            assert call("account.amount", 7) not in span.set_attribute.call_args_list

    def test_max_span_depth(self):
        from specwise import OpenTelemetryHook

        tracer, _ = self.make_tracer()
        hook = OpenTelemetryHook(tracer, max_span_depth=0)
        run_traced(is_active & is_vip, Account(), hook)
        assert tracer.start_span.call_count == 1

    def test_error_recorded(self):
        from specwise import OpenTelemetryHook

        tracer = MagicMock()
        span = tracer.start_span.return_value
        spec = to_specification(lambda a: a.missing, "broken")

        with pytest.raises(AttributeError):
            run_traced(spec, Account(), OpenTelemetryHook(tracer))

        span.record_exception.assert_called_once()
        span.set_status.assert_called_once()
        span.end.assert_called_once()


# =============================================================================
# Explain Tests
# =============================================================================


class TestExplain:
    def test_nested_explanation(self):
        spec = is_vip | (is_active & ~is_locked)
        assert explain(spec) == (
            "Check passes if ANY of:\n"
            "  • Check: is_vip\n"
            "  • ALL of:\n"
            "    • Check: is_active\n"
            "    • NOT: is_locked"
        )

    def test_anonymous_leaf_uses_expression_text(self):
        spec = to_specification(lambda a: a.amount > 3000)
        assert explain(spec) == "Check: a.amount > 3000"

    def test_factory_leaf(self):
        assert explain(amount_above(5)) == "Check: amount_above(5)"

    def test_verbose_shows_expression(self):
        assert explain(is_active, verbose=True) == (
            "Check: is_active (lambda account: account.is_active)"
        )

    def test_not_of_composite_inline(self):
        assert explain(~(is_active | is_vip)) == "NOT: (is_active | is_vip)"

    def test_wrappers_annotated(self):
        from specwise import CompositeValidationSpecification, ValidationSpecification

        cached = is_active.cached(lambda a: a.amount)
        assert explain(cached) == "Cached check: is_active"

        composite = CompositeValidationSpecification(
            [ValidationSpecification(is_active, "must be active"), is_vip]
        )
        assert explain(composite) == (
            "Validate each of (collect errors):\n"
            "  • Validate: is_active\n"
            "  • Check: is_vip"
        )
