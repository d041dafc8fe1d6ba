"""Tests for SpecificationVisitor and OperationCounterVisitor."""

from __future__ import annotations

import pytest

from specwise import (
    InvalidArgumentError,
    LogicalOperator,
    Member,
    OperationCounterVisitor,
    SpecificationVisitor,
    predicate,
    to_specification,
)

a = to_specification(lambda e: e.a, "a")
b = to_specification(lambda e: e.b, "b")
c = to_specification(lambda e: e.c, "c")


class TestOperationCounterVisitor:
    def test_counts_mixed_tree(self):
        counter = OperationCounterVisitor()
        counter.visit((a & b) | ~c)

        assert counter.and_count == 1
        assert counter.or_count == 1
        assert counter.not_count == 1
        assert counter.total_count == 3

    def test_leaf_has_no_operations(self):
        counter = OperationCounterVisitor()
        counter.visit(a)
        assert counter.total_count == 0

    def test_counts_operators_inside_leaf_expressions(self):
        counter = OperationCounterVisitor()
        counter.visit(predicate(lambda e: (e.x > 1) & (e.y | ~e.z)))
        assert (counter.and_count, counter.or_count, counter.not_count) == (1, 1, 1)

    def test_counts_accumulate_until_reset(self):
        counter = OperationCounterVisitor()
        counter.visit(a & b)
        counter.visit(a & b & c)
        assert counter.and_count == 3

        counter.reset()
        assert counter.total_count == 0

    def test_accepts_nodes(self):
        counter = OperationCounterVisitor()
        counter.visit((~a).as_expression().body)
        assert counter.not_count == 1

    def test_none_rejected(self):
        with pytest.raises(InvalidArgumentError):
            OperationCounterVisitor().visit(None)  # type: ignore[arg-type]

    def test_unsupported_target_rejected(self):
        with pytest.raises(InvalidArgumentError):
            OperationCounterVisitor().visit("a & b")  # type: ignore[arg-type]


class TestSpecificationVisitor:
    def test_pre_order_walk(self):
        events = []

        class Recorder(SpecificationVisitor):
            def on_logical_operation(self, operator, left, right):
                events.append(operator)

            def on_not_operation(self, operand):
                events.append("not")

        Recorder().visit((a | ~b) & c)
        assert events == [LogicalOperator.AND, LogicalOperator.OR, "not"]

    def test_hooks_receive_operands(self):
        captured = {}

        class Capture(SpecificationVisitor):
            def on_logical_operation(self, operator, left, right):
                captured["left"] = left
                captured["right"] = right

        spec = a | b
        Capture().visit(spec)
        parameter = spec.as_expression().parameter
        assert captured["left"] == Member(parameter, "a")
        assert captured["right"] == Member(parameter, "b")

    def test_does_not_evaluate(self):
        class Exploding:
            def __getattr__(self, name):
                raise AssertionError("evaluated")

        spec = to_specification(lambda e: e.boom & e.bang)
        OperationCounterVisitor().visit(spec)  # no entity involved
        with pytest.raises(AssertionError):
            spec.is_satisfied_by(Exploding())
