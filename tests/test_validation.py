"""Tests for ValidationSpecification, CompositeValidationSpecification and ValidationResult."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass

import pytest

from specwise import (
    CompositeValidationSpecification,
    Constant,
    InvalidArgumentError,
    OperationCancelledError,
    Specification,
    ValidationResult,
    ValidationSpecification,
    predicate,
    to_specification,
)


@dataclass
class Item:
    value: int
    name: str | None = None


class PositiveValueSpecification(Specification):
    def _build_expression(self):
        return predicate(lambda item: item.value > 0)


class ExplodingSpecification(Specification):
    def _build_expression(self):
        return predicate(lambda item: item.missing_attribute)


value_rule = ValidationSpecification(
    to_specification(lambda e: e.value > 5), "Value must be greater than 5"
)
name_rule = ValidationSpecification(
    to_specification(lambda e: e.name != None), "Name is required"  # noqa: E711
)


class TestValidationSpecification:
    def test_appends_message_on_failure(self):
        errors: list[str] = []
        assert value_rule.validate(Item(3), errors) is False
        assert errors == ["Value must be greater than 5"]

    def test_leaves_errors_untouched_on_success(self):
        errors = ["existing"]
        assert value_rule.validate(Item(10), errors) is True
        assert errors == ["existing"]

    def test_message_formatting(self):
        spec = ValidationSpecification(
            to_specification(lambda e: e.value > 5), "Value {entity.value} is too small"
        )
        assert spec.get_error(Item(2)) == "Value 2 is too small"

    def test_callable_message(self):
        spec = ValidationSpecification(
            to_specification(lambda e: e.value > 5), lambda e: f"got {e.value}"
        )
        assert spec.check(Item(1)).errors == ["got 1"]

    def test_unformattable_message_returned_as_is(self):
        spec = ValidationSpecification(to_specification(lambda e: e.value > 5), "Use {braces}")
        assert spec.get_error(Item(1)) == "Use {braces}"

    def test_expression_is_wrapped_expression(self):
        inner = to_specification(lambda e: e.value > 5)
        assert ValidationSpecification(inner, "x").as_expression() is inner.as_expression()

    def test_none_arguments_rejected(self):
        with pytest.raises(InvalidArgumentError):
            ValidationSpecification(None, "message")  # type: ignore[arg-type]
        with pytest.raises(InvalidArgumentError):
            ValidationSpecification(value_rule, None)  # type: ignore[arg-type]
        with pytest.raises(InvalidArgumentError):
            value_rule.validate(None, [])
        with pytest.raises(InvalidArgumentError):
            value_rule.validate(Item(1), None)  # type: ignore[arg-type]

    def test_validate_async(self):
        errors: list[str] = []
        ok = asyncio.run(value_rule.validate_async(Item(1), errors))
        assert ok is False
        assert errors == ["Value must be greater than 5"]


class TestCompositeValidationSpecification:
    composite = CompositeValidationSpecification([value_rule, name_rule])

    def test_collects_messages_in_order(self):
        assert self.composite.validate(Item(3, None)) == [
            "Value must be greater than 5",
            "Name is required",
        ]

    def test_no_messages_when_valid(self):
        assert self.composite.validate(Item(10, "x")) == []

    def test_is_satisfied_requires_all(self):
        assert self.composite.is_satisfied_by(Item(10, "x")) is True
        assert self.composite.is_satisfied_by(Item(10, None)) is False
        assert self.composite.is_satisfied_by(Item(3, "x")) is False

    def test_generic_message_for_plain_specifications(self):
        composite = CompositeValidationSpecification([PositiveValueSpecification(), name_rule])
        assert composite.validate(Item(-1, "x")) == [
            "Specification PositiveValueSpecification was not satisfied"
        ]

    def test_expression_is_trivially_true(self):
        expr = self.composite.as_expression()
        assert expr.body == Constant(True)

    def test_evaluation_errors_propagate(self):
        composite = CompositeValidationSpecification([ExplodingSpecification()])
        with pytest.raises(AttributeError):
            composite.validate(Item(1))

    def test_none_arguments_rejected(self):
        with pytest.raises(InvalidArgumentError):
            CompositeValidationSpecification(None)  # type: ignore[arg-type]
        with pytest.raises(InvalidArgumentError):
            CompositeValidationSpecification([value_rule, None])  # type: ignore[list-item]

    def test_check_returns_result(self):
        result = self.composite.check(Item(3, "x"))
        assert isinstance(result, ValidationResult)
        assert not result
        assert result.errors == ["Value must be greater than 5"]
        assert result.entity == Item(3, "x")

    def test_raise_if_invalid(self):
        with pytest.raises(ValueError, match="Value must be greater than 5; Name is required"):
            self.composite.check(Item(3)).raise_if_invalid()

        self.composite.check(Item(10, "x")).raise_if_invalid()

    def test_raise_if_invalid_custom_exception(self):
        class DomainError(Exception):
            pass

        with pytest.raises(DomainError):
            self.composite.check(Item(3)).raise_if_invalid(DomainError)

    def test_validate_async(self):
        assert asyncio.run(self.composite.validate_async(Item(3, None))) == [
            "Value must be greater than 5",
            "Name is required",
        ]

    def test_validate_async_cancelled(self):
        async def main():
            cancel = asyncio.Event()
            cancel.set()
            return await self.composite.validate_async(Item(3), cancel)

        with pytest.raises(OperationCancelledError):
            asyncio.run(main())
