"""Validation with error messages."""

from __future__ import annotations

from collections.abc import Callable, Iterable
from dataclasses import dataclass
from typing import Any

from specwise._async import CancelSignal, raise_if_cancelled
from specwise._core import Specification, as_specification
from specwise._errors import InvalidArgumentError, require
from specwise._expression import Constant, Parameter, PredicateExpression
from specwise._types import T


@dataclass
class ValidationResult:
    """
    Result of validation with error messages.

    Attributes:
        ok: Whether all checks passed
        errors: List of error messages from failed checks
        entity: The entity that was validated
    """

    ok: bool
    errors: list[str]
    entity: Any

    def __bool__(self) -> bool:
        return self.ok

    def raise_if_invalid(self, exception_class: type = ValueError) -> None:
        """Raise an exception if validation failed."""
        if not self.ok:
            raise exception_class("; ".join(self.errors))


class ValidationSpecification(Specification[T]):
    """
    A specification that provides an error message on failure.

    The message is either a string, formatted with ``{entity}``, or a
    callable receiving the entity.

    Example:
        has_name = ValidationSpecification(
            to_specification(lambda e: e.name != None),
            "Name is required for {entity.id}",
        )
        errors: list[str] = []
        has_name.validate(entity, errors)
    """

    def __init__(
        self,
        specification: Specification[T] | PredicateExpression[T],
        error_message: str | Callable[[T], str],
    ):
        super().__init__()
        self.specification = as_specification(specification, "specification")
        require(error_message, "error_message")
        if not isinstance(error_message, str) and not callable(error_message):
            raise InvalidArgumentError(
                "error_message must be a string or a callable", "error_message"
            )
        self.error_message = error_message

    def _build_expression(self) -> PredicateExpression[T]:
        return self.specification.as_expression()

    def _evaluate(self, entity: T) -> bool:
        return self.specification._evaluate(entity)

    def _follows_expression(self) -> bool:
        return self.specification._follows_expression()

    def get_error(self, entity: T) -> str:
        """Get the error message for this entity."""
        if callable(self.error_message):
            return self.error_message(entity)
        try:
            return self.error_message.format(entity=entity)
        except (KeyError, AttributeError, IndexError, ValueError):
            return self.error_message

    def validate(self, entity: T, errors: list[str]) -> bool:
        """
        Evaluate ``entity`` and append the error message if it fails.

        Returns:
            Whether the entity satisfied the specification.
        """
        require(entity, "entity")
        require(errors, "errors")
        ok = self.is_satisfied_by(entity)
        if not ok:
            errors.append(self.get_error(entity))
        return ok

    async def validate_async(
        self, entity: T, errors: list[str], cancel: CancelSignal | None = None
    ) -> bool:
        require(entity, "entity")
        require(errors, "errors")
        ok = await self.specification.is_satisfied_by_async(entity, cancel)
        if not ok:
            errors.append(self.get_error(entity))
        return ok

    def check(self, entity: T) -> ValidationResult:
        """Run validation and return result with errors."""
        errors: list[str] = []
        ok = self.validate(entity, errors)
        return ValidationResult(ok=ok, errors=errors, entity=entity)

    def __repr__(self) -> str:
        return f"ValidationSpecification({self.specification!r})"


def _failure_message(specification: Specification[Any]) -> str:
    return f"Specification {type(specification).__name__} was not satisfied"


class CompositeValidationSpecification(Specification[T]):
    """
    Runs every member specification and collects all failures.

    Unlike AND, validation never short-circuits: every member is evaluated
    in declaration order so all problems are reported at once. Members that
    are ValidationSpecifications contribute their own messages; any other
    specification contributes a generic message naming its class.

    Example:
        rules = CompositeValidationSpecification([
            ValidationSpecification(has_value, "Value must be greater than 5"),
            ValidationSpecification(has_name, "Name is required"),
        ])
        rules.check(entity).raise_if_invalid()
    """

    def __init__(self, specifications: Iterable[Specification[T]]):
        super().__init__()
        require(specifications, "specifications")
        items = tuple(specifications)
        self.specifications: tuple[Specification[T], ...] = tuple(
            as_specification(spec, f"specifications[{index}]")
            for index, spec in enumerate(items)
        )

    def _build_expression(self) -> PredicateExpression[T]:
        return PredicateExpression(Parameter("entity"), Constant(True), "always_true")

    def _evaluate(self, entity: T) -> bool:
        return all(spec._evaluate(entity) for spec in self.specifications)

    def validate(self, entity: T) -> list[str]:
        """Evaluate every member and return the collected error messages."""
        require(entity, "entity")
        errors: list[str] = []
        for spec in self.specifications:
            if isinstance(spec, ValidationSpecification):
                spec.validate(entity, errors)
            elif not spec.is_satisfied_by(entity):
                errors.append(_failure_message(spec))
        return errors

    async def validate_async(
        self, entity: T, cancel: CancelSignal | None = None
    ) -> list[str]:
        """Async counterpart of validate(); members are awaited in order."""
        require(entity, "entity")
        errors: list[str] = []
        for spec in self.specifications:
            raise_if_cancelled(cancel)
            if isinstance(spec, ValidationSpecification):
                await spec.validate_async(entity, errors, cancel)
            elif not await spec.is_satisfied_by_async(entity, cancel):
                errors.append(_failure_message(spec))
        return errors

    def check(self, entity: T) -> ValidationResult:
        """Run validation and return result with errors."""
        errors = self.validate(entity)
        return ValidationResult(ok=not errors, errors=errors, entity=entity)

    def __repr__(self) -> str:
        inner = ", ".join(repr(spec) for spec in self.specifications)
        return f"CompositeValidationSpecification([{inner}])"
