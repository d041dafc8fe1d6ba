"""
Example: Account rules with specwise

This example walks through the main features: subclassing Specification,
decorated rules, the fluent builder, async evaluation, structural analysis
with a visitor, validation messages, caching and tracing.
"""

import asyncio
from dataclasses import dataclass

from specwise import (
    OperationCounterVisitor,
    PrintHook,
    Specification,
    SpecificationBuilder,
    ValidationSpecification,
    explain,
    predicate,
    rule_args,
    to_specification,
    use_tracing,
)

# =============================================================================
# Domain model
# =============================================================================


@dataclass
class Account:
    id: int
    is_active: bool
    amount: float


# =============================================================================
# Specifications
# =============================================================================


class ActiveAccountSpecification(Specification[Account]):
    def _build_expression(self):
        return predicate(lambda a: a.is_active)


@rule_args
def amount_above(account: Account, limit: float):
    return account.amount > limit


MIN_AMOUNT = 3000


if __name__ == "__main__":
    account = Account(1, is_active=True, amount=4000)

    # --- 1. Composition ---
    print("=== 1. Composition ===")
    spec = ActiveAccountSpecification() & amount_above(MIN_AMOUNT)
    print("Valid" if spec.is_satisfied_by(account) else "Invalid")
    print(f"Expression: {spec.as_expression()}")

    # --- 2. Fluent builder ---
    print("\n=== 2. Builder ===")
    built = (
        SpecificationBuilder.create(lambda a: a.is_active)
        .and_(to_specification(lambda a: a.amount > MIN_AMOUNT))
        .build()
    )
    print("Builder Valid" if built.is_satisfied_by(account) else "Builder Invalid")

    # --- 3. Async evaluation ---
    print("\n=== 3. Async Evaluation ===")
    print(f"Async result: {asyncio.run(built.is_satisfied_by_async(account))}")

    # --- 4. NOT ---
    print("\n=== 4. Negation ===")
    not_active = ~ActiveAccountSpecification()
    inactive = Account(2, is_active=False, amount=4000)
    print(
        "Account is inactive"
        if not_active.is_satisfied_by(inactive)
        else "Account is active"
    )

    # --- 5. Operation analysis ---
    print("\n=== 5. Operation Analysis ===")
    complex_spec = spec | not_active
    visitor = OperationCounterVisitor()
    visitor.visit(complex_spec)
    print(f"AND operations: {visitor.and_count}")
    print(f"OR operations: {visitor.or_count}")
    print(f"NOT operations: {visitor.not_count}")
    print(explain(complex_spec))

    # --- 6. Validation ---
    print("\n=== 6. Validation ===")
    valid_amount = ValidationSpecification(
        to_specification(lambda a: a.amount >= 100),
        "Account {entity.id} amount must be at least 100",
    )
    errors: list[str] = []
    valid_amount.validate(Account(3, is_active=True, amount=50), errors)
    if errors:
        print("Validation errors:")
        for error in errors:
            print(f"  - {error}")

    # --- 7. Caching ---
    print("\n=== 7. Caching ===")
    by_id = spec.cached(lambda a: a.id)
    by_id.is_satisfied_by(account)
    by_id.is_satisfied_by(account)
    print(f"Cached entries: {by_id.cache_count}")

    # --- 8. Tracing ---
    print("\n=== 8. Tracing ===")
    with use_tracing(PrintHook()):
        complex_spec.is_satisfied_by(inactive)
