"""Amount validation for delegations.

Rules are evaluated in a fixed order and the first failing rule provides the
single message shown next to the amount field:

1. the amount must be non-empty, numeric and positive,
2. it must reach the minimum delegation threshold,
3. when the balance is known, it must not exceed it.

A balance that is still loading (or failed to load) makes the third rule
indeterminate: it neither passes nor fails the amount.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from .amounts import Balance, format_amount, parse_amount

__all__ = [
    "INSUFFICIENT_FUNDS",
    "INVALID_AMOUNT",
    "AmountValidation",
    "minimum_amount_message",
    "validate_amount",
]

INVALID_AMOUNT = "Please enter a valid amount"
INSUFFICIENT_FUNDS = "Not enough funds"


def minimum_amount_message(min_amount: Decimal, denom: str) -> str:
    return f"Min. delegation amount: {format_amount(min_amount)} {denom.upper()}"


@dataclass(frozen=True)
class AmountValidation:
    amount: Decimal | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None and self.amount is not None


def validate_amount(
    raw: str | None,
    min_amount: Decimal | int | str,
    balance: Balance,
    denom: str,
) -> AmountValidation:
    minimum = Decimal(min_amount)
    amount = parse_amount(raw)
    if amount is None:
        return AmountValidation(error=INVALID_AMOUNT)
    if amount < minimum:
        return AmountValidation(amount=amount, error=minimum_amount_message(minimum, denom))
    if amount <= 0:
        return AmountValidation(amount=amount, error=INVALID_AMOUNT)
    if balance.is_available and amount > balance.amount:
        return AmountValidation(amount=amount, error=INSUFFICIENT_FUNDS)
    return AmountValidation(amount=amount)
