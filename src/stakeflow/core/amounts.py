from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from enum import Enum

__all__ = [
    "MICRO_FACTOR",
    "Balance",
    "BalanceStatus",
    "FeeQuote",
    "format_amount",
    "from_micro",
    "parse_amount",
]

MICRO_FACTOR = Decimal(1_000_000)


def parse_amount(raw: str | None) -> Decimal | None:
    """Parse user text into a finite decimal, or ``None`` when it is not a number."""

    if raw is None:
        return None
    text = raw.strip().replace(" ", "").replace("_", "")
    if not text:
        return None
    if text.startswith("."):
        text = "0" + text
    try:
        value = Decimal(text)
    except (InvalidOperation, ValueError):
        return None
    if not value.is_finite():
        return None
    return value


def from_micro(value: int | str | Decimal) -> Decimal:
    return Decimal(value) / MICRO_FACTOR


def format_amount(value: Decimal) -> str:
    text = format(value, "f")
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return text or "0"


class BalanceStatus(str, Enum):
    LOADING = "loading"
    AVAILABLE = "available"
    UNAVAILABLE = "unavailable"


@dataclass(frozen=True)
class Balance:
    status: BalanceStatus = BalanceStatus.LOADING
    amount: Decimal | None = None

    @classmethod
    def loading(cls) -> Balance:
        return cls(BalanceStatus.LOADING)

    @classmethod
    def available(cls, amount: Decimal) -> Balance:
        return cls(BalanceStatus.AVAILABLE, amount)

    @classmethod
    def unavailable(cls) -> Balance:
        return cls(BalanceStatus.UNAVAILABLE)

    @property
    def is_available(self) -> bool:
        return self.status is BalanceStatus.AVAILABLE and self.amount is not None


@dataclass(frozen=True)
class FeeQuote:
    """Estimated fee, valid only for the ``(node_id, amount)`` pair that produced it."""

    amount: Decimal
    denom: str
    node_id: int | None = None
    for_amount: Decimal | None = None

    def scoped_to(self, node_id: int, amount: Decimal) -> FeeQuote:
        return FeeQuote(amount=self.amount, denom=self.denom, node_id=node_id, for_amount=amount)

    def matches(self, node_id: int | None, amount: Decimal | None) -> bool:
        return self.node_id == node_id and self.for_amount == amount
