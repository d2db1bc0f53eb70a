from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal

from ...core.amounts import Balance, from_micro
from .interfaces import BalanceSource

__all__ = ["BALANCE_UNAVAILABLE", "BalanceProvider", "BalanceResult"]

logger = logging.getLogger(__name__)

BALANCE_UNAVAILABLE = "Could not load account balance; amount is only checked against the minimum"


@dataclass(frozen=True)
class BalanceResult:
    address: str
    balance: Balance
    warning: str | None = None


class BalanceProvider:
    """Fetches spendable balance once per distinct non-empty address."""

    def __init__(self, source: BalanceSource, *, micro_units: bool = False) -> None:
        self._source = source
        self.micro_units = micro_units
        self._last_address: str | None = None

    def should_fetch(self, address: str | None) -> bool:
        """Return True the first time a new non-empty address is seen."""

        normalized = (address or "").strip()
        if not normalized or normalized == self._last_address:
            return False
        self._last_address = normalized
        return True

    def forget(self) -> None:
        self._last_address = None

    async def fetch(self, address: str) -> BalanceResult:
        try:
            raw = await self._source.fetch_balance(address)
            amount = from_micro(raw) if self.micro_units else Decimal(raw)
        except Exception as exc:
            logger.warning("Failed to fetch balance for %s: %s", address, exc)
            return BalanceResult(address, Balance.unavailable(), warning=BALANCE_UNAVAILABLE)
        return BalanceResult(address, Balance.available(amount))
