from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal

from ...core.amounts import Balance, FeeQuote
from .interfaces import FeeSimulator

__all__ = ["FEE_ERROR_TITLE", "EstimationError", "FeeEstimator", "needs_balance_warning"]

logger = logging.getLogger(__name__)

FEE_ERROR_TITLE = (
    "Something went wrong while calculating fee. Are you sure you entered a valid node address?"
)


@dataclass(frozen=True)
class EstimationError:
    node_id: int
    amount: Decimal
    message: str


class FeeEstimator:
    def __init__(self, simulator: FeeSimulator) -> None:
        self._simulator = simulator

    async def estimate(self, node_id: int, amount: Decimal) -> FeeQuote | EstimationError:
        """Simulate the delegation and return a quote scoped to ``(node_id, amount)``.

        Failures are returned, not raised, and are never retried here.
        """

        try:
            quote = await self._simulator.simulate_fee(node_id, amount)
        except Exception as exc:
            logger.warning(
                "Fee simulation failed",
                extra={"node_id": node_id, "amount": str(amount), "error": repr(exc)},
            )
            return EstimationError(node_id, amount, str(exc) or type(exc).__name__)
        if quote is None:
            return EstimationError(node_id, amount, "fee simulation returned no quote")
        return quote.scoped_to(node_id, amount)


def needs_balance_warning(amount: Decimal, fee: FeeQuote, balance: Balance, denom: str) -> bool:
    """True when the delegation plus its fee would exceed a known balance."""

    if not balance.is_available or fee.denom.lower() != denom.lower():
        return False
    return amount + fee.amount > balance.amount
