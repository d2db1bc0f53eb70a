"""Collaborator contracts consumed by the delegation flow.

Implementations live outside this package (wallet connection, chain client,
validator API). All calls are coroutines and may raise; the flow converts every
failure into session state.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Protocol

from ...core.amounts import FeeQuote

__all__ = [
    "BalanceSource",
    "Collaborators",
    "FeeSimulator",
    "IdentityLookup",
    "Submitter",
]


class IdentityLookup(Protocol):
    async def resolve_identity(self, identity_key: str) -> int | None:
        """Return the node id bonded under ``identity_key`` or ``None`` when there is none."""
        ...


class BalanceSource(Protocol):
    async def fetch_balance(self, address: str) -> Decimal: ...


class FeeSimulator(Protocol):
    async def simulate_fee(self, node_id: int, amount: Decimal) -> FeeQuote: ...


class Submitter(Protocol):
    async def submit(self, node_id: int, amount: Decimal, denom: str, fee: FeeQuote) -> None: ...


@dataclass(frozen=True)
class Collaborators:
    identity: IdentityLookup
    balances: BalanceSource
    fees: FeeSimulator
    submitter: Submitter
