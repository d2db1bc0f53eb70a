from __future__ import annotations

import asyncio
import sys
from decimal import Decimal
from pathlib import Path
from types import SimpleNamespace

import base58
import pytest

# Ensure "src" is on sys.path for imports in tests
PROJECT_ROOT = Path(__file__).resolve().parents[1]
SRC_DIR = PROJECT_ROOT / "src"
if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

from stakeflow.core.amounts import FeeQuote  # noqa: E402
from stakeflow.core.settings import WizardSettings  # noqa: E402
from stakeflow.features.delegation.interfaces import Collaborators  # noqa: E402


def _key(seed: int) -> str:
    return base58.b58encode(bytes((seed + i) % 256 for i in range(32))).decode()


class _Gated:
    """Lets a test hold individual calls open until it releases them."""

    def __init__(self) -> None:
        self.gates: dict[object, asyncio.Event] = {}
        self.cancelled: list[object] = []

    def hold(self, key: object) -> asyncio.Event:
        gate = asyncio.Event()
        self.gates[key] = gate
        return gate

    async def _pass(self, key: object) -> None:
        gate = self.gates.get(key)
        if gate is None:
            return
        try:
            await gate.wait()
        except asyncio.CancelledError:
            self.cancelled.append(key)
            raise


class FakeIdentityLookup(_Gated):
    def __init__(self, mapping: dict[str, int]) -> None:
        super().__init__()
        self.mapping = dict(mapping)
        self.errors: dict[str, Exception] = {}
        self.calls: list[str] = []

    async def resolve_identity(self, identity_key: str) -> int | None:
        self.calls.append(identity_key)
        await self._pass(identity_key)
        if identity_key in self.errors:
            raise self.errors[identity_key]
        return self.mapping.get(identity_key)


class FakeBalanceSource(_Gated):
    def __init__(self, balances: dict[str, Decimal]) -> None:
        super().__init__()
        self.balances = dict(balances)
        self.errors: dict[str, Exception] = {}
        self.calls: list[str] = []

    async def fetch_balance(self, address: str) -> Decimal:
        self.calls.append(address)
        await self._pass(address)
        if address in self.errors:
            raise self.errors[address]
        return self.balances[address]


class FakeFeeSimulator(_Gated):
    def __init__(self, quote: FeeQuote) -> None:
        super().__init__()
        self.quote = quote
        self.failures: list[Exception] = []
        self.calls: list[tuple[int, Decimal]] = []

    async def simulate_fee(self, node_id: int, amount: Decimal) -> FeeQuote:
        self.calls.append((node_id, amount))
        await self._pass(len(self.calls))
        if self.failures:
            raise self.failures.pop(0)
        return self.quote


class FakeSubmitter:
    def __init__(self) -> None:
        self.calls: list[tuple[int, Decimal, str, FeeQuote]] = []
        self.error: Exception | None = None

    async def submit(self, node_id: int, amount: Decimal, denom: str, fee: FeeQuote) -> None:
        self.calls.append((node_id, amount, denom, fee))
        if self.error is not None:
            raise self.error


@pytest.fixture
def keys() -> SimpleNamespace:
    return SimpleNamespace(
        bonded=_key(1),
        other=_key(50),
        unbonded=_key(100),
        flaky=_key(150),
        malformed="not-a-valid-key!",
    )


@pytest.fixture
def settings() -> WizardSettings:
    return WizardSettings(debounce_ms=0, min_delegation=Decimal(10), denom="unit", identity_key_bytes=32)


@pytest.fixture
def fakes(keys: SimpleNamespace) -> SimpleNamespace:
    identity = FakeIdentityLookup({keys.bonded: 42, keys.other: 7})
    identity.errors[keys.flaky] = ConnectionError("validator api unreachable")
    return SimpleNamespace(
        identity=identity,
        balances=FakeBalanceSource({"n1wallet": Decimal(100), "n1other": Decimal(5)}),
        fees=FakeFeeSimulator(FeeQuote(amount=Decimal("0.01"), denom="unit")),
        submitter=FakeSubmitter(),
    )


@pytest.fixture
def collaborators(fakes: SimpleNamespace) -> Collaborators:
    return Collaborators(
        identity=fakes.identity,
        balances=fakes.balances,
        fees=fakes.fees,
        submitter=fakes.submitter,
    )
