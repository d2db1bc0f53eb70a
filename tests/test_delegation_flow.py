from __future__ import annotations

import asyncio
from collections.abc import Callable
from dataclasses import replace
from decimal import Decimal

import pytest

from stakeflow.core.validation import INSUFFICIENT_FUNDS
from stakeflow.features.delegation import DelegationFlow, Phase
from stakeflow.features.delegation.balance import BALANCE_UNAVAILABLE
from stakeflow.features.delegation.fees import FEE_ERROR_TITLE
from stakeflow.features.delegation.identity import (
    IDENTITY_UNAVAILABLE,
    INVALID_IDENTITY,
    NOT_BONDED,
    ResolutionStatus,
)


async def _wait_for(predicate: Callable[[], bool], *, rounds: int = 200) -> None:
    for _ in range(rounds):
        if predicate():
            return
        await asyncio.sleep(0)
    raise AssertionError("condition not reached")


def test_malformed_key_sets_error_without_lookup(collaborators, fakes, keys, settings):
    async def _exercise() -> None:
        flow = DelegationFlow(collaborators, settings=settings)
        session = flow.set_identity_key(keys.malformed)

        assert session.identity_error == INVALID_IDENTITY
        await flow.settle()
        assert fakes.identity.calls == []
        assert flow.session.resolved_node_id is None

    asyncio.run(_exercise())


def test_unbonded_key_blocks_confirm(collaborators, fakes, keys, settings):
    async def _exercise() -> None:
        flow = DelegationFlow(collaborators, settings=settings, address="n1wallet")
        flow.set_identity_key(keys.unbonded)
        flow.set_amount("15")
        await flow.settle()

        assert flow.session.identity_status is ResolutionStatus.NOT_FOUND
        assert flow.session.identity_error == NOT_BONDED
        assert flow.confirm() is False
        await flow.settle()
        assert flow.phase is Phase.EDITING
        assert fakes.fees.calls == []

    asyncio.run(_exercise())


def test_valid_inputs_reach_confirming_with_quote(collaborators, fakes, keys, settings):
    async def _exercise() -> None:
        flow = DelegationFlow(collaborators, settings=settings, address="n1wallet")
        flow.set_identity_key(keys.bonded)
        flow.set_amount("15")
        await flow.settle()

        assert flow.session.resolved_node_id == 42
        assert flow.session.amount_error is None
        assert flow.view().can_confirm

        assert flow.confirm() is True
        assert flow.phase is Phase.AWAITING_FEE
        assert flow.view().pending
        await flow.settle()

        assert fakes.fees.calls == [(42, Decimal("15"))]
        assert flow.phase is Phase.CONFIRMING
        view = flow.view().to_dict()
        assert view["fee"] == {"amount": "0.01", "denom": "unit", "exceeds_balance": False}
        assert view["node_id"] == 42

    asyncio.run(_exercise())


def test_fee_failure_then_retry_reaches_confirming(collaborators, fakes, keys, settings):
    fakes.fees.failures.append(RuntimeError("simulation rejected"))

    async def _exercise() -> None:
        flow = DelegationFlow(collaborators, settings=settings, address="n1wallet")
        flow.set_identity_key(keys.bonded)
        flow.set_amount("15")
        await flow.settle()

        flow.confirm()
        await flow.settle()
        assert flow.phase is Phase.FEE_ERROR
        assert flow.session.fee_error == "simulation rejected"
        assert flow.session.fee_quote is None
        assert flow.view().fee_error_title == FEE_ERROR_TITLE

        assert flow.retry() is True
        await flow.settle()
        assert fakes.fees.calls == [(42, Decimal("15")), (42, Decimal("15"))]
        assert flow.phase is Phase.CONFIRMING
        assert flow.session.fee_error is None

    asyncio.run(_exercise())


def test_editing_amount_after_fee_error_returns_to_editing(collaborators, fakes, keys, settings):
    fakes.fees.failures.append(RuntimeError("out of gas"))

    async def _exercise() -> None:
        flow = DelegationFlow(collaborators, settings=settings, address="n1wallet")
        flow.set_identity_key(keys.bonded)
        flow.set_amount("15")
        await flow.settle()
        flow.confirm()
        await flow.settle()
        assert flow.phase is Phase.FEE_ERROR

        flow.set_amount("20")
        assert flow.phase is Phase.EDITING
        assert flow.session.fee_error is None
        assert flow.retry() is False
        assert len(fakes.fees.calls) == 1

    asyncio.run(_exercise())


@pytest.mark.parametrize("release_order", [("first", "second"), ("second", "first")])
def test_latest_identity_wins_regardless_of_completion_order(collaborators, fakes, keys, settings, release_order):
    async def _exercise() -> None:
        gates = {"first": fakes.identity.hold(keys.bonded), "second": fakes.identity.hold(keys.other)}
        flow = DelegationFlow(collaborators, settings=settings)

        flow.set_identity_key(keys.bonded)
        await _wait_for(lambda: fakes.identity.calls == [keys.bonded])
        flow.set_identity_key(keys.other)
        await _wait_for(lambda: fakes.identity.calls == [keys.bonded, keys.other])

        for name in release_order:
            gates[name].set()
            await asyncio.sleep(0)
        await flow.settle()

        assert flow.session.raw_identity_key == keys.other
        assert flow.session.resolved_node_id == 7
        assert flow.session.identity_status is ResolutionStatus.RESOLVED

    asyncio.run(_exercise())


def test_rapid_edits_collapse_into_one_lookup(collaborators, fakes, keys, settings):
    async def _exercise() -> None:
        flow = DelegationFlow(collaborators, settings=replace(settings, debounce_ms=20))
        flow.set_identity_key(keys.bonded)
        flow.set_identity_key(keys.unbonded)
        flow.set_identity_key(keys.other)
        await flow.settle()

        assert fakes.identity.calls == [keys.other]
        assert flow.session.resolved_node_id == 7

    asyncio.run(_exercise())


def test_lookup_failure_is_reported_as_unavailable(collaborators, fakes, keys, settings):
    async def _exercise() -> None:
        flow = DelegationFlow(collaborators, settings=settings, address="n1wallet")
        flow.set_amount("15")
        flow.set_identity_key(keys.flaky)
        await flow.settle()

        assert flow.session.identity_status is ResolutionStatus.UNAVAILABLE
        assert flow.session.identity_error == IDENTITY_UNAVAILABLE
        assert flow.session.amount_error is None
        assert flow.confirm() is False

        # the next edit retries implicitly
        flow.set_identity_key(keys.bonded)
        await flow.settle()
        assert flow.session.identity_error is None
        assert flow.session.resolved_node_id == 42

    asyncio.run(_exercise())


def test_fee_quote_for_edited_amount_is_discarded(collaborators, fakes, keys, settings):
    async def _exercise() -> None:
        gate = fakes.fees.hold(1)
        flow = DelegationFlow(collaborators, settings=settings, address="n1wallet")
        flow.set_identity_key(keys.bonded)
        flow.set_amount("15")
        await flow.settle()

        flow.confirm()
        await _wait_for(lambda: len(fakes.fees.calls) == 1)
        flow.set_amount("16")
        gate.set()
        await flow.settle()

        assert flow.phase is Phase.EDITING
        assert flow.session.fee_quote is None
        assert flow.view().can_confirm

    asyncio.run(_exercise())


def test_close_abandons_in_flight_work(collaborators, fakes, keys, settings):
    async def _exercise() -> None:
        fakes.fees.hold(1)
        flow = DelegationFlow(collaborators, settings=settings, address="n1wallet")
        flow.set_identity_key(keys.bonded)
        flow.set_amount("15")
        await flow.settle()

        flow.confirm()
        await _wait_for(lambda: len(fakes.fees.calls) == 1)
        flow.close()
        await flow.settle()

        assert fakes.fees.cancelled == [1]
        assert flow.closed
        assert flow.session.fee_quote is None
        assert flow.confirm() is False
        assert flow.set_amount("20").raw_amount == "15"

    asyncio.run(_exercise())


def test_close_cancels_pending_debounce(collaborators, fakes, keys, settings):
    async def _exercise() -> None:
        flow = DelegationFlow(collaborators, settings=replace(settings, debounce_ms=50))
        flow.set_identity_key(keys.bonded)
        flow.close()
        await asyncio.sleep(0.08)
        await flow.settle()

        assert fakes.identity.calls == []

    asyncio.run(_exercise())


def test_amount_checked_against_balance_once_loaded(collaborators, fakes, keys, settings):
    async def _exercise() -> None:
        gate = fakes.balances.hold("n1wallet")
        flow = DelegationFlow(collaborators, settings=settings, address="n1wallet")
        flow.start()
        flow.set_amount("1000")
        assert flow.session.amount_error is None
        assert flow.view().balance.status == "loading"

        gate.set()
        await flow.settle()
        assert flow.view().balance.amount == "100"
        assert flow.session.amount_error == INSUFFICIENT_FUNDS
        assert fakes.balances.calls == ["n1wallet"]

    asyncio.run(_exercise())


def test_balance_failure_keeps_wizard_usable(collaborators, fakes, keys, settings):
    fakes.balances.errors["n1wallet"] = TimeoutError("rpc timeout")

    async def _exercise() -> None:
        flow = DelegationFlow(collaborators, settings=settings, address="n1wallet")
        flow.set_identity_key(keys.bonded)
        flow.set_amount("5000")
        await flow.settle()

        view = flow.view()
        assert view.balance.status == "unavailable"
        assert view.balance.warning == BALANCE_UNAVAILABLE
        assert view.amount_error is None
        assert flow.confirm() is True

    asyncio.run(_exercise())


def test_balance_for_superseded_address_is_discarded(collaborators, fakes, keys, settings):
    async def _exercise() -> None:
        gate = fakes.balances.hold("n1wallet")
        flow = DelegationFlow(collaborators, settings=settings, address="n1wallet")
        flow.start()
        await _wait_for(lambda: fakes.balances.calls == ["n1wallet"])

        flow.set_address("n1other")
        await _wait_for(lambda: fakes.balances.calls == ["n1wallet", "n1other"])
        await asyncio.sleep(0)
        gate.set()
        await flow.settle()

        assert flow.session.address == "n1other"
        assert flow.view().balance.amount == "5"

    asyncio.run(_exercise())


def test_prefilled_identity_is_locked(collaborators, fakes, keys, settings):
    async def _exercise() -> None:
        flow = DelegationFlow(collaborators, settings=settings, identity_key=keys.bonded, amount="12")
        flow.start()
        await flow.settle()
        assert flow.session.resolved_node_id == 42

        flow.set_identity_key(keys.other)
        await flow.settle()
        assert flow.session.raw_identity_key == keys.bonded
        assert flow.view().identity_locked
        assert fakes.identity.calls == [keys.bonded]

    asyncio.run(_exercise())


def test_commit_hands_off_and_closes(collaborators, fakes, keys, settings):
    async def _exercise() -> None:
        flow = DelegationFlow(collaborators, settings=settings, address="n1wallet")
        flow.set_identity_key(keys.bonded)
        flow.set_amount("15")
        await flow.settle()
        flow.confirm()
        await flow.settle()

        request = await flow.commit()

        assert request is not None
        assert (request.node_id, request.amount, request.denom) == (42, Decimal("15"), "unit")
        assert request.fee.amount == Decimal("0.01")
        node_id, amount, denom, fee = fakes.submitter.calls[0]
        assert (node_id, amount, denom, fee.amount) == (42, Decimal("15"), "unit", Decimal("0.01"))
        assert flow.closed

    asyncio.run(_exercise())


def test_commit_closes_even_when_submission_fails(collaborators, fakes, keys, settings):
    fakes.submitter.error = RuntimeError("wallet locked")

    async def _exercise() -> None:
        flow = DelegationFlow(collaborators, settings=settings, address="n1wallet")
        flow.set_identity_key(keys.bonded)
        flow.set_amount("15")
        await flow.settle()
        flow.confirm()
        await flow.settle()

        with pytest.raises(RuntimeError, match="wallet locked"):
            await flow.commit()
        assert flow.closed

    asyncio.run(_exercise())


def test_commit_without_quote_is_noop(collaborators, fakes, keys, settings):
    async def _exercise() -> None:
        flow = DelegationFlow(collaborators, settings=settings)
        flow.set_identity_key(keys.bonded)
        await flow.settle()

        assert await flow.commit() is None
        assert fakes.submitter.calls == []
        assert flow.phase is Phase.EDITING

    asyncio.run(_exercise())


def test_back_from_confirming_discards_quote(collaborators, fakes, keys, settings):
    async def _exercise() -> None:
        flow = DelegationFlow(collaborators, settings=settings, address="n1wallet")
        flow.set_identity_key(keys.bonded)
        flow.set_amount("100")
        await flow.settle()
        flow.confirm()
        await flow.settle()

        fee = flow.view().fee
        assert fee is not None and fee.exceeds_balance

        flow.back()
        assert flow.phase is Phase.EDITING
        assert flow.session.fee_quote is None

    asyncio.run(_exercise())


def test_listeners_receive_views(collaborators, fakes, keys, settings):
    seen: list[str] = []

    async def _exercise() -> None:
        flow = DelegationFlow(collaborators, settings=settings)
        unsubscribe = flow.on_change(lambda view: seen.append(view.identity_status.value))
        flow.set_identity_key(keys.bonded)
        await flow.settle()
        unsubscribe()
        flow.set_identity_key(keys.other)
        await flow.settle()

    asyncio.run(_exercise())
    assert seen == ["pending", "resolved"]


def test_balance_arriving_below_quoted_amount_returns_to_editing(collaborators, fakes, keys, settings):
    async def _exercise() -> None:
        gate = fakes.balances.hold("n1wallet")
        flow = DelegationFlow(collaborators, settings=settings, address="n1wallet")
        flow.set_identity_key(keys.bonded)
        flow.set_amount("500")
        await _wait_for(lambda: flow.session.resolved_node_id == 42)

        assert flow.confirm() is True
        await _wait_for(lambda: flow.phase is Phase.CONFIRMING)
        assert flow.session.fee_quote is not None

        gate.set()
        await flow.settle()

        assert flow.phase is Phase.EDITING
        assert flow.session.fee_quote is None
        assert flow.session.amount_error == INSUFFICIENT_FUNDS
        assert await flow.commit() is None
        assert flow.confirm() is False
        assert fakes.submitter.calls == []

    asyncio.run(_exercise())


def test_balance_arriving_while_fee_pending_drops_the_estimate(collaborators, fakes, keys, settings):
    async def _exercise() -> None:
        balance_gate = fakes.balances.hold("n1wallet")
        fee_gate = fakes.fees.hold(1)
        flow = DelegationFlow(collaborators, settings=settings, address="n1wallet")
        flow.set_identity_key(keys.bonded)
        flow.set_amount("500")
        await _wait_for(lambda: flow.session.resolved_node_id == 42)
        assert flow.confirm() is True

        balance_gate.set()
        await _wait_for(lambda: flow.view().balance.status == "available")
        assert flow.phase is Phase.EDITING

        fee_gate.set()
        await flow.settle()
        assert flow.phase is Phase.EDITING
        assert flow.session.fee_quote is None
        assert fakes.fees.calls == [(42, Decimal("500"))]

    asyncio.run(_exercise())


def test_switching_account_while_confirming_discards_quote(collaborators, fakes, keys, settings):
    async def _exercise() -> None:
        flow = DelegationFlow(collaborators, settings=settings, address="n1wallet")
        flow.set_identity_key(keys.bonded)
        flow.set_amount("15")
        await flow.settle()
        flow.confirm()
        await flow.settle()
        assert flow.phase is Phase.CONFIRMING

        session = flow.set_address("n1other")
        assert session.phase is Phase.EDITING
        assert session.fee_quote is None

        await flow.settle()
        assert flow.view().balance.amount == "5"
        assert flow.session.amount_error == INSUFFICIENT_FUNDS
        assert await flow.commit() is None
        assert fakes.submitter.calls == []
        assert fakes.balances.calls == ["n1wallet", "n1other"]

    asyncio.run(_exercise())


def test_clearing_address_stops_waiting_for_balance(collaborators, fakes, keys, settings):
    async def _exercise() -> None:
        flow = DelegationFlow(collaborators, settings=settings, address="n1wallet")
        flow.start()
        await flow.settle()

        flow.set_address("")
        await flow.settle()
        assert flow.view().balance.status == "unavailable"

        flow.set_address("n1wallet")
        await flow.settle()
        assert flow.view().balance.amount == "100"
        assert fakes.balances.calls == ["n1wallet", "n1wallet"]

    asyncio.run(_exercise())
