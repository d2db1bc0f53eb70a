from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from decimal import Decimal

from ...core import settings as settings_module
from ...core.amounts import FeeQuote
from ...core.settings import WizardSettings
from .balance import BalanceProvider
from .concurrency import Debouncer, TaskTracker
from .fees import EstimationError, FeeEstimator
from .identity import IdentityResolver, ResolutionStatus
from .interfaces import Collaborators
from .schemas import SessionView, session_view
from .state import (
    AddressChanged,
    AmountEdited,
    BackRequested,
    BalanceFailed,
    BalanceLoaded,
    CloseRequested,
    CommitRequested,
    ConfirmRequested,
    Event,
    FeeEstimated,
    FeeFailed,
    IdentityEdited,
    IdentityLookupFailed,
    IdentityNotFound,
    IdentityResolved,
    Phase,
    RetryRequested,
    Session,
    amount_check,
    new_session,
    reduce,
)

__all__ = ["DelegationFlow", "DelegationRequest"]

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DelegationRequest:
    node_id: int
    identity_key: str
    amount: Decimal
    denom: str
    fee: FeeQuote


class DelegationFlow:
    """Drives one delegation wizard from first keystroke to hand-off.

    The presentation layer calls the field handlers and actions from inside a
    running event loop; lookups, balance fetches and fee simulations run as
    tasks and come back through :func:`reduce` as events. Closing the flow
    cancels everything still in flight.
    """

    def __init__(
        self,
        collaborators: Collaborators,
        *,
        settings: WizardSettings | None = None,
        identity_key: str | None = None,
        amount: str | None = None,
        address: str | None = None,
        micro_balance: bool = False,
    ) -> None:
        cfg = settings or settings_module.current()
        self.settings = cfg
        self._session = new_session(
            min_amount=cfg.min_delegation,
            denom=cfg.denom,
            key_bytes=cfg.identity_key_bytes,
            identity_key=identity_key,
            amount=amount,
            address=address,
        )
        self._resolver = IdentityResolver(collaborators.identity, key_bytes=cfg.identity_key_bytes)
        self._balances = BalanceProvider(collaborators.balances, micro_units=micro_balance)
        self._fees = FeeEstimator(collaborators.fees)
        self._submitter = collaborators.submitter
        self._debouncer = Debouncer(cfg.debounce_seconds, self._start_resolution)
        self._tasks = TaskTracker()
        self._listeners: list[Callable[[SessionView], None]] = []
        self._started = False

    # ------------------------------------------------------------------ state
    @property
    def session(self) -> Session:
        return self._session

    @property
    def phase(self) -> Phase:
        return self._session.phase

    @property
    def closed(self) -> bool:
        return self._session.phase is Phase.CLOSED

    def view(self) -> SessionView:
        return session_view(self._session)

    def on_change(self, listener: Callable[[SessionView], None]) -> Callable[[], None]:
        """Call ``listener`` with a fresh view after every transition; returns an unsubscribe hook."""

        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    # ------------------------------------------------------------------ inputs
    def start(self) -> None:
        """Kick off lookups for pre-filled fields. Idempotent."""

        if self._started:
            return
        self._started = True
        session = self._session
        if session.identity_status is ResolutionStatus.PENDING:
            self._debouncer.trigger(session.raw_identity_key, session.identity_generation)
        if self._balances.should_fetch(session.address):
            self._tasks.spawn(self._load_balance(session.address), name="stakeflow-balance")

    def set_identity_key(self, identity_key: str) -> Session:
        self.start()
        return self._dispatch(IdentityEdited(identity_key))

    def set_amount(self, amount: str) -> Session:
        self.start()
        return self._dispatch(AmountEdited(amount))

    def set_address(self, address: str) -> Session:
        self.start()
        return self._dispatch(AddressChanged(address))

    # ----------------------------------------------------------------- actions
    def confirm(self) -> bool:
        """Request a fee estimate; a no-op unless identity and amount are both valid."""

        return self._dispatch(ConfirmRequested()).phase is Phase.AWAITING_FEE

    def retry(self) -> bool:
        return self._dispatch(RetryRequested()).phase is Phase.AWAITING_FEE

    def back(self) -> Session:
        return self._dispatch(BackRequested())

    async def commit(self) -> DelegationRequest | None:
        """Hand the quoted request to the submitter and close the flow.

        Returns ``None`` when there is no quote to commit. The flow is closed
        whatever the submission outcome; submission errors propagate to the
        caller.
        """

        session = self._session
        quote = session.fee_quote
        check = amount_check(session)
        amount = check.amount
        node_id = session.resolved_node_id
        if session.phase is not Phase.CONFIRMING or quote is None or node_id is None or not check.ok:
            return None
        if not quote.matches(node_id, amount):
            logger.warning("Refusing to commit with a quote for different inputs", extra={"node_id": node_id})
            return None
        request = DelegationRequest(
            node_id=node_id,
            identity_key=session.raw_identity_key,
            amount=amount,
            denom=session.denom,
            fee=quote,
        )
        self._dispatch(CommitRequested())
        try:
            await self._submitter.submit(request.node_id, request.amount, request.denom, request.fee)
            logger.info("Delegation handed off", extra={"node_id": request.node_id, "amount": str(request.amount)})
        finally:
            self._dispatch(CloseRequested())
        return request

    def close(self) -> None:
        self._dispatch(CloseRequested())

    async def settle(self) -> None:
        """Wait until no debounce timer or background task is outstanding."""

        while self._debouncer.pending or len(self._tasks):
            await self._debouncer.wait()
            await self._tasks.drain()

    # ---------------------------------------------------------------- plumbing
    def _dispatch(self, event: Event) -> Session:
        previous = self._session
        current = reduce(previous, event)
        if current is previous:
            return current
        self._session = current
        if previous.phase is not current.phase:
            logger.debug(
                "Delegation phase change",
                extra={"event": type(event).__name__, "from": previous.phase.value, "to": current.phase.value},
            )
        self._run_effects(previous, current)
        self._notify()
        return current

    def _run_effects(self, previous: Session, current: Session) -> None:
        if current.phase is Phase.CLOSED:
            self._debouncer.cancel()
            self._tasks.cancel_all()
            return
        if current.identity_generation != previous.identity_generation:
            self._debouncer.cancel()
            if current.identity_status is ResolutionStatus.PENDING:
                self._debouncer.trigger(current.raw_identity_key, current.identity_generation)
        if current.address != previous.address:
            if not current.address:
                self._balances.forget()
            elif self._balances.should_fetch(current.address):
                self._tasks.spawn(self._load_balance(current.address), name="stakeflow-balance")
        if current.phase is Phase.AWAITING_FEE and current.fee_request != previous.fee_request:
            node_id = current.resolved_node_id
            amount = amount_check(current).amount
            if node_id is not None and amount is not None:
                self._tasks.spawn(
                    self._estimate_fee(current.fee_request, node_id, amount),
                    name="stakeflow-fee",
                )

    def _notify(self) -> None:
        if not self._listeners:
            return
        view = self.view()
        for listener in list(self._listeners):
            try:
                listener(view)
            except Exception:
                logger.exception("Delegation listener failed")

    def _start_resolution(self, identity_key: str, generation: int) -> None:
        if self.closed:
            return
        self._tasks.spawn(self._resolve(identity_key, generation), name="stakeflow-identity")

    async def _resolve(self, identity_key: str, generation: int) -> None:
        resolution = await self._resolver.resolve(identity_key)
        if resolution.status is ResolutionStatus.RESOLVED and resolution.node_id is not None:
            self._dispatch(IdentityResolved(identity_key, generation, resolution.node_id))
        elif resolution.status is ResolutionStatus.NOT_FOUND:
            self._dispatch(IdentityNotFound(identity_key, generation))
        elif resolution.status is ResolutionStatus.UNAVAILABLE:
            self._dispatch(IdentityLookupFailed(identity_key, generation, resolution.reason))

    async def _load_balance(self, address: str) -> None:
        result = await self._balances.fetch(address)
        if result.balance.is_available:
            self._dispatch(BalanceLoaded(address, result.balance.amount))
        else:
            self._dispatch(BalanceFailed(address, result.warning or ""))

    async def _estimate_fee(self, request: int, node_id: int, amount: Decimal) -> None:
        outcome = await self._fees.estimate(node_id, amount)
        if isinstance(outcome, EstimationError):
            self._dispatch(FeeFailed(request, outcome.message))
        else:
            self._dispatch(FeeEstimated(request, outcome))
