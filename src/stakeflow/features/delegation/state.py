"""Delegation session state and its transition function.

The session is an immutable value; :func:`reduce` maps ``(session, event)`` to
the next session without performing any I/O. The controller is responsible for
running effects and feeding their completions back in as events, which keeps
every transition deterministic and testable without an event loop.

Stale completions are rejected here: identity results must carry the current
key and generation, balance results the current address, and fee results the
current request token while the session is still awaiting a fee.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from decimal import Decimal
from enum import Enum

from ...core.amounts import Balance, FeeQuote
from ...core.validation import AmountValidation, validate_amount
from .identity import (
    IDENTITY_REQUIRED,
    IDENTITY_UNAVAILABLE,
    INVALID_IDENTITY,
    NOT_BONDED,
    ResolutionStatus,
    is_well_formed,
)

__all__ = [
    "AddressChanged",
    "AmountEdited",
    "BackRequested",
    "BalanceFailed",
    "BalanceLoaded",
    "CloseRequested",
    "CommitRequested",
    "ConfirmRequested",
    "Event",
    "FeeEstimated",
    "FeeFailed",
    "IdentityEdited",
    "IdentityLookupFailed",
    "IdentityNotFound",
    "IdentityResolved",
    "Phase",
    "RetryRequested",
    "Session",
    "amount_check",
    "can_request_fee",
    "new_session",
    "reduce",
]

logger = logging.getLogger(__name__)


class Phase(str, Enum):
    EDITING = "editing"
    AWAITING_FEE = "awaiting_fee"
    CONFIRMING = "confirming"
    FEE_ERROR = "fee_error"
    SUBMITTING = "submitting"
    CLOSED = "closed"


@dataclass(frozen=True)
class Session:
    min_amount: Decimal
    denom: str
    key_bytes: int = 32
    raw_identity_key: str = ""
    raw_amount: str = ""
    address: str = ""
    resolved_node_id: int | None = None
    identity_status: ResolutionStatus = ResolutionStatus.IDLE
    identity_error: str | None = None
    identity_generation: int = 0
    identity_locked: bool = False
    amount_error: str | None = None
    amount_touched: bool = False
    balance: Balance = Balance()
    balance_warning: str | None = None
    fee_quote: FeeQuote | None = None
    fee_error: str | None = None
    fee_request: int = 0
    phase: Phase = Phase.EDITING


# ---------------------------------------------------------------------- events
class Event:
    __slots__ = ()


@dataclass(frozen=True)
class IdentityEdited(Event):
    identity_key: str


@dataclass(frozen=True)
class IdentityResolved(Event):
    identity_key: str
    generation: int
    node_id: int


@dataclass(frozen=True)
class IdentityNotFound(Event):
    identity_key: str
    generation: int


@dataclass(frozen=True)
class IdentityLookupFailed(Event):
    identity_key: str
    generation: int
    reason: str | None = None


@dataclass(frozen=True)
class AmountEdited(Event):
    amount: str


@dataclass(frozen=True)
class AddressChanged(Event):
    address: str


@dataclass(frozen=True)
class BalanceLoaded(Event):
    address: str
    amount: Decimal


@dataclass(frozen=True)
class BalanceFailed(Event):
    address: str
    warning: str


@dataclass(frozen=True)
class ConfirmRequested(Event):
    pass


@dataclass(frozen=True)
class RetryRequested(Event):
    pass


@dataclass(frozen=True)
class FeeEstimated(Event):
    request: int
    quote: FeeQuote


@dataclass(frozen=True)
class FeeFailed(Event):
    request: int
    message: str


@dataclass(frozen=True)
class BackRequested(Event):
    pass


@dataclass(frozen=True)
class CommitRequested(Event):
    pass


@dataclass(frozen=True)
class CloseRequested(Event):
    pass


# --------------------------------------------------------------------- helpers
def new_session(
    *,
    min_amount: Decimal,
    denom: str,
    key_bytes: int = 32,
    identity_key: str | None = None,
    amount: str | None = None,
    address: str | None = None,
) -> Session:
    """Build the initial ``EDITING`` session, applying any pre-filled fields.

    A pre-filled identity key is locked for the lifetime of the session.
    """

    session = Session(min_amount=Decimal(min_amount), denom=denom, key_bytes=key_bytes)
    if address:
        session = reduce(session, AddressChanged(address))
    if identity_key:
        session = replace(reduce(session, IdentityEdited(identity_key)), identity_locked=True)
    if amount:
        session = reduce(session, AmountEdited(amount))
    return session


def amount_check(session: Session) -> AmountValidation:
    return validate_amount(session.raw_amount, session.min_amount, session.balance, session.denom)


def can_request_fee(session: Session) -> bool:
    return session.resolved_node_id is not None and amount_check(session).ok


def _back_to_editing(session: Session) -> Session:
    if session.phase in (Phase.EDITING, Phase.CLOSED, Phase.SUBMITTING):
        return session
    return replace(session, phase=Phase.EDITING, fee_quote=None, fee_error=None)


def _identity_fields(key: str, key_bytes: int) -> tuple[ResolutionStatus, str | None]:
    if not key.strip():
        return ResolutionStatus.IDLE, IDENTITY_REQUIRED
    if not is_well_formed(key, key_bytes):
        return ResolutionStatus.IDLE, INVALID_IDENTITY
    return ResolutionStatus.PENDING, None


def _revalidate_amount(session: Session) -> Session:
    if not session.amount_touched:
        return session
    return replace(session, amount_error=amount_check(session).error)


def _recheck_quoted_amount(session: Session) -> Session:
    """Revalidate after a balance update; a quote is dropped once the amount no longer passes."""

    session = _revalidate_amount(session)
    if session.phase in (Phase.AWAITING_FEE, Phase.CONFIRMING) and not amount_check(session).ok:
        logger.debug("Balance update invalidated the quoted amount", extra={"address": session.address})
        return replace(_back_to_editing(session), amount_error=amount_check(session).error)
    return session


def _is_current_identity(session: Session, key: str, generation: int) -> bool:
    current = key == session.raw_identity_key and generation == session.identity_generation
    if not current:
        logger.debug(
            "Discarding stale identity response",
            extra={"identity_key": key, "generation": generation, "current": session.identity_generation},
        )
    return current and session.identity_status is ResolutionStatus.PENDING


# --------------------------------------------------------------------- reducer
def reduce(session: Session, event: Event) -> Session:
    """Return the session that follows ``event``; unchanged when the event does not apply."""

    if session.phase is Phase.CLOSED:
        return session
    if isinstance(event, CloseRequested):
        return replace(session, phase=Phase.CLOSED, fee_quote=None)
    if session.phase is Phase.SUBMITTING:
        return session

    if isinstance(event, IdentityEdited):
        if session.identity_locked or event.identity_key == session.raw_identity_key:
            return session
        status, error = _identity_fields(event.identity_key, session.key_bytes)
        return replace(
            _back_to_editing(session),
            raw_identity_key=event.identity_key,
            resolved_node_id=None,
            identity_status=status,
            identity_error=error,
            identity_generation=session.identity_generation + 1,
        )

    if isinstance(event, IdentityResolved):
        if not _is_current_identity(session, event.identity_key, event.generation):
            return session
        return replace(
            session,
            resolved_node_id=event.node_id,
            identity_status=ResolutionStatus.RESOLVED,
            identity_error=None,
        )

    if isinstance(event, IdentityNotFound):
        if not _is_current_identity(session, event.identity_key, event.generation):
            return session
        return replace(
            session,
            resolved_node_id=None,
            identity_status=ResolutionStatus.NOT_FOUND,
            identity_error=NOT_BONDED,
        )

    if isinstance(event, IdentityLookupFailed):
        if not _is_current_identity(session, event.identity_key, event.generation):
            return session
        return replace(
            session,
            resolved_node_id=None,
            identity_status=ResolutionStatus.UNAVAILABLE,
            identity_error=IDENTITY_UNAVAILABLE,
        )

    if isinstance(event, AmountEdited):
        if event.amount == session.raw_amount and session.amount_touched:
            return session
        edited = replace(_back_to_editing(session), raw_amount=event.amount, amount_touched=True)
        return _revalidate_amount(edited)

    if isinstance(event, AddressChanged):
        address = event.address.strip()
        if address == session.address:
            return session
        balance = Balance.loading() if address else Balance.unavailable()
        moved = replace(_back_to_editing(session), address=address, balance=balance, balance_warning=None)
        return _revalidate_amount(moved)

    if isinstance(event, BalanceLoaded):
        if event.address != session.address:
            logger.debug("Discarding balance for superseded address", extra={"address": event.address})
            return session
        return _recheck_quoted_amount(
            replace(session, balance=Balance.available(event.amount), balance_warning=None)
        )

    if isinstance(event, BalanceFailed):
        if event.address != session.address:
            return session
        return _recheck_quoted_amount(
            replace(session, balance=Balance.unavailable(), balance_warning=event.warning)
        )

    if isinstance(event, ConfirmRequested):
        if session.phase is not Phase.EDITING or not can_request_fee(session):
            return session
        return replace(
            session,
            phase=Phase.AWAITING_FEE,
            amount_error=None,
            fee_error=None,
            fee_request=session.fee_request + 1,
        )

    if isinstance(event, RetryRequested):
        if session.phase is not Phase.FEE_ERROR or not can_request_fee(session):
            return session
        return replace(
            session,
            phase=Phase.AWAITING_FEE,
            fee_error=None,
            fee_request=session.fee_request + 1,
        )

    if isinstance(event, FeeEstimated):
        if session.phase is not Phase.AWAITING_FEE or event.request != session.fee_request:
            logger.debug("Discarding stale fee quote", extra={"request": event.request})
            return session
        return replace(session, phase=Phase.CONFIRMING, fee_quote=event.quote, fee_error=None)

    if isinstance(event, FeeFailed):
        if session.phase is not Phase.AWAITING_FEE or event.request != session.fee_request:
            logger.debug("Discarding stale fee failure", extra={"request": event.request})
            return session
        return replace(session, phase=Phase.FEE_ERROR, fee_quote=None, fee_error=event.message)

    if isinstance(event, BackRequested):
        if session.phase in (Phase.CONFIRMING, Phase.FEE_ERROR):
            return _back_to_editing(session)
        return session

    if isinstance(event, CommitRequested):
        if session.phase is not Phase.CONFIRMING or session.fee_quote is None:
            return session
        return replace(session, phase=Phase.SUBMITTING, fee_quote=None)

    raise TypeError(f"unsupported event: {event!r}")
