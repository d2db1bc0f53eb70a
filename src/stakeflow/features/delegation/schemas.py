from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict

from ...core.amounts import format_amount
from .fees import FEE_ERROR_TITLE, needs_balance_warning
from .identity import ResolutionStatus
from .state import Phase, Session, amount_check, can_request_fee

__all__ = [
    "BalancePayload",
    "DelegationRequestPayload",
    "FeePayload",
    "SessionView",
    "session_view",
]


class _APIModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class BalancePayload(_APIModel):
    status: str
    amount: str | None = None
    warning: str | None = None


class FeePayload(_APIModel):
    amount: str
    denom: str
    exceeds_balance: bool = False


class SessionView(_APIModel):
    """Read-only projection of a delegation session for rendering."""

    phase: Phase
    identity_key: str
    identity_locked: bool
    identity_status: ResolutionStatus
    node_id: int | None = None
    identity_error: str | None = None
    amount: str
    denom: str
    min_amount: str
    amount_error: str | None = None
    balance: BalancePayload
    fee: FeePayload | None = None
    fee_error: str | None = None
    fee_error_title: str | None = None
    can_confirm: bool
    pending: bool


class DelegationRequestPayload(_APIModel):
    node_id: int
    identity_key: str
    amount: str
    denom: str
    fee: FeePayload


def _balance_payload(session: Session) -> BalancePayload:
    balance = session.balance
    return BalancePayload(
        status=balance.status.value,
        amount=format_amount(balance.amount) if balance.amount is not None else None,
        warning=session.balance_warning,
    )


def _fee_payload(session: Session) -> FeePayload | None:
    quote = session.fee_quote
    if quote is None:
        return None
    amount = amount_check(session).amount
    exceeds = amount is not None and needs_balance_warning(amount, quote, session.balance, session.denom)
    return FeePayload(amount=format_amount(quote.amount), denom=quote.denom, exceeds_balance=exceeds)


def session_view(session: Session) -> SessionView:
    pending = session.identity_status is ResolutionStatus.PENDING or session.phase in (
        Phase.AWAITING_FEE,
        Phase.SUBMITTING,
    )
    return SessionView(
        phase=session.phase,
        identity_key=session.raw_identity_key,
        identity_locked=session.identity_locked,
        identity_status=session.identity_status,
        node_id=session.resolved_node_id,
        identity_error=session.identity_error,
        amount=session.raw_amount,
        denom=session.denom,
        min_amount=format_amount(session.min_amount),
        amount_error=session.amount_error,
        balance=_balance_payload(session),
        fee=_fee_payload(session),
        fee_error=session.fee_error,
        fee_error_title=FEE_ERROR_TITLE if session.phase is Phase.FEE_ERROR else None,
        can_confirm=session.phase is Phase.EDITING and can_request_fee(session),
        pending=pending,
    )
