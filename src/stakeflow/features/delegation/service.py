from __future__ import annotations

import logging
import secrets
import string
import threading
from dataclasses import dataclass

from ...core.amounts import format_amount
from ...core.settings import WizardSettings
from .controller import DelegationFlow, DelegationRequest
from .interfaces import Collaborators
from .schemas import DelegationRequestPayload, FeePayload, SessionView

__all__ = ["WizardConfig", "WizardManager", "request_payload"]

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class WizardConfig:
    """Pre-filled values for a new delegation wizard."""

    address: str | None = None
    identity_key: str | None = None
    amount: str | None = None


class WizardManager:
    """Owns one :class:`DelegationFlow` per open wizard, independent of the presentation layer.

    Every action waits for the flow to settle before returning its view, so
    callers always see the outcome of debounced lookups and fee simulations.
    Flows are forgotten as soon as they are committed or closed.
    """

    def __init__(self, collaborators: Collaborators, *, settings: WizardSettings | None = None) -> None:
        self._collaborators = collaborators
        self._settings = settings
        self._flows: dict[str, DelegationFlow] = {}
        self._lock = threading.Lock()

    async def open(self, config: WizardConfig) -> str:
        flow = DelegationFlow(
            self._collaborators,
            settings=self._settings,
            identity_key=config.identity_key,
            amount=config.amount,
            address=config.address,
        )
        session_id = _sid()
        with self._lock:
            self._flows[session_id] = flow
        flow.start()
        await flow.settle()
        logger.debug("Opened delegation wizard", extra={"session_id": session_id})
        return session_id

    def view(self, session_id: str) -> SessionView:
        return self._require_flow(session_id).view()

    async def set_identity_key(self, session_id: str, identity_key: str) -> SessionView:
        flow = self._require_flow(session_id)
        flow.set_identity_key(identity_key)
        await flow.settle()
        return flow.view()

    async def set_amount(self, session_id: str, amount: str) -> SessionView:
        flow = self._require_flow(session_id)
        flow.set_amount(amount)
        await flow.settle()
        return flow.view()

    async def set_address(self, session_id: str, address: str) -> SessionView:
        flow = self._require_flow(session_id)
        flow.set_address(address)
        await flow.settle()
        return flow.view()

    async def confirm(self, session_id: str) -> SessionView:
        flow = self._require_flow(session_id)
        flow.confirm()
        await flow.settle()
        return flow.view()

    async def retry(self, session_id: str) -> SessionView:
        flow = self._require_flow(session_id)
        flow.retry()
        await flow.settle()
        return flow.view()

    def back(self, session_id: str) -> SessionView:
        flow = self._require_flow(session_id)
        flow.back()
        return flow.view()

    async def commit(self, session_id: str) -> DelegationRequestPayload:
        flow = self._require_flow(session_id)
        try:
            request = await flow.commit()
        finally:
            if flow.closed:
                self._forget(session_id)
        if request is None:
            raise ValueError("nothing to commit; confirm the fee first")
        return request_payload(request)

    def close(self, session_id: str) -> None:
        flow = self._require_flow(session_id)
        flow.close()
        self._forget(session_id)

    def _forget(self, session_id: str) -> None:
        with self._lock:
            self._flows.pop(session_id, None)

    def _require_flow(self, session_id: str) -> DelegationFlow:
        with self._lock:
            flow = self._flows.get(session_id)
        if flow is None:
            raise KeyError(f"delegation session '{session_id}' not found")
        return flow


def _sid(length: int = 10) -> str:
    alphabet = string.ascii_lowercase + string.digits
    return "".join(secrets.choice(alphabet) for _ in range(length))


def request_payload(request: DelegationRequest) -> DelegationRequestPayload:
    return DelegationRequestPayload(
        node_id=request.node_id,
        identity_key=request.identity_key,
        amount=format_amount(request.amount),
        denom=request.denom,
        fee=FeePayload(amount=format_amount(request.fee.amount), denom=request.fee.denom),
    )
