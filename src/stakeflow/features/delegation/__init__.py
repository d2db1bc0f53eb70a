"""Delegation feature: flow controller, wizard service, schemas, and API router."""

from .controller import DelegationFlow, DelegationRequest
from .interfaces import BalanceSource, Collaborators, FeeSimulator, IdentityLookup, Submitter
from .router import create_delegation_router
from .schemas import DelegationRequestPayload, SessionView
from .service import WizardConfig, WizardManager
from .state import Phase, Session

__all__ = [
    "BalanceSource",
    "Collaborators",
    "DelegationFlow",
    "DelegationRequest",
    "DelegationRequestPayload",
    "FeeSimulator",
    "IdentityLookup",
    "Phase",
    "Session",
    "SessionView",
    "Submitter",
    "WizardConfig",
    "WizardManager",
    "create_delegation_router",
]
