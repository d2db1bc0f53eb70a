from __future__ import annotations

from fastapi import FastAPI

from ..core.settings import WizardSettings
from ..features.delegation import Collaborators, WizardManager, create_delegation_router

__all__ = ["create_app"]


def create_app(collaborators: Collaborators, *, settings: WizardSettings | None = None) -> FastAPI:
    """Build the JSON API around a :class:`WizardManager` bound to ``collaborators``."""

    app = FastAPI(title="Stakeflow")
    manager = WizardManager(collaborators, settings=settings)
    app.state.wizards = manager
    app.include_router(create_delegation_router(manager))

    @app.get("/healthz")
    async def healthz() -> dict[str, str]:
        return {"status": "ok"}

    return app
