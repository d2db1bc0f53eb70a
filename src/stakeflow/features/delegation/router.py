from __future__ import annotations

from fastapi import APIRouter, HTTPException
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel, model_validator

from .service import WizardConfig, WizardManager

__all__ = [
    "AddressRequest",
    "AmountRequest",
    "IdentityRequest",
    "OpenWizardRequest",
    "create_delegation_router",
]


class OpenWizardRequest(BaseModel):
    address: str | None = None
    identity_key: str | None = None
    amount: str | None = None

    @model_validator(mode="before")
    @classmethod
    def _coerce(cls, data: dict[str, object]) -> dict[str, object]:
        if not isinstance(data, dict):
            return data
        cleaned: dict[str, object] = dict(data)
        for field in ("address", "identity_key", "amount"):
            value = cleaned.get(field)
            if value in (None, ""):
                cleaned[field] = None
            elif isinstance(value, (int, float)) and not isinstance(value, bool):
                cleaned[field] = str(value)
        return cleaned


class IdentityRequest(BaseModel):
    identity_key: str


class AmountRequest(BaseModel):
    amount: str

    @model_validator(mode="before")
    @classmethod
    def _coerce(cls, data: dict[str, object]) -> dict[str, object]:
        if isinstance(data, dict) and isinstance(data.get("amount"), (int, float)):
            return {**data, "amount": str(data["amount"])}
        return data


class AddressRequest(BaseModel):
    address: str


class _DelegationController:
    def __init__(self, manager: WizardManager) -> None:
        self.manager = manager

    def _json_response(self, data: dict[str, object], status_code: int = 200) -> JSONResponse:
        return JSONResponse(data, status_code=status_code)

    async def open(self, body: OpenWizardRequest) -> Response:
        session_id = await self.manager.open(
            WizardConfig(address=body.address, identity_key=body.identity_key, amount=body.amount)
        )
        view = self.manager.view(session_id)
        return self._json_response({"session": session_id, "view": view.to_dict()}, status_code=201)

    async def view(self, sid: str) -> Response:
        try:
            view = self.manager.view(sid)
        except KeyError as exc:
            raise HTTPException(404, str(exc)) from exc
        return self._json_response(view.to_dict())

    async def identity(self, sid: str, body: IdentityRequest) -> Response:
        try:
            view = await self.manager.set_identity_key(sid, body.identity_key)
        except KeyError as exc:
            raise HTTPException(404, str(exc)) from exc
        return self._json_response(view.to_dict())

    async def amount(self, sid: str, body: AmountRequest) -> Response:
        try:
            view = await self.manager.set_amount(sid, body.amount)
        except KeyError as exc:
            raise HTTPException(404, str(exc)) from exc
        return self._json_response(view.to_dict())

    async def address(self, sid: str, body: AddressRequest) -> Response:
        try:
            view = await self.manager.set_address(sid, body.address)
        except KeyError as exc:
            raise HTTPException(404, str(exc)) from exc
        return self._json_response(view.to_dict())

    async def confirm(self, sid: str) -> Response:
        try:
            view = await self.manager.confirm(sid)
        except KeyError as exc:
            raise HTTPException(404, str(exc)) from exc
        return self._json_response(view.to_dict())

    async def retry(self, sid: str) -> Response:
        try:
            view = await self.manager.retry(sid)
        except KeyError as exc:
            raise HTTPException(404, str(exc)) from exc
        return self._json_response(view.to_dict())

    async def back(self, sid: str) -> Response:
        try:
            view = self.manager.back(sid)
        except KeyError as exc:
            raise HTTPException(404, str(exc)) from exc
        return self._json_response(view.to_dict())

    async def commit(self, sid: str) -> Response:
        try:
            request = await self.manager.commit(sid)
        except KeyError as exc:
            raise HTTPException(404, str(exc)) from exc
        except ValueError as exc:
            raise HTTPException(409, str(exc)) from exc
        return self._json_response(request.to_dict())

    async def close(self, sid: str) -> Response:
        try:
            self.manager.close(sid)
        except KeyError as exc:
            raise HTTPException(404, str(exc)) from exc
        return Response(status_code=204)


def create_delegation_router(manager: WizardManager) -> APIRouter:
    controller = _DelegationController(manager)
    router = APIRouter(prefix="/api/v1/delegation", tags=["delegation"])

    @router.post("")
    async def open_wizard(body: OpenWizardRequest) -> Response:
        return await controller.open(body)

    @router.get("/{sid}")
    async def get_view(sid: str) -> Response:
        return await controller.view(sid)

    @router.put("/{sid}/identity")
    async def put_identity(sid: str, body: IdentityRequest) -> Response:
        return await controller.identity(sid, body)

    @router.put("/{sid}/amount")
    async def put_amount(sid: str, body: AmountRequest) -> Response:
        return await controller.amount(sid, body)

    @router.put("/{sid}/address")
    async def put_address(sid: str, body: AddressRequest) -> Response:
        return await controller.address(sid, body)

    @router.post("/{sid}/confirm")
    async def post_confirm(sid: str) -> Response:
        return await controller.confirm(sid)

    @router.post("/{sid}/retry")
    async def post_retry(sid: str) -> Response:
        return await controller.retry(sid)

    @router.post("/{sid}/back")
    async def post_back(sid: str) -> Response:
        return await controller.back(sid)

    @router.post("/{sid}/commit")
    async def post_commit(sid: str) -> Response:
        return await controller.commit(sid)

    @router.delete("/{sid}")
    async def delete_wizard(sid: str) -> Response:
        return await controller.close(sid)

    return router
