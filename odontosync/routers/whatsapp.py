from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from ..deps import require_module
from ..services import whatsapp_settings as svc
from ..tenancy import TenantScope

router = APIRouter(prefix="/api", tags=["whatsapp"])

settings_scope = require_module("settings")


class WhatsAppTestIn(BaseModel):
    phone_number: str = Field(..., min_length=10)
    message: str = Field(..., min_length=1)


@router.get("/whatsapp/status")
def api_whatsapp_status(scope: TenantScope = Depends(settings_scope)) -> dict[str, Any]:
    return svc.whatsapp_status(scope.require_company())


@router.post("/whatsapp/setup")
def api_whatsapp_setup(scope: TenantScope = Depends(settings_scope)) -> dict[str, Any]:
    """Creates (or reuses) the clinic's instance; scan the returned QR code to connect."""
    return svc.setup_whatsapp(scope.require_company())


@router.post("/whatsapp/refresh-qr")
def api_whatsapp_refresh_qr(scope: TenantScope = Depends(settings_scope)) -> dict[str, Any]:
    return svc.refresh_qr_code(scope.require_company())


@router.post("/whatsapp/test-message")
def api_whatsapp_test_message(payload: WhatsAppTestIn, scope: TenantScope = Depends(settings_scope)) -> dict[str, Any]:
    svc.send_test_message(scope.require_company(), payload.phone_number, payload.message)
    return {"message": "Test message sent"}
