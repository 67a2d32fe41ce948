from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, model_validator

from ..auth_models import User
from ..auth_security import create_access_token
from ..auth_service import authenticate, change_password, force_change_password
from ..deps import get_current_user
from ..permissions import data_scope
from ..services.companies import user_company_info

log = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["auth"])


# =========================
# Schemas
# =========================
class LoginIn(BaseModel):
    username: str | None = None
    email: str | None = None
    password: str

    @model_validator(mode="after")
    def _needs_login(self) -> "LoginIn":
        if not (self.username or self.email):
            raise ValueError("username or email is required")
        return self


class UserOut(BaseModel):
    id: int
    username: str
    name: str
    email: str
    role: str
    company_id: int | None
    data_scope: str


class LoginOut(BaseModel):
    token: str
    user: UserOut
    force_password_change: bool


class ChangePasswordIn(BaseModel):
    current_password: str
    new_password: str


class ForceChangePasswordIn(BaseModel):
    new_password: str


def _user_out(u: User) -> UserOut:
    return UserOut(
        id=u.id,
        username=u.username,
        name=u.name,
        email=u.email,
        role=u.role,
        company_id=u.company_id,
        data_scope=data_scope(u),
    )


# =========================
# Endpoints
# =========================
@router.post("/auth/login", response_model=LoginOut)
def login(payload: LoginIn) -> LoginOut:
    u = authenticate(payload.username or payload.email or "", payload.password)
    if not u:
        log.info("failed login for %s", payload.username or payload.email)
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid credentials")

    token = create_access_token(
        subject=str(u.id),
        extra={"username": u.username, "role": u.role, "company_id": u.company_id},
    )
    return LoginOut(token=token, user=_user_out(u), force_password_change=u.force_password_change)


@router.get("/auth/me", response_model=UserOut)
def me(user: User = Depends(get_current_user)) -> UserOut:
    return _user_out(user)


@router.post("/auth/change-password")
def api_change_password(payload: ChangePasswordIn, user: User = Depends(get_current_user)) -> dict[str, Any]:
    change_password(user.id, payload.current_password, payload.new_password)
    return {"message": "Password changed successfully"}


@router.post("/auth/force-change-password")
def api_force_change_password(payload: ForceChangePasswordIn, user: User = Depends(get_current_user)) -> dict[str, Any]:
    force_change_password(user.id, payload.new_password)
    return {"message": "Password changed successfully"}


@router.get("/user/company")
def api_user_company(user: User = Depends(get_current_user)) -> dict[str, Any]:
    return user_company_info(user)
