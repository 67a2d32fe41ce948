from __future__ import annotations

from typing import Any, Literal

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field

from ..deps import get_scope, require_module
from ..services import users as svc
from ..tenancy import TenantScope

router = APIRouter(prefix="/api", tags=["users"])


class UserCreateIn(BaseModel):
    username: str = Field(..., min_length=1)
    password: str
    name: str = Field(..., min_length=1)
    email: str = Field(..., min_length=3)
    role: str = "reception"
    company_id: int | None = None
    is_active: bool = True
    force_password_change: bool = False
    data_scope: Literal["all", "own"] = "all"


class UserUpdateIn(BaseModel):
    username: str | None = None
    password: str | None = None
    name: str | None = None
    email: str | None = None
    role: str | None = None
    is_active: bool | None = None
    force_password_change: bool | None = None
    data_scope: Literal["all", "own"] | None = None


class ProfileIn(BaseModel):
    name: str = Field(..., min_length=1)
    description: str | None = None
    modules: list[str] = Field(default_factory=list)
    is_active: bool = True


class ProfileUpdateIn(BaseModel):
    name: str | None = None
    description: str | None = None
    modules: list[str] | None = None
    is_active: bool | None = None


# =========================
# Users
# =========================
@router.get("/users")
def api_users(scope: TenantScope = Depends(require_module("settings"))) -> list[dict]:
    return svc.list_users(scope)


@router.get("/users/dentists")
def api_dentists(scope: TenantScope = Depends(get_scope)) -> list[dict]:
    return svc.list_dentists(scope)


@router.post("/users", status_code=status.HTTP_201_CREATED)
def api_create_user(payload: UserCreateIn, scope: TenantScope = Depends(require_module("settings"))) -> dict[str, Any]:
    return svc.create_user(scope, payload.model_dump())


@router.put("/users/{user_id}")
def api_update_user(
    user_id: int, payload: UserUpdateIn, scope: TenantScope = Depends(require_module("settings"))
) -> dict[str, Any]:
    return svc.update_user(scope, user_id, payload.model_dump(exclude_unset=True))


# =========================
# Profiles
# =========================
@router.get("/user-profiles")
def api_profiles(scope: TenantScope = Depends(get_scope)) -> list[dict]:
    return svc.list_profiles(scope)


@router.post("/user-profiles", status_code=status.HTTP_201_CREATED)
def api_create_profile(payload: ProfileIn, scope: TenantScope = Depends(require_module("settings"))) -> dict[str, Any]:
    return svc.create_profile(scope, payload.model_dump())


@router.put("/user-profiles/{profile_id}")
def api_update_profile(
    profile_id: int, payload: ProfileUpdateIn, scope: TenantScope = Depends(require_module("settings"))
) -> dict[str, Any]:
    return svc.update_profile(scope, profile_id, payload.model_dump(exclude_unset=True))
