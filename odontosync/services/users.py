from __future__ import annotations

import logging
from typing import Any

from sqlalchemy import select

from ..auth_models import User, UserProfile
from ..auth_security import hash_password
from ..config import MIN_PASSWORD_LENGTH
from ..db import db_session, row_to_dict, utcnow
from ..errors import ConflictError, NotFoundError, PermissionDeniedError, ValidationError
from ..permissions import ALL_MODULES, find_profile_modules
from ..tenancy import TenantScope

log = logging.getLogger(__name__)

DATA_SCOPES = ("all", "own")


def user_dict(u: User) -> dict[str, Any]:
    return row_to_dict(u, exclude=("password_hash",))


def _check_unique(s, username: str | None, email: str | None, company_id: int | None, exclude_id: int | None = None) -> None:
    if username:
        q = select(User.id).where(User.username == username)
        if exclude_id is not None:
            q = q.where(User.id != exclude_id)
        if s.execute(q).first():
            raise ConflictError("Username already registered")
    if email:
        q = select(User.id).where(User.email == email, User.company_id == company_id)
        if exclude_id is not None:
            q = q.where(User.id != exclude_id)
        if s.execute(q).first():
            raise ConflictError("E-mail already registered for this company")


# =========================
# Users
# =========================
def list_users(scope: TenantScope) -> list[dict]:
    with db_session() as s:
        q = scope.filter(select(User), User).order_by(User.name)
        return [user_dict(u) for u in s.scalars(q)]


def list_dentists(scope: TenantScope) -> list[dict]:
    with db_session() as s:
        q = scope.filter(
            select(User).where(User.role == "dentist", User.is_active.is_(True)), User
        ).order_by(User.name)
        return [{"id": u.id, "name": u.name, "email": u.email, "company_id": u.company_id} for u in s.scalars(q)]


def create_user(scope: TenantScope, data: dict[str, Any]) -> dict[str, Any]:
    if scope.is_super_admin and data.get("company_id") is not None:
        company_id = data["company_id"]
    else:
        company_id = scope.require_company()
        if data.get("company_id") not in (None, company_id):
            raise PermissionDeniedError("Cannot create users for another company")

    username = (data.get("username") or "").strip()
    password = data.get("password") or ""
    if not username:
        raise ValidationError("Username is required")
    if len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")
    if data.get("data_scope", "all") not in DATA_SCOPES:
        raise ValidationError("data_scope must be 'all' or 'own'")

    with db_session() as s:
        _check_unique(s, username, data.get("email"), company_id)
        u = User(
            username=username,
            password_hash=hash_password(password),
            name=data["name"],
            email=data["email"],
            role=data.get("role") or "reception",
            company_id=company_id,
            is_active=data.get("is_active", True),
            force_password_change=data.get("force_password_change", False),
            data_scope=data.get("data_scope") or "all",
        )
        s.add(u)
        s.flush()
        log.info("user %s created in company %s", u.username, company_id)
        return user_dict(u)


def update_user(scope: TenantScope, user_id: int, data: dict[str, Any]) -> dict[str, Any]:
    with db_session() as s:
        u = s.get(User, user_id)
        if not scope.owns(u):
            raise NotFoundError("User not found")

        _check_unique(s, data.get("username"), data.get("email"), u.company_id, exclude_id=u.id)
        if "data_scope" in data and data["data_scope"] not in DATA_SCOPES:
            raise ValidationError("data_scope must be 'all' or 'own'")

        password = data.pop("password", None)
        if password:
            if len(password) < MIN_PASSWORD_LENGTH:
                raise ValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")
            u.password_hash = hash_password(password)

        for k in ("username", "name", "email", "role", "is_active", "force_password_change", "data_scope"):
            if k in data and data[k] is not None:
                setattr(u, k, data[k])
        s.flush()
        return user_dict(u)


# =========================
# Profiles
# =========================
def _check_modules(modules: list[str]) -> list[str]:
    unknown = [m for m in modules if m not in ALL_MODULES]
    if unknown:
        raise ValidationError(f"Unknown modules: {', '.join(unknown)}")
    return list(dict.fromkeys(modules))


def list_profiles(scope: TenantScope) -> list[dict]:
    with db_session() as s:
        q = scope.filter(select(UserProfile), UserProfile).order_by(UserProfile.name)
        return [row_to_dict(p) for p in s.scalars(q)]


def create_profile(scope: TenantScope, data: dict[str, Any]) -> dict[str, Any]:
    company_id = scope.require_company()
    with db_session() as s:
        exists = s.execute(
            select(UserProfile.id).where(UserProfile.company_id == company_id, UserProfile.name == data["name"])
        ).first()
        if exists:
            raise ConflictError("A profile with this name already exists")
        p = UserProfile(
            company_id=company_id,
            name=data["name"],
            description=data.get("description"),
            modules=_check_modules(data.get("modules") or []),
            is_active=data.get("is_active", True),
        )
        s.add(p)
        s.flush()
        return row_to_dict(p)


def update_profile(scope: TenantScope, profile_id: int, data: dict[str, Any]) -> dict[str, Any]:
    with db_session() as s:
        p = s.get(UserProfile, profile_id)
        if not scope.owns(p):
            raise NotFoundError("Profile not found")

        name = data.get("name")
        if name and name != p.name:
            clash = s.execute(
                select(UserProfile.id).where(
                    UserProfile.company_id == p.company_id, UserProfile.name == name, UserProfile.id != p.id
                )
            ).first()
            if clash:
                raise ConflictError("A profile with this name already exists")
            p.name = name
        if "description" in data:
            p.description = data["description"]
        if data.get("modules") is not None:
            p.modules = _check_modules(data["modules"])
        if data.get("is_active") is not None:
            p.is_active = data["is_active"]
        p.updated_at = utcnow()
        s.flush()
        return row_to_dict(p)


def profile_modules_for(role: str, company_id: int | None) -> list[str] | None:
    """Modules of the company profile named after the role, None if there is none."""
    if company_id is None:
        return None
    with db_session() as s:
        profiles = list(s.scalars(select(UserProfile).where(UserProfile.company_id == company_id)))
        return find_profile_modules(role, profiles)
