"""
FastAPI dependencies: Bearer token, current user, tenant scope, module guard.
"""

from __future__ import annotations

from typing import Any, Callable

from fastapi import Depends, Header, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError

from .auth_models import User
from .auth_security import decode_token
from .auth_service import get_user_by_id
from .db import db_session
from .models import Company
from .permissions import data_scope, has_access, is_super_admin
from .services.users import profile_modules_for
from .tenancy import TenantScope

bearer = HTTPBearer(auto_error=False)


def get_token_payload(credentials: HTTPAuthorizationCredentials | None = Depends(bearer)) -> dict[str, Any]:
    if not credentials:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Access token required",
            headers={"WWW-Authenticate": "Bearer"},
        )
    # extra protection: stray spaces / quotes pasted with the token
    token = credentials.credentials.strip().strip('"').strip("'")
    try:
        return decode_token(token)
    except JWTError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid or expired token")


def get_current_user(payload: dict[str, Any] = Depends(get_token_payload)) -> User:
    sub = payload.get("sub")
    try:
        user_id = int(sub)
    except (TypeError, ValueError):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid or expired token")

    u = get_user_by_id(user_id)
    if not u or not u.is_active:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="User not found or inactive")
    return u


def get_scope(
    user: User = Depends(get_current_user),
    x_company_id: int | None = Header(default=None),
) -> TenantScope:
    """
    Tenant users always work inside their own company. The super-admin may
    pick one with the X-Company-Id header.
    """
    super_admin = is_super_admin(user.role, user.company_id)
    company_id = user.company_id
    if super_admin and x_company_id is not None:
        with db_session() as s:
            if s.get(Company, x_company_id) is None:
                raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Company not found")
        company_id = x_company_id

    return TenantScope(
        user_id=user.id,
        role=user.role,
        company_id=company_id,
        data_scope=data_scope(user),
        is_super_admin=super_admin,
    )


def _check_module(user: User, module: str) -> None:
    if user.force_password_change:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Password change required")
    profile = profile_modules_for(user.role, user.company_id)
    if not has_access(user, module, profile):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=f"Access denied to module: {module}")


def require_module(module: str) -> Callable[..., TenantScope]:
    """
    Dependency factory: the user must be allowed on the module.

    Returns:
        Dependency giving the TenantScope of the request
    """
    def module_checker(
        user: User = Depends(get_current_user),
        scope: TenantScope = Depends(get_scope),
    ) -> TenantScope:
        _check_module(user, module)
        return scope

    return module_checker


def require_super_admin(user: User = Depends(get_current_user)) -> User:
    _check_module(user, "companies")
    return user
