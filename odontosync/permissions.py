"""
Module permission rules.

Plain functions over (role, company_id, profile modules) so that the API
(enforcement) and the client (navigation) resolve access the same way.
"""

from __future__ import annotations

from typing import Any, Iterable, Mapping

MODULES: tuple[str, ...] = (
    "dashboard",
    "patients",
    "schedule",
    "consultations",
    "procedures",
    "financial",
    "purchases",
    "stock",
    "reports",
    "settings",
)

SYSTEM_MODULES: tuple[str, ...] = ("companies", "saas-management")

ALL_MODULES: tuple[str, ...] = MODULES + SYSTEM_MODULES

ADMIN_ROLES: frozenset[str] = frozenset({"admin", "Administrador"})

# Fallback when the role has no company profile
LEGACY_ROLE_MODULES: dict[str, tuple[str, ...]] = {
    "dentist": ("dashboard", "patients", "schedule", "consultations", "procedures", "reports"),
    "reception": ("dashboard", "patients", "schedule", "financial"),
}
DEFAULT_MODULES: tuple[str, ...] = ("dashboard",)


def _get(user: Any, key: str, default: Any = None) -> Any:
    if isinstance(user, Mapping):
        return user.get(key, default)
    return getattr(user, key, default)


def is_admin_role(role: str | None) -> bool:
    return role in ADMIN_ROLES


def is_super_admin(role: str | None, company_id: int | None) -> bool:
    """Admin role without a company: the cross-tenant system administrator."""
    return is_admin_role(role) and company_id is None


def has_access(user: Any, module: str, profile_modules: Iterable[str] | None = None) -> bool:
    """
    user: ORM User, dict, or None.
    profile_modules: modules of the company profile whose name equals the
    user's role, or None when no such profile exists.
    """
    if not user:
        return False

    role = _get(user, "role")
    company_id = _get(user, "company_id")

    if module in SYSTEM_MODULES:
        return is_super_admin(role, company_id)

    if is_admin_role(role):
        return True

    if profile_modules is not None:
        return module in set(profile_modules)

    return module in LEGACY_ROLE_MODULES.get(role, DEFAULT_MODULES)


def accessible_modules(user: Any, profile_modules: Iterable[str] | None = None) -> list[str]:
    if not user:
        return []
    allowed = list(profile_modules) if profile_modules is not None else None
    return [m for m in ALL_MODULES if has_access(user, m, allowed)]


def data_scope(user: Any) -> str:
    """'all' for admin roles, otherwise the user's own setting."""
    if is_admin_role(_get(user, "role")):
        return "all"
    return _get(user, "data_scope") or "all"


def find_profile_modules(role: str | None, profiles: Iterable[Any]) -> list[str] | None:
    """Modules of the active profile named after the role (case-insensitive), if any."""
    wanted = (role or "").strip().lower()
    for p in profiles:
        if (_get(p, "name") or "").strip().lower() == wanted and _get(p, "is_active", True):
            return list(_get(p, "modules") or [])
    return None
