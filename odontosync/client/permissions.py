from __future__ import annotations

from typing import Any

from .. import permissions
from .api import ApiClient


class ClientPermissions:
    """Navigation-side view of the module rules, loaded once per login."""

    def __init__(self, api: ApiClient) -> None:
        self.api = api
        self.company: dict | None = None
        self.is_system_admin = False
        self.profile_modules: list[str] | None = None
        self.loaded = False

    @property
    def user(self) -> dict | None:
        return self.api.session.user

    def load(self) -> "ClientPermissions":
        info: dict[str, Any] = self.api.get("/api/user/company")
        self.company = info.get("company")
        self.is_system_admin = bool(info.get("is_system_admin"))

        user = self.user or {}
        if permissions.is_admin_role(user.get("role")):
            self.profile_modules = None
        else:
            profiles = self.api.get("/api/user-profiles") or []
            self.profile_modules = permissions.find_profile_modules(user.get("role"), profiles)
        self.loaded = True
        return self

    def has_access(self, module: str) -> bool:
        return permissions.has_access(self.user, module, self.profile_modules)

    def accessible_modules(self) -> list[str]:
        return permissions.accessible_modules(self.user, self.profile_modules)
