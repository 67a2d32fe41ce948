from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from .errors import ValidationError


@dataclass(frozen=True)
class TenantScope:
    """
    Who is asking and which company the request runs in.

    company_id is None only for a super-admin that did not pick a company:
    reads then span every tenant, writes are refused.
    """
    user_id: int
    role: str
    company_id: int | None
    data_scope: str = "all"
    is_super_admin: bool = False

    @property
    def own_only(self) -> bool:
        return self.data_scope == "own"

    def filter(self, stmt: Any, model: Any) -> Any:
        """Add the company condition to a select on a tenant model."""
        if self.company_id is None:
            return stmt
        return stmt.where(model.company_id == self.company_id)

    def owns(self, obj: Any) -> bool:
        return obj is not None and (self.company_id is None or obj.company_id == self.company_id)

    def require_company(self) -> int:
        if self.company_id is None:
            raise ValidationError("Select a company (X-Company-Id header) before creating or changing data")
        return self.company_id
