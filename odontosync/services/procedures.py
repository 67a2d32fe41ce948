from __future__ import annotations

from typing import Any

from sqlalchemy import or_, select

from ..db import db_session, row_to_dict
from ..errors import ConflictError, NotFoundError
from ..models import Procedure, ProcedureCategory
from ..tenancy import TenantScope

_PROCEDURE_FIELDS = ("name", "description", "price", "duration", "category", "category_id", "is_active")


# =========================
# Categories
# =========================
def list_categories(scope: TenantScope) -> list[dict]:
    with db_session() as s:
        q = scope.filter(select(ProcedureCategory), ProcedureCategory).order_by(ProcedureCategory.name)
        return [row_to_dict(c) for c in s.scalars(q)]


def create_category(scope: TenantScope, data: dict[str, Any]) -> dict[str, Any]:
    company_id = scope.require_company()
    with db_session() as s:
        clash = s.execute(
            select(ProcedureCategory.id).where(
                ProcedureCategory.company_id == company_id, ProcedureCategory.name == data["name"]
            )
        ).first()
        if clash:
            raise ConflictError("A category with this name already exists")
        c = ProcedureCategory(
            company_id=company_id,
            name=data["name"],
            description=data.get("description"),
            is_active=data.get("is_active", True),
        )
        s.add(c)
        s.flush()
        return row_to_dict(c)


def update_category(scope: TenantScope, category_id: int, data: dict[str, Any]) -> dict[str, Any]:
    with db_session() as s:
        c = s.get(ProcedureCategory, category_id)
        if not scope.owns(c):
            raise NotFoundError("Category not found")
        for k in ("name", "description", "is_active"):
            if k in data:
                setattr(c, k, data[k])
        s.flush()
        return row_to_dict(c)


# =========================
# Procedures
# =========================
def _resolve_category(s, company_id: int, data: dict[str, Any]) -> None:
    """Keep the category name in sync with category_id."""
    cid = data.get("category_id")
    if cid is None:
        return
    c = s.get(ProcedureCategory, cid)
    if not c or c.company_id != company_id:
        raise NotFoundError("Category not found")
    data["category"] = c.name


def list_procedures(
    scope: TenantScope,
    search: str | None = None,
    category_id: int | None = None,
    limit: int | None = None,
    offset: int = 0,
) -> list[dict]:
    with db_session() as s:
        q = scope.filter(select(Procedure), Procedure)
        if search:
            like = f"%{search.strip()}%"
            q = q.where(or_(Procedure.name.ilike(like), Procedure.description.ilike(like)))
        if category_id is not None:
            q = q.where(Procedure.category_id == category_id)
        q = q.order_by(Procedure.name).offset(offset)
        if limit:
            q = q.limit(limit)
        return [row_to_dict(p) for p in s.scalars(q)]


def get_procedure(scope: TenantScope, procedure_id: int) -> dict[str, Any]:
    with db_session() as s:
        p = s.get(Procedure, procedure_id)
        if not scope.owns(p):
            raise NotFoundError("Procedure not found")
        return row_to_dict(p)


def create_procedure(scope: TenantScope, data: dict[str, Any]) -> dict[str, Any]:
    company_id = scope.require_company()
    with db_session() as s:
        _resolve_category(s, company_id, data)
        p = Procedure(company_id=company_id, **{k: v for k, v in data.items() if k in _PROCEDURE_FIELDS})
        s.add(p)
        s.flush()
        return row_to_dict(p)


def update_procedure(scope: TenantScope, procedure_id: int, data: dict[str, Any]) -> dict[str, Any]:
    with db_session() as s:
        p = s.get(Procedure, procedure_id)
        if not scope.owns(p):
            raise NotFoundError("Procedure not found")
        _resolve_category(s, p.company_id, data)
        for k, v in data.items():
            if k in _PROCEDURE_FIELDS:
                setattr(p, k, v)
        s.flush()
        return row_to_dict(p)
