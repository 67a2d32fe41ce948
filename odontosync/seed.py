from __future__ import annotations

import logging

from sqlalchemy import select

from .auth_models import User
from .auth_security import hash_password
from .config import SYSTEM_ADMIN_EMAIL, SYSTEM_ADMIN_PASSWORD, SYSTEM_ADMIN_USERNAME
from .db import db_session

log = logging.getLogger(__name__)


def seed_base(
    username: str = SYSTEM_ADMIN_USERNAME,
    password: str = SYSTEM_ADMIN_PASSWORD,
    email: str = SYSTEM_ADMIN_EMAIL,
) -> bool:
    """
    Minimal data (idempotent):
    - the system administrator (role admin, no company)

    Returns True when the administrator was created.
    """
    with db_session() as s:
        exists = s.execute(select(User.id).where(User.username == username)).first()
        if exists:
            return False

        s.add(
            User(
                username=username,
                password_hash=hash_password(password),
                name="System Administrator",
                email=email,
                role="admin",
                company_id=None,
                is_active=True,
                force_password_change=False,
                data_scope="all",
            )
        )
    log.info("system administrator '%s' created", username)
    return True
