from __future__ import annotations

import logging

from sqlalchemy import or_, select

from .auth_models import User
from .auth_security import hash_password, verify_password
from .config import MIN_PASSWORD_LENGTH
from .db import db_session
from .errors import NotFoundError, ValidationError

log = logging.getLogger(__name__)


def _check_password(password: str) -> None:
    if not password or len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")


def authenticate(login: str, password: str) -> User | None:
    """login may be the username or the e-mail."""
    login = (login or "").strip()
    if not login or not password:
        return None

    with db_session() as s:
        u = s.execute(
            select(User).where(or_(User.username == login, User.email == login)).order_by(User.id).limit(1)
        ).scalar_one_or_none()
        if not u or not u.is_active:
            return None
        if not verify_password(password, u.password_hash):
            return None
        return u


def get_user_by_id(user_id: int) -> User | None:
    with db_session() as s:
        return s.get(User, user_id)


def change_password(user_id: int, current_password: str, new_password: str) -> None:
    _check_password(new_password)
    with db_session() as s:
        u = s.get(User, user_id)
        if not u:
            raise NotFoundError("User not found")
        if not verify_password(current_password, u.password_hash):
            raise ValidationError("Current password is incorrect")
        u.password_hash = hash_password(new_password)
        u.force_password_change = False
    log.info("password changed for user %s", user_id)


def force_change_password(user_id: int, new_password: str) -> None:
    """Set a new password and clear the force_password_change flag."""
    _check_password(new_password)
    with db_session() as s:
        u = s.get(User, user_id)
        if not u:
            raise NotFoundError("User not found")
        u.password_hash = hash_password(new_password)
        u.force_password_change = False
    log.info("forced password change completed for user %s", user_id)


def reset_password(username: str, new_password: str, force_change: bool = True) -> None:
    """Administrative reset (CLI): the user must pick a new password at next login."""
    _check_password(new_password)
    with db_session() as s:
        u = s.execute(select(User).where(User.username == username.strip())).scalar_one_or_none()
        if not u:
            raise NotFoundError(f"User '{username}' not found")
        u.password_hash = hash_password(new_password)
        u.force_password_change = force_change
        u.is_active = True
