"""
Use cases of the clinic, one module per area.

Every function opens its own db_session() and returns flat dicts
(serializable, no lazy loads after the session is closed).
"""

from __future__ import annotations

from ..db import Base, engine


# =========================
# Bootstrap DB
# =========================
def init_db() -> None:
    """Create the tables if they do not exist."""
    # Importing the models registers their tables on Base.metadata
    from .. import auth_models, models  # noqa: F401

    Base.metadata.create_all(bind=engine)
