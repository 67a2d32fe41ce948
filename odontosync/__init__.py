"""
OdontoSync backend (multi-tenant dental clinic management).

Layout:
- config.py        : environment settings (.env)
- db.py            : SQLAlchemy engine and sessions
- models.py        : domain ORM models (companies, patients, schedule, financial, purchases, stock)
- auth_models.py   : users and permission profiles
- permissions.py   : role -> module rules
- tenancy.py       : company scope of a request
- services/        : domain logic, one module per area
- routers/         : REST endpoints
- api_main.py      : FastAPI application
- client/          : Python API client (session, token expiry, permissions)
- cli.py           : operational commands
"""
