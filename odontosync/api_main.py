from __future__ import annotations

import logging
import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from .config import CORS_ORIGINS, SEED_ON_STARTUP
from .errors import ServiceError
from .logging_setup import setup_logging
from .routers import (
    appointments,
    auth,
    companies,
    consultations,
    dashboard,
    financial,
    health,
    patients,
    procedures,
    purchasing,
    stock,
    users,
    whatsapp,
)
from .seed import seed_base
from .services import init_db

log = logging.getLogger(__name__)


# Startup
@asynccontextmanager
async def lifespan(app: FastAPI):
    # Create tables and the system administrator (idempotent)
    setup_logging()
    init_db()
    if SEED_ON_STARTUP:
        seed_base()
    log.info("OdontoSync API ready")
    yield


app = FastAPI(title="OdontoSync API", version="1.0.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def _log_api_requests(request: Request, call_next):
    start = time.perf_counter()
    response = await call_next(request)
    if request.url.path.startswith("/api"):
        elapsed_ms = (time.perf_counter() - start) * 1000
        log.info("%s %s %s in %.0fms", request.method, request.url.path, response.status_code, elapsed_ms)
    return response


# Errors: every failure answers {"message": ...}
@app.exception_handler(ServiceError)
async def service_error_handler(request: Request, exc: ServiceError):
    return JSONResponse(status_code=exc.status_code, content={"message": exc.message})


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    message = exc.detail if isinstance(exc.detail, str) else "Request failed"
    return JSONResponse(status_code=exc.status_code, content={"message": message}, headers=exc.headers)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=422,
        content={"message": "Invalid request", "errors": jsonable_encoder(exc.errors())},
    )


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    log.error("Unhandled error on %s %s", request.method, request.url.path, exc_info=exc)
    return JSONResponse(status_code=500, content={"message": "Internal server error"})


for r in (
    health.router,
    auth.router,
    companies.router,
    users.router,
    dashboard.router,
    patients.router,
    procedures.router,
    appointments.router,
    consultations.router,
    financial.router,
    purchasing.router,
    stock.router,
    whatsapp.router,
):
    app.include_router(r)

# Must stay last: catches every other GET for the SPA
app.add_api_route("/{full_path:path}", health.spa_fallback, methods=["GET"], include_in_schema=False)
