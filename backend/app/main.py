"""FastAPI application entry point.

This module wires together the API routers, configures middleware,
error handling and startup tasks, and exposes the ASGI application
object used by the server.
"""

import os
import logging
from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.openapi.docs import get_swagger_ui_html
from fastapi.openapi.utils import get_openapi
from app.routes import (
    auth,
    users,
    admin,
    settings,
    courses,
    quizzes,
    enrollments,
    certificates,
    organizations,
    certificate_templates,
)
from sqlalchemy.ext.asyncio import AsyncSession
from app.database import create_db_and_tables, async_session, get_session
from app.crud import ensure_permissions_exist, ensure_demo_course, get_settings
from app.acl import ALL_PERMISSIONS
from app.exceptions import AppError

# Basic logging configuration.  The log level can be controlled with an
# environment variable so deployments can adjust verbosity without code
# changes.
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
logging.basicConfig(level=getattr(logging, LOG_LEVEL))
logger = logging.getLogger(__name__)

SEED_DEMO_COURSE = os.getenv("SEED_DEMO_COURSE", "false").lower() == "true"

app = FastAPI(title="Learning Platform API", docs_url=None)


def custom_openapi():
    """Generate an OpenAPI schema that is aware of our `/api` proxy prefix."""

    if app.openapi_schema:
        return app.openapi_schema
    openapi_schema = get_openapi(
        title=app.title,
        version=app.version,
        description=app.description,
        routes=app.routes,
    )
    # The reverse proxy serves the API under `/api`.
    openapi_schema["servers"] = [{"url": "/api"}]
    app.openapi_schema = openapi_schema
    return app.openapi_schema


app.openapi = custom_openapi

# CORS setup
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.on_event("startup")
async def on_startup():
    """Create tables, register permissions and optionally seed demo data."""

    await create_db_and_tables()
    async with async_session() as session:
        # Ensure any new permissions are inserted into the database on startup.
        await ensure_permissions_exist(session, ALL_PERMISSIONS)
        if SEED_DEMO_COURSE:
            await ensure_demo_course(session)
    logger.info("Learning platform API started")


app.include_router(auth.router)
app.include_router(users.router)
app.include_router(admin.router)
app.include_router(settings.router)
app.include_router(courses.router)
app.include_router(quizzes.router)
app.include_router(enrollments.router)
app.include_router(certificates.router)
app.include_router(organizations.router)
app.include_router(certificate_templates.router)


@app.get("/docs", include_in_schema=False)
async def custom_swagger_ui_html():
    """Serve the interactive docs with the correct API prefix."""

    # Behind the proxy the schema lives at `/api/openapi.json`, not at the
    # default `/openapi.json`.
    return get_swagger_ui_html(openapi_url="/api/openapi.json", title="API Docs")


@app.get("/")
async def read_root(db: AsyncSession = Depends(get_session)):
    s = await get_settings(db)
    return {"message": f"Welcome to {s.site_name} API"}


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError):
    """Translate domain errors raised by the data layer into JSON responses."""
    return JSONResponse(
        status_code=exc.status_code,
        content={"code": exc.code, "message": exc.message},
    )


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    errors = [
        {"loc": list(err["loc"]), "msg": err["msg"], "type": err["type"]}
        for err in exc.errors()
    ]
    return JSONResponse(
        status_code=400,
        content={
            "code": "validation_error",
            "message": "Request validation failed",
            "errors": errors,
        },
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Catch-all exception handler that logs the stack trace once."""
    logger.exception("Unhandled error during request %s", request.url.path)
    return JSONResponse(
        status_code=500,
        content={
            "code": "internal_server_error",
            "message": "An unexpected error occurred",
        },
    )
