"""
FastAPI app entry point aggregating the routers under mailinglist/routes.
Keep as `uvicorn mailinglist.api:app`.
"""
from __future__ import annotations

from fastapi import FastAPI

from . import __version__
from .logs import ensure_log_schema
from .services.email_svc import ensure_email_schema

app = FastAPI(title="mailinglist-api", version=__version__)


@app.on_event("startup")
def on_startup():
    # SchemaError propagates and aborts startup
    ensure_log_schema()
    ensure_email_schema()


from .routes import base as base_routes
from .routes import emails as emails_routes
from .routes import logs as logs_routes

app.include_router(base_routes.router)
app.include_router(emails_routes.router)
app.include_router(logs_routes.router)
