"""FastAPI application entry point."""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from shell_relay.api.context import AppContext
from shell_relay.api.middleware import AuditLoggerMiddleware
from shell_relay.api.routers import commands
from shell_relay.api.schemas import APIMessage
from shell_relay.config import RelaySettings, load_settings
from shell_relay.version import __version__


def create_app(
    context: AppContext | None = None, *, settings: RelaySettings | None = None
) -> FastAPI:
    """Instantiate the FastAPI application; settings come from the environment by default."""

    if context is None:
        context = AppContext.from_settings(settings or load_settings())

    @asynccontextmanager
    async def lifespan(_: FastAPI) -> AsyncIterator[None]:
        yield
        context.dispatcher.shutdown(wait=False)

    app = FastAPI(title="Shell Relay", version=__version__, lifespan=lifespan)
    app.state.context = context
    app.add_middleware(AuditLoggerMiddleware)
    app.include_router(commands.router)

    @app.exception_handler(RequestValidationError)
    async def bad_request(_: Request, exc: RequestValidationError) -> JSONResponse:
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"detail": "Bad request"},
        )

    @app.get("/healthz", response_model=APIMessage, tags=["system"])
    def healthz() -> APIMessage:
        return APIMessage(message="ok")

    return app


__all__ = ["create_app"]
