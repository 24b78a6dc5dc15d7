"""Cadence daemon — FastAPI app with the schedule poller built in."""

import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from cadence import __version__
from cadence.api.router import api_router
from cadence.core.config import get_settings
from cadence.core.database import close_database, get_database, init_database
from cadence.core.errors import DatabaseError, NotFoundError, QueryError
from cadence.daemon.poller import SchedulePoller
from cadence.services.claim_queue import ClaimQueue

logger = logging.getLogger("cadence")


def _status_for(error: DatabaseError) -> int:
    if isinstance(error, NotFoundError):
        return 404
    if isinstance(error, QueryError):
        return 400
    return 503


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown."""
    settings = get_settings()

    database = init_database(settings.database_url, settings.pool_config())
    await database.create_tables()
    logger.info(f"Database initialized: {database!r}")

    poller = SchedulePoller(
        ClaimQueue(database, skip_locked=settings.skip_locked),
        batch_size=settings.batch_size,
        poll_interval=settings.poll_interval,
    )
    app.state.poller = poller
    if settings.poller_enabled:
        poller.start()

    yield

    poller.stop()
    await close_database()
    logger.info("Cadence daemon stopped")


def create_app() -> FastAPI:
    app = FastAPI(
        title="Cadence",
        description="Interval schedule claim queue",
        version=__version__,
        lifespan=lifespan,
    )

    app.include_router(api_router)

    @app.exception_handler(DatabaseError)
    async def database_error_handler(request: Request, exc: DatabaseError):
        return JSONResponse(
            status_code=_status_for(exc),
            content={
                "detail": exc.message,
                "kind": exc.kind,
                "retryable": exc.retryable,
                "operation": exc.operation,
                "context": dict(exc.context),
            },
        )

    @app.exception_handler(ValueError)
    async def value_error_handler(request: Request, exc: ValueError):
        return JSONResponse(status_code=400, content={"detail": str(exc)})

    @app.get("/health")
    async def health(request: Request):
        poller = getattr(request.app.state, "poller", None)
        return {
            "status": "ok",
            "version": __version__,
            "database": get_database().status(),
            "poller": poller.info() if poller else None,
        }

    return app


def main():
    """Entry point for `cadenced` command."""
    import os
    import sys

    settings = get_settings()

    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper()),
        format="%(asctime)s | %(name)s | %(levelname)s | %(message)s",
        datefmt="%H:%M:%S",
    )

    host = settings.host
    port = settings.port

    # Parse CLI args (simple, no dep on typer for daemon)
    args = sys.argv[1:]
    for i, arg in enumerate(args):
        if arg == "--port" and i + 1 < len(args):
            port = int(args[i + 1])
        if arg == "--host" and i + 1 < len(args):
            host = args[i + 1]
        if arg == "--no-poller":
            os.environ["CADENCE_POLLER_ENABLED"] = "false"

    logger.info(f"Starting Cadence daemon v{__version__} on {host}:{port}")

    app = create_app()
    uvicorn.run(app, host=host, port=port, log_level=settings.log_level)


if __name__ == "__main__":
    main()
