"""HTTP API for waymark.

Single-project JSON API over the local .waymark/ database. A module-level
``_db`` is set at startup (or by test fixtures) and injected into handlers
via ``Depends(_get_db)``. Route handlers live in ``waymark.api_routes``.

Usage:
    waymark serve                 # http://127.0.0.1:8378/api/...
    waymark serve --port 9000     # Custom port
"""

from __future__ import annotations

import logging
from time import perf_counter
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from starlette.requests import Request

from waymark import __version__
from waymark.core import DB_FILENAME, WaymarkDB, find_waymark_root, read_config

DEFAULT_PORT = 8378

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Module-level state, set by main() or test fixtures
# ---------------------------------------------------------------------------

_db: WaymarkDB | None = None


def _get_db() -> WaymarkDB:
    """Return the active database connection."""
    from fastapi import HTTPException

    if _db is None:
        raise HTTPException(status_code=500, detail="Database not initialized")
    return _db


def create_app() -> Any:
    """Create the FastAPI application with all API endpoints mounted under ``/api``."""
    from fastapi import FastAPI, Request
    from fastapi.responses import JSONResponse

    from waymark.api_routes import lifecycle, review, versions, work_items

    # Expose Request in module globals so PEP 563 deferred annotations resolve
    globals()["Request"] = Request

    app = FastAPI(title="Waymark", version=__version__, docs_url=None, redoc_url=None)

    @app.middleware("http")
    async def log_api_calls(request: Request, call_next: Any) -> Any:
        started = perf_counter()
        try:
            response = await call_next(request)
        except Exception:
            logger.error("api_error", extra={"route": request.url.path, "args_data": {"method": request.method}}, exc_info=True)
            raise
        finally:
            # Roll back anything a failed handler left uncommitted so the
            # next request's commit does not flush it.
            if _db is not None and _db._conn is not None and _db._conn.in_transaction:
                logger.warning("Rolling back transaction left open by %s %s", request.method, request.url.path)
                _db._conn.rollback()
        duration_ms = round((perf_counter() - started) * 1000, 1)
        logger.info(
            "api_call",
            extra={
                "route": request.url.path,
                "args_data": {"method": request.method},
                "status_code": response.status_code,
                "duration_ms": duration_ms,
            },
        )
        return response

    app.include_router(work_items.create_router(), prefix="/api")
    app.include_router(lifecycle.create_router(), prefix="/api")
    app.include_router(review.create_router(), prefix="/api")
    app.include_router(versions.create_router(), prefix="/api")

    @app.get("/api/health")
    async def api_health() -> JSONResponse:
        return JSONResponse({"status": "ok", "version": __version__, "database": _db is not None})

    return app


def main(port: int = DEFAULT_PORT) -> None:
    """Serve the project found from the current directory."""
    import uvicorn

    from waymark.logging import setup_logging

    global _db

    waymark_dir = find_waymark_root()
    config = read_config(waymark_dir)
    setup_logging(waymark_dir)
    _db = WaymarkDB(
        waymark_dir / DB_FILENAME,
        prefix=config.get("prefix", "waymark"),
        default_review_enabled=bool(config.get("default_review_enabled", False)),
        check_same_thread=False,
    )
    _db.initialize()

    app = create_app()
    logger.info("api_start", extra={"route": "server", "args_data": {"project": str(waymark_dir.parent), "port": port}})
    print(f"Waymark API: http://localhost:{port}/api/health")
    uvicorn.run(app, host="127.0.0.1", port=port, log_level="warning")
