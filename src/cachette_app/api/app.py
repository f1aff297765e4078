"""FastAPI application factory for the cachette HTTP surface.

Endpoints: /health, /config, /metrics plus the /models, /query and
/sessions routers. Library errors map to HTTP status via the error
taxonomy with body {"error": {"type", "message"}}.
"""
from __future__ import annotations

import logging
import time

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from cachette import __version__, metrics
from cachette.config import ConfigError
from cachette.errors import validate_error_type
from cachette.llm.exceptions import CachetteError
from cachette.runtime import Runtime
from cachette_app.api.deps import get_runtime
from cachette_app.api.routes.models import router as models_router
from cachette_app.api.routes.query import router as query_router
from cachette_app.api.routes.sessions import router as sessions_router
from cachette_app.api.session_store import SessionStore

logger = logging.getLogger("cachette.api")

STATUS_BY_ERROR_TYPE = {
    "not-downloaded": 404,
    "not-found": 404,
    "insufficient-memory": 507,
    "download-failed": 502,
    "parsing-failed": 422,
    "invalid-path": 422,
}


def status_for(error_type: str) -> int:
    return STATUS_BY_ERROR_TYPE.get(error_type, 500)


def _error_response(error_type: str, message: str) -> JSONResponse:
    code = validate_error_type(error_type)
    return JSONResponse(
        status_code=status_for(code),
        content={"error": {"type": code, "message": message}},
    )


def create_app(runtime: Runtime | None = None) -> FastAPI:
    app = FastAPI(
        title="cachette API",
        version=__version__,
        docs_url=None,
        redoc_url=None,
    )
    app.state.runtime = runtime
    app.state.sessions = SessionStore()

    @app.exception_handler(CachetteError)
    async def _cachette_error(request: Request, exc: CachetteError):  # noqa: D401
        metrics.inc("api_errors_total", {"type": exc.error_type})
        logger.warning("%s %s failed: %s", request.method,
                       request.url.path, exc)
        return _error_response(exc.error_type, str(exc))

    @app.exception_handler(ConfigError)
    async def _config_error(request: Request, exc: ConfigError):  # noqa: D401
        metrics.inc("api_errors_total", {"type": exc.error_type})
        return _error_response(exc.error_type, str(exc))

    @app.get("/health")
    def health(request: Request):  # noqa: D401
        rt = request.app.state.runtime
        loaded = rt.registry.loaded_keys() if rt is not None else []
        return {"status": "ok", "version": __version__, "loaded": loaded}

    @app.get("/config")
    def config(request: Request):  # noqa: D401
        return get_runtime(request).config.model_dump()

    @app.get("/metrics")
    def metrics_snapshot(request: Request):  # noqa: D401
        return metrics.snapshot() | {
            "sessions": request.app.state.sessions.stats()["sessions"]
        }

    app.include_router(models_router)
    app.include_router(query_router)
    app.include_router(sessions_router)

    @app.middleware("http")
    async def _metrics_mw(request: Request, call_next):  # noqa: D401
        start = time.time()
        labels = {"route": request.url.path, "method": request.method}
        status = 500
        try:
            response = await call_next(request)
            status = response.status_code
            return response
        finally:
            duration_ms = (time.time() - start) * 1000.0
            metrics.inc("api_request_total", labels)
            metrics.observe("api_request_latency_ms", duration_ms, labels)
            if status >= 400:
                metrics.inc(
                    "api_request_errors_total", labels | {"status": status}
                )

    return app


app = create_app()


def main() -> None:  # pragma: no cover
    import uvicorn

    from cachette.config import get_config
    from cachette.logs import configure_logging

    configure_logging(get_config().logging)
    uvicorn.run(
        "cachette_app.api.app:app", host="127.0.0.1", port=8000, reload=False
    )


if __name__ == "__main__":  # pragma: no cover
    main()
