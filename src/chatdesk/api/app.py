"""FastAPI application factory for the chat desk API.

Endpoints: /health, /config, /metrics, POST /api/chat, /sessions/*, /quota.
One SessionStore + QuotaMonitor + ChatService per app instance, built from
the aggregated config unless passed in explicitly (tests inject fakes).
"""
from __future__ import annotations

import logging
import pathlib
import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware

from chatcore import __version__, metrics
from chatcore.config import AggregatedConfig, get_config
from chatcore.llm.factory import build_provider
from chatcore.llm.provider import ModelProvider
from chatcore.log import setup_logging
from chatcore.orchestration import ChatOrchestrator
from chatcore.service import ChatService
from chatcore.sessions import (
    JsonFileStorage,
    QuotaLimits,
    QuotaMonitor,
    QuotaPolicy,
    SessionStore,
)
from chatcore.sessions.persistence import KeyValueStorage
from chatcore.tools import ActionExecutor, build_default_executor
from chatdesk.api.routes.chat import router as chat_router
from chatdesk.api.routes.sessions import router as sessions_router

logger = logging.getLogger("chatdesk.api")


def _route_label(request: Request) -> str:
    # template path, e.g. /sessions/{session_id}
    route = request.scope.get("route")
    path = getattr(route, "path", None)
    return path if isinstance(path, str) else "unmatched"


def create_app(
    config: AggregatedConfig | None = None,
    *,
    provider: ModelProvider | None = None,
    executor: ActionExecutor | None = None,
    storage: KeyValueStorage | None = None,
    start_monitor: bool = True,
) -> FastAPI:
    cfg = config or get_config()
    setup_logging(cfg.logging)

    if storage is None and cfg.ui.storage_path:
        storage = JsonFileStorage(pathlib.Path(cfg.ui.storage_path))
    store = SessionStore(
        QuotaLimits.from_config(cfg.quota.limits),
        storage=storage,
        storage_key=cfg.ui.storage_key,
        layout_mode=cfg.ui.layout_mode,
    )
    store.load()
    monitor = QuotaMonitor(store, QuotaPolicy.from_config(cfg.quota.policy))
    executor = executor or build_default_executor()
    orchestrator = ChatOrchestrator(
        provider or build_provider(cfg.llm),
        executor,
        executor.registry,
        default_model=cfg.llm.model,
        max_tokens=cfg.llm.max_tokens,
        max_parallel_tools=cfg.llm.max_parallel_tools,
    )
    service = ChatService(
        store, orchestrator, monitor, turn_timeout_s=cfg.llm.turn_timeout_s
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if start_monitor:
            monitor.start()
        try:
            yield
        finally:
            monitor.stop()
            await orchestrator.provider.aclose()

    app = FastAPI(
        title="Chat Desk API",
        version=__version__,
        docs_url=None,
        redoc_url=None,
        lifespan=lifespan,
    )
    app.state.config = cfg
    app.state.store = store
    app.state.monitor = monitor
    app.state.chat_service = service

    # Dev CORS (widget served from the host app)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/health")
    def health():  # noqa: D401
        return {"status": "ok", "version": __version__}

    @app.get("/config")
    def config_view():  # noqa: D401
        """Non-secret settings the widget needs to render itself."""
        limits = cfg.quota.limits
        return {
            "model": cfg.llm.model,
            "max_tokens": cfg.llm.max_tokens,
            "layout_mode": store.layout_mode,
            "limits": {
                "max_storage_size_bytes": limits.max_storage_size_bytes,
                "max_sessions": limits.max_sessions,
                "max_messages_per_session": limits.max_messages_per_session,
                "max_attachment_size_bytes": limits.max_attachment_size_bytes,
            },
        }

    @app.get("/metrics")
    def metrics_view():  # noqa: D401
        if not cfg.metrics.expose_endpoint:
            raise HTTPException(status_code=404, detail="metrics disabled")
        return metrics.snapshot()

    app.include_router(chat_router)
    app.include_router(sessions_router)

    @app.middleware("http")
    async def _metrics_mw(request: Request, call_next):  # noqa: D401
        start = time.time()
        status = 500
        try:
            response = await call_next(request)
            status = response.status_code
            return response
        finally:
            labels = {"route": _route_label(request), "method": request.method}
            metrics.inc("api_request_total", labels)
            metrics.observe(
                "api_request_latency_ms", (time.time() - start) * 1000.0, labels
            )
            if status >= 400:
                metrics.inc("api_request_errors_total", labels | {"status": status})

    logger.info(
        "app created model=%s sessions_loaded=%d", cfg.llm.model, len(store)
    )
    return app


def main() -> None:  # pragma: no cover
    import uvicorn

    uvicorn.run(
        "chatdesk.api.app:create_app",
        factory=True,
        host="127.0.0.1",
        port=8000,
        reload=False,
    )


if __name__ == "__main__":  # pragma: no cover
    main()
