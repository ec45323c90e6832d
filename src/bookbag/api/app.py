"""FastAPI application factory for the bookbag thinking-stream API.

All long-lived services are built here and hung on ``app.state``:
``ModelService`` (providers), ``RuleStore`` + ``RuleCache`` (marker
rules), ``SinkDispatcher`` -> ``ThinkingStore`` (thinking persistence)
and ``TPSStore``. The lifespan hook drains pending thinking saves and
unloads providers on shutdown.
"""
from __future__ import annotations

import logging
import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware

from core import metrics
from core.config import get_config
from core.llm.service import ModelService, llama_provider_factory
from core.observability import configure_logging
from core.thinking import RuleCache, RuleStore, SinkDispatcher, ThinkingSink
from bookbag.api.routes.generate import router as generate_router
from bookbag.api.routes.rules import router as rules_router
from bookbag.api.routes.thinking import router as thinking_router
from bookbag.api.routes.tps import router as tps_router
from bookbag.api.thinking_store import ThinkingStore
from bookbag.api.tps_store import TPSStore

logger = logging.getLogger("api.app")


def _default_model_service() -> ModelService:
    llm = get_config().llm
    return ModelService(
        repo_root=".",
        registry_subdir=llm.registry_dir,
        provider_factory=llama_provider_factory(
            temperature=llm.temperature,
            max_output_tokens=llm.max_output_tokens,
            n_gpu_layers=llm.n_gpu_layers,
        ),
        skip_checksum=llm.skip_checksum,
    )


def create_app(
    model_service: ModelService | None = None,
    thinking_sink: ThinkingSink | None = None,
) -> FastAPI:
    cfg = get_config()
    configure_logging(cfg.logging)

    service = model_service or _default_model_service()
    rule_store = RuleStore()
    try:
        service.seed_rules(rule_store)
    except Exception:  # noqa: BLE001
        # bad registry -> run without seeded rules, admin API can add them
        logger.exception("seeding thinking rules from registry failed")
    thinking_store = ThinkingStore()
    dispatcher = SinkDispatcher(
        thinking_sink or thinking_store,
        max_workers=cfg.thinking.persist_workers,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):  # noqa: D401
        yield
        if not dispatcher.drain(timeout=cfg.thinking.drain_timeout_s):
            logger.warning("shutdown with thinking saves still pending")
        dispatcher.shutdown()
        service.shutdown()

    app = FastAPI(
        title="bookbag API",
        version="0.1.0",
        docs_url=None,
        redoc_url=None,
        lifespan=lifespan,
    )
    app.state.model_service = service
    app.state.rule_store = rule_store
    app.state.rule_cache = RuleCache(rule_store)
    app.state.thinking_store = thinking_store
    app.state.dispatcher = dispatcher
    app.state.tps_store = TPSStore()

    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(cfg.api.cors_origins),
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/health")
    def health():  # noqa: D401
        return {"status": "ok"}

    @app.get("/config")
    def config():  # noqa: D401
        current = get_config()
        return {
            "default_model": current.llm.default_model,
            "generation_timeout_s": current.llm.generation_timeout_s,
            "max_output_tokens": current.llm.max_output_tokens,
            "thinking": {
                "enabled": current.thinking.enabled,
                "tail_window_chars": current.thinking.tail_window_chars,
            },
        }

    @app.get("/models")
    def models():  # noqa: D401
        return {"models": service.list_models()}

    @app.get("/metrics")
    def metrics_snapshot():  # noqa: D401
        if not get_config().metrics.expose_endpoint:
            raise HTTPException(status_code=404, detail="metrics-disabled")
        return metrics.snapshot()

    app.include_router(generate_router)
    app.include_router(thinking_router)
    app.include_router(rules_router)
    app.include_router(tps_router)

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
            metrics.inc("api_request_total", labels)
            metrics.observe(
                "api_request_latency_ms", (time.time() - start) * 1000.0, labels
            )
            if status >= 400:
                metrics.inc(
                    "api_request_errors_total", labels | {"status": status}
                )

    return app


app = create_app()


def main() -> None:  # pragma: no cover
    import uvicorn

    api = get_config().api
    uvicorn.run("bookbag.api.app:app", host=api.host, port=api.port, reload=False)


if __name__ == "__main__":  # pragma: no cover
    main()
