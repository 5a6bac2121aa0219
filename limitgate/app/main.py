from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from limitgate.app.api.greeting import router as greeting_router
from limitgate.app.api.metrics import router as metrics_router
from limitgate.app.core.config import Settings, settings as default_settings
from limitgate.app.core.logging import get_logger, setup_logging
from limitgate.app.core.redis import build_counter_store
from limitgate.app.exceptions import LimitExceeded, LimitGateException
from limitgate.app.middleware.rate_limit import RateLimitMiddleware, limit_exceeded_response
from limitgate.app.middleware.request_id import RequestIdMiddleware
from limitgate.app.ratelimit.decision import RateLimitDecision
from limitgate.app.ratelimit.fallback import get_fallback_policy
from limitgate.app.ratelimit.registry import RuleRegistry
from limitgate.app.ratelimit.store import SharedCounterStore


def create_app(
    app_settings: Optional[Settings] = None,
    store: Optional[SharedCounterStore] = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Rules and the fallback policy are validated here, so a bad configuration
    raises ConfigurationError before the app ever serves a request.

    Args:
        app_settings: Settings to use, defaults to the global settings
        store: Counter store override, defaults to one built from settings

    Returns:
        Configured FastAPI application instance
    """
    cfg = app_settings or default_settings

    setup_logging()
    logger = get_logger(__name__)

    fallback = get_fallback_policy(cfg.rate_limit_fallback_policy)
    registry = RuleRegistry.from_settings(cfg.rate_limit_rules)
    counter_store = store or build_counter_store(cfg)
    decision = RateLimitDecision(counter_store, fallback=fallback)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """Application lifespan context manager.

        Checks store connectivity on startup (an unreachable store is not
        fatal; the fallback policy covers it) and closes it on shutdown.
        """
        if not await counter_store.ping():
            logger.warning(
                f"Counter store unreachable at startup; "
                f"requests will be resolved by the {fallback.name} policy"
            )

        logger.info(
            "Application startup complete",
            extra={
                "store": type(counter_store).__name__,
                "fallback_policy": fallback.name,
                "rules_loaded": len(registry),
                "debug_mode": cfg.debug,
            },
        )

        yield

        await counter_store.close()
        logger.info("Application shutdown complete")

    app = FastAPI(
        title="LimitGate",
        description="Distributed fixed-window rate limiting backed by a shared counter store",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.settings = cfg
    app.state.decision = decision
    app.state.registry = registry

    # Add middleware (order matters: last added = first executed)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cfg.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS", "PATCH"],
        allow_headers=["*"],
        expose_headers=[
            "X-Request-ID",
            "X-RateLimit-Limit",
            "X-RateLimit-Remaining",
            "X-RateLimit-Reset",
            "Retry-After",
        ],
        max_age=600,
    )

    if cfg.rate_limit_enabled:
        app.add_middleware(
            RateLimitMiddleware,
            decision=decision,
            registry=registry,
            key_prefix=cfg.rate_limit_key_prefix,
        )
    else:
        logger.warning("Rate limiting disabled by configuration")

    # Request ID middleware runs first so decision logs carry the request id
    app.add_middleware(RequestIdMiddleware)

    app.include_router(greeting_router)
    app.include_router(metrics_router)

    @app.get("/health")
    async def health() -> dict[str, Any]:
        """Health check with counter store status."""
        store_ok = await counter_store.ping()
        return {
            "status": "ok" if store_ok else "degraded",
            "components": {
                "store": {
                    "status": "ok" if store_ok else "error",
                    "type": type(counter_store).__name__,
                },
                "rate_limit": {
                    "enabled": cfg.rate_limit_enabled,
                    "fallback_policy": fallback.name,
                    "rules": len(registry),
                },
            },
        }

    @app.exception_handler(LimitGateException)
    async def limitgate_exception_handler(request: Request, exc: LimitGateException) -> JSONResponse:
        """Handle application exceptions raised from routes.

        Routes may raise LimitExceeded for limits they enforce themselves; it
        gets the same 429 rendering as a middleware deny.
        """
        if isinstance(exc, LimitExceeded):
            return limit_exceeded_response(exc)
        logger.error(f"{type(exc).__name__}: {exc.message}")
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": type(exc).__name__, "message": exc.message},
        )

    return app


app = create_app()


def run() -> None:
    """Console entry point: serve the app with uvicorn."""
    import uvicorn

    uvicorn.run("limitgate.app.main:app", host="0.0.0.0", port=8080)
