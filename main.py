"""Main application entry point for the LLM relay."""

from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

import httpx
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from config import ApplicationConfig, load_config
from middleware import CorrelationMiddleware
from routers import account_router, admin_router, chat_router, health_router, metrics_router
from services import (
    AuthorizationGate,
    EntitlementStore,
    HealthMetricsService,
    InMemoryEntitlementStore,
    ProviderRegistry,
    RedisClient,
    RedisEntitlementStore,
    RelayOrchestrator,
    UpstreamClient,
)
from utils import CancellationRegistry, RelayError, configure_logging, get_logger


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan: wire services into ``app.state``."""
    config: ApplicationConfig = app.state.config or load_config()
    configure_logging(config.log_level, json_output=config.log_json)
    logger = get_logger(__name__)

    redis_client: Optional[RedisClient] = None
    store: Optional[EntitlementStore] = app.state.store
    if store is None:
        if config.entitlement_backend == "redis":
            redis_client = RedisClient(config)
            store = RedisEntitlementStore(config, redis_client)
        else:
            store = InMemoryEntitlementStore()

    providers = ProviderRegistry.from_config(config)
    upstream = UpstreamClient(config, client=app.state.http_client)
    health_metrics = HealthMetricsService(config, redis_client)

    try:
        logger.info("Starting services...", entitlement_backend=config.entitlement_backend)
        if redis_client is not None:
            await redis_client.connect()
        await upstream.start()

        app.state.config = config
        app.state.store = store
        app.state.health_metrics = health_metrics
        app.state.cancellations = CancellationRegistry()
        app.state.gate = AuthorizationGate(config, store, providers)
        app.state.relay = RelayOrchestrator(config, store, providers, upstream, health_metrics)
        logger.info("All services are running.", access_type=config.access_type)

        yield

    finally:
        logger.info("Shutting down services...")
        await upstream.stop()
        if redis_client is not None:
            await redis_client.disconnect()
        logger.info("All services stopped successfully.")


async def relay_error_handler(request: Request, exc: RelayError) -> JSONResponse:
    logger = get_logger(__name__)
    logger.info("Request rejected", path=request.url.path, status_code=exc.status_code, msg=exc.message)
    return JSONResponse(exc.to_payload(), status_code=exc.status_code)


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    msg = errors[0].get("msg", "Invalid request") if errors else "Invalid request"
    return JSONResponse({"error": True, "msg": msg}, status_code=400)


def create_app(
    config: Optional[ApplicationConfig] = None,
    store: Optional[EntitlementStore] = None,
    http_client: Optional[httpx.AsyncClient] = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    ``store`` and ``http_client`` replace the configured entitlement backend
    and the upstream HTTP client, for embedding and tests.
    """
    app = FastAPI(
        title="LLM Relay",
        description="Quota-gated relay for OpenAI, Anthropic and Google chat models",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.config = config
    app.state.store = store
    app.state.http_client = http_client

    app.add_middleware(CorrelationMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["GET", "POST", "DELETE"],
        allow_headers=["*"],
    )
    app.add_exception_handler(RelayError, relay_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)

    app.include_router(chat_router)
    app.include_router(account_router)
    app.include_router(admin_router)
    app.include_router(health_router)
    app.include_router(metrics_router)
    return app


app = create_app()

if __name__ == "__main__":
    import uvicorn

    config = load_config()
    uvicorn.run(app, host=config.server_host, port=config.server_port)
