"""Payment gateway entrypoint.

Thin HTTP front for the payment provider: CORS, rate limiting and security
headers around a fixed set of routes that validate input, call the provider
and relay a normalized JSON response.
"""

from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from paygate.common.config import GatewaySettings, settings
from paygate.common.errors import register_exception_handlers
from paygate.common.logging import configure_logging
from paygate.common.metrics import metrics_response
from paygate.common.middleware import (
    BodySizeLimitMiddleware,
    PreflightMiddleware,
    RateLimitMiddleware,
    RequestContextMiddleware,
    SecurityHeadersMiddleware,
    UnhandledErrorMiddleware,
)
from paygate.common.rate_limit import InMemoryRateLimiter, RedisRateLimiter
from paygate.common.startup import STARTUP_KEYS, log_server_banner, log_startup_config
from paygate.common.tracing import instrument_app, setup_tracing, tracing_enabled
from paygate.services.gateway.routes import WEBHOOK_PATH, router
from paygate.services.gateway.service import GatewayService
from paygate.services.gateway.webhooks import WebhookDispatcher
from paygate.services.provider.base import PaymentProvider
from paygate.services.provider.stripe_gateway import StripeGateway


def build_rate_limiter(config: GatewaySettings):
    if config.rate_limit_redis_url:
        return RedisRateLimiter.from_url(
            config.rate_limit_redis_url,
            config.rate_limit_max,
            config.rate_limit_window_seconds,
        )
    return InMemoryRateLimiter(config.rate_limit_max, config.rate_limit_window_seconds)


def create_app(
    config: GatewaySettings | None = None,
    provider: PaymentProvider | None = None,
    rate_limiter=None,
    dispatcher: WebhookDispatcher | None = None,
) -> FastAPI:
    """Build the gateway app; collaborators default to ones derived from `config`."""

    config = config or settings
    provider = provider or StripeGateway.from_settings(config)
    rate_limiter = rate_limiter or build_rate_limiter(config)

    @asynccontextmanager
    async def lifespan(_: FastAPI):
        """Log the startup banner and release provider/limiter resources on exit."""

        log_server_banner(config)
        yield
        await provider.close()
        await rate_limiter.close()

    app = FastAPI(title="Payment Gateway", lifespan=lifespan)
    app.state.settings = config
    app.state.provider = provider
    app.state.rate_limiter = rate_limiter
    app.state.gateway_service = GatewayService(provider)
    app.state.webhook_dispatcher = dispatcher or WebhookDispatcher()

    register_exception_handlers(app, config)

    # Added innermost first; the last one added wraps all the others.
    app.add_middleware(
        BodySizeLimitMiddleware,
        max_body_bytes=config.max_body_bytes,
        raw_paths={WEBHOOK_PATH: config.webhook_max_body_bytes},
    )
    app.add_middleware(RateLimitMiddleware, limiter=rate_limiter, prefix="/api")
    app.add_middleware(UnhandledErrorMiddleware, config=config)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(config.cors_origins),
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization", "X-Requested-With"],
    )
    app.add_middleware(PreflightMiddleware)
    app.add_middleware(RequestContextMiddleware, service_name=config.service_name)
    app.add_middleware(SecurityHeadersMiddleware)

    app.include_router(router)
    if config.metrics_enabled:
        app.add_api_route("/metrics", metrics_response, methods=["GET"], include_in_schema=False)

    if tracing_enabled(config):
        setup_tracing(config)
        instrument_app(app)
    return app


configure_logging()
log_startup_config(settings.service_name, STARTUP_KEYS)
app = create_app()


def run() -> None:
    """Console-script entrypoint: serve `app` on the configured port."""

    uvicorn.run(app, host=settings.host, port=settings.port, server_header=False, proxy_headers=True)


if __name__ == "__main__":
    run()
