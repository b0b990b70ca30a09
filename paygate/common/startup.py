"""Startup-time helpers for safe config logging."""

import os

from paygate.common.config import GatewaySettings
from paygate.common.logging import logger


STARTUP_KEYS = [
    "SERVICE_NAME",
    "PORT",
    "NODE_ENV",
    "STRIPE_SECRET_KEY",
    "STRIPE_WEBHOOK_SECRET",
    "CORS_ORIGINS",
    "RATE_LIMIT_MAX",
    "RATE_LIMIT_WINDOW_SECONDS",
    "RATE_LIMIT_REDIS_URL",
    "METRICS_ENABLED",
    "OTEL_EXPORTER_OTLP_ENDPOINT",
]


def _safe_env(name: str) -> str:
    """Return env value with simple redaction for secret-like variable names."""

    value = os.getenv(name)
    if value is None:
        return "<unset>"
    if any(secret in name for secret in ["KEY", "SECRET", "PASSWORD", "TOKEN"]):
        return "<redacted>"
    if name.endswith("REDIS_URL") and "@" in value:
        return "<redacted>"
    return value


def log_startup_config(service_name: str, keys: list[str]) -> None:
    """Log selected startup config keys for quick troubleshooting."""

    config = {"service": service_name}
    for key in keys:
        config[key] = _safe_env(key)
    logger.info("startup_config=%s", config)


def log_server_banner(config: GatewaySettings) -> None:
    """Log listen address, environment and CORS allow-list once the app starts."""

    logger.info("server_running port=%s", config.port)
    logger.info("environment=%s", config.environment)
    logger.info("cors_enabled origins=%s", config.cors_origins)
    if not config.stripe_secret_key:
        logger.warning("stripe_secret_key_missing provider calls will fail")
    if not config.stripe_webhook_secret:
        logger.warning("stripe_webhook_secret_missing webhook verification will fail")
