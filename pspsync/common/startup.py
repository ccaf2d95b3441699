"""Startup-time helpers for safe config logging."""

from pydantic_settings import BaseSettings

from pspsync.common.logging import logger


SECRET_MARKERS = ("secret", "password", "token", "hmac_key")


def _safe_value(name: str, value: object) -> object:
    """Redact values of secret-like settings, keeping whether they are set."""

    if any(marker in name for marker in SECRET_MARKERS):
        return "<redacted>" if value else "<unset>"
    return value


def log_startup_config(settings: BaseSettings, fields: list[str]) -> dict[str, object]:
    """Log the effective value of selected settings for quick troubleshooting."""

    config = {name: _safe_value(name, getattr(settings, name)) for name in fields}
    logger.info("startup_config=%s", config)
    return config
