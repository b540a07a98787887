"""
Structured logging, correlation IDs, and optional Sentry initialization.

- structlog configuration with JSON/console rendering
- request_id binding via contextvars
- sensitive data redaction (PINs, hints, tokens)
- Sentry init (if SENTRY_DSN provided)
"""
from __future__ import annotations

import hashlib
import logging
import os
import uuid
from typing import Any, Dict

import structlog

SCHEMA_VERSION = "1.0"

LOGGER = logging.getLogger(__name__)

# מפתחות PIN: התאמה לשם המלא בלבד
_SENSITIVE_EXACT_KEYS = {"pin", "pin_hash", "pin_hint", "hint", "current_pin", "new_pin", "confirm_pin"}
_SENSITIVE_KEYS = {"token", "password", "secret", "authorization", "cookie"}

# Guard to avoid double Sentry initialization in multi-import scenarios
_SENTRY_INIT_DONE = False
_SENTRY_DSN_USED: str | None = None


def _redact_sensitive(logger, method, event_dict: Dict[str, Any]):
    try:
        for key in list(event_dict.keys()):
            if key == "event":
                continue
            try:
                lowered = key.lower()
                if lowered in _SENSITIVE_EXACT_KEYS or any(s in lowered for s in _SENSITIVE_KEYS):
                    event_dict[key] = "[REDACTED]"
            except Exception:
                continue
    except Exception:
        return event_dict
    return event_dict


def _add_schema_version(logger, method, event_dict: Dict[str, Any]):
    event_dict.setdefault("schema_version", SCHEMA_VERSION)
    return event_dict


def _choose_renderer():
    debug = str(os.getenv("DEBUG", "")).lower() in {"1", "true", "yes"}
    fmt = (os.getenv("LOG_FORMAT") or "").lower().strip()
    if debug or fmt == "console":
        return structlog.dev.ConsoleRenderer()
    return structlog.processors.JSONRenderer()


def _hash_identifier(raw: Any) -> str:
    try:
        if raw is None:
            return ""
        text = str(raw).strip()
    except Exception:
        text = ""
    if not text:
        return ""
    return hashlib.sha256(text.encode("utf-8", "ignore")).hexdigest()[:16]


def setup_structlog_logging(min_level: str | int = "INFO") -> None:
    level = logging.getLevelName(min_level.upper()) if isinstance(min_level, str) else int(min_level)
    if not isinstance(level, int):
        level = logging.INFO

    if not logging.getLogger().handlers:
        logging.basicConfig(level=level, handlers=[logging.StreamHandler()])
    else:
        logging.getLogger().setLevel(level)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            _redact_sensitive,
            _add_schema_version,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            _choose_renderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=False,
    )


def generate_request_id() -> str:
    return str(uuid.uuid4())[:8]


def bind_request_id(request_id: str) -> None:
    structlog.contextvars.bind_contextvars(request_id=request_id)


def bind_user_context(*, user_id: Any | None = None) -> None:
    user_hash = _hash_identifier(user_id)
    if user_hash:
        structlog.contextvars.bind_contextvars(user_id=user_hash)


def clear_request_context() -> None:
    structlog.contextvars.clear_contextvars()


def get_request_id(default: str = "") -> str:
    try:
        ctx = structlog.contextvars.get_contextvars()
    except Exception:
        return default
    return str(ctx.get("request_id") or default)


def emit_event(event: str, severity: str = "info", **fields: Any) -> None:
    """Single structured event API used across repositories, services and routes."""
    logger = structlog.get_logger()
    if "user_id" in fields:
        fields["user_id"] = _hash_identifier(fields.get("user_id"))

    if severity in {"error", "critical"}:
        logger.error(event, **fields)
    elif severity in {"warn", "warning"}:
        logger.warning(event, **fields)
    else:
        logger.info(event, **fields)


def init_sentry(dsn: str | None = None, environment: str | None = None) -> bool:
    global _SENTRY_INIT_DONE, _SENTRY_DSN_USED
    dsn = dsn or os.getenv("SENTRY_DSN")
    if not dsn:
        LOGGER.info("sentry init skipped: missing DSN")
        return False
    if _SENTRY_INIT_DONE and _SENTRY_DSN_USED == dsn:
        return True

    import sentry_sdk
    from sentry_sdk.integrations.flask import FlaskIntegration
    from sentry_sdk.integrations.logging import LoggingIntegration

    def _before_send(event, hint):
        extra = event.get("extra", {})
        for k in list(extra.keys()):
            if any(s in k.lower() for s in _SENSITIVE_KEYS):
                extra[k] = "[REDACTED]"
        event["extra"] = extra
        rid = extra.get("request_id")
        if rid:
            tags = event.get("tags") or {}
            tags.setdefault("request_id", str(rid))
            event["tags"] = tags
        return event

    sentry_sdk.init(
        dsn=dsn,
        environment=str(environment or os.getenv("ENVIRONMENT") or "production"),
        traces_sample_rate=float(os.getenv("SENTRY_TRACES_SAMPLE_RATE", "0.1")),
        integrations=[
            FlaskIntegration(),
            LoggingIntegration(level=logging.INFO, event_level=logging.ERROR),
        ],
        before_send=_before_send,
    )
    _SENTRY_INIT_DONE = True
    _SENTRY_DSN_USED = dsn
    return True
