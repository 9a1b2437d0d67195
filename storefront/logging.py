import logging
import json
import os
import re
from typing import Any, Dict
from opentelemetry.trace import get_current_span


REDACTED = "[REDACTED]"

SENSITIVE_KEYS = {
    "password",
    "password_hash",
    "token",
    "access",
    "access_token",
    "refresh",
    "refresh_token",
    "email",
    "client_secret",
    "card_number",
    "cvv",
    "expiry_date",
    "mobile_number",
}

# 13-19 digit card numbers, optionally grouped by spaces or dashes
_PAN_RE = re.compile(r"\b(?:\d[ -]?){12,18}\d\b")
_CLIENT_SECRET_RE = re.compile(r"\b(pi_[A-Za-z0-9]+)_secret_[A-Za-z0-9]+\b")


def _request_value(name: str) -> str:
    try:
        from flask import g
        return getattr(g, name, None) or "n/a"
    except RuntimeError:
        # outside an app context
        return "n/a"


class RequestContextFilter(logging.Filter):
    """Stamp each record with the request id and the authenticated user id."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = _request_value("request_id")
        record.user_id = _request_value("user_id")
        return True


def current_trace_ids():
    span = get_current_span()
    ctx = span.get_span_context() if span else None
    if not ctx or not ctx.is_valid:
        return "n/a", "n/a"
    return format(ctx.trace_id, "032x"), format(ctx.span_id, "016x")


class TraceIdFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        record.trace_id, record.span_id = current_trace_ids()
        return True


def mask_sensitive(data: Dict[str, Any]) -> Dict[str, Any]:
    """Return a copy of ``data`` with sensitive keys redacted at any depth."""
    masked = {}
    for key, value in data.items():
        if key in SENSITIVE_KEYS:
            masked[key] = REDACTED
        elif isinstance(value, dict):
            masked[key] = mask_sensitive(value)
        else:
            masked[key] = value
    return masked


def scrub_text(text: str) -> str:
    """Redact card numbers and payment-intent client secrets from free text."""
    text = _PAN_RE.sub(REDACTED, text)
    return _CLIENT_SECRET_RE.sub(r"\1_secret_" + REDACTED, text)


class MaskingFilter(logging.Filter):
    """Redact sensitive payloads, except DEBUG records outside production."""

    def filter(self, record: logging.LogRecord) -> bool:
        env = os.getenv("APP_ENV", "development").lower()
        if record.levelno == logging.DEBUG and env != "production":
            return True
        if isinstance(record.msg, dict):
            record.msg = mask_sensitive(record.msg)
        elif isinstance(record.msg, str):
            record.msg = scrub_text(record.msg)
        if isinstance(record.args, dict):
            record.args = mask_sensitive(record.args)
        elif isinstance(record.args, tuple):
            record.args = tuple(scrub_text(a) if isinstance(a, str) else a for a in record.args)
        return True


class JsonFormatter(logging.Formatter):
    FIELDS = ("request_id", "user_id", "trace_id", "span_id")

    def format(self, record: logging.LogRecord) -> str:  # type: ignore[override]
        base = {
            "time": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "name": record.name,
        }
        for field in self.FIELDS:
            base[field] = getattr(record, field, "n/a")
        if isinstance(record.msg, dict):
            base.update(record.msg)
        else:
            base["message"] = record.getMessage()
        if record.exc_info:
            base["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(base, default=str)


def _level_for(app) -> int:
    level_name = os.getenv("LOG_LEVEL")
    if level_name:
        return getattr(logging, level_name.upper(), logging.INFO)
    return logging.DEBUG if app.config.get("DEBUG") else logging.INFO


def configure_logging(app) -> None:
    handler = logging.StreamHandler()
    handler.setFormatter(JsonFormatter(datefmt="%Y-%m-%dT%H:%M:%S%z"))
    handler.addFilter(RequestContextFilter())
    handler.addFilter(TraceIdFilter())
    handler.addFilter(MaskingFilter())

    level = _level_for(app)
    app.logger.handlers.clear()
    app.logger.addHandler(handler)
    app.logger.setLevel(level)

    root = logging.getLogger()
    if not any(isinstance(h, logging.StreamHandler) for h in root.handlers):
        root.addHandler(handler)
    root.setLevel(level)

    wl = logging.getLogger("werkzeug")
    wl.setLevel(level)
    wl.handlers.clear()
    wl.addHandler(handler)

    # the stripe SDK logs full request bodies at INFO
    logging.getLogger("stripe").setLevel(max(level, logging.WARNING))
