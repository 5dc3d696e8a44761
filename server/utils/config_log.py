from __future__ import annotations
import contextvars
import logging
import os
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parent.parent
LOG_DIR = Path(os.getenv("LOG_DIR", BASE_DIR / "logs"))
LOG_DIR.mkdir(parents=True, exist_ok=True)

APP_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
DJANGO_LEVEL = os.getenv("DJANGO_LOG_LEVEL", "INFO").upper()
SQL_DEBUG = os.getenv("SQL_LOG", "0") == "1"

# Project apps routed to console + app/error files.
APP_PACKAGES = ("users", "progress", "library", "questions", "community", "assistant", "utils", "celery")

request_id_ctx: contextvars.ContextVar[str] = contextvars.ContextVar("request_id", default="-")


class RequestIDFilter(logging.Filter):
    """Stamp the current request id on every record."""
    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = request_id_ctx.get("-")
        return True


SECRET_NAMES = frozenset({
    "password", "current_password", "new_password", "access", "refresh", "token",
    "authorization", "secret", "api_key", "gemini_api_key", "cookie", "cookies",
})
MASKED_EXTRAS = ("body", "payload", "params", "data", "headers", "query", "cookies")


def mask_secrets(value, depth=0):
    if depth > 3:
        return "<deep>"
    if isinstance(value, dict):
        return {
            k: "***" if str(k).lower() in SECRET_NAMES else mask_secrets(v, depth + 1)
            for k, v in value.items()
        }
    if isinstance(value, (list, tuple)):
        return [mask_secrets(item, depth + 1) for item in list(value)[:50]]
    return value


class MaskSecretsFilter(logging.Filter):
    """
    Replace credential-looking keys in `extra={...}` payloads and in
    dict/tuple `args` before any handler formats the record.
    """
    def filter(self, record: logging.LogRecord) -> bool:
        for name in MASKED_EXTRAS:
            if hasattr(record, name):
                setattr(record, name, mask_secrets(getattr(record, name)))
        if isinstance(record.args, dict):
            record.args = mask_secrets(record.args)
        elif isinstance(record.args, tuple):
            record.args = tuple(mask_secrets(a) for a in record.args)
        return True


def _rotating(filename: str, level: str, backups: int = 5, masked: bool = True) -> dict:
    return {
        "class": "logging.handlers.RotatingFileHandler",
        "level": level,
        "formatter": "verbose",
        "filters": ["request_id", "mask"] if masked else ["request_id"],
        "filename": str(LOG_DIR / filename),
        "maxBytes": 10 * 1024 * 1024,
        "backupCount": backups,
        "encoding": "utf-8",
    }


_APP_HANDLERS = ["console", "app_file", "error_file"]

LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "filters": {
        "request_id": {"()": RequestIDFilter},
        "mask": {"()": MaskSecretsFilter},
    },
    "formatters": {
        "verbose": {
            "format": "[%(asctime)s] [%(levelname)s] [%(name)s] [req=%(request_id)s] %(message)s",
            "datefmt": "%Y-%m-%d %H:%M:%S",
        },
    },
    "handlers": {
        "console": {
            "class": "logging.StreamHandler",
            "level": APP_LEVEL,
            "formatter": "verbose",
            "filters": ["request_id", "mask"],
        },
        "app_file": _rotating("app.log", APP_LEVEL),
        "error_file": _rotating("error.log", "ERROR"),
        # only receives records when SQL_LOG=1
        "sql_file": _rotating("sql.log", "DEBUG", backups=3, masked=False),
    },
    "loggers": {
        **{name: {"handlers": _APP_HANDLERS, "level": APP_LEVEL, "propagate": False} for name in APP_PACKAGES},
        "django": {"handlers": _APP_HANDLERS, "level": DJANGO_LEVEL, "propagate": False},
        "django.request": {"handlers": ["console", "error_file"], "level": "ERROR", "propagate": False},
        "django.db.backends": {
            "handlers": ["sql_file", "console"] if SQL_DEBUG else [],
            "level": "DEBUG" if SQL_DEBUG else "WARNING",
            "propagate": False,
        },
        "": {"handlers": _APP_HANDLERS, "level": APP_LEVEL},
    },
}
