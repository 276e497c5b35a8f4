import json
import logging
import logging.config
from datetime import datetime, timezone
from typing import Optional

from app.core.context import get_checkout_request_id, get_request_id
from app.core.settings import settings

# Structured fields callers may pass through ``extra=`` on payment log calls.
PAYMENT_FIELDS = ("application_id", "result_code", "amount")

# Third-party loggers that are noisy at INFO (httpx logs every gateway request line).
QUIET_LOGGERS = ("httpx", "httpcore", "sqlalchemy.engine", "aiosqlite")


class RequestContextFilter(logging.Filter):
    """Stamp each record with the current request id and M-Pesa checkout request id."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = get_request_id()
        record.checkout_request_id = get_checkout_request_id()
        return True


class JsonFormatter(logging.Formatter):
    """One JSON object per line, tagged with the stream it belongs to."""

    def __init__(self, stream_label: str = "transactional", service: str = "") -> None:
        super().__init__()
        self.stream_label = stream_label
        self.service = service

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "service": self.service,
            "stream": self.stream_label,
            "logger": record.name,
            "message": record.getMessage(),
            "request_id": getattr(record, "request_id", "-"),
        }
        if self.stream_label == "payments":
            payload["checkout_request_id"] = getattr(record, "checkout_request_id", "-")
            for field in PAYMENT_FIELDS:
                if hasattr(record, field):
                    payload[field] = getattr(record, field)
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


def _stream_handler(formatter: str, level: str) -> dict:
    return {
        "class": "logging.StreamHandler",
        "level": level,
        "formatter": formatter,
        "filters": ["request_context"],
        "stream": "ext://sys.stdout",
    }


def configure_logging(level: Optional[str] = None) -> None:
    """Route application logs to stdout as JSON; ``app.payments`` gets its own stream."""
    log_level = (level or settings.log_level).upper()
    loggers = {
        "": {"handlers": ["default"], "level": log_level, "propagate": False},
        "app.payments": {"handlers": ["payments"], "level": log_level, "propagate": False},
    }
    for name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
        loggers[name] = {"handlers": ["default"], "level": log_level, "propagate": False}
    for name in QUIET_LOGGERS:
        loggers[name] = {"level": "WARNING"}

    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "filters": {"request_context": {"()": RequestContextFilter}},
            "formatters": {
                "json": {
                    "()": JsonFormatter,
                    "stream_label": "transactional",
                    "service": settings.service_name,
                },
                "payments_json": {
                    "()": JsonFormatter,
                    "stream_label": "payments",
                    "service": settings.service_name,
                },
            },
            "handlers": {
                "default": _stream_handler("json", log_level),
                "payments": _stream_handler("payments_json", log_level),
            },
            "loggers": loggers,
        }
    )
    logging.getLogger(__name__).info(
        "Logging configured for environment=%s daraja_environment=%s",
        settings.environment,
        settings.daraja_environment,
    )
