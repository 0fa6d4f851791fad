"""Logging configuration based on environment."""

import logging
import sys
from contextvars import ContextVar

from sealedlove.config import settings

# Development format: cleaner
DEV_FORMAT = "%(levelname)s:     [%(request_id)s] %(name)s - %(message)s"

# Production format: full details for debugging
PROD_FORMAT = "%(asctime)s - [%(request_id)s] %(name)s - %(levelname)s - %(message)s"

# Context variable for request ID - accessible from anywhere in the request
request_id_var: ContextVar[str | None] = ContextVar("request_id", default=None)


def get_request_id() -> str | None:
    """Get the current request ID from context.

    Can be called from anywhere during request processing to get the
    correlation ID for logging.
    """
    return request_id_var.get()


class RequestContextFilter(logging.Filter):
    """Logging filter that adds request_id to all log records."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = get_request_id() or "-"
        return True


def get_uvicorn_log_config() -> dict:
    """Get uvicorn log config based on environment."""
    is_dev = settings.is_development

    return {
        "version": 1,
        "disable_existing_loggers": False,
        "filters": {
            "request_context": {"()": "sealedlove.logging.RequestContextFilter"},
        },
        "formatters": {
            "access": {
                # Use uvicorn's custom formatter with appropriate format
                "()": "uvicorn.logging.AccessFormatter",
                "fmt": '%(levelprefix)s "%(request_line)s" %(status_code)s' if is_dev
                else '%(levelprefix)s %(client_addr)s - "%(request_line)s" %(status_code)s',
            },
            "default": {
                "()": "uvicorn.logging.DefaultFormatter",
                "fmt": "%(levelprefix)s [%(request_id)s] %(message)s" if is_dev
                else "%(asctime)s %(levelprefix)s [%(request_id)s] %(message)s",
            },
        },
        "handlers": {
            "access": {
                "class": "logging.StreamHandler",
                "formatter": "access",
                "stream": "ext://sys.stdout",
            },
            "default": {
                "class": "logging.StreamHandler",
                "formatter": "default",
                "filters": ["request_context"],
                "stream": "ext://sys.stdout",
            },
        },
        "loggers": {
            "uvicorn.access": {
                "handlers": ["access"],
                "level": "INFO",
                "propagate": False,
            },
            "uvicorn.error": {
                "handlers": ["default"],
                "level": "INFO",
                "propagate": False,
            },
        },
        "root": {
            "handlers": ["default"],
            "level": settings.log_level,
        },
    }


def setup_logging() -> None:
    """Configure logging for the application."""
    is_dev = settings.is_development
    log_format = DEV_FORMAT if is_dev else PROD_FORMAT

    handler = logging.StreamHandler(sys.stdout)
    handler.addFilter(RequestContextFilter())
    handler.setFormatter(logging.Formatter(log_format))

    logging.basicConfig(
        level=getattr(logging, settings.log_level),
        handlers=[handler],
    )

    # Quiet noisy loggers
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("aiosmtplib").setLevel(logging.WARNING)
