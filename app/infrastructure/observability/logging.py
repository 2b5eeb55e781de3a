"""
Structured logging for the business coach backend.

Every record is one JSON object on stdout. Request-scoped values bound by
RequestContextMiddleware (the request id, and the account id once a route
has authenticated) are merged into each line.
"""

import logging
import sys
from typing import Any

import structlog
from structlog.stdlib import LoggerFactory

# Third-party loggers that are chatty at INFO
_QUIET_LOGGERS = ("httpx", "httpcore", "openai", "psycopg.pool", "uvicorn.access")


def setup_logging(log_level: str = "INFO", json_output: bool = True) -> None:
    renderer = structlog.processors.JSONRenderer() if json_output else structlog.dev.ConsoleRenderer()

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            _request_id_as_trace_id,
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=LoggerFactory(),
        context_class=dict,
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=log_level.upper())
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def _request_id_as_trace_id(logger, method_name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    request_id = event_dict.pop("request_id", None)
    if request_id:
        event_dict["trace_id"] = request_id
    return event_dict


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)


def log_request(method: str, path: str, status_code: int, duration_ms: float, account_id: str | None = None):
    """One access-log line per request; 4xx/5xx go out at WARNING."""
    fields: dict[str, Any] = {
        "method": method,
        "path": path,
        "status_code": status_code,
        "duration_ms": duration_ms,
    }
    if account_id:
        fields["account_id"] = account_id

    http_logger = get_logger("http")
    if status_code >= 400:
        http_logger.warning("HTTP request failed", **fields)
    else:
        http_logger.info("HTTP request completed", **fields)
