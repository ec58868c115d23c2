"""
Structured logging configuration.
Uses structlog for JSON logs in production and readable console logs in development.
Standard-library loggers used by the core modules are routed through the same renderer.
"""

import logging
import sys
from typing import Optional

import structlog

_configured = False


def setup_logging(level: str = "INFO", log_format: str = "text", environment: str = "development") -> None:
    """
    Configure standard logging and structlog once per process.

    Args:
        level: Log level name (DEBUG, INFO, ...)
        log_format: "json"/"structured" for JSON lines, anything else for console output
        environment: "production" forces JSON output
    """
    global _configured

    use_json_logs = log_format.lower() in ("json", "structured") or environment == "production"

    pre_chain = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
    ]
    renderer = structlog.processors.JSONRenderer() if use_json_logs else structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())

    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=pre_chain,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
    )
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)

    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(getattr(logging, level.upper(), logging.INFO))

    # Quiet chatty libraries
    logging.getLogger("urllib3").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.UnicodeDecoder(),
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )
    _configured = True


def bind_run_context(session_id: Optional[str] = None, period: Optional[str] = None) -> None:
    """Attach run-level fields to every structured log line of this context."""
    structlog.contextvars.clear_contextvars()
    fields = {k: v for k, v in (("session_id", session_id), ("period", period)) if v}
    if fields:
        structlog.contextvars.bind_contextvars(**fields)


# Get a configured logger
def get_logger(name: str = None) -> structlog.stdlib.BoundLogger:
    """Get a pre-configured structlog logger."""
    return structlog.get_logger(name)
