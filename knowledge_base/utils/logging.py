"""structlog wiring for the service, the CLI and the third-party libraries below them.

Console output is colourised for development.  Production (``APP_ENV=production``)
or an explicit ``json_output=True`` switches to one JSON object per line.  The
stdlib root logger is pointed at the same processor chain so uvicorn, chromadb,
httpx and boto3 records render the same way as our own events.
"""

import logging
import os
import sys

import structlog

# AWS SDK and its HTTP stack log every request at INFO.
_QUIET_LOGGERS = ("botocore", "boto3", "urllib3")


def _pre_chain() -> list[structlog.types.Processor]:
    # merge_contextvars leads so bound processing_id / tenant_id reach every line.
    return [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.dev.set_exc_info,
        structlog.processors.TimeStamper(fmt="iso"),
    ]


def _route_stdlib(level: str, renderer: structlog.types.Processor) -> None:
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                *_pre_chain(),
                renderer,
            ],
        )
    )
    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def configure_logging(log_level: str = "INFO", json_output: bool = False) -> structlog.BoundLogger:
    """Install the structlog configuration and return a root logger.

    Args:
        log_level: Minimum level name, case-insensitive.
        json_output: Emit JSON even outside production.
    """
    level = log_level.upper()
    as_json = json_output or os.environ.get("APP_ENV", "development") == "production"
    renderer: structlog.types.Processor = (
        structlog.processors.JSONRenderer() if as_json else structlog.dev.ConsoleRenderer(colors=True)
    )

    structlog.configure(
        processors=[*_pre_chain(), renderer],
        wrapper_class=structlog.make_filtering_bound_logger(logging.getLevelName(level)),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )
    _route_stdlib(level, renderer)
    return structlog.get_logger()


def get_logger(name: str) -> structlog.BoundLogger:
    """Named logger; falls back to the default configuration if none is installed yet."""
    if not structlog.is_configured():
        configure_logging()
    return structlog.get_logger(logger_name=name)
