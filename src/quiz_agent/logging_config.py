"""Console logging setup (text or JSON) with a per-run correlation id."""

import logging
import sys
from contextvars import ContextVar
from typing import Optional

from pythonjsonlogger.json import JsonFormatter


# Set to the workflow run_id; propagates into asyncio tasks spawned by the run
correlation_id: ContextVar[Optional[str]] = ContextVar("correlation_id", default=None)


class RunContextFilter(logging.Filter):
    """Attach the current run id to every record as ``run_id``."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.run_id = correlation_id.get() or "-"
        return True


class JSONFormatter(JsonFormatter):
    """JSON formatter that adds run id and source location fields."""

    def add_fields(self, log_record, record, message_dict):
        super().add_fields(log_record, record, message_dict)

        run_id = correlation_id.get()
        if run_id:
            log_record["run_id"] = run_id

        log_record["timestamp"] = self.formatTime(record, self.datefmt)
        log_record["level"] = record.levelname
        log_record["logger"] = record.name
        log_record["function"] = record.funcName
        log_record["line"] = record.lineno

        if record.exc_info:
            log_record["exception"] = self.formatException(record.exc_info)


def configure_logging(
    log_level: str = "INFO",
    log_format: str = "text",
    module_levels: Optional[dict[str, str]] = None,
) -> None:
    """
    Configure root logging.

    Args:
        log_level:     default level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_format:    "json" for structured records, "text" for development
        module_levels: per-logger overrides, e.g. {"quiz_agent.nodes": "DEBUG"}
    """
    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.setLevel(getattr(logging, log_level.upper()))

    handler = logging.StreamHandler(sys.stdout)
    handler.addFilter(RunContextFilter())

    if log_format.lower() == "json":
        formatter = JSONFormatter(
            fmt="%(timestamp)s %(level)s %(name)s %(message)s",
            datefmt="%Y-%m-%dT%H:%M:%S",
        )
    else:
        formatter = logging.Formatter(
            fmt="%(asctime)s [%(name)s] [run=%(run_id)s] %(levelname)s: %(message)s",
            datefmt="%H:%M:%S",
        )

    handler.setFormatter(formatter)
    root_logger.addHandler(handler)

    if module_levels:
        for module_name, level in module_levels.items():
            logging.getLogger(module_name).setLevel(getattr(logging, level.upper()))

    logging.getLogger(__name__).info(
        "Logging configured",
        extra={"log_level": log_level, "log_format": log_format},
    )
