"""Structured logging configuration with JSON output and run context.

Uses python-json-logger for structured JSON logging so CI log collectors can
index release runs by run id, stage and pull request.
"""

import logging
import sys
from contextvars import ContextVar
from typing import Any

from pythonjsonlogger import jsonlogger

from release_pilot.config import Configuration

# Context variables for the release run being processed
run_id_ctx: ContextVar[str | None] = ContextVar("run_id", default=None)
stage_ctx: ContextVar[str | None] = ContextVar("stage", default=None)
pull_request_ctx: ContextVar[int | None] = ContextVar("pull_request", default=None)


class RunContextFilter(logging.Filter):
    """Log filter that adds run context to all log records."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.run_id = run_id_ctx.get()
        record.stage = stage_ctx.get()
        record.pull_request = pull_request_ctx.get()
        return True


class CustomJsonFormatter(jsonlogger.JsonFormatter):
    """Custom JSON formatter with additional fields."""

    def add_fields(
        self,
        log_record: dict[str, Any],
        record: logging.LogRecord,
        message_dict: dict[str, Any],
    ) -> None:
        super().add_fields(log_record, record, message_dict)

        log_record["timestamp"] = self.formatTime(record)
        log_record["level"] = record.levelname
        log_record["logger"] = record.name

        if getattr(record, "run_id", None):
            log_record["run_id"] = record.run_id
        if getattr(record, "stage", None):
            log_record["stage"] = record.stage
        if getattr(record, "pull_request", None) is not None:
            log_record["pull_request"] = record.pull_request

        log_record["module"] = record.module
        log_record["function"] = record.funcName
        log_record["line"] = record.lineno


def setup_logging(config: Configuration) -> None:
    """Configure logging for a release run."""
    handler = logging.StreamHandler(sys.stdout)

    if config.log_format == "json":
        formatter: logging.Formatter = CustomJsonFormatter(
            fmt="%(timestamp)s %(level)s %(name)s %(message)s",
            datefmt="%Y-%m-%dT%H:%M:%S%z",
        )
    else:
        formatter = logging.Formatter(
            fmt="%(asctime)s | %(levelname)-8s | %(stage)s | %(name)s | %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )

    handler.setFormatter(formatter)
    handler.addFilter(RunContextFilter())

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(config.log_level)

    # Reduce verbosity of third-party loggers
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)

    logging.info(
        "Logging configured",
        extra={
            "log_level": config.log_level,
            "log_format": config.log_format,
        },
    )
