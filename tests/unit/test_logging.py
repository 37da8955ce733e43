from __future__ import annotations

import json
import logging

from release_pilot.core.logging import (
    CustomJsonFormatter,
    RunContextFilter,
    run_id_ctx,
    setup_logging,
    stage_ctx,
)


def _record(message: str) -> logging.LogRecord:
    return logging.LogRecord(
        name="release_pilot.engine.pipeline",
        level=logging.INFO,
        pathname=__file__,
        lineno=10,
        msg=message,
        args=(),
        exc_info=None,
    )


def test_json_formatter_includes_run_context() -> None:
    formatter = CustomJsonFormatter(fmt="%(timestamp)s %(level)s %(name)s %(message)s")
    record = _record("Starting build_step")

    run_token = run_id_ctx.set("abc123")
    stage_token = stage_ctx.set("build_step")
    try:
        RunContextFilter().filter(record)
    finally:
        stage_ctx.reset(stage_token)
        run_id_ctx.reset(run_token)

    payload = json.loads(formatter.format(record))

    assert payload["message"] == "Starting build_step"
    assert payload["level"] == "INFO"
    assert payload["run_id"] == "abc123"
    assert payload["stage"] == "build_step"


def test_setup_logging_installs_single_handler(make_config) -> None:
    root = logging.getLogger()
    saved_handlers, saved_level = root.handlers[:], root.level
    try:
        setup_logging(make_config(log_format="json", log_level="debug"))

        assert len(root.handlers) == 1
        assert isinstance(root.handlers[0].formatter, CustomJsonFormatter)
        assert root.level == logging.DEBUG
        assert logging.getLogger("httpx").level == logging.WARNING
    finally:
        root.handlers[:] = saved_handlers
        root.setLevel(saved_level)
