"""Run-scoped logging helpers.

Records emitted by the engine carry a `run_id` attribute so that
interleaved runs in one process can be told apart.
"""

from __future__ import annotations

import logging

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s %(levelname)s [run_id=%(run_id)s] %(name)s: %(message)s"


class RunIdFilter(logging.Filter):
    """Ensure every log record has a run_id attribute."""

    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "run_id"):
            record.run_id = "system"
        return True


def configure_logging(level: str | int = logging.INFO) -> None:
    logging.basicConfig(level=level, format=LOG_FORMAT)
    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    for handler in root_logger.handlers:
        if not any(isinstance(existing, RunIdFilter) for existing in handler.filters):
            handler.addFilter(RunIdFilter())


def log_run(run_id: str, message: str, *args: object, level: int = logging.INFO) -> None:
    logger.log(level, message, *args, extra={"run_id": run_id})


__all__ = ["LOG_FORMAT", "RunIdFilter", "configure_logging", "log_run"]
