"""JSON-lines logging for navireader.

Every component logs through an ``ExecutionLogger`` bound to one run's
execution id. Keyword arguments given to a log call become top-level keys of
the emitted JSON object, so a line can be filtered by ``feed_url`` or
``article_id`` without parsing the message.
"""

import json
import logging
import sys
import time
from datetime import UTC, datetime
from typing import Any, TextIO

ROOT_LOGGER = "navireader"

# Attributes every LogRecord carries; anything else was passed as context
_RECORD_ATTRIBUTES = frozenset(
    vars(logging.LogRecord("", logging.INFO, "", 0, "", (), None))
) | {"message", "asctime", "taskName"}

# Keyword arguments that logging itself understands
_LOGGING_KWARGS = frozenset({"exc_info", "stack_info", "stacklevel"})


class StructuredFormatter(logging.Formatter):
    """Render a record as one JSON object per line."""

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "timestamp": datetime.fromtimestamp(record.created, UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "source": f"{record.module}.{record.funcName}:{record.lineno}",
        }
        payload.update(
            (key, value)
            for key, value in vars(record).items()
            if key not in _RECORD_ATTRIBUTES and key not in payload
        )
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)

        return json.dumps(payload, ensure_ascii=False, default=str)


class ExecutionLogger(logging.LoggerAdapter):
    """Adapter that stamps each record with the execution id and component.

    ``logger.info("Stored", article_id="a-1")`` logs ``article_id`` as a
    context field next to ``execution_id`` and ``component``.
    """

    def __init__(self, execution_id: str, component: str = "main"):
        super().__init__(
            logging.getLogger(f"{ROOT_LOGGER}.{component}"),
            {"execution_id": execution_id, "component": component},
        )
        self._started: float | None = None

    @property
    def execution_id(self) -> str:
        return self.extra["execution_id"]

    @property
    def component(self) -> str:
        return self.extra["component"]

    def process(self, msg, kwargs):
        context = dict(self.extra)
        passthrough = {}
        for key, value in kwargs.items():
            if key in _LOGGING_KWARGS:
                passthrough[key] = value
            elif key == "extra":
                context.update(value or {})
            else:
                context[key] = value
        passthrough["extra"] = context
        return msg, passthrough

    def log_execution_start(self, **context) -> None:
        self._started = time.monotonic()
        self.info(
            f"Starting {self.component} execution",
            execution_start=datetime.now(UTC).isoformat(),
            **context,
        )

    def log_execution_end(self, success: bool = True, **context) -> None:
        """Log the end of a run with its wall time since ``log_execution_start``."""
        duration = None
        if self._started is not None:
            duration = round(time.monotonic() - self._started, 3)

        self.info(
            f"Completed {self.component} execution",
            execution_end=datetime.now(UTC).isoformat(),
            execution_duration_seconds=duration,
            execution_success=success,
            **context,
        )

    def log_feed_processing(self, feed_url: str, items_count: int, stored: int) -> None:
        self.info(
            f"Stored {stored} of {items_count} articles",
            feed_url=feed_url,
            items_count=items_count,
            items_stored=stored,
        )

    def log_item_processing(
        self, article_id: str, action: str, success: bool = True
    ) -> None:
        # Per-article lines are noise unless something went wrong
        self.log(
            logging.DEBUG if success else logging.ERROR,
            f"Article {action}: {article_id}",
            article_id=article_id,
            action=action,
            success=success,
        )

    def log_metrics(self, metrics: dict[str, Any]) -> None:
        self.info("Execution metrics", metrics=metrics)


def setup_structured_logging(
    log_level: str = "INFO", stream: TextIO | None = None
) -> None:
    """Send ``navireader.*`` records to ``stream`` (stderr by default) as JSON.

    Calling it again replaces the handler, so tests can redirect output.
    Unknown level names fall back to INFO.
    """
    logger = logging.getLogger(ROOT_LOGGER)
    logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))

    for handler in list(logger.handlers):
        logger.removeHandler(handler)

    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setFormatter(StructuredFormatter())
    logger.addHandler(handler)
    logger.propagate = False


def create_execution_logger(
    component: str, execution_id: str | None = None
) -> ExecutionLogger:
    """Return a logger for ``component``, generating an execution id if needed."""
    if not execution_id:
        execution_id = f"exec_{datetime.now(UTC):%Y%m%d_%H%M%S_%f}"
    return ExecutionLogger(execution_id, component)
