import logging
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Dict

from pythonjsonlogger import jsonlogger

from meeting_scheduler.core.config import settings

# Correlation id of the HTTP request being served, set by CorrelationIdMiddleware
request_id_var: ContextVar[str] = ContextVar("request_id", default="")


class SchedulerJsonFormatter(jsonlogger.JsonFormatter):
    """One JSON object per line, tagged with service, environment and request id."""

    def add_fields(self, log_record: Dict[str, Any], record: logging.LogRecord, message_dict: Dict[str, Any]) -> None:
        super().add_fields(log_record, record, message_dict)

        log_record.setdefault("timestamp", datetime.now(timezone.utc).isoformat())
        log_record["level"] = record.levelname
        log_record["service"] = settings.app_name
        log_record["environment"] = settings.environment

        req_id = request_id_var.get()
        if req_id:
            log_record["request_id"] = req_id


def setup_logging(level: str = None):
    root = logging.getLogger()
    # Importing the app twice (tests, --reload) must not stack handlers
    if any(isinstance(h.formatter, SchedulerJsonFormatter) for h in root.handlers):
        return

    handler = logging.StreamHandler()
    handler.setFormatter(SchedulerJsonFormatter("%(timestamp) %(level) %(name) %(message)"))
    root.addHandler(handler)
    root.setLevel((level or settings.log_level).upper())

    # Library chatter
    for noisy in ("uvicorn.access", "sqlalchemy.engine", "httpx"):
        logging.getLogger(noisy).setLevel(logging.WARNING)
