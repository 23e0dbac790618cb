import logging
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Dict

from pythonjsonlogger import jsonlogger

from supportdesk.core.config import settings

# Set per request by the correlation middleware in main.py
request_id_var: ContextVar[str] = ContextVar("request_id", default="")


class SupportDeskJsonFormatter(jsonlogger.JsonFormatter):
    def add_fields(self, log_record: Dict[str, Any], record: logging.LogRecord, message_dict: Dict[str, Any]) -> None:
        super().add_fields(log_record, record, message_dict)

        req_id = request_id_var.get()
        if req_id:
            log_record["request_id"] = req_id

        if not log_record.get("timestamp"):
            log_record["timestamp"] = datetime.now(timezone.utc).isoformat()

        if log_record.get("level"):
            log_record["level"] = log_record["level"].upper()
        else:
            log_record["level"] = record.levelname


def setup_logging() -> None:
    root = logging.getLogger()
    # Idempotent: uvicorn --reload and the test client both re-import main.
    if any(isinstance(h.formatter, SupportDeskJsonFormatter) for h in root.handlers):
        return

    handler = logging.StreamHandler()
    handler.setFormatter(SupportDeskJsonFormatter("%(timestamp) %(level) %(name) %(message)"))
    root.addHandler(handler)
    root.setLevel(settings.LOG_LEVEL.upper())

    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
