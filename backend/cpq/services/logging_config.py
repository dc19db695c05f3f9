"""
Log output for the CPQ pricing service.

JSON lines in production (one object per record, Hebrew kept readable),
plain text for local development.  Engines attach context through
``extra={...}``; only the keys listed in ``CONTEXT_FIELDS`` reach the output.
"""
import logging
import json
import sys
from datetime import datetime, timezone

CONTEXT_FIELDS = (
    "request_id",
    "quotation_id",
    "team_id",
    "assembly_id",
    "operation",
    "duration_ms",
    "error_type",
    "http_method",
    "http_path",
    "http_status",
)

TEXT_FORMAT = "%(asctime)s %(levelname)-7s %(name)s: %(message)s"

# Third-party loggers kept at WARNING
QUIET_LOGGERS = ("uvicorn.access", "httpcore", "httpx", "sqlalchemy.engine")


class JSONFormatter(logging.Formatter):

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "location": f"{record.module}.{record.funcName}:{record.lineno}",
        }
        payload.update(
            (field, getattr(record, field)) for field in CONTEXT_FIELDS if hasattr(record, field)
        )
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False, default=str)


def setup_logging(level: str = "INFO", json_output: bool = True) -> None:
    """Replace the root handlers with a single stdout handler."""
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JSONFormatter() if json_output else logging.Formatter(TEXT_FORMAT))

    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(getattr(logging, level.upper(), logging.INFO))

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
