"""
JSON formatter for structured logging.
"""
import json
import logging
from datetime import datetime, timezone

# Fields passed through ``extra=`` that end up in the JSON line.
EXTRA_FIELDS = (
    "request_id",
    "user_id",
    "method",
    "path",
    "status",
    "duration_ms",
    "order_id",
    "order_number",
    "payment_reference",
    "product_id",
    "available",
    "requested",
    "trigger",
    "previous_status",
    "from_status",
    "to_status",
    "stock_restored",
    "total",
    "subject",
    "event_id",
    "event_type",
    "operation",
    "attempt",
    "error_type",
    "error",
    "errors",
)


class JsonFormatter(logging.Formatter):
    """JSON formatter for structured logging."""

    def format(self, record):
        """Format log record as JSON."""
        log_data = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        for name in EXTRA_FIELDS:
            if hasattr(record, name):
                log_data[name] = getattr(record, name)

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, ensure_ascii=False, default=str)
