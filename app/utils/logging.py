import logging
import json
import sys
from datetime import datetime
from typing import Any, Dict, Optional
import traceback

_logging_initialized = False

_EXTRA_FIELDS = (
    "request_id", "client_ip", "user_id", "duration_ms", "status_code",
    "path", "method", "function", "job_name",
)


class StructuredFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.utcnow().isoformat() + "Z",
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "line": record.lineno
        }

        for field in _EXTRA_FIELDS:
            if hasattr(record, field):
                log_data[field] = getattr(record, field)

        if record.exc_info:
            log_data["exception"] = {
                "type": record.exc_info[0].__name__ if record.exc_info[0] else None,
                "message": str(record.exc_info[1]) if record.exc_info[1] else None,
                "traceback": "".join(traceback.format_exception(*record.exc_info))
            }

        if hasattr(record, "extra_data"):
            log_data["data"] = record.extra_data

        return json.dumps(log_data, default=str)


class RequestLogger:
    def __init__(self, logger_name: str = "app.request"):
        self.logger = logging.getLogger(logger_name)

    def log_request(
        self,
        method: str,
        path: str,
        status_code: int,
        duration_ms: float,
        client_ip: Optional[str] = None,
        user_id: Optional[str] = None,
        extra: Optional[Dict[str, Any]] = None
    ):
        level = logging.INFO if status_code < 400 else logging.WARNING if status_code < 500 else logging.ERROR

        extra_dict = {
            "method": method,
            "path": path,
            "status_code": status_code,
            "duration_ms": duration_ms
        }
        if client_ip:
            extra_dict["client_ip"] = client_ip
        if user_id:
            extra_dict["user_id"] = user_id
        if extra:
            extra_dict["extra_data"] = extra

        self.logger.log(level, f"{method} {path} - {status_code} ({duration_ms:.2f}ms)", extra=extra_dict)

    def log_function(self, function: str, duration_ms: float, ok: bool, extra: Optional[Dict[str, Any]] = None):
        """One line per edge-function invocation, successful or not."""
        level = logging.INFO if ok else logging.ERROR
        extra_dict = {"function": function, "duration_ms": duration_ms}
        if extra:
            extra_dict["extra_data"] = extra
        status = "ok" if ok else "failed"
        self.logger.log(level, f"{function} {status} ({duration_ms:.2f}ms)", extra=extra_dict)

    def log_error(
        self,
        message: str,
        exception: Optional[Exception] = None,
        path: Optional[str] = None,
        client_ip: Optional[str] = None
    ):
        extra_dict = {}
        if path:
            extra_dict["path"] = path
        if client_ip:
            extra_dict["client_ip"] = client_ip

        self.logger.error(message, exc_info=exception, extra=extra_dict)


def setup_logging(level: str = "INFO", json_format: bool = False) -> logging.Logger:
    global _logging_initialized

    app_logger = logging.getLogger("app")

    if _logging_initialized:
        return app_logger

    _logging_initialized = True

    app_logger.setLevel(getattr(logging, level.upper()))

    if not app_logger.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setLevel(getattr(logging, level.upper()))

        if json_format:
            handler.setFormatter(StructuredFormatter())
        else:
            handler.setFormatter(logging.Formatter(
                "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
            ))

        app_logger.addHandler(handler)

    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)

    return app_logger


request_logger = RequestLogger()
