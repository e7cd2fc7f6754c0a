"""
Logging configuration with rotation

Sets up:
- Console output
- Rotating file logs (application + errors only) when a log directory is set
- JSON formatting for log aggregation
- Request/response logging middleware
"""
import logging
import logging.handlers
import sys
import time
import uuid
from pathlib import Path
from typing import Optional
import json
from datetime import datetime

# Extra attributes copied into JSON records when present
JSON_EXTRA_FIELDS = (
    "request_id",
    "duration_ms",
    "status_code",
    "startup",
    "new_count",
    "deleted_count",
    "channel",
)

TEXT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


class JSONFormatter(logging.Formatter):
    """Custom JSON formatter for structured logging"""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.utcnow().isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        for field in JSON_EXTRA_FIELDS:
            if hasattr(record, field):
                log_data[field] = getattr(record, field)

        return json.dumps(log_data, default=str)


def _make_formatter(enable_json: bool) -> logging.Formatter:
    if enable_json:
        return JSONFormatter()
    return logging.Formatter(TEXT_FORMAT, datefmt=DATE_FORMAT)


def setup_logging(
    log_level: str = "INFO",
    log_dir: Optional[str] = None,
    app_name: str = "crowdsec-dashboard",
    enable_json: bool = False
):
    """
    Configure application logging

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_dir: Directory for log files. If None, only console logging is enabled.
        app_name: Application name for log files
        enable_json: Enable JSON formatting for structured logging
    """
    level = getattr(logging, log_level.upper())

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)
    console_handler.setFormatter(_make_formatter(enable_json))
    root_logger.addHandler(console_handler)

    if log_dir:
        log_path = Path(log_dir)
        log_path.mkdir(parents=True, exist_ok=True)

        app_log_file = log_path / f"{app_name}.log"
        file_handler = logging.handlers.RotatingFileHandler(
            app_log_file,
            maxBytes=10 * 1024 * 1024,  # 10MB
            backupCount=5,
            encoding="utf-8"
        )
        file_handler.setLevel(level)
        file_handler.setFormatter(_make_formatter(enable_json))
        root_logger.addHandler(file_handler)

        error_handler = logging.handlers.RotatingFileHandler(
            log_path / f"{app_name}-error.log",
            maxBytes=10 * 1024 * 1024,
            backupCount=5,
            encoding="utf-8"
        )
        error_handler.setLevel(logging.ERROR)
        error_handler.setFormatter(_make_formatter(enable_json))
        root_logger.addHandler(error_handler)

        logging.info(f"File logging enabled: {app_log_file}")

    # Reduce noise from third-party libraries
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("apscheduler.executors.default").setLevel(logging.WARNING)
    logging.getLogger("apscheduler.scheduler").setLevel(logging.WARNING)
    logging.getLogger("urllib3.connectionpool").setLevel(logging.WARNING)

    logging.info(f"Logging configured: level={log_level}, json={enable_json}")


# Polled by monitoring; logged at DEBUG to keep the request log readable
QUIET_PATHS = ("/health", "/metrics")


async def log_requests_middleware(request, call_next):
    """
    Log each HTTP request with a short request id and its duration.

    Event streams return their headers immediately and then stay open for
    the lifetime of the subscription, so for those only the opening is logged.
    """
    request_id = uuid.uuid4().hex[:8]
    request.state.request_id = request_id
    path = request.url.path

    logger = logging.getLogger("crowdsec_dashboard.requests")
    level = logging.DEBUG if path in QUIET_PATHS else logging.INFO
    client = request.client.host if request.client else None

    start_time = time.perf_counter()
    try:
        response = await call_next(request)
    except Exception as e:
        logger.error(
            f"{request.method} {path} failed: {e}",
            extra={"request_id": request_id, "duration_ms": _elapsed_ms(start_time)},
            exc_info=True
        )
        raise

    response.headers["X-Request-ID"] = request_id

    if response.headers.get("content-type", "").startswith("text/event-stream"):
        logger.info(
            f"Event stream opened: {path} from {client}",
            extra={"request_id": request_id, "channel": path.rsplit("/", 1)[-1]}
        )
        return response

    logger.log(
        level,
        f"{request.method} {path} -> {response.status_code}",
        extra={
            "request_id": request_id,
            "status_code": response.status_code,
            "duration_ms": _elapsed_ms(start_time),
        }
    )
    return response


def _elapsed_ms(start_time: float) -> float:
    return round((time.perf_counter() - start_time) * 1000, 2)
