# =============================================================================
# Structured Logging Setup (JSONL format)
# =============================================================================

import json
import sys
import traceback
from contextvars import ContextVar
from pathlib import Path

import platformdirs
from loguru import logger

APP_NAME = "tmux-layout"

# Correlation ID shared by every record of one compile/freeze run
trace_id_var: ContextVar[str] = ContextVar('trace_id', default=None)

_RESERVED_EXTRAS = ("operation", "status", "trace_id", "metrics")


def json_sink(message):
    """JSONL sink - writes one JSON object per record to stderr."""
    record = message.record
    log_entry = {
        "timestamp": record["time"].strftime("%Y-%m-%dT%H:%M:%S.%f")[:-3] + "Z",
        "level": record["level"].name.lower(),
        "component": f'{record["name"]}.{record["function"]}',
        "operation": record["extra"].get("operation", "unknown"),
        "operation_status": record["extra"].get("status", None),
        "trace_id": record["extra"].get("trace_id") or trace_id_var.get(),
        "message": record["message"],
        "context": {k: v for k, v in record["extra"].items()
                    if k not in _RESERVED_EXTRAS},
        "metrics": record["extra"].get("metrics", {}),
        "error": None
    }

    if record["exception"]:
        exc_type, exc_value, exc_tb = record["exception"]
        tb_lines = []
        if exc_tb:
            tb_lines = traceback.format_tb(exc_tb)

        log_entry["error"] = {
            "type": exc_type.__name__ if exc_type else "Unknown",
            "message": str(exc_value) if exc_value else "Unknown error",
            "traceback_lines": tb_lines
        }

    sys.stderr.write(json.dumps(log_entry, default=str) + "\n")


def log_file_path() -> Path:
    """
    Location of the rotating JSONL log.

    macOS: ~/Library/Logs/tmux-layout/
    Linux: ~/.local/state/tmux-layout/log/
    """
    log_dir = Path(platformdirs.user_log_dir(appname=APP_NAME, ensure_exists=True))
    return log_dir / "tmux-layout.jsonl"


def setup_logger(level: str = "INFO", log_to_file: bool = True):
    """Configure Loguru for machine-readable JSONL output."""
    logger.remove()

    logger.add(
        json_sink,
        level=level.upper()
    )

    if log_to_file:
        logger.add(
            str(log_file_path()),
            format="{message}",
            serialize=True,
            rotation="10 MB",
            retention="7 days",
            compression="gz",
            level="DEBUG"
        )

    return logger


def configure_logging(settings: dict, log_to_file: bool = True):
    """setup_logger with the level from loaded settings (logging.level)."""
    return setup_logger(level=settings["logging"]["level"], log_to_file=log_to_file)
