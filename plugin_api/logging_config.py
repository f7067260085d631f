import logging
import logging.config
import os
import yaml
import json
import threading
from datetime import datetime
from collections import deque
from typing import Optional
import contextvars

from .config import LOG_FORMAT, LOG_LEVEL

# Context variable for trace ID; asyncio tasks inherit it, so job logs carry the
# trace ID of the request that submitted them
trace_id_var = contextvars.ContextVar('trace_id', default=None)

_STANDARD_ATTRS = {
    'name', 'msg', 'args', 'levelname', 'levelno', 'pathname',
    'filename', 'module', 'lineno', 'funcName', 'created',
    'msecs', 'relativeCreated', 'thread', 'threadName', 'taskName',
    'processName', 'process', 'getMessage', 'exc_info',
    'exc_text', 'stack_info', 'message', 'asctime',
}

_PROMOTED_ATTRS = {'method', 'path', 'status', 'latency_ms', 'client_ip',
                   'tenant_id', 'job_id', 'component'}

def get_trace_id() -> Optional[str]:
    """Get the current trace ID from context"""
    return trace_id_var.get()

class JsonFormatter(logging.Formatter):
    """JSON formatter with structured fields"""

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": datetime.utcnow().isoformat() + "Z",
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
            "trace_id": get_trace_id(),
            "method": getattr(record, 'method', None),
            "path": getattr(record, 'path', None),
            "status": getattr(record, 'status', None),
            "latency_ms": getattr(record, 'latency_ms', None),
            "client_ip": getattr(record, 'client_ip', None),
            "tenant_id": getattr(record, 'tenant_id', None),
            "job_id": getattr(record, 'job_id', None),
            "component": getattr(record, 'component', 'api')
        }

        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        # Add extra fields
        for key, value in record.__dict__.items():
            if key not in _STANDARD_ATTRS and key not in _PROMOTED_ATTRS:
                log_entry[key] = value

        return json.dumps(log_entry, default=str)

class MemoryLogHandler(logging.Handler):
    """In-memory log handler with ring buffer for live logs"""

    def __init__(self, max_size: int = 10000):
        super().__init__()
        self.max_size = max_size
        self.logs = deque(maxlen=max_size)
        self._lock = threading.Lock()

    def emit(self, record: logging.LogRecord):
        try:
            msg = self.format(record)

            if isinstance(self.formatter, JsonFormatter):
                try:
                    log_entry = json.loads(msg)
                except json.JSONDecodeError:
                    log_entry = {"msg": msg, "timestamp": datetime.utcnow().isoformat() + "Z"}
            else:
                log_entry = {
                    "msg": msg,
                    "timestamp": datetime.utcnow().isoformat() + "Z",
                    "level": record.levelname,
                    "logger": record.name
                }

            with self._lock:
                self.logs.append(log_entry)

        except Exception:
            self.handleError(record)

    def get_logs(self, limit: int = 1000) -> list:
        """Get the most recent logs from the memory buffer"""
        with self._lock:
            logs = list(self.logs)
        return logs[-limit:] if limit else logs

# Global memory handler instance
memory_handler = MemoryLogHandler()

def setup_logging(log_format: Optional[str] = None, log_level: Optional[str] = None):
    """Setup logging configuration from YAML file or the configured format and level"""

    log_format = log_format or LOG_FORMAT
    log_level = (log_level or LOG_LEVEL).upper()

    config = None
    if os.path.exists("LOGGING.yaml"):
        try:
            with open("LOGGING.yaml", 'r') as f:
                config = yaml.safe_load(f)
        except Exception as e:
            print(f"Warning: Could not load LOGGING.yaml: {e}")

    if not config:
        config = {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "json": {"()": JsonFormatter},
                "text": {
                    "format": "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
                    "datefmt": "%Y-%m-%d %H:%M:%S"
                }
            },
            "handlers": {
                "console": {
                    "class": "logging.StreamHandler",
                    "level": log_level,
                    "formatter": log_format,
                    "stream": "ext://sys.stdout"
                }
            },
            "loggers": {
                "uvicorn": {
                    "level": log_level,
                    "handlers": [],
                    "propagate": True
                },
                "uvicorn.access": {
                    "level": log_level,
                    "handlers": [],
                    "propagate": True
                }
            },
            "root": {
                "level": log_level,
                "handlers": ["console"]
            }
        }

    if log_format == "text":
        for handler in config.get("handlers", {}).values():
            if "formatter" in handler:
                handler["formatter"] = "text"

    for logger in config.get("loggers", {}).values():
        logger["level"] = log_level

    logging.config.dictConfig(config)

    if log_format == "json":
        formatter = JsonFormatter()
    else:
        formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
    memory_handler.setFormatter(formatter)

    root = logging.getLogger()
    root.handlers = [h for h in root.handlers if not isinstance(h, MemoryLogHandler)]
    root.addHandler(memory_handler)

    return config

def get_memory_handler():
    """Get the singleton memory handler instance"""
    return memory_handler
