"""
Logging configuration for the selector healing engine.

Console output stays human readable; the rotating log files hold one JSON
object per line so identification and healing runs can be traced by
session and test case.
"""

import logging
import logging.handlers
import json
import os
import sys
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Dict, Any, Optional, Tuple
from dataclasses import asdict, is_dataclass

COMPONENTS = ("orchestrator", "strategies", "validation", "identification", "events", "metrics")

# file name -> (level, max bytes, backups, attach to root instead of healing.* loggers)
LOG_FILES: Dict[str, Tuple[int, int, int, bool]] = {
    "healing_all.log": (logging.DEBUG, 10 * 1024 * 1024, 5, True),
    "healing_operations.log": (logging.INFO, 10 * 1024 * 1024, 10, False),
    "healing_errors.log": (logging.ERROR, 5 * 1024 * 1024, 10, False),
}

THIRD_PARTY_LEVELS = {
    "crewai": "CREWAI_LOG_LEVEL",
    "requests": "REQUESTS_LOG_LEVEL",
    "urllib3": "REQUESTS_LOG_LEVEL",
}


def _to_json(obj: Any) -> Any:
    if hasattr(obj, "to_dict"):
        return obj.to_dict()
    if is_dataclass(obj):
        return asdict(obj)
    if isinstance(obj, Enum):
        return obj.value
    if isinstance(obj, datetime):
        return obj.isoformat()
    return str(obj)


class StructuredFormatter(logging.Formatter):
    """One JSON document per record, including healing context fields."""

    CONTEXT_FIELDS = (
        "session_id", "test_case", "operation", "phase", "progress",
        "duration", "success", "error_code", "metadata"
    )

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "location": f"{record.module}:{record.funcName}:{record.lineno}",
        }
        entry.update({name: getattr(record, name) for name in self.CONTEXT_FIELDS if hasattr(record, name)})

        if record.exc_info and record.exc_info[0] is not None:
            entry["exception"] = {
                "type": record.exc_info[0].__name__,
                "message": str(record.exc_info[1]),
                "traceback": self.formatException(record.exc_info)
            }
        return json.dumps(entry, default=_to_json)


class HealingLoggerAdapter(logging.LoggerAdapter):
    """Adds session/test case context and operation lifecycle helpers."""

    def process(self, msg: str, kwargs: Dict[str, Any]) -> tuple:
        kwargs["extra"] = {**self.extra, **kwargs.get("extra", {})}
        return msg, kwargs

    def _operation(self, level: int, message: str, operation: str, phase: str, **fields):
        self.log(level, message, extra={"operation": operation, "phase": phase, **fields})

    def log_operation_start(self, operation: str, **metadata):
        self._operation(logging.INFO, f"Starting {operation}", operation, "start", metadata=metadata)

    def log_operation_success(self, operation: str, duration: float, **metadata):
        self._operation(logging.INFO, f"Completed {operation} in {duration:.3f}s", operation, "complete",
                        success=True, duration=duration, metadata=metadata)

    def log_operation_failure(self, operation: str, duration: float, error: str,
                              error_code: Optional[str] = None, **metadata):
        self._operation(logging.ERROR, f"Failed {operation}: {error}", operation, "complete",
                        success=False, duration=duration, error_code=error_code, metadata=metadata)

    def log_progress(self, operation: str, progress: float, message: str, **metadata):
        self._operation(logging.INFO, f"{operation} [{progress:.0f}%] {message}", operation, "progress",
                        progress=progress, metadata=metadata)


def get_healing_logger(component: str, session_id: Optional[str] = None,
                       test_case: Optional[str] = None) -> HealingLoggerAdapter:
    """Contextual logger under ``healing.<component>``."""
    context = {key: value for key, value in (("session_id", session_id), ("test_case", test_case)) if value}
    return HealingLoggerAdapter(logging.getLogger(f"healing.{component}"), context)


def setup_healing_logging(log_level: str = "INFO", log_dir: str = "logs") -> Dict[str, logging.Logger]:
    """
    Install console and rotating JSON file handlers.

    The console and ``healing_all.log`` receive everything from the root
    logger; the operations and error files only receive records from the
    ``healing.*`` component loggers.

    Args:
        log_level: Root and console level (DEBUG, INFO, WARNING, ERROR)
        log_dir: Directory for the log files

    Returns:
        Configured loggers by component name
    """
    level = getattr(logging, log_level.upper())
    log_path = Path(log_dir)
    log_path.mkdir(parents=True, exist_ok=True)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)
    console_handler.setFormatter(logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s'))
    root_logger.addHandler(console_handler)

    formatter = StructuredFormatter()
    component_handlers = []
    for file_name, (file_level, max_bytes, backups, on_root) in LOG_FILES.items():
        handler = logging.handlers.RotatingFileHandler(
            log_path / file_name, maxBytes=max_bytes, backupCount=backups)
        handler.setFormatter(formatter)
        handler.setLevel(file_level)
        if on_root:
            root_logger.addHandler(handler)
        else:
            component_handlers.append(handler)

    loggers: Dict[str, logging.Logger] = {}
    for component in COMPONENTS:
        component_logger = logging.getLogger(f"healing.{component}")
        for handler in component_handlers:
            component_logger.addHandler(handler)
        loggers[component] = component_logger

    for name, env_var in THIRD_PARTY_LEVELS.items():
        third_party = logging.getLogger(name)
        third_party.setLevel(getattr(logging, os.getenv(env_var, "WARNING").upper()))
        loggers[name] = third_party

    return loggers
