"""
Logging configuration for the selector healing engine.

This module provides structured logging configuration with dedicated loggers
for the components of the healing pipeline.
"""

import logging
import logging.handlers
import json
import os
import sys
from datetime import datetime
from pathlib import Path
from typing import Dict, Any, Optional
from dataclasses import asdict, is_dataclass
from enum import Enum


HEALING_COMPONENTS = (
    "orchestrator",
    "validator",
    "dom_snapshot",
    "llm",
    "locator_store",
    "browser",
    "executor",
)

_EXTRA_FIELDS = (
    "session_id", "test_case", "page_name", "element_key", "operation",
    "phase", "duration", "success", "error_code", "metadata",
)


class StructuredFormatter(logging.Formatter):
    """Formatter emitting one JSON object per record."""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.fromtimestamp(record.created).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno
        }

        for name in _EXTRA_FIELDS:
            if hasattr(record, name):
                log_data[name] = getattr(record, name)

        if record.exc_info:
            log_data['exception'] = {
                "type": record.exc_info[0].__name__ if record.exc_info[0] else None,
                "message": str(record.exc_info[1]) if record.exc_info[1] else None,
                "traceback": self.formatException(record.exc_info)
            }

        return json.dumps(log_data, default=self._json_serializer)

    def _json_serializer(self, obj):
        """Serialize dataclasses, enums and datetimes found in extras."""
        if is_dataclass(obj) and not isinstance(obj, type):
            return asdict(obj)
        if isinstance(obj, Enum):
            return obj.value
        if hasattr(obj, 'isoformat'):
            return obj.isoformat()
        return str(obj)


class HealingLoggerAdapter(logging.LoggerAdapter):
    """Logger adapter carrying page/element context for healing operations."""

    def process(self, msg: str, kwargs: Dict[str, Any]) -> tuple:
        extra = dict(self.extra)
        extra.update(kwargs.get('extra') or {})
        kwargs['extra'] = extra
        return msg, kwargs

    def log_operation_start(self, operation: str, **metadata):
        """Log the start of a healing operation."""
        self.info(f"Starting {operation}", extra={
            'operation': operation,
            'phase': 'start',
            'metadata': metadata
        })

    def log_operation_success(self, operation: str, duration: float, **metadata):
        """Log successful completion of a healing operation."""
        self.info(f"Completed {operation} successfully", extra={
            'operation': operation,
            'phase': 'complete',
            'success': True,
            'duration': duration,
            'metadata': metadata
        })

    def log_operation_failure(self, operation: str, duration: float, error: str,
                              error_code: Optional[str] = None, **metadata):
        """Log failure of a healing operation."""
        self.warning(f"Failed {operation}: {error}", extra={
            'operation': operation,
            'phase': 'complete',
            'success': False,
            'duration': duration,
            'error_code': error_code,
            'metadata': metadata
        })

    def log_progress(self, operation: str, message: str, **metadata):
        """Log an intermediate step of a healing operation."""
        self.info(f"{operation}: {message}", extra={
            'operation': operation,
            'phase': 'progress',
            'metadata': metadata
        })


def _rotating_handler(path: Path, max_mb: int, backups: int, level: int,
                      formatter: logging.Formatter) -> logging.Handler:
    handler = logging.handlers.RotatingFileHandler(
        path, maxBytes=max_mb * 1024 * 1024, backupCount=backups, encoding="utf-8")
    handler.setFormatter(formatter)
    handler.setLevel(level)
    return handler


def setup_healing_logging(log_level: str = "INFO", log_dir: str = "logs") -> Dict[str, logging.Logger]:
    """
    Set up structured logging for the healing engine.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        log_dir: Directory to store log files

    Returns:
        Dictionary of configured loggers keyed by component name
    """
    log_path = Path(log_dir)
    log_path.mkdir(parents=True, exist_ok=True)

    level = getattr(logging, log_level.upper())
    litellm_level = getattr(logging, os.getenv("LITELLM_LOG_LEVEL", "WARNING").upper())
    requests_level = getattr(logging, os.getenv("REQUESTS_LOG_LEVEL", "WARNING").upper())

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    structured_formatter = StructuredFormatter()
    console_formatter = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(console_formatter)
    console_handler.setLevel(level)

    all_logs_handler = _rotating_handler(
        log_path / "healing_all.log", 10, 5, logging.DEBUG, structured_formatter)
    healing_handler = _rotating_handler(
        log_path / "healing_operations.log", 10, 10, logging.INFO, structured_formatter)
    error_handler = _rotating_handler(
        log_path / "healing_errors.log", 5, 10, logging.ERROR, structured_formatter)

    root_logger.addHandler(console_handler)
    root_logger.addHandler(all_logs_handler)

    loggers: Dict[str, logging.Logger] = {}

    for component in HEALING_COMPONENTS:
        component_logger = logging.getLogger(f"healing.{component}")
        component_logger.addHandler(healing_handler)
        component_logger.addHandler(error_handler)
        loggers[component] = component_logger

    # Audit records get their own file
    audit_logger = logging.getLogger("healing.audit")
    audit_logger.addHandler(_rotating_handler(
        log_path / "healing_audit.log", 20, 20, logging.INFO, structured_formatter))
    loggers["audit"] = audit_logger

    # LiteLLM logger (cloud provider calls)
    litellm_logger = logging.getLogger("LiteLLM")
    litellm_logger.setLevel(litellm_level)
    litellm_logger.addHandler(_rotating_handler(
        log_path / "litellm.log", 10, 5, logging.DEBUG, structured_formatter))
    loggers["litellm"] = litellm_logger

    # HTTP requests logger (local provider and service client)
    for name in ("requests", "urllib3"):
        http_logger = logging.getLogger(name)
        http_logger.setLevel(requests_level)
    requests_logger = logging.getLogger("requests")
    requests_logger.addHandler(_rotating_handler(
        log_path / "http_requests.log", 10, 5, logging.DEBUG, structured_formatter))
    loggers["requests"] = requests_logger

    # Selenium is chatty at DEBUG
    logging.getLogger("selenium").setLevel(max(level, logging.INFO))

    return loggers


def get_healing_logger(component: str, page_name: Optional[str] = None,
                       element_key: Optional[str] = None,
                       test_case: Optional[str] = None) -> HealingLoggerAdapter:
    """
    Get a healing logger adapter with contextual information.

    Args:
        component: Component name (orchestrator, validator, etc.)
        page_name: Optional page whose locator is being healed
        element_key: Optional element key within the page
        test_case: Optional test case name
    """
    logger = logging.getLogger(f"healing.{component}")

    extra = {}
    if page_name:
        extra['page_name'] = page_name
    if element_key:
        extra['element_key'] = element_key
    if test_case:
        extra['test_case'] = test_case

    return HealingLoggerAdapter(logger, extra)
