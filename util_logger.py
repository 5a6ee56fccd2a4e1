# ============================================================================
# MODULE CONTEXT - LOGGING
# ============================================================================
# STATUS: Core Infrastructure - Structured logging
# PURPOSE: JSON logging per application layer for Azure Functions / Application Insights
# LAST_REVIEWED: 19 OCT 2026
# EXPORTS: ComponentType, LogLevel, JSONFormatter, ComponentLogger, LoggerFactory, log_exceptions
# DEPENDENCIES: logging, json, traceback (stdlib only)
# PATTERNS: One stdout handler per layer, LoggerAdapter for component dimensions
# ENTRY_POINTS: LoggerFactory.create_logger(), @log_exceptions decorator
# ============================================================================

"""
Unified Logger System

Loggers are grouped by application layer (trigger, service, repository).
Each layer gets one JSON stdout handler; component loggers beneath it are
wrapped in a ComponentLogger adapter that stamps every record with the
component type and name, merged with any custom_dimensions passed in
`extra`. The Functions host forwards stdout to Application Insights, where
customDimensions become queryable columns.

Levels:
    LOG_LEVEL            Default level for every layer (default: INFO)
    LOG_LEVEL_<LAYER>    Per-layer override, e.g. LOG_LEVEL_REPOSITORY=DEBUG
                         to see every executed statement with its parameters
    DEBUG_LOGGING=true   Shorthand for LOG_LEVEL=DEBUG

Example:
    logger = LoggerFactory.create_logger(ComponentType.REPOSITORY, "PostGISRepository")
    logger.info("query returned 3 row(s)", extra={'custom_dimensions': {'endpoint': 'query'}})
"""

import json
import logging
import os
import sys
import traceback
from datetime import datetime, timezone
from enum import Enum
from functools import wraps
from typing import Any, Dict, MutableMapping, Optional, Tuple


# ============================================================================
# COMPONENT TYPES
# ============================================================================

class ComponentType(Enum):
    """Application layers; the value is the parent logger name."""
    TRIGGER = "trigger"        # HTTP handlers
    SERVICE = "service"        # Endpoint orchestration, health checks
    REPOSITORY = "repository"  # Statement execution


class LogLevel(Enum):
    """Accepted level names."""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"

    def to_python_level(self) -> int:
        return getattr(logging, self.value)

    @classmethod
    def from_env(cls, name: str, default: "LogLevel") -> "LogLevel":
        """Read a level from the environment; unknown names fall back to default."""
        value = os.getenv(name, "").strip().upper()
        return cls.__members__.get(value, default)


def _default_level() -> LogLevel:
    if os.getenv('DEBUG_LOGGING', '').lower() == 'true':
        return LogLevel.DEBUG
    return LogLevel.from_env('LOG_LEVEL', LogLevel.INFO)


def level_for(component_type: ComponentType) -> LogLevel:
    """Effective level for a layer, honouring LOG_LEVEL_<LAYER>."""
    return LogLevel.from_env(f"LOG_LEVEL_{component_type.name}", _default_level())


# ============================================================================
# JSON FORMATTER
# ============================================================================

class JSONFormatter(logging.Formatter):
    """One JSON object per record, shaped for Application Insights."""

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            'timestamp': datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage(),
            'location': f"{record.module}.{record.funcName}:{record.lineno}"
        }

        dimensions = getattr(record, 'custom_dimensions', None)
        if dimensions:
            entry['customDimensions'] = dimensions

        if record.exc_info and record.exc_info[0] is not None:
            entry['exception'] = {
                'type': record.exc_info[0].__name__,
                'message': str(record.exc_info[1]),
                'traceback': self.formatException(record.exc_info)
            }

        return json.dumps(entry, default=str)


# ============================================================================
# COMPONENT LOGGER
# ============================================================================

class ComponentLogger(logging.LoggerAdapter):
    """
    Adapter that adds component dimensions to every record.

    Per-call dimensions win over the component's own on key collisions.
    """

    def process(self, msg: Any, kwargs: MutableMapping[str, Any]) -> Tuple[Any, MutableMapping[str, Any]]:
        extra = dict(kwargs.get('extra') or {})
        dimensions = dict(self.extra)
        dimensions.update(extra.get('custom_dimensions') or {})
        extra['custom_dimensions'] = dimensions
        kwargs['extra'] = extra
        return msg, kwargs


class LoggerFactory:
    """
    Creates component loggers under their layer's parent logger.

    Example:
        logger = LoggerFactory.create_logger(ComponentType.TRIGGER, "PostGISTriggers")
        logger.warning("query rejected", extra={'custom_dimensions': {'table': 'secret_table'}})
    """

    _configured_layers: Dict[ComponentType, logging.Logger] = {}

    @classmethod
    def _layer_logger(cls, component_type: ComponentType) -> logging.Logger:
        """Parent logger for a layer, with its stdout handler attached once."""
        layer = cls._configured_layers.get(component_type)
        if layer is not None:
            return layer

        layer = logging.getLogger(component_type.value)
        layer.setLevel(level_for(component_type).to_python_level())

        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(JSONFormatter())
        layer.handlers = [handler]

        # Azure's root logger still receives the record for Application Insights
        layer.propagate = True

        cls._configured_layers[component_type] = layer
        return layer

    @classmethod
    def create_logger(cls, component_type: ComponentType, name: str) -> ComponentLogger:
        """
        Create a logger for one component.

        Args:
            component_type: Layer the component belongs to
            name: Component name (e.g., "PostGISRepository")

        Returns:
            ComponentLogger writing through the layer's handler
        """
        cls._layer_logger(component_type)
        logger = logging.getLogger(f"{component_type.value}.{name}")
        return ComponentLogger(logger, {
            'component_type': component_type.value,
            'component_name': name
        })


# ============================================================================
# EXCEPTION DECORATOR
# ============================================================================

def log_exceptions(component_type: Optional[ComponentType] = None,
                   component_name: Optional[str] = None,
                   logger: Optional[logging.LoggerAdapter] = None):
    """
    Log any exception raised by the decorated function, then re-raise it.

    Usage:
        @log_exceptions(logger=logger)
        @log_exceptions(ComponentType.SERVICE, "HealthService")
    """
    def decorator(func):
        log = logger or LoggerFactory.create_logger(
            component_type or ComponentType.SERVICE,
            component_name or func.__module__
        )

        @wraps(func)
        def wrapper(*args, **kwargs):
            try:
                return func(*args, **kwargs)
            except Exception as e:
                log.error(
                    f"Exception in {func.__name__}",
                    exc_info=True,
                    extra={'custom_dimensions': {
                        'function_name': func.__qualname__,
                        'exception_type': type(e).__name__,
                        'exception_message': str(e),
                        'traceback': traceback.format_exc()
                    }}
                )
                raise
        return wrapper
    return decorator
