"""
Flowkit - Structured Logging

Structured, JSON-formatted logging for engine operations and progress.
"""

import logging
import json
import time
from typing import Optional, Dict, Any, Callable
from dataclasses import dataclass, asdict
from enum import Enum


class LogLevel(Enum):
    """Log levels, ordered from silent to verbose."""
    NONE = "NONE"
    ERROR = "ERROR"
    WARNING = "WARNING"
    INFO = "INFO"
    DEBUG = "DEBUG"

    @classmethod
    def from_flag(cls, value: str) -> "LogLevel":
        """
        Parse the value of a ``--log`` style flag.

        Args:
            value: One of "none", "error", "warning", "info", "debug".

        Returns:
            Matching LogLevel.

        Raises:
            ValueError: If the value is not a known level.
        """
        try:
            return cls(value.upper())
        except ValueError:
            valid = ", ".join(level.value.lower() for level in cls)
            raise ValueError(f"invalid log level '{value}', valid are: {valid}")

    def to_logging(self) -> int:
        if self is LogLevel.NONE:
            return logging.CRITICAL + 10
        return getattr(logging, self.value)


@dataclass
class LogEntry:
    """Structured log entry."""
    timestamp: float
    level: str
    message: str
    component: str
    operation: Optional[str] = None
    txid: Optional[str] = None
    network: Optional[str] = None
    duration_ms: Optional[float] = None
    details: Optional[Dict[str, Any]] = None
    error: Optional[str] = None

    def to_dict(self) -> dict:
        """Convert to dictionary, excluding None values."""
        return {k: v for k, v in asdict(self).items() if v is not None}

    def to_json(self) -> str:
        """Convert to JSON string."""
        return json.dumps(self.to_dict(), default=str)


class StructuredLogger:
    """
    Structured logger for Flowkit operations.

    Emits one JSON object per entry so deploy and send output can be
    consumed by log aggregation, or plain text for terminals.

    Example:
        logger = StructuredLogger(component="flowkit", network="testnet")

        with logger.operation("deploy_project") as op:
            contracts = engine.deploy_project(update=True)
            op.add_detail("contracts", len(contracts))

        logger.info("HelloWorld -> 0x01cf0e2f2f715450 [updated]")
    """

    def __init__(
        self,
        component: str = "flowkit",
        logger: Optional[logging.Logger] = None,
        json_output: bool = True,
        network: Optional[str] = None,
        level: LogLevel = LogLevel.INFO
    ):
        """
        Initialize structured logger.

        Args:
            component: Component name for log entries.
            logger: Underlying Python logger (creates one if None).
            json_output: If True, output JSON format.
            network: Network name attached to every entry.
            level: Minimum level emitted by a logger created here.
        """
        self.component = component
        self.json_output = json_output
        self.network = network
        self._progress: Optional[str] = None

        if logger:
            self._logger = logger
        else:
            self._logger = logging.getLogger(component)
            if not self._logger.handlers:
                handler = logging.StreamHandler()
                handler.setFormatter(logging.Formatter('%(message)s'))
                self._logger.addHandler(handler)
            self._logger.setLevel(level.to_logging())

    def _log(
        self,
        level: LogLevel,
        message: str,
        operation: str = None,
        txid: str = None,
        duration_ms: float = None,
        error: str = None,
        **kwargs
    ) -> LogEntry:
        """Create and emit a log entry."""
        entry = LogEntry(
            timestamp=time.time(),
            level=level.value,
            message=message,
            component=self.component,
            operation=operation,
            txid=txid,
            network=self.network,
            duration_ms=duration_ms,
            details=kwargs if kwargs else None,
            error=error
        )

        if self.json_output:
            log_message = entry.to_json()
        else:
            log_message = entry.message
            if entry.txid:
                log_message += f" txid={entry.txid}"
            if entry.error:
                log_message += f" error={entry.error}"

        self._logger.log(level.to_logging(), log_message)
        return entry

    def debug(self, message: str, **kwargs) -> LogEntry:
        """Log debug message."""
        return self._log(LogLevel.DEBUG, message, **kwargs)

    def info(self, message: str, **kwargs) -> LogEntry:
        """Log info message."""
        return self._log(LogLevel.INFO, message, **kwargs)

    def warning(self, message: str, **kwargs) -> LogEntry:
        """Log warning message."""
        return self._log(LogLevel.WARNING, message, **kwargs)

    def error(self, message: str, error: Exception = None, **kwargs) -> LogEntry:
        """Log error message."""
        error_str = str(error) if error else None
        return self._log(LogLevel.ERROR, message, error=error_str, **kwargs)

    # =========================================================================
    # Progress
    # =========================================================================

    def start_progress(self, message: str) -> None:
        """Mark the start of a long-running step (seal wait, fan-out)."""
        self._progress = message
        self.debug(message, progress="start")

    def stop_progress(self) -> None:
        """Mark the end of the current long-running step."""
        if self._progress is not None:
            self.debug(self._progress, progress="stop")
            self._progress = None

    @property
    def in_progress(self) -> Optional[str]:
        return self._progress

    def operation(self, name: str) -> "OperationContext":
        """
        Create an operation context for timing.

        Args:
            name: Operation name.

        Returns:
            Context manager that logs duration and outcome.
        """
        return OperationContext(self, name)

    def set_level(self, level: LogLevel) -> None:
        """Set minimum log level."""
        self._logger.setLevel(level.to_logging())


class OperationContext:
    """Context manager for timing operations."""

    def __init__(self, logger: StructuredLogger, operation: str):
        self.logger = logger
        self.operation = operation
        self.start_time: float = 0
        self.txid: Optional[str] = None
        self.details: Dict[str, Any] = {}

    def __enter__(self) -> "OperationContext":
        self.start_time = time.time()
        self.logger.debug(f"Starting {self.operation}", operation=self.operation)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        duration_ms = (time.time() - self.start_time) * 1000
        self.logger.stop_progress()

        if exc_val:
            self.logger.error(
                f"Failed {self.operation}",
                operation=self.operation,
                duration_ms=duration_ms,
                error=exc_val,
                txid=self.txid,
                **self.details
            )
        else:
            self.logger.debug(
                f"Completed {self.operation}",
                operation=self.operation,
                duration_ms=duration_ms,
                txid=self.txid,
                **self.details
            )

    def set_txid(self, txid: str) -> None:
        """Set transaction ID for the operation."""
        self.txid = txid

    def add_detail(self, key: str, value: Any) -> None:
        """Add a detail to the operation log."""
        self.details[key] = value


# Factory functions

def create_file_logger(
    filepath: str,
    component: str = "flowkit",
    level: LogLevel = LogLevel.INFO
) -> StructuredLogger:
    """
    Create a logger that writes to a file.

    Args:
        filepath: Path to log file.
        component: Component name.
        level: Minimum log level.

    Returns:
        Configured StructuredLogger.
    """
    logger = logging.getLogger(f"{component}-file")
    handler = logging.FileHandler(filepath)
    handler.setFormatter(logging.Formatter('%(message)s'))
    logger.addHandler(handler)
    logger.setLevel(level.to_logging())

    return StructuredLogger(component=component, logger=logger)


def create_capture_logger(
    sink: Callable[[dict], None],
    component: str = "flowkit",
    level: LogLevel = LogLevel.DEBUG
) -> StructuredLogger:
    """
    Create a logger that hands every entry to a callback as a dict.

    Useful for audit trails and for asserting on engine output in tests.

    Args:
        sink: Function receiving each decoded log entry.
        component: Component name.
        level: Minimum log level.

    Returns:
        Configured StructuredLogger.
    """
    class SinkHandler(logging.Handler):
        def emit(self, record):
            try:
                entry = json.loads(record.getMessage())
            except json.JSONDecodeError:
                entry = {"message": record.getMessage()}
            sink(entry)

    logger = logging.getLogger(f"{component}-capture-{id(sink)}")
    logger.propagate = False
    logger.addHandler(SinkHandler())
    logger.setLevel(level.to_logging())

    return StructuredLogger(component=component, logger=logger)
