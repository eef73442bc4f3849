"""
Alert sink for sync outcomes that need human attention.

Alerts are log-based: they go to a dedicated logger at WARNING or above so
log shipping can route them (email, chat, paging) without this package
knowing about the transport.
"""
import logging
from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from playersync.core.logging import get_logger

logger = get_logger("playersync.alerts")


class AlertSeverity(str, Enum):
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AlertSink(ABC):
    """Narrow alerting interface injected into the orchestrator."""

    @abstractmethod
    def alert(self, severity: AlertSeverity, message: str, context: Optional[Dict[str, Any]] = None) -> None:
        ...


class LoggingAlertSink(AlertSink):
    """AlertSink that writes alerts to the playersync.alerts logger."""

    _LEVELS = {
        AlertSeverity.WARNING: logging.WARNING,
        AlertSeverity.ERROR: logging.ERROR,
        AlertSeverity.CRITICAL: logging.CRITICAL,
    }

    def alert(self, severity: AlertSeverity, message: str, context: Optional[Dict[str, Any]] = None) -> None:
        logger.log(
            self._LEVELS[severity],
            f"ALERT [{severity.value}] {message}",
            extra={"alert_context": context or {}},
        )


class RecordingAlertSink(AlertSink):
    """AlertSink that keeps alerts in memory, for embedding and tests."""

    def __init__(self):
        self.alerts: List[Tuple[AlertSeverity, str, Dict[str, Any]]] = []

    def alert(self, severity: AlertSeverity, message: str, context: Optional[Dict[str, Any]] = None) -> None:
        self.alerts.append((severity, message, context or {}))
