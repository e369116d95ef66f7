"""
Sync Audit Logger

Every significant step of a fetch is logged: cache hits, retries,
chaos outcomes, discarded responses, snapshot writes.

The audit logger:
- Is synchronous so it can be called from retry hooks and storage code
- Keeps a bounded in-memory history for the diagnostics screen
- Gracefully handles listener failures (a broken listener never
  breaks a fetch)
"""

import logging
from collections import deque
from typing import Callable, Optional

import structlog

from finance_sync.config import AppSettings, get_settings
from finance_sync.models.entities import EntityType
from finance_sync.models.events import SyncEvent, SyncSeverity


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


def configure_logging(settings: Optional[AppSettings] = None) -> None:
    """
    Apply the configured minimum level.
    
    structlog filters with filter_by_level, which defers to the stdlib
    logger level, so this is where log_level and debug_mode take effect.
    """
    settings = settings or get_settings().app
    level = getattr(logging, settings.effective_log_level)
    logging.basicConfig(format="%(message)s", level=level)
    logging.getLogger("finance_sync").setLevel(level)


EventListener = Callable[[SyncEvent], None]


class SyncAuditLogger:
    """
    Central sync event log.
    
    Logs events both to:
    1. Structured local log (for debugging)
    2. A bounded history (for the diagnostics screen)
    """
    
    def __init__(self, history_size: int = 500):
        """
        Initialize audit logger.
        
        Args:
            history_size: Number of most recent events kept in memory.
        """
        self._history: deque[SyncEvent] = deque(maxlen=history_size)
        self._listeners: list[EventListener] = []
        self._logger = structlog.get_logger("finance_sync.audit")
    
    def log(self, event: SyncEvent) -> None:
        """Record an event locally and hand it to every listener."""
        log_dict = event.to_log_dict()
        
        if event.severity == SyncSeverity.ERROR:
            self._logger.error("sync_event", **log_dict)
        elif event.severity == SyncSeverity.WARNING:
            self._logger.warning("sync_event", **log_dict)
        elif event.severity == SyncSeverity.DEBUG:
            self._logger.debug("sync_event", **log_dict)
        else:
            self._logger.info("sync_event", **log_dict)
        
        self._history.append(event)
        
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception as e:
                # Log failure but don't raise
                self._logger.error(
                    "sync_event_listener_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
    
    def add_listener(self, listener: EventListener) -> Callable[[], None]:
        """Register a listener. Returns a function that removes it."""
        self._listeners.append(listener)
        
        def remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)
        
        return remove
    
    def recent_events(self, limit: int = 100) -> list[SyncEvent]:
        """Most recent events, newest first."""
        events = list(self._history)
        events.reverse()
        return events[:limit]
    
    def events_for(self, entity_type: EntityType) -> list[SyncEvent]:
        """All retained events for one entity type, oldest first."""
        return [e for e in self._history if e.entity_type == entity_type]
    
    def clear(self) -> None:
        self._history.clear()
