"""Sync audit logging package."""

from finance_sync.audit.logger import EventListener, SyncAuditLogger, configure_logging

__all__ = ["EventListener", "SyncAuditLogger", "configure_logging"]
