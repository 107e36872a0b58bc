"""Activity tracking."""

from .activity_logger import ActivityEvent, ActivityLogger, EventType

__all__ = ["ActivityEvent", "ActivityLogger", "EventType"]
