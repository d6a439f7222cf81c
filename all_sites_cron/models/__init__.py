"""Data models for All Sites Cron."""

from .dtos import DispatchResult, Lock, QueueJob, SiteRecord

__all__ = [
    "DispatchResult",
    "Lock",
    "QueueJob",
    "SiteRecord",
]
