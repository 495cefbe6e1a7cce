"""
hostscale Notifications

Plain data objects describing the outcome of an operator action. The
orchestrators return them; the command line prints them.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, Any, Optional


class NotificationStatus(Enum):
    """Severity of a notification"""
    SUCCESS = "success"
    INFO = "info"
    WARNING = "warning"
    DANGER = "danger"


@dataclass(frozen=True)
class Notification:
    """A single user-visible message"""
    title: str
    status: NotificationStatus = NotificationStatus.INFO
    body: Optional[str] = None
    created_at: datetime = field(default_factory=datetime.now)

    @classmethod
    def success(cls, title: str, body: Optional[str] = None) -> "Notification":
        return cls(title=title, status=NotificationStatus.SUCCESS, body=body)

    @classmethod
    def info(cls, title: str, body: Optional[str] = None) -> "Notification":
        return cls(title=title, status=NotificationStatus.INFO, body=body)

    @classmethod
    def warning(cls, title: str, body: Optional[str] = None) -> "Notification":
        return cls(title=title, status=NotificationStatus.WARNING, body=body)

    @classmethod
    def danger(cls, title: str, body: Optional[str] = None) -> "Notification":
        return cls(title=title, status=NotificationStatus.DANGER, body=body)

    @property
    def is_failure(self) -> bool:
        return self.status == NotificationStatus.DANGER

    def to_dict(self) -> Dict[str, Any]:
        return {
            "title": self.title,
            "status": self.status.value,
            "body": self.body,
            "created_at": self.created_at.isoformat(),
        }
