"""User-facing notifications for failed or completed actions."""

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, List, Optional

from pydantic import BaseModel, Field

from .exceptions import WorkflowEngineError
from .logging import get_logger

logger = get_logger(__name__)


class NotificationLevel(str, Enum):
    SUCCESS = "success"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


class Notification(BaseModel):
    """A dismissable message shown to the user."""
    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    level: NotificationLevel
    title: str
    description: Optional[str] = None
    error_code: Optional[str] = None
    dismissed: bool = False
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


Notifier = Callable[[Notification], None]


class NotificationCenter:
    """Collects notifications and forwards them to an optional sink."""

    def __init__(self, sink: Optional[Notifier] = None):
        self._sink = sink
        self._notifications: List[Notification] = []

    def notify(
        self,
        level: NotificationLevel,
        title: str,
        description: Optional[str] = None,
        error_code: Optional[str] = None
    ) -> Notification:
        notification = Notification(
            level=level,
            title=title,
            description=description,
            error_code=error_code
        )
        self._notifications.append(notification)
        logger.debug(f"Notification [{level.value}] {title}")
        if self._sink is not None:
            self._sink(notification)
        return notification

    def notify_error(self, title: str, error: WorkflowEngineError) -> Notification:
        return self.notify(NotificationLevel.ERROR, title, error.message, error.error_code)

    def dismiss(self, notification_id: str) -> bool:
        for notification in self._notifications:
            if notification.id == notification_id and not notification.dismissed:
                notification.dismissed = True
                return True
        return False

    @property
    def active(self) -> List[Notification]:
        return [n for n in self._notifications if not n.dismissed]

    @property
    def all(self) -> List[Notification]:
        return list(self._notifications)
