from collections import deque
from typing import List, Optional

# Utils
from utils.log_utils import LogUtil

# Models
from models.notification_data import Notification, NotificationLevel


class NotificationUtil:
    """
    Ordered, bounded queue of user-facing notifications for one editor session.
    The host UI drains it; the oldest entries fall off when it is full.
    """
    def __init__(self, log_util: LogUtil, max_size: int = 50):
        self.log_util = log_util
        self._queue: deque = deque(maxlen=max_size)

    def push(self, level: NotificationLevel, title: str, description: Optional[str] = None) -> Notification:
        notification = Notification(level=level, title=title, description=description)
        self._queue.append(notification)
        self.log_util.debug(
            service_name="NotificationUtil",
            message=f"[{level.value}] {title}{': ' + description if description else ''}"
        )
        return notification

    def success(self, title: str, description: Optional[str] = None) -> Notification:
        return self.push(NotificationLevel.SUCCESS, title, description)

    def error(self, title: str, description: Optional[str] = None) -> Notification:
        return self.push(NotificationLevel.ERROR, title, description)

    def indicator(self, title: str, description: Optional[str] = None) -> Notification:
        return self.push(NotificationLevel.INDICATOR, title, description)

    def peek(self) -> List[Notification]:
        return list(self._queue)

    def drain(self) -> List[Notification]:
        notifications = list(self._queue)
        self._queue.clear()
        return notifications

    def __len__(self) -> int:
        return len(self._queue)
