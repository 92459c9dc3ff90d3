# buildsched/notices.py
"""
User-visible notices (toasts). Success notices auto-dismiss quickly; failure
notices stay longer and can also be dismissed by hand.
"""
import itertools
import threading
import time
from enum import Enum
from typing import Callable, List, Optional

from pydantic import BaseModel

from buildsched.config import settings


class NoticeLevel(str, Enum):
    SUCCESS = "success"
    INFO = "info"
    ERROR = "error"


class Notice(BaseModel):
    id: int
    level: NoticeLevel
    title: str
    message: str = ""
    created_at: float
    duration_seconds: Optional[float] = None
    dismissible: bool = True

    def is_expired(self, now: float) -> bool:
        if self.duration_seconds is None:
            return False
        return now - self.created_at >= self.duration_seconds


class NoticeBoard:
    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._lock = threading.Lock()
        self._ids = itertools.count(1)
        self._notices: List[Notice] = []

    def post(
        self,
        level: NoticeLevel,
        title: str,
        message: str = "",
        duration_seconds: Optional[float] = None,
        dismissible: bool = True,
    ) -> Notice:
        with self._lock:
            notice = Notice(
                id=next(self._ids),
                level=level,
                title=title,
                message=message,
                created_at=self._clock(),
                duration_seconds=duration_seconds,
                dismissible=dismissible,
            )
            self._notices.append(notice)
        return notice

    def success(self, title: str, message: str = "") -> Notice:
        return self.post(NoticeLevel.SUCCESS, title, message,
                         duration_seconds=settings.SUCCESS_NOTICE_SECONDS)

    def failure(self, title: str, message: str = "") -> Notice:
        return self.post(NoticeLevel.ERROR, title, message,
                         duration_seconds=settings.FAILURE_NOTICE_SECONDS)

    def active(self) -> List[Notice]:
        """Notices still on screen; expired ones are dropped."""
        now = self._clock()
        with self._lock:
            self._notices = [n for n in self._notices if not n.is_expired(now)]
            return list(self._notices)

    def dismiss(self, notice_id: int) -> bool:
        with self._lock:
            for notice in self._notices:
                if notice.id == notice_id and notice.dismissible:
                    self._notices.remove(notice)
                    return True
        return False

    def clear(self) -> None:
        with self._lock:
            self._notices.clear()
