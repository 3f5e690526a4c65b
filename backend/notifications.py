import itertools
import logging
import threading
from dataclasses import dataclass
from typing import Any, Callable

logger = logging.getLogger(__name__)

STATUS_PENDING = "pending"
STATUS_SUCCESS = "success"
STATUS_ERROR = "error"


@dataclass(frozen=True)
class TransactionStatus:
    visible: bool = False
    status: str = STATUS_PENDING
    message: str = ""
    notification_id: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {"visible": self.visible, "status": self.status, "message": self.message}


Scheduler = Callable[[float, Callable[[], None]], Any]


def timer_scheduler(delay: float, callback: Callable[[], None]) -> threading.Timer:
    timer = threading.Timer(delay, callback)
    timer.daemon = True
    timer.start()
    return timer


class StatusNotifier:
    """Single self-expiring status slot.

    Each notification carries its own id and its expiry only clears that id, so
    a newer notification is never hidden by an older timer.
    """

    def __init__(
        self,
        success_ttl: float = 2.0,
        error_ttl: float = 3.0,
        scheduler: Scheduler = timer_scheduler,
    ) -> None:
        self.success_ttl = success_ttl
        self.error_ttl = error_ttl
        self.scheduler = scheduler
        self.current = TransactionStatus()
        self._ids = itertools.count(1)
        self._expiry: Any = None
        self._lock = threading.Lock()

    def show(self, status: str, message: str) -> TransactionStatus:
        with self._lock:
            notification = TransactionStatus(True, status, message, next(self._ids))
            self.current = notification
            if self._expiry is not None and hasattr(self._expiry, "cancel"):
                self._expiry.cancel()
            self._expiry = None
            ttl = {STATUS_SUCCESS: self.success_ttl, STATUS_ERROR: self.error_ttl}.get(status)
        if ttl is not None:
            expiry = self.scheduler(ttl, lambda: self.expire(notification.notification_id))
            with self._lock:
                if self.current.notification_id == notification.notification_id:
                    self._expiry = expiry
        logger.debug("Status %s: %s", status, message)
        return notification

    def pending(self, message: str) -> TransactionStatus:
        return self.show(STATUS_PENDING, message)

    def success(self, message: str) -> TransactionStatus:
        return self.show(STATUS_SUCCESS, message)

    def error(self, message: str) -> TransactionStatus:
        return self.show(STATUS_ERROR, message)

    def expire(self, notification_id: int) -> bool:
        with self._lock:
            if self.current.notification_id != notification_id:
                return False
            self.current = TransactionStatus(notification_id=notification_id)
            self._expiry = None
            return True
