from __future__ import annotations

import logging
from threading import RLock
from typing import Optional

from .platform import NotificationPlatform


logger = logging.getLogger(__name__)


class PermissionGate:
    """Process-wide notification permission state.

    A grant is cached; a denial is not, so the platform is asked again once
    the user may have enabled notifications in the device settings.
    """

    def __init__(self, platform: NotificationPlatform) -> None:
        self.platform = platform
        self._granted: Optional[bool] = None
        self._lock = RLock()

    @property
    def last_known(self) -> Optional[bool]:
        return self._granted

    def is_granted(self) -> bool:
        with self._lock:
            if self._granted:
                return True
            return self._ask()

    def refresh(self) -> bool:
        with self._lock:
            return self._ask()

    def revoke(self) -> None:
        with self._lock:
            self._granted = None

    def _ask(self) -> bool:
        try:
            granted = bool(self.platform.request_permission())
        except Exception:
            logger.exception("Notification permission request failed")
            granted = False
        if not granted:
            logger.info("Notification permission not granted")
        self._granted = granted
        return granted
