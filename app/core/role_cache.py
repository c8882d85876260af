import threading
import time
from typing import Dict, Optional, Tuple

from app.core.roles import Role

# Sentinel for "resolved, and the user holds no role"
_NO_ROLE = object()


class RoleCache:
    """
    Time-bounded cache of resolved effective roles, keyed by user id.

    One instance lives on the application state. Entries expire after `ttl`
    seconds and are dropped explicitly on logout and on role changes.
    """

    def __init__(self, ttl: float = 300, clock=time.monotonic):
        self.ttl = ttl
        self._clock = clock
        self._entries: Dict[str, Tuple[object, float]] = {}
        self._lock = threading.Lock()

    def get(self, user_id: str) -> Tuple[bool, Optional[Role]]:
        """Return (hit, role). A hit may carry None when the user has no role."""
        with self._lock:
            entry = self._entries.get(user_id)
            if entry is None:
                return False, None
            value, stored_at = entry
            if self._clock() - stored_at >= self.ttl:
                del self._entries[user_id]
                return False, None
        return True, (None if value is _NO_ROLE else value)

    def set(self, user_id: str, role: Optional[Role]):
        with self._lock:
            self._entries[user_id] = (_NO_ROLE if role is None else role, self._clock())

    def invalidate(self, user_id: str):
        with self._lock:
            self._entries.pop(user_id, None)

    def clear(self):
        with self._lock:
            self._entries.clear()

    def __len__(self):
        return len(self._entries)
