"""
Guest session storage

Guest carts are never written to MongoDB. They live in process memory keyed by
an opaque id carried in the signed session cookie, and expire after
GUEST_SESSION_TTL_MINUTES without activity. No locking: concurrent requests
from one guest are last-write-wins, same as signed-in carts.
"""
import secrets
import time
from typing import Dict, List, Optional, Tuple

from starlette.requests import Request

from config import GUEST_SESSION_TTL_MINUTES

SESSION_KEY = "guest_id"


class GuestSessions:
    def __init__(self, ttl_seconds: float = GUEST_SESSION_TTL_MINUTES * 60, clock=time.monotonic):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._carts: Dict[str, Tuple[float, List[dict]]] = {}

    def get_cart(self, guest_id: str) -> List[dict]:
        self._sweep()
        entry = self._carts.get(guest_id)
        if entry is None:
            return []
        self._carts[guest_id] = (self._clock(), entry[1])
        return [dict(it) for it in entry[1]]

    def save_cart(self, guest_id: str, items: List[dict]) -> None:
        self._carts[guest_id] = (self._clock(), [dict(it) for it in items])

    def discard(self, guest_id: str) -> None:
        self._carts.pop(guest_id, None)

    def __len__(self):
        self._sweep()
        return len(self._carts)

    def _sweep(self) -> None:
        cutoff = self._clock() - self.ttl_seconds
        for key, (seen, _) in list(self._carts.items()):
            if seen < cutoff:
                self._carts.pop(key, None)


guest_sessions = GuestSessions()


def get_guest_sessions() -> GuestSessions:
    return guest_sessions


def guest_id_for(request: Request, create: bool = True) -> Optional[str]:
    guest_id = request.session.get(SESSION_KEY)
    if guest_id is None and create:
        guest_id = secrets.token_urlsafe(24)
        request.session[SESSION_KEY] = guest_id
    return guest_id
