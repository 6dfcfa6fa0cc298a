"""
Application context passed to every workflow.

An AppContext bundles the record store, the settings, the session and the
session's cart. `start` restores identity from a token (the cart follows
through its subscription) and `logout` clears both.
"""
import threading
from typing import Dict, Optional, Tuple

from goldenshop.cart import CartState
from goldenshop.config import Settings
from goldenshop.database import RecordStore
from goldenshop.session import SessionState


class PaymentStash:
    """Cart snapshots waiting for a payment-success confirmation.

    Keyed by (user id, payment tag). Lives for the life of the process only.
    """

    def __init__(self):
        self._entries: Dict[Tuple[str, str], dict] = {}
        self._lock = threading.Lock()

    def put(self, user_id: str, tag: str, snapshot: dict) -> None:
        with self._lock:
            self._entries[(user_id, tag)] = snapshot

    def get(self, user_id: str, tag: str) -> Optional[dict]:
        with self._lock:
            return self._entries.get((user_id, tag))

    def pop(self, user_id: str, tag: str) -> Optional[dict]:
        with self._lock:
            return self._entries.pop((user_id, tag), None)


class AppContext:
    def __init__(self, store: RecordStore, settings: Settings, stash: Optional[PaymentStash] = None):
        self.store = store
        self.settings = settings
        self.stash = stash if stash is not None else PaymentStash()
        self.session = SessionState(store, settings)
        self.cart = CartState(store, self.session, settings)

    def start(self, token: Optional[str] = None) -> "AppContext":
        self.session.restore(token)
        return self

    def logout(self) -> None:
        self.session.logout()

    def close(self) -> None:
        self.cart.close()
