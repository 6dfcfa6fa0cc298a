"""
Cart state for the session user.

The cart mirrors the user's records in the cart collection. It reloads
whenever the session identity changes and empties itself when the session
becomes anonymous.
"""
import logging
from decimal import ROUND_HALF_UP, Decimal
from functools import partial
from typing import List, Optional

from goldenshop.batch import BatchReport, fan_out
from goldenshop.config import Settings
from goldenshop.database import RecordStore
from goldenshop.errors import AlreadyInCart, RecordNotFound, RemoteOperationFailed, Unauthenticated
from goldenshop.schemas import COL_CART, COL_USERS, CartItem as CartItemSchema
from goldenshop.session import SessionState

logger = logging.getLogger(__name__)

CENTS = Decimal("0.01")


def sum_prices(items: List[dict]) -> Decimal:
    return sum((Decimal(str(item.get("price") or 0)) for item in items), Decimal("0"))


def format_amount(amount: Decimal) -> str:
    return str(amount.quantize(CENTS, rounding=ROUND_HALF_UP))


class CartState:
    def __init__(self, store: RecordStore, session: SessionState, settings: Settings):
        self.store = store
        self.session = session
        self.settings = settings
        self.items: List[dict] = []
        self.count = 0
        self.loading = False
        self._unsubscribe = session.subscribe(self._on_identity_change)

    def _on_identity_change(self, session: SessionState) -> None:
        if session.is_authenticated:
            self.fetch_items()
        else:
            self.reset()

    def reset(self) -> None:
        self.items = []
        self.count = 0

    def close(self) -> None:
        self._unsubscribe()
        self.reset()

    @property
    def total(self) -> Decimal:
        return sum_prices(self.items)

    @property
    def formatted_total(self) -> str:
        return format_amount(self.total)

    def fetch_items(self) -> List[dict]:
        if not self.session.is_authenticated:
            self.reset()
            return self.items
        self.loading = True
        try:
            items = self.store.get_documents(COL_CART, {"user_id": self.session.user_id})
        except RemoteOperationFailed as e:
            logger.error("Error fetching cart items: %s", e)
            items = []
        finally:
            self.loading = False
        self.items = items
        self.count = len(items)
        return self.items

    def add_item(self, product: dict) -> dict:
        if not self.session.is_authenticated:
            raise Unauthenticated()

        user_id = self.session.user_id
        # check-then-write: two sessions adding the same product can both pass
        existing = self.store.get_page(
            COL_CART, 1, 1, {"user_id": user_id, "product_id": product["id"]}
        )
        if existing.items:
            raise AlreadyInCart()

        item = self.store.create_document(
            COL_CART,
            CartItemSchema(
                user_id=user_id,
                product_id=product["id"],
                product_name=product["name"],
                price=product.get("price") or 0,
            ),
        )
        self.items.insert(0, item)
        self.count += 1
        return item

    def remove_item(self, item_id: str) -> None:
        if not self.session.is_authenticated:
            raise Unauthenticated()
        if not any(item["id"] == item_id for item in self.items):
            raise RecordNotFound(f"Cart item {item_id} not found")

        self.store.delete_document(COL_CART, item_id)
        self.items = [item for item in self.items if item["id"] != item_id]
        self.count = len(self.items)

    def clear(self, raise_on_failure: Optional[bool] = None) -> BatchReport:
        """Delete every cart item, one store call each.

        Items whose delete failed stay in the local cart. With
        `raise_on_failure` (default: settings.cart_clear_strict) a partial
        failure raises PartialFailure, otherwise it is only logged.
        """
        strict = self.settings.cart_clear_strict if raise_on_failure is None else raise_on_failure
        tasks = {item["id"]: partial(self.store.delete_document, COL_CART, item["id"]) for item in self.items}
        report = fan_out(tasks, self.settings.batch_workers)

        removed = set(report.succeeded)
        self.items = [item for item in self.items if item["id"] not in removed]
        self.count = len(self.items)

        if not report.ok:
            logger.error("Error clearing cart: %d item(s) not deleted", len(report.failed))
            if strict:
                report.raise_for_failures("Some cart items could not be removed")
        return report

    def discard(self, item_ids: List[str]) -> BatchReport:
        """Delete the given cart items and nothing else. Never raises.

        An item that is already gone from the store counts as deleted.
        """
        def delete(item_id):
            try:
                self.store.delete_document(COL_CART, item_id)
            except RecordNotFound:
                pass

        report = fan_out({item_id: partial(delete, item_id) for item_id in item_ids}, self.settings.batch_workers)

        removed = set(report.succeeded)
        self.items = [item for item in self.items if item["id"] not in removed]
        self.count = len(self.items)
        if not report.ok:
            logger.error("Error discarding cart items: %d item(s) not deleted", len(report.failed))
        return report

    def promote_to_client(self, user_id: str) -> bool:
        """Raise `user` to `client`. Clients and admins are left untouched."""
        user = self.store.get_document(COL_USERS, user_id)
        if user.get("role") != "user":
            return False
        self.store.update_document(COL_USERS, user_id, {"role": "client"})
        return True
