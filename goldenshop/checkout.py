"""
Checkout through external payment redirect links.

begin_checkout stashes the cart and hands back a paypal.me or Google Pay
"send money" URL for the cart total. confirm_payment is what the payment
success page calls afterwards: it turns the stashed cart into completed
orders.

Nothing here verifies that money actually moved. The redirect targets send
no callback, so a confirmed payment is whatever the client declares. Treat
confirm_payment as a trust gap until a server-side payment confirmation
replaces it.
"""
import logging
import time
from decimal import Decimal
from typing import Dict, List
from urllib.parse import quote

from goldenshop.batch import fan_out
from goldenshop.cart import format_amount, sum_prices
from goldenshop.config import Settings
from goldenshop.context import AppContext
from goldenshop.errors import EmptyCart, InvalidSelection, Unauthenticated
from goldenshop.schemas import COL_ORDERS, Order as OrderSchema

logger = logging.getLogger(__name__)

PAYMENT_TAGS = {
    "paypal": "pendingPayPalOrder",
    "googlepay": "pendingGooglePayOrder",
}


def _check_method(method: str) -> str:
    if method not in PAYMENT_TAGS:
        raise InvalidSelection(f"Unknown payment method: {method}")
    return PAYMENT_TAGS[method]


def payment_url(settings: Settings, method: str, total: Decimal) -> str:
    amount = format_amount(total)
    if method == "paypal":
        return f"https://www.paypal.com/paypalme/{settings.paypal_recipient}/{amount}USD"
    if method == "googlepay":
        recipient = quote(settings.googlepay_recipient, safe="")
        return f"https://pay.google.com/gp/w/u/0/home/sendcash?amount={amount}&currency=USD&recipient={recipient}"
    raise InvalidSelection(f"Unknown payment method: {method}")


def summarize(ctx: AppContext) -> Dict[str, object]:
    if not ctx.session.is_authenticated:
        raise Unauthenticated()
    items = ctx.cart.items
    summary = {
        "items": items,
        "subtotal": ctx.cart.formatted_total,
        "tax": "0.00",
        "total": ctx.cart.formatted_total,
        "empty": not items,
    }
    if not items:
        summary["notice"] = EmptyCart.title
    return summary


def begin_checkout(ctx: AppContext, method: str) -> Dict[str, str]:
    tag = _check_method(method)
    if not ctx.session.is_authenticated:
        raise Unauthenticated()
    if not ctx.cart.items:
        raise EmptyCart()

    total = ctx.cart.total
    ctx.stash.put(
        ctx.session.user_id,
        tag,
        {
            "cart_items": [dict(item) for item in ctx.cart.items],
            "user_id": ctx.session.user_id,
            "timestamp": int(time.time() * 1000),
        },
    )
    url = payment_url(ctx.settings, method, total)
    logger.info("checkout %s for user %s: %s", method, ctx.session.user_id, format_amount(total))
    return {"method": method, "total": format_amount(total), "redirect_url": url}


def confirm_payment(ctx: AppContext, method: str) -> Dict[str, object]:
    tag = _check_method(method)
    if not ctx.session.is_authenticated:
        raise Unauthenticated()

    user_id = ctx.session.user_id
    snapshot = ctx.stash.pop(user_id, tag)
    if not snapshot or snapshot.get("user_id") != user_id:
        raise InvalidSelection("No pending payment to confirm")

    items: List[dict] = snapshot["cart_items"]
    created: Dict[str, dict] = {}

    def place(item):
        def task():
            created[item["id"]] = ctx.store.create_document(
                COL_ORDERS,
                OrderSchema(
                    user_id=user_id,
                    product_id=item["product_id"],
                    product_name=item["product_name"],
                    price=item.get("price") or 0,
                    payment_status="completed",
                    payment_method=method,
                    type="purchase",
                ),
            )
        return task

    report = fan_out({item["id"]: place(item) for item in items}, ctx.settings.batch_workers)
    if not report.ok:
        # keep the unplaced items so the confirmation can be retried
        remaining = [item for item in items if item["id"] in report.failed]
        ctx.stash.put(user_id, tag, {**snapshot, "cart_items": remaining})
        report.raise_for_failures("Some orders could not be recorded")

    ctx.cart.promote_to_client(user_id)
    # only the paid snapshot leaves the cart; items added since stay put
    leftover = ctx.cart.discard([item["id"] for item in items])
    if not leftover.ok:
        logger.warning(
            "payment %s confirmed for user %s but %d paid item(s) are still in the cart",
            method, user_id, len(leftover.failed),
        )
    ctx.session.refresh_user()
    logger.info("payment %s confirmed for user %s: %d order(s)", method, user_id, len(created))
    return {
        "orders": [created[item["id"]] for item in items],
        "total": format_amount(sum_prices(items)),
        "role": ctx.session.user.get("role") if ctx.session.user else None,
        "cart_report": leftover.model_dump(),
    }
