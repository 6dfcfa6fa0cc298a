"""
Admin dashboard workflows: product management, bulk grants and the
purchase reset.

Every function checks the caller is an admin before touching the store.
Batch writes fan out without a transaction; a partial failure is raised as
PartialFailure once every task has run.
"""
import logging
from functools import partial
from typing import Dict, List

from goldenshop.batch import fan_out
from goldenshop.catalog import grant_file_url
from goldenshop.context import AppContext
from goldenshop.errors import Forbidden, InvalidSelection, RemoteOperationFailed, Unauthenticated
from goldenshop.schemas import (
    COL_DOWNLOADS,
    COL_ORDERS,
    COL_PRODUCTS,
    COL_USERS,
    Download as DownloadSchema,
    Order as OrderSchema,
    Product as ProductSchema,
    ProductUpdate,
)
from goldenshop.session import public_user

logger = logging.getLogger(__name__)


def require_admin(ctx: AppContext) -> dict:
    if not ctx.session.is_authenticated:
        raise Unauthenticated()
    if not ctx.session.is_admin:
        raise Forbidden()
    return ctx.session.user


# ---------- Users ----------
def list_users(ctx: AppContext) -> List[dict]:
    require_admin(ctx)
    try:
        users = ctx.store.get_documents(COL_USERS)
    except RemoteOperationFailed as e:
        logger.error("Error fetching users: %s", e)
        return []
    return [public_user(u) for u in users]


# ---------- Products ----------
def create_product(ctx: AppContext, payload: ProductSchema) -> dict:
    require_admin(ctx)
    product = ctx.store.create_document(COL_PRODUCTS, payload)
    logger.info("product %s created by %s", product["id"], ctx.session.user_id)
    return product


def update_product(ctx: AppContext, product_id: str, payload: ProductUpdate) -> dict:
    require_admin(ctx)
    updates = {k: v for k, v in payload.model_dump().items() if v is not None}
    if not updates:
        return ctx.store.get_document(COL_PRODUCTS, product_id)
    return ctx.store.update_document(COL_PRODUCTS, product_id, updates)


def delete_product(ctx: AppContext, product_id: str) -> None:
    require_admin(ctx)
    ctx.store.delete_document(COL_PRODUCTS, product_id)
    logger.info("product %s deleted by %s", product_id, ctx.session.user_id)


# ---------- Bulk grant ----------
def _grant(ctx: AppContext, user_id: str, product_id: str) -> None:
    product = ctx.store.get_document(COL_PRODUCTS, product_id)
    ctx.store.create_document(
        COL_ORDERS,
        OrderSchema(
            user_id=user_id,
            product_id=product_id,
            product_name=product["name"],
            price=product.get("price") or 0,
            payment_status="completed",
            payment_method="admin_added",
            type="admin_added",
        ),
    )
    ctx.store.create_document(
        COL_DOWNLOADS,
        DownloadSchema(
            user_id=user_id,
            product_id=product_id,
            product_name=product["name"],
            file_url=grant_file_url(ctx.store, product),
        ),
    )


def grant_products(ctx: AppContext, user_id: str, product_ids: List[str]) -> Dict[str, object]:
    """Credit `user_id` with each product: one completed order and one download apiece.

    The target is promoted to client once, after the grants, if at least one
    grant went through and their role is still `user`.

    Within one grant the download is written only after its order, so a
    failed order never leaves an orphan download behind. Grants for
    different products still run independently.
    """
    require_admin(ctx)
    product_ids = list(dict.fromkeys(pid for pid in (product_ids or []) if pid))
    if not user_id or not product_ids:
        raise InvalidSelection("Please select user and products")

    ctx.store.get_document(COL_USERS, user_id)

    report = fan_out(
        {pid: partial(_grant, ctx, user_id, pid) for pid in product_ids},
        ctx.settings.batch_workers,
    )

    promoted = False
    if report.succeeded:
        try:
            promoted = ctx.cart.promote_to_client(user_id)
        except RemoteOperationFailed as e:
            logger.error("Error assigning client role to %s: %s", user_id, e)
            report.failed[f"role:{user_id}"] = e.message

    logger.info(
        "granted %d/%d product(s) to %s", len(report.succeeded), len(product_ids), user_id
    )
    report.raise_for_failures("Some products could not be granted")
    return {"user_id": user_id, "granted": report.succeeded, "promoted": promoted}


# ---------- Purchase reset ----------
def reset_purchases(ctx: AppContext) -> Dict[str, int]:
    """Delete every order and download, and send every client back to `user`.

    Admins and plain users are not touched. All writes go out at once.
    """
    require_admin(ctx)
    orders = ctx.store.get_documents(COL_ORDERS, sort=None)
    downloads = ctx.store.get_documents(COL_DOWNLOADS, sort=None)
    clients = ctx.store.get_documents(COL_USERS, {"role": "client"}, sort=None)

    tasks = {}
    for o in orders:
        tasks[f"orders/{o['id']}"] = partial(ctx.store.delete_document, COL_ORDERS, o["id"])
    for d in downloads:
        tasks[f"downloads/{d['id']}"] = partial(ctx.store.delete_document, COL_DOWNLOADS, d["id"])
    for u in clients:
        tasks[f"users/{u['id']}"] = partial(
            ctx.store.update_document, COL_USERS, u["id"], {"role": "user", "cagnotte": 0}
        )

    report = fan_out(tasks, ctx.settings.batch_workers)
    logger.info(
        "purchase reset by %s: %d ok, %d failed",
        ctx.session.user_id,
        len(report.succeeded),
        len(report.failed),
    )
    report.raise_for_failures("Purchase reset partially failed")
    return {
        "orders_deleted": len(orders),
        "downloads_deleted": len(downloads),
        "users_reset": len(clients),
    }
