"""
Catalog reads: product listings, community stats and a user's downloads.

List reads never fail the caller: store errors are logged and an empty
result is returned instead.
"""
import logging
from typing import List, Optional

from goldenshop.context import AppContext
from goldenshop.database import Page, RecordStore
from goldenshop.errors import RecordNotFound, RemoteOperationFailed, Unauthenticated
from goldenshop.schemas import COL_ORDERS, COL_PRODUCTS, COL_USERS

logger = logging.getLogger(__name__)

THUMB_SIZE = "300x300"
DOWNLOADS_LIMIT = 50


def with_thumbnail(store: RecordStore, product: dict) -> dict:
    images = product.get("images") or []
    product["thumbnail_url"] = store.file_url(COL_PRODUCTS, product, images[0], thumb=THUMB_SIZE) if images else ""
    return product


def download_link(store: RecordStore, product: dict) -> str:
    """Link a buyer downloads from: explicit URL, else the file matching the product type."""
    if product.get("download_url"):
        return product["download_url"]
    field = "plugin_file" if product.get("type") == "plugin" else "map_file"
    return store.file_url(COL_PRODUCTS, product, product.get(field))


def grant_file_url(store: RecordStore, product: dict) -> str:
    """URL stored on an admin-granted download: explicit URL, plugin file, map file, or ''."""
    return (
        product.get("download_url")
        or store.file_url(COL_PRODUCTS, product, product.get("plugin_file"))
        or store.file_url(COL_PRODUCTS, product, product.get("map_file"))
        or ""
    )


def list_products(
    ctx: AppContext,
    type: Optional[str] = None,
    featured: Optional[bool] = None,
    page: int = 1,
    per_page: int = 50,
) -> Page:
    q = {}
    if type:
        q["type"] = type
    if featured is not None:
        q["featured"] = featured
    try:
        result = ctx.store.get_page(COL_PRODUCTS, page, per_page, q)
    except RemoteOperationFailed as e:
        logger.error("Error fetching products: %s", e)
        return Page(items=[], page=page, per_page=per_page, total_items=0)
    result.items = [with_thumbnail(ctx.store, p) for p in result.items]
    return result


def featured_products(ctx: AppContext, limit: int = 4) -> List[dict]:
    return list_products(ctx, featured=True, page=1, per_page=limit).items


def get_product(ctx: AppContext, product_id: str) -> dict:
    return with_thumbnail(ctx.store, ctx.store.get_document(COL_PRODUCTS, product_id))


def client_count(ctx: AppContext) -> int:
    try:
        return ctx.store.count_documents(COL_USERS, {"role": "client"})
    except RemoteOperationFailed as e:
        logger.error("Error fetching stats: %s", e)
        return 0


def user_downloads(ctx: AppContext) -> List[dict]:
    """Completed orders of the session user, each with its product and download link."""
    if not ctx.session.is_authenticated:
        raise Unauthenticated()
    try:
        orders = ctx.store.get_page(
            COL_ORDERS,
            1,
            DOWNLOADS_LIMIT,
            {"user_id": ctx.session.user_id, "payment_status": "completed"},
        ).items
    except RemoteOperationFailed as e:
        logger.error("Error fetching downloads: %s", e)
        return []

    out = []
    for order in orders:
        try:
            product = ctx.store.get_document(COL_PRODUCTS, order["product_id"])
        except RecordNotFound:
            product = None
        except RemoteOperationFailed as e:
            logger.error("Error expanding order %s: %s", order["id"], e)
            product = None
        order["product"] = product
        order["download_url"] = download_link(ctx.store, product) if product else ""
        out.append(order)
    return out
