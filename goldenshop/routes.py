import os
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Request, status
from fastapi.security import OAuth2PasswordBearer, OAuth2PasswordRequestForm
from pydantic import BaseModel

from goldenshop import admin, catalog, checkout
from goldenshop.context import AppContext
from goldenshop.database import RecordStore
from goldenshop.errors import RemoteOperationFailed, Unauthenticated
from goldenshop.schemas import Product as ProductSchema, ProductType, ProductUpdate
from goldenshop.session import public_user

router = APIRouter()

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/login", auto_error=False)


# Helpers
class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user: dict


class RegisterPayload(BaseModel):
    email: str  # checked as EmailStr in signup so errors come back per field
    password: str
    password_confirm: str


class CartAdd(BaseModel):
    product_id: str


class GrantPayload(BaseModel):
    user_id: str = ""
    product_ids: List[str] = []


def get_store(request: Request) -> RecordStore:
    store = getattr(request.app.state, "store", None)
    if store is None:
        raise RemoteOperationFailed("Database not configured")
    return store


def get_context(request: Request, token: Optional[str] = Depends(oauth2_scheme)):
    ctx = AppContext(get_store(request), request.app.state.settings, request.app.state.stash)
    ctx.start(token)
    try:
        yield ctx
    finally:
        ctx.close()


def current_user(ctx: AppContext = Depends(get_context)) -> AppContext:
    if not ctx.session.is_authenticated:
        raise Unauthenticated()
    return ctx


# Routes
@router.get("/")
def root():
    return {"message": "GoldenShop backend is running"}


@router.get("/test")
def test_database(request: Request):
    response = {
        "backend": "✅ Running",
        "database": "❌ Not Available",
        "database_url": "✅ Set" if os.getenv("DATABASE_URL") else "❌ Not Set",
        "collections": [],
    }
    store = getattr(request.app.state, "store", None)
    if store is not None:
        try:
            response["collections"] = store.collection_names()[:10]
            response["database"] = "✅ Connected & Working"
        except RemoteOperationFailed as e:
            response["database"] = f"⚠️  Connected but Error: {e.message[:50]}"
    return response


# Auth
@router.post("/auth/register", response_model=Token, status_code=status.HTTP_201_CREATED)
def register(payload: RegisterPayload, ctx: AppContext = Depends(get_context)):
    token = ctx.session.signup(payload.email, payload.password, payload.password_confirm)
    return Token(access_token=token, user=public_user(ctx.session.user))


@router.post("/auth/login", response_model=Token)
def login(form_data: OAuth2PasswordRequestForm = Depends(), ctx: AppContext = Depends(get_context)):
    token = ctx.session.login(form_data.username, form_data.password)
    return Token(access_token=token, user=public_user(ctx.session.user))


@router.get("/auth/me")
def me(ctx: AppContext = Depends(current_user)):
    return public_user(ctx.session.user)


# Products
@router.get("/products")
def list_products(
    type: Optional[ProductType] = Query(None),
    featured: Optional[bool] = Query(None),
    page: int = Query(1, ge=1),
    per_page: int = Query(50, ge=1, le=200),
    ctx: AppContext = Depends(get_context),
):
    return catalog.list_products(ctx, type=type, featured=featured, page=page, per_page=per_page).model_dump()


@router.get("/products/featured")
def featured_products(limit: int = Query(4, ge=1, le=50), ctx: AppContext = Depends(get_context)):
    return catalog.featured_products(ctx, limit=limit)


@router.get("/products/{product_id}")
def get_product(product_id: str, ctx: AppContext = Depends(get_context)):
    return catalog.get_product(ctx, product_id)


@router.post("/products", status_code=status.HTTP_201_CREATED)
def create_product(payload: ProductSchema, ctx: AppContext = Depends(get_context)):
    return admin.create_product(ctx, payload)


@router.put("/products/{product_id}")
def update_product(product_id: str, payload: ProductUpdate, ctx: AppContext = Depends(get_context)):
    return admin.update_product(ctx, product_id, payload)


@router.delete("/products/{product_id}")
def delete_product(product_id: str, ctx: AppContext = Depends(get_context)):
    admin.delete_product(ctx, product_id)
    return {"deleted": True}


@router.get("/stats")
def stats(ctx: AppContext = Depends(get_context)):
    return {"clients": catalog.client_count(ctx)}


# Cart
def cart_view(ctx: AppContext) -> dict:
    return {"items": ctx.cart.items, "count": ctx.cart.count, "total": ctx.cart.formatted_total}


@router.get("/cart")
def get_cart(ctx: AppContext = Depends(current_user)):
    return cart_view(ctx)


@router.post("/cart", status_code=status.HTTP_201_CREATED)
def add_to_cart(payload: CartAdd, ctx: AppContext = Depends(get_context)):
    if not ctx.session.is_authenticated:
        raise Unauthenticated()
    product = catalog.get_product(ctx, payload.product_id)
    item = ctx.cart.add_item(product)
    return {"item": item, **cart_view(ctx)}


@router.delete("/cart/{item_id}")
def remove_from_cart(item_id: str, ctx: AppContext = Depends(current_user)):
    ctx.cart.remove_item(item_id)
    return cart_view(ctx)


@router.delete("/cart")
def clear_cart(strict: Optional[bool] = Query(None), ctx: AppContext = Depends(current_user)):
    report = ctx.cart.clear(raise_on_failure=strict)
    return {"report": report.model_dump(), **cart_view(ctx)}


@router.get("/downloads")
def downloads(ctx: AppContext = Depends(current_user)):
    return catalog.user_downloads(ctx)


# Checkout
@router.get("/checkout")
def checkout_summary(ctx: AppContext = Depends(current_user)):
    return checkout.summarize(ctx)


@router.post("/checkout/{method}")
def begin_checkout(method: str, ctx: AppContext = Depends(current_user)):
    return checkout.begin_checkout(ctx, method)


@router.post("/checkout/{method}/confirm")
def confirm_payment(method: str, ctx: AppContext = Depends(current_user)):
    return checkout.confirm_payment(ctx, method)


# Admin
@router.get("/admin/users")
def admin_list_users(ctx: AppContext = Depends(get_context)):
    return admin.list_users(ctx)


@router.post("/admin/grants")
def admin_grant_products(payload: GrantPayload, ctx: AppContext = Depends(get_context)):
    return admin.grant_products(ctx, payload.user_id, payload.product_ids)


@router.post("/admin/reset-purchases")
def admin_reset_purchases(ctx: AppContext = Depends(get_context)):
    return admin.reset_purchases(ctx)
