"""
Database Schemas for GoldenShop

Collections:
- users: Authentication, role and reward balance
- products: Digital items (plugins and maps)
- cart: Pending line items of a user
- orders: Completed purchases and admin grants
- downloads: Files granted to a user by an admin
"""

from datetime import datetime, timezone
from typing import List, Literal, Optional

from pydantic import BaseModel, EmailStr, Field

Role = Literal["user", "client", "admin"]
ProductType = Literal["plugin", "map"]

COL_USERS = "users"
COL_PRODUCTS = "products"
COL_CART = "cart"
COL_ORDERS = "orders"
COL_DOWNLOADS = "downloads"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# Users
class User(BaseModel):
    email: EmailStr = Field(..., description="Email address")
    hashed_password: str = Field(..., description="Password hash")
    role: Role = Field("user", description="user, client or admin")
    cagnotte: float = Field(0, ge=0, description="Reward balance")


# Digital products
class Product(BaseModel):
    name: str = Field(..., min_length=1, description="Product name")
    type: ProductType = Field("plugin", description="plugin or map")
    creator: str = Field(..., min_length=1, description="Author shown in the catalog")
    price: float = Field(..., ge=0, description="Price in USD")
    description: str = Field("", description="Detailed description")
    demo_link: Optional[str] = Field(None, description="Demo video or server link")
    featured: bool = Field(False, description="Shown on the home page")

    # stored file names, resolved through RecordStore.file_url
    images: List[str] = Field(default_factory=list, description="Preview images")
    plugin_file: Optional[str] = Field(None, description="Plugin archive")
    map_file: Optional[str] = Field(None, description="Map archive")
    download_url: Optional[str] = Field(None, description="External download link")


class ProductUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1)
    type: Optional[ProductType] = None
    creator: Optional[str] = Field(None, min_length=1)
    price: Optional[float] = Field(None, ge=0)
    description: Optional[str] = None
    demo_link: Optional[str] = None
    featured: Optional[bool] = None
    images: Optional[List[str]] = None
    plugin_file: Optional[str] = None
    map_file: Optional[str] = None
    download_url: Optional[str] = None


# Cart
class CartItem(BaseModel):
    user_id: str = Field(..., description="Owner")
    product_id: str = Field(..., description="Product in the cart")
    product_name: str = Field(..., description="Name at add time")
    price: float = Field(..., ge=0, description="Price at add time")
    added_date: datetime = Field(default_factory=utcnow)


# Orders
class Order(BaseModel):
    user_id: str = Field(..., description="Buyer")
    product_id: str = Field(..., description="Purchased product")
    product_name: str = Field(..., description="Name at purchase time")
    price: float = Field(..., ge=0, description="Charged amount")
    payment_status: Literal["pending", "completed", "failed"] = Field("completed")
    payment_method: str = Field(..., description="paypal, googlepay or admin_added")
    type: Optional[str] = Field(None, description="Origin of the order")
    purchase_date: datetime = Field(default_factory=utcnow)


# Downloads
class Download(BaseModel):
    user_id: str
    product_id: str
    product_name: str
    download_date: datetime = Field(default_factory=utcnow)
    file_url: str = ""
