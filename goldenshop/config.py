"""
Runtime configuration for GoldenShop

Values come from the environment (a local .env file is loaded first if
present) and are collected into a single Settings object that the HTTP
process and every AppContext share.
"""
import os
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field

load_dotenv()

TRUE_VALUES = {"1", "true", "yes", "on"}


def _env_flag(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return raw.strip().lower() in TRUE_VALUES


class Settings(BaseModel):
    port: int = Field(3001, description="Listen port")
    cors_origin: str = Field("http://localhost:3000", description="Allowed cross-origin caller")
    secret_key: str = Field("supersecret", description="JWT signing key")
    access_token_expire_minutes: int = Field(60 * 24, ge=1)
    database_url: Optional[str] = Field(None, description="MongoDB connection string")
    database_name: str = Field("goldenshop")
    files_base_url: str = Field("http://localhost:8090", description="Base URL of the file store")
    paypal_recipient: str = Field("goldenshop", description="paypal.me handle receiving payments")
    googlepay_recipient: str = Field("payments@goldenshop.example", description="Google Pay recipient")
    cart_clear_strict: bool = Field(True, description="Raise when clearing the cart partially fails")
    batch_workers: int = Field(8, ge=1, description="Threads used for batch writes")
    log_level: str = Field("INFO")

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            port=int(os.getenv("PORT", 3001)),
            cors_origin=os.getenv("CORS_ORIGIN", "http://localhost:3000"),
            secret_key=os.getenv("SECRET_KEY", "supersecret"),
            access_token_expire_minutes=int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", 60 * 24)),
            database_url=os.getenv("DATABASE_URL") or None,
            database_name=os.getenv("DATABASE_NAME", "goldenshop"),
            files_base_url=os.getenv("FILES_BASE_URL", "http://localhost:8090").rstrip("/"),
            paypal_recipient=os.getenv("PAYPAL_RECIPIENT", "goldenshop"),
            googlepay_recipient=os.getenv("GOOGLEPAY_RECIPIENT", "payments@goldenshop.example"),
            cart_clear_strict=_env_flag("CART_CLEAR_STRICT", True),
            batch_workers=int(os.getenv("BATCH_WORKERS", 8)),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        )
